# talkpair/common/management/commands/seed_dummy.py
from datetime import timedelta

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from talkpair.authentication.services import issue_jwt_for_user
from talkpair.calls.models import Call, CallParticipant, CallTranscriptLine

USERS = [
    dict(email="alice@talkpair.local", display_name="Alice", avatar_url="/images/avatars/alice.png"),
    dict(email="bob@talkpair.local", display_name="Bob", avatar_url="/images/avatars/bob.png"),
    dict(email="carol@talkpair.local", display_name="Carol", avatar_url=""),
]

TRANSCRIPT = [
    (0, "Hi, where are you calling from?"),
    (1, "I am from Seoul, I live there since five years."),
    (0, "Nice! What do you do for fun?"),
    (1, "I like to playing tennis on weekends."),
]


class Command(BaseCommand):
    help = "Seed demo users (and one finished call) for local development"

    def add_arguments(self, parser):
        parser.add_argument(
            "--tokens",
            action="store_true",
            help="print a dev JWT for each seeded user",
        )

    @transaction.atomic
    def handle(self, *args, **options):
        User = get_user_model()
        now = timezone.now()

        users = []
        for data in USERS:
            user, created = User.objects.get_or_create(
                email=data["email"],
                defaults={k: v for k, v in data.items() if k != "email"},
            )
            users.append(user)
            self.stdout.write(f"{'created' if created else 'exists '} user {user.id} {user.email}")

        # 종료된 랜덤 통화 1건 (history / 상세 화면 확인용)
        a, b = users[0], users[1]
        if not Call.objects.filter(participants__user=a).exists():
            start = now - timedelta(minutes=10)
            end = start + timedelta(seconds=125)
            call = Call.objects.create(
                type="random",
                status="ended",
                start_time=start,
                end_time=end,
                duration_seconds=125,
            )
            for idx, user in enumerate((a, b)):
                CallParticipant.objects.create(
                    call=call, user=user, position=idx, joined_at=start, left_at=end
                )
            for order, (speaker_idx, text) in enumerate(TRANSCRIPT):
                CallTranscriptLine.objects.create(
                    call=call,
                    speaker=(a, b)[speaker_idx],
                    text=text,
                    timestamp=start + timedelta(seconds=10 * (order + 1)),
                    confidence=0.9,
                    order=order,
                )
            self.stdout.write(f"created call {call.call_id}")

        if options["tokens"]:
            for user in users:
                self.stdout.write(f"{user.email}: {issue_jwt_for_user(user)}")

        self.stdout.write(self.style.SUCCESS("seed done"))

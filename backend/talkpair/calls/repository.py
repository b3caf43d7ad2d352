# talkpair/calls/repository.py
from typing import Optional

from channels.db import database_sync_to_async
from django.db import transaction

from .models import Call, CallParticipant, CallTranscriptLine, GrammarFeedback

_UNSET = object()


class CallRepository:
    """
    통화 기록 영속화 인터페이스 (createCall / updateCall / findCall + transcript/feedback)
    메모리 세션 스토어는 이 레코드의 거울이고, 종료 후에는 여기만 남음
    """

    @database_sync_to_async
    def create_call(self, session) -> None:
        with transaction.atomic():
            call = Call.objects.create(
                call_id=session.call_id,
                type=session.type,
                status=session.status,
                start_time=session.start_time,
            )
            CallParticipant.objects.bulk_create(
                [
                    CallParticipant(
                        call=call,
                        user_id=p.user_id,
                        position=idx,
                        joined_at=p.joined_at,
                    )
                    for idx, p in enumerate(session.participants)
                ]
            )

    @database_sync_to_async
    def update_call(
        self,
        call_id: str,
        *,
        status=_UNSET,
        start_time=_UNSET,
        end_time=_UNSET,
        duration_seconds=_UNSET,
        joined_at: Optional[dict] = None,
        left_at: Optional[dict] = None,
    ) -> None:
        fields = {}
        if status is not _UNSET:
            fields["status"] = status
        if start_time is not _UNSET:
            fields["start_time"] = start_time
        if end_time is not _UNSET:
            fields["end_time"] = end_time
        if duration_seconds is not _UNSET:
            fields["duration_seconds"] = duration_seconds

        with transaction.atomic():
            call = Call.objects.select_for_update().get(call_id=call_id)
            for name, value in fields.items():
                setattr(call, name, value)
            if fields:
                call.save(update_fields=[*fields.keys(), "updated_at"])

            for user_id, ts in (joined_at or {}).items():
                CallParticipant.objects.filter(call=call, user_id=user_id).update(joined_at=ts)
            for user_id, ts in (left_at or {}).items():
                CallParticipant.objects.filter(call=call, user_id=user_id).update(left_at=ts)

    @database_sync_to_async
    def find_call(self, call_id: str) -> Optional[Call]:
        return (
            Call.objects.prefetch_related("participants")
            .filter(call_id=call_id)
            .first()
        )

    @database_sync_to_async
    def add_transcript_line(self, call_id: str, entry, order: int) -> None:
        call = Call.objects.get(call_id=call_id)
        CallTranscriptLine.objects.create(
            call=call,
            speaker_id=entry.speaker_id,
            text=entry.text,
            timestamp=entry.timestamp,
            confidence=entry.confidence,
            order=order,
        )

    @database_sync_to_async
    def transcript_text(self, call_id: str) -> str:
        texts = CallTranscriptLine.objects.filter(call__call_id=call_id).values_list(
            "text", flat=True
        )
        return " ".join(t for t in texts if t)

    @database_sync_to_async
    def save_feedback(self, call_id: str, original_text: str, analysis) -> GrammarFeedback:
        call = Call.objects.get(call_id=call_id)
        feedback, _ = GrammarFeedback.objects.update_or_create(
            call=call,
            defaults={
                "original_text": original_text,
                "corrected_text": analysis.corrected_text,
                "mistakes": analysis.mistakes,
                "overall_score": analysis.overall_score,
                "suggestions": analysis.suggestions,
            },
        )
        return feedback

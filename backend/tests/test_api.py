from datetime import timedelta

import pytest
from django.core.management import call_command
from django.test import override_settings
from django.utils import timezone
from rest_framework.test import APIClient

from talkpair.authentication.services import issue_jwt_for_user
from talkpair.calls.models import Call, CallParticipant, CallTranscriptLine, GrammarFeedback
from talkpair.users.models import User

pytestmark = pytest.mark.django_db


@pytest.fixture
def alice():
    return User.objects.create_user(email="alice@test.local", display_name="Alice")


@pytest.fixture
def bob():
    return User.objects.create_user(email="bob@test.local", display_name="Bob")


@pytest.fixture
def client_for():
    def _client(user):
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {issue_jwt_for_user(user)}")
        return client

    return _client


def make_call(a, b, *, status="ended", seconds=125, started_minutes_ago=10):
    start = timezone.now() - timedelta(minutes=started_minutes_ago)
    call = Call.objects.create(
        type="random",
        status=status,
        start_time=start,
        end_time=start + timedelta(seconds=seconds) if status == "ended" else None,
        duration_seconds=seconds if status == "ended" else None,
    )
    for idx, user in enumerate((a, b)):
        CallParticipant.objects.create(call=call, user=user, position=idx, joined_at=start)
    return call


class TestAuth:
    def test_missing_token(self):
        res = APIClient().get("/api/users/me")
        assert res.status_code == 401
        assert res.json()["error"]["code"] == "UNAUTHORIZED"

    def test_invalid_token(self):
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION="Bearer garbage")
        res = client.get("/api/users/me")
        assert res.status_code == 401
        assert res.json()["error"]["code"] == "INVALID_TOKEN"

    def test_me(self, alice, client_for):
        res = client_for(alice).get("/api/users/me")
        assert res.status_code == 200
        body = res.json()
        assert body["success"] is True
        assert body["data"]["userId"] == alice.id
        assert body["data"]["name"] == "Alice"
        assert body["data"]["isOnline"] is False

    def test_dev_jwt_hidden_outside_debug(self):
        res = APIClient().post("/api/auth/jwt/dev", {}, format="json")
        assert res.status_code == 404

    @override_settings(DEBUG=True)
    def test_dev_jwt(self):
        res = APIClient().post(
            "/api/auth/jwt/dev", {"email": "dev2@test.local", "displayName": "Dev"}, format="json"
        )
        assert res.status_code == 200
        data = res.json()["data"]
        assert data["tokenType"] == "Bearer"
        assert User.objects.get(id=data["userId"]).display_name == "Dev"

        me = APIClient()
        me.credentials(HTTP_AUTHORIZATION=f"Bearer {data['accessToken']}")
        assert me.get("/api/users/me").json()["data"]["userId"] == data["userId"]


class TestMeStats:
    def test_empty(self, alice, client_for):
        res = client_for(alice).get("/api/users/me/stats")
        assert res.status_code == 200
        data = res.json()["data"]
        assert data["totalCalls"] == 0
        assert data["totalSeconds"] == 0
        assert data["averageScore"] == 0
        assert data["recentCalls"] == []

    def test_totals_over_ended_calls(self, alice, bob, client_for):
        first = make_call(alice, bob, seconds=120, started_minutes_ago=30)
        second = make_call(alice, bob, seconds=240, started_minutes_ago=10)
        make_call(alice, bob, status="active")
        GrammarFeedback.objects.create(call=first, overall_score=70)
        GrammarFeedback.objects.create(call=second, overall_score=91)

        data = client_for(alice).get("/api/users/me/stats").json()["data"]

        assert data["totalCalls"] == 2
        assert data["totalSeconds"] == 360
        assert data["totalMinutes"] == 6
        assert data["averageScore"] == 80
        assert [c["callId"] for c in data["recentCalls"]] == [str(second.call_id), str(first.call_id)]

    def test_hidden_calls_are_not_counted(self, alice, bob, client_for):
        call = make_call(alice, bob, seconds=60)
        CallParticipant.objects.filter(call=call, user=alice).update(hidden=True)

        assert client_for(alice).get("/api/users/me/stats").json()["data"]["totalCalls"] == 0
        assert client_for(bob).get("/api/users/me/stats").json()["data"]["totalCalls"] == 1

    def test_recent_calls_limited(self, alice, bob, client_for):
        for minutes in range(7):
            make_call(alice, bob, started_minutes_ago=minutes + 5)

        data = client_for(alice).get("/api/users/me/stats").json()["data"]
        assert data["totalCalls"] == 7
        assert len(data["recentCalls"]) == 5


class TestCallHistory:
    def test_history_lists_ended_calls_newest_first(self, alice, bob, client_for):
        older = make_call(alice, bob, started_minutes_ago=60)
        newer = make_call(alice, bob, started_minutes_ago=5)
        make_call(alice, bob, status="active")

        res = client_for(alice).get("/api/calls/history")

        assert res.status_code == 200
        calls = res.json()["data"]["calls"]
        assert [c["callId"] for c in calls] == [str(newer.call_id), str(older.call_id)]
        assert calls[0]["durationSeconds"] == 125
        assert [p["user"]["id"] for p in calls[0]["participants"]] == [alice.id, bob.id]

    def test_history_excludes_other_users(self, alice, bob, client_for):
        carol = User.objects.create_user(email="carol@test.local")
        make_call(alice, bob)
        assert client_for(carol).get("/api/calls/history").json()["data"]["calls"] == []

    def test_detail_includes_transcript_and_feedback(self, alice, bob, client_for):
        call = make_call(alice, bob)
        CallTranscriptLine.objects.create(
            call=call, speaker=bob, text="I has a cat", timestamp=timezone.now(), order=0
        )
        GrammarFeedback.objects.create(
            call=call, original_text="I has a cat", corrected_text="I have a cat", overall_score=80
        )

        res = client_for(bob).get(f"/api/calls/{call.call_id}")

        assert res.status_code == 200
        data = res.json()["data"]["call"]
        assert data["transcript"][0] == {
            "speakerId": bob.id,
            "text": "I has a cat",
            "timestamp": data["transcript"][0]["timestamp"],
            "confidence": None,
        }
        assert data["grammarFeedback"]["correctedText"] == "I have a cat"

    def test_detail_without_feedback(self, alice, bob, client_for):
        call = make_call(alice, bob)
        data = client_for(alice).get(f"/api/calls/{call.call_id}").json()["data"]["call"]
        assert data["grammarFeedback"] is None

    def test_detail_of_foreign_call(self, alice, bob, client_for):
        carol = User.objects.create_user(email="carol@test.local")
        call = make_call(alice, bob)
        res = client_for(carol).get(f"/api/calls/{call.call_id}")
        assert res.status_code == 404
        assert res.json()["error"]["code"] == "CALL_NOT_FOUND"

    def test_hide_call_only_for_me(self, alice, bob, client_for):
        call = make_call(alice, bob)

        res = client_for(alice).delete(f"/api/calls/{call.call_id}")

        assert res.json()["data"] == {"hidden": True}
        assert client_for(alice).get("/api/calls/history").json()["data"]["calls"] == []
        assert len(client_for(bob).get("/api/calls/history").json()["data"]["calls"]) == 1

    def test_rate_call(self, alice, bob, client_for):
        call = make_call(alice, bob)

        res = client_for(alice).patch(
            f"/api/calls/{call.call_id}/feedback", {"rating": 5, "comment": "fun"}, format="json"
        )

        assert res.json()["data"] == {"updated": True}
        participation = CallParticipant.objects.get(call=call, user=alice)
        assert participation.rating == 5
        assert participation.comment == "fun"
        assert participation.feedback_at is not None

    def test_rate_call_validation(self, alice, bob, client_for):
        call = make_call(alice, bob)
        res = client_for(alice).patch(f"/api/calls/{call.call_id}/feedback", {"rating": 9}, format="json")
        assert res.status_code == 400
        assert res.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_cannot_rate_active_call(self, alice, bob, client_for):
        call = make_call(alice, bob, status="active")
        res = client_for(alice).patch(f"/api/calls/{call.call_id}/feedback", {"rating": 4}, format="json")
        assert res.status_code == 404


def test_seed_dummy(capsys):
    call_command("seed_dummy", "--tokens")
    call_command("seed_dummy")

    assert User.objects.filter(email__endswith="@talkpair.local").count() == 3
    assert Call.objects.count() == 1
    call = Call.objects.get()
    assert call.duration_seconds == 125
    assert call.transcript_lines.count() == 4
    assert "alice@talkpair.local: " in capsys.readouterr().out

# talkpair/calls/views.py
from django.db.models import F
from django.utils import timezone
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from .models import Call, CallParticipant
from .serializers import (
    CallDetailSerializer,
    CallSummarySerializer,
    ParticipantFeedbackSerializer,
)

MAX_HISTORY = 100


def ok(data=None):
    return Response({"success": True, "data": data, "error": None})


def fail(code: str, message: str, http_status: int = 400):
    return Response(
        {"success": False, "data": None, "error": {"code": code, "message": message}},
        status=http_status,
    )


def _my_participation(user, call_id, *, ended_only=False):
    qs = CallParticipant.objects.select_related("call").filter(
        call__call_id=call_id, user=user
    )
    if ended_only:
        qs = qs.filter(call__status="ended")
    return qs.first()


class CallHistoryView(APIView):
    """
    GET /api/calls/history
    내가 참여한 종료된 통화 (숨긴 것 제외), 최신순
    """

    permission_classes = [IsAuthenticated]

    def get(self, request):
        calls = (
            Call.objects.filter(
                status="ended",
                participants__user=request.user,
                participants__hidden=False,
            )
            .prefetch_related("participants__user")
            .order_by(F("start_time").desc(nulls_last=True), "-created_at")[:MAX_HISTORY]
        )
        return ok({"calls": CallSummarySerializer(calls, many=True).data})


class CallDetailView(APIView):
    """
    GET    /api/calls/<callId>   통화 상세 (transcript, 문법 피드백 포함)
    DELETE /api/calls/<callId>   내 기록에서만 숨김 (soft delete)
    """

    permission_classes = [IsAuthenticated]

    def get(self, request, call_id):
        participation = _my_participation(request.user, call_id)
        if not participation:
            return fail("CALL_NOT_FOUND", "call not found", 404)

        call = (
            Call.objects.prefetch_related("participants__user", "transcript_lines")
            .select_related("grammar_feedback")
            .get(pk=participation.call_id)
        )
        return ok({"call": CallDetailSerializer(call).data})

    def delete(self, request, call_id):
        participation = _my_participation(request.user, call_id, ended_only=True)
        if not participation:
            return fail("CALL_NOT_FOUND", "call not found", 404)

        participation.hidden = True
        participation.save(update_fields=["hidden"])
        return ok({"hidden": True})


class CallFeedbackView(APIView):
    """
    PATCH /api/calls/<callId>/feedback
    body: { "rating": 1~5, "comment": "..." }
    """

    permission_classes = [IsAuthenticated]

    def patch(self, request, call_id):
        participation = _my_participation(request.user, call_id, ended_only=True)
        if not participation:
            return fail("CALL_NOT_FOUND", "call not found", 404)

        serializer = ParticipantFeedbackSerializer(data=request.data)
        if not serializer.is_valid():
            return fail("VALIDATION_ERROR", "invalid feedback")

        data = serializer.validated_data
        if "rating" in data:
            participation.rating = data["rating"]
        if "comment" in data:
            participation.comment = data["comment"]
        participation.feedback_at = timezone.now()
        participation.save(update_fields=["rating", "comment", "feedback_at"])
        return ok({"updated": True})

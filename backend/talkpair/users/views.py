# talkpair/users/views.py
from django.db.models import Avg, Count, F, Sum
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from talkpair.calls.models import Call
from talkpair.calls.serializers import CallSummarySerializer
from .serializers import UserMeSerializer

RECENT_CALLS = 5


def ok(data=None):
    return Response({"success": True, "data": data, "error": None})


class MeView(APIView):
    """GET /api/users/me : 프로필 + presence(isOnline/lastSeen)"""

    permission_classes = [IsAuthenticated]

    def get(self, request):
        return ok(UserMeSerializer(request.user).data)


class MeStatsView(APIView):
    """
    GET /api/users/me/stats
    종료된 통화 기준 누적 통계 + 최근 통화 5건 (숨긴 기록 제외)
    """

    permission_classes = [IsAuthenticated]

    def get(self, request):
        calls = Call.objects.filter(
            status="ended",
            participants__user=request.user,
            participants__hidden=False,
        )
        totals = calls.aggregate(
            total_calls=Count("id"),
            total_seconds=Sum("duration_seconds"),
            average_score=Avg("grammar_feedback__overall_score"),
        )
        recent = (
            calls.prefetch_related("participants__user")
            .order_by(F("end_time").desc(nulls_last=True), "-created_at")[:RECENT_CALLS]
        )

        total_seconds = totals["total_seconds"] or 0
        return ok({
            "totalCalls": totals["total_calls"],
            "totalSeconds": total_seconds,
            "totalMinutes": round(total_seconds / 60),
            # 피드백이 하나도 없으면 0
            "averageScore": round(totals["average_score"] or 0),
            "recentCalls": CallSummarySerializer(recent, many=True).data,
        })

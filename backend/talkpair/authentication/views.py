# talkpair/authentication/views.py
from django.conf import settings

from rest_framework.response import Response
from rest_framework.views import APIView

from .services import get_or_create_dev_user, issue_jwt_for_user


def ok(data=None):
    return Response({"success": True, "data": data, "error": None})


def fail(code: str, message: str, http_status: int = 400):
    return Response(
        {"success": False, "data": None, "error": {"code": code, "message": message}},
        status=http_status,
    )


class DevJwtIssueView(APIView):
    """
    POST /api/auth/jwt/dev
    body: { "email": "a@b.c", "displayName": "..." }  (둘 다 생략 가능)
    DEBUG 에서만 열림. 실제 인증은 외부 identity 서비스 담당
    """

    authentication_classes = []
    permission_classes = []

    def post(self, request):
        if not settings.DEBUG:
            return fail("NOT_FOUND", "not available", 404)

        user = get_or_create_dev_user(
            request.data.get("email"), request.data.get("displayName")
        )
        token = issue_jwt_for_user(user)

        return ok(
            {
                "accessToken": token,
                "tokenType": "Bearer",
                "userId": user.id,
            }
        )

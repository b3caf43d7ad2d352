# talkpair/config/jwt_auth_middleware.py
from typing import Optional
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth.models import AnonymousUser

from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError


@database_sync_to_async
def get_user_from_token(token: str):
    """
    SimpleJWT 토큰 검증 후 유저 반환. 실패 시 AnonymousUser
    """
    jwt_auth = JWTAuthentication()
    try:
        validated = jwt_auth.get_validated_token(token)
        return jwt_auth.get_user(validated)
    except (InvalidToken, TokenError, AuthenticationFailed):
        return AnonymousUser()


def token_from_scope(scope) -> Optional[str]:
    # 1) Authorization: Bearer <jwt>  (headless 클라이언트)
    for name, value in scope.get("headers") or []:
        if name == b"authorization":
            parts = value.decode("latin1").split()
            if len(parts) == 2 and parts[0].lower() == "bearer":
                return parts[1]

    # 2) ws://.../?token=<jwt>  (브라우저는 헤더를 못 붙임)
    qs = parse_qs(scope.get("query_string", b"").decode())
    tokens = qs.get("token") or []
    return tokens[0] if tokens else None


class JwtAuthMiddleware(BaseMiddleware):
    """
    scope['user']에 JWT 유저(또는 AnonymousUser) 세팅.
    거절은 하지 않음: 익명 연결 처리는 consumer가 결정
    """

    async def __call__(self, scope, receive, send):
        token = token_from_scope(scope)
        scope = dict(scope)
        scope["user"] = await get_user_from_token(token) if token else AnonymousUser()
        return await super().__call__(scope, receive, send)


def JwtAuthMiddlewareStack(inner):
    return JwtAuthMiddleware(inner)

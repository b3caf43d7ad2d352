# talkpair/common/exceptions.py
from rest_framework.views import exception_handler
from rest_framework.exceptions import (
    MethodNotAllowed,
    NotAuthenticated,
    NotFound,
    ParseError,
    PermissionDenied,
    ValidationError,
)
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError

# 예외 타입 -> (code, message). 위에서부터 먼저 맞는 것 사용
_ERROR_CODES = (
    (NotAuthenticated, "UNAUTHORIZED", "Authorization header missing"),
    ((InvalidToken, TokenError), "INVALID_TOKEN", "Invalid token"),
    (PermissionDenied, "FORBIDDEN", "Permission denied"),
    (NotFound, "NOT_FOUND", "Not found"),
    (MethodNotAllowed, "METHOD_NOT_ALLOWED", "Method not allowed"),
    ((ValidationError, ParseError), "VALIDATION_ERROR", "Invalid request"),
)


def custom_exception_handler(exc, context):
    response = exception_handler(exc, context)
    if response is None:
        return response

    for exc_types, code, message in _ERROR_CODES:
        if isinstance(exc, exc_types):
            response.data = {
                "success": False,
                "data": None,
                "error": {"code": code, "message": message},
            }
            break

    return response

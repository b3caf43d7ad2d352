from django.urls import path
from .views import DevJwtIssueView

urlpatterns = [
    # 개발용 JWT
    path("jwt/dev/", DevJwtIssueView.as_view()),
    # (슬래시 없는 버전 유지 시)
    path("jwt/dev", DevJwtIssueView.as_view()),
]

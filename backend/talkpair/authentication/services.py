# talkpair/authentication/services.py
from rest_framework_simplejwt.tokens import AccessToken

from talkpair.users.models import User

DEV_USER_EMAIL = "dev@talkpair.local"


def issue_jwt_for_user(user: User) -> str:
    token = AccessToken.for_user(user)
    return str(token)


def get_or_create_dev_user(email: str = None, display_name: str = None) -> User:
    email = User.objects.normalize_email((email or DEV_USER_EMAIL).strip())
    user, _ = User.objects.get_or_create(
        email=email,
        defaults={"display_name": display_name or email.split("@")[0]},
    )
    return user

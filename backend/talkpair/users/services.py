# talkpair/users/services.py
from typing import Optional

from channels.db import database_sync_to_async
from django.utils import timezone

from .models import User
from .serializers import ParticipantSerializer


class UserDirectory:
    """
    코디네이터가 쓰는 유저 조회 인터페이스 (DB 왕복이므로 전부 async)
    """

    @database_sync_to_async
    def profile(self, user_id) -> Optional[dict]:
        user = User.objects.filter(id=user_id, is_active=True).first()
        if not user:
            return None
        return dict(ParticipantSerializer(user).data)

    @database_sync_to_async
    def set_online(self, user_id, online: bool) -> None:
        User.objects.filter(id=user_id).update(
            is_online=online, last_seen=timezone.now()
        )

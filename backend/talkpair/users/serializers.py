# talkpair/users/serializers.py
from rest_framework import serializers
from .models import User


class UserMeSerializer(serializers.ModelSerializer):
    userId = serializers.IntegerField(source="id", read_only=True)
    name = serializers.CharField(source="public_name", read_only=True)
    avatar = serializers.CharField(source="avatar_url", read_only=True)
    isOnline = serializers.BooleanField(source="is_online", read_only=True)
    lastSeen = serializers.DateTimeField(source="last_seen", read_only=True)

    class Meta:
        model = User
        fields = [
            "userId",
            "email",
            "name",
            "avatar",
            "isOnline",
            "lastSeen",
        ]


class ParticipantSerializer(serializers.ModelSerializer):
    """
    call_matched / incoming_call 등에 실리는 참여자 요약
      { "id": 1, "name": "...", "avatar": "..." }
    """

    name = serializers.CharField(source="public_name", read_only=True)
    avatar = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ["id", "name", "avatar"]

    def get_avatar(self, obj: User):
        return obj.avatar_url or None

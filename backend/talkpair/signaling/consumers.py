import json
import logging

from channels.generic.websocket import AsyncJsonWebsocketConsumer
from django.conf import settings

from .events import (
    EVENT_SERIALIZERS,
    FAILURE_MESSAGES,
    SIGNAL_KINDS,
    EnvelopeSerializer,
)
from .exceptions import AlreadyQueued, FriendOffline, NotRegistered, SignalingError

logger = logging.getLogger(__name__)


class CallConsumer(AsyncJsonWebsocketConsumer):
    """
    WS Call Protocol
      - URL: ws://<host>/ws/calls/?token=<jwt>
      - Envelope (양방향):
        {
          "event": "...",
          "data": {...}
        }
      - user_online 이전에는 다른 이벤트를 받지 않음
    """

    def __init__(self, *args, coordinator=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.coordinator = coordinator
        self.user_id = None

    async def connect(self):
        user = self.scope.get("user")
        authenticated = bool(user and user.is_authenticated)
        if not authenticated and not settings.SIGNALING_ALLOW_UNAUTHENTICATED:
            # 4401 Unauthorized (앱에서 처리하기 쉬움)
            await self.close(code=4401)
            return
        await self.accept()

    async def disconnect(self, close_code):
        # user_online 전에 끊긴 케이스
        if self.user_id is None:
            return
        await self.coordinator.disconnect(self.channel_name, self.user_id)

    async def receive(self, text_data=None, bytes_data=None, **kwargs):
        if not text_data:
            return

        try:
            content = json.loads(text_data)
        except ValueError:
            await self.emit_error("Malformed message")
            return

        await self.receive_json(content)

    async def receive_json(self, content, **kwargs):
        envelope = EnvelopeSerializer(data=content if isinstance(content, dict) else {})
        if not envelope.is_valid():
            await self.emit_error("Malformed message")
            return

        event = envelope.validated_data["event"]
        serializer = EVENT_SERIALIZERS[event](data=envelope.validated_data.get("data") or {})
        if not serializer.is_valid():
            await self.emit_error(f"Invalid {event} payload")
            return

        if event != "user_online" and self.user_id is None:
            await self.emit_error(NotRegistered.default_message)
            return

        handler = getattr(self, f"on_{event}")
        try:
            await handler(serializer.validated_data)
        except AlreadyQueued:
            await self.emit("already_in_queue", {})
        except FriendOffline as e:
            await self.emit("friend_offline", {"friendId": e.friend_id})
        except SignalingError as e:
            await self.emit_error(e.message)
        except Exception:
            logger.exception("%s failed for user %s", event, self.user_id)
            await self.emit_error(FAILURE_MESSAGES.get(event, "Operation failed"))

    # ---- client -> server ----

    async def on_user_online(self, data):
        user = self.scope.get("user")
        claimed = data.get("userId")

        if user and user.is_authenticated:
            if claimed is not None and claimed != user.pk:
                raise SignalingError("userId does not match token")
            user_id = user.pk
        else:
            # SIGNALING_ALLOW_UNAUTHENTICATED 일 때만 여기까지 옴 (개발용)
            if claimed is None:
                raise SignalingError("userId is required")
            user_id = claimed

        if self.user_id is not None and self.user_id != user_id:
            await self.coordinator.disconnect(self.channel_name, self.user_id)

        self.user_id = user_id
        await self.coordinator.connect(user_id, self.channel_name)
        await self.emit("user_registered", {"success": True})

    async def on_join_random_queue(self, data):
        await self.coordinator.matchmaker.join_queue(self.user_id)

    async def on_leave_random_queue(self, data):
        self.coordinator.matchmaker.leave_queue(self.user_id)

    async def on_initiate_direct_call(self, data):
        await self.coordinator.matchmaker.initiate_direct_call(self.user_id, data["friendId"])

    async def on_accept_call(self, data):
        await self.coordinator.lifecycle.accept_call(data["callId"], self.user_id)

    async def on_reject_call(self, data):
        await self.coordinator.lifecycle.reject_call(data["callId"], self.user_id)

    async def on_webrtc_offer(self, data):
        await self._relay("webrtc_offer", data)

    async def on_webrtc_answer(self, data):
        await self._relay("webrtc_answer", data)

    async def on_webrtc_ice_candidate(self, data):
        await self._relay("webrtc_ice_candidate", data)

    async def on_audio_data(self, data):
        self.coordinator.lifecycle.submit_audio(data["callId"], self.user_id, data["audioChunk"])

    async def on_get_transcript(self, data):
        entries = self.coordinator.lifecycle.transcript(data["callId"], self.user_id)
        await self.emit("call_transcript", {"callId": data["callId"], "entries": entries})

    async def on_end_call(self, data):
        await self.coordinator.lifecycle.end_call(data["callId"], self.user_id)

    # ---- server -> client (channel layer handler) ----

    async def call_event(self, message):
        await self.emit(message["event"], message.get("data") or {})

    # ---- helpers ----

    async def emit(self, event: str, data: dict):
        await self.send_json({"event": event, "data": data})

    async def emit_error(self, message: str):
        await self.emit("error", {"message": message})

    async def _relay(self, event, data):
        await self.coordinator.relay.relay(
            SIGNAL_KINDS[event],
            data["callId"],
            self.user_id,
            data["targetUserId"],
            data["payload"],
        )

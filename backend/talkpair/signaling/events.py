# talkpair/signaling/events.py
import base64
import binascii

from rest_framework import serializers

MAX_AUDIO_CHUNK_BYTES = 5 * 1024 * 1024

INBOUND_EVENTS = (
    "user_online",
    "join_random_queue",
    "leave_random_queue",
    "initiate_direct_call",
    "accept_call",
    "reject_call",
    "webrtc_offer",
    "webrtc_answer",
    "webrtc_ice_candidate",
    "audio_data",
    "get_transcript",
    "end_call",
)


class EnvelopeSerializer(serializers.Serializer):
    """
    { "event": "join_random_queue", "data": {...} }
    """

    event = serializers.ChoiceField(choices=INBOUND_EVENTS)
    data = serializers.DictField(required=False, default=dict)


class EmptySerializer(serializers.Serializer):
    pass


class UserOnlineSerializer(serializers.Serializer):
    userId = serializers.IntegerField(required=False, min_value=1)


class DirectCallSerializer(serializers.Serializer):
    friendId = serializers.IntegerField(min_value=1)


class CallIdSerializer(serializers.Serializer):
    callId = serializers.UUIDField()

    def validate_callId(self, value):
        return str(value)


class SignalSerializer(CallIdSerializer):
    targetUserId = serializers.IntegerField(min_value=1)
    # SDP / ICE candidate는 열어보지 않음. object인지만 확인
    payload = serializers.JSONField()

    def validate_payload(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError("payload must be an object")
        return value


class AudioDataSerializer(CallIdSerializer):
    audioChunk = serializers.CharField(trim_whitespace=False)

    def validate_audioChunk(self, value):
        try:
            audio = base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError):
            raise serializers.ValidationError("audioChunk must be base64")
        if not audio:
            raise serializers.ValidationError("audioChunk is empty")
        if len(audio) > MAX_AUDIO_CHUNK_BYTES:
            raise serializers.ValidationError("audioChunk too large")
        return audio


EVENT_SERIALIZERS = {
    "user_online": UserOnlineSerializer,
    "join_random_queue": EmptySerializer,
    "leave_random_queue": EmptySerializer,
    "initiate_direct_call": DirectCallSerializer,
    "accept_call": CallIdSerializer,
    "reject_call": CallIdSerializer,
    "webrtc_offer": SignalSerializer,
    "webrtc_answer": SignalSerializer,
    "webrtc_ice_candidate": SignalSerializer,
    "audio_data": AudioDataSerializer,
    "get_transcript": CallIdSerializer,
    "end_call": CallIdSerializer,
}

# webrtc_* 이벤트 -> relay messageKind
SIGNAL_KINDS = {
    "webrtc_offer": "offer",
    "webrtc_answer": "answer",
    "webrtc_ice_candidate": "ice-candidate",
}

# 예상 못한 예외일 때 유저에게 보내는 메시지
FAILURE_MESSAGES = {
    "user_online": "Failed to register user",
    "join_random_queue": "Failed to join random queue",
    "initiate_direct_call": "Failed to initiate call",
    "accept_call": "Failed to accept call",
    "reject_call": "Failed to reject call",
    "end_call": "Failed to end call",
}

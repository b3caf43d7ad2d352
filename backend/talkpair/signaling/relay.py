# talkpair/signaling/relay.py
import logging

logger = logging.getLogger(__name__)

# messageKind -> 클라로 나가는 이벤트 이름
EVENTS = {
    "offer": "webrtc_offer",
    "answer": "webrtc_answer",
    "ice-candidate": "webrtc_ice_candidate",
}


class SignalingRelay:
    """
    offer/answer/ice 중계.
    payload는 열어보지 않고, callId가 실제 통화인지도 검사하지 않음 (보내는 쪽을 신뢰).
    대상이 오프라인이면 버리고 로그만 남김 (fire-and-forget, 보낸 쪽에 에러 없음)
    """

    def __init__(self, messenger):
        self.messenger = messenger
        self.delivered = 0
        self.dropped = 0

    async def relay(self, kind: str, call_id: str, sender_id, target_user_id, payload) -> bool:
        try:
            event = EVENTS[kind]
        except KeyError:
            raise ValueError(f"unknown signaling kind: {kind}")

        sent = await self.messenger.to_user(
            target_user_id,
            event,
            {
                "callId": call_id,
                "payload": payload,
                "fromUserId": sender_id,
            },
        )
        if sent:
            self.delivered += 1
        else:
            self.dropped += 1
            logger.warning(
                "%s from %s to %s dropped (call %s, dropped=%s)",
                kind,
                sender_id,
                target_user_id,
                call_id,
                self.dropped,
            )
        return sent

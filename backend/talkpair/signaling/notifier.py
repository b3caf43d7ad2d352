# talkpair/signaling/notifier.py
import logging

from channels.exceptions import ChannelFull
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)


class ChannelLayerNotifier:
    """
    연결 핸들(channel_name)로 서버->클라 이벤트 전송.
    consumer의 call_event 핸들러가 받아서 소켓으로 내보냄
    """

    def __init__(self, channel_layer=None):
        self._layer = channel_layer

    @property
    def layer(self):
        if self._layer is None:
            self._layer = get_channel_layer()
        return self._layer

    async def send(self, handle: str, event: str, data: dict) -> None:
        await self.layer.send(
            handle,
            {
                "type": "call.event",  # handler: call_event
                "event": event,
                "data": data,
            },
        )


class Messenger:
    """
    userId 기준 전송. 보낼 때마다 presence에서 핸들을 새로 찾음 (캐시 금지)
    """

    def __init__(self, presence, notifier):
        self.presence = presence
        self.notifier = notifier

    async def to_user(self, user_id, event: str, data: dict) -> bool:
        handle = self.presence.lookup(user_id)
        if handle is None:
            logger.warning("drop %s for user %s: not connected", event, user_id)
            return False
        try:
            await self.notifier.send(handle, event, data)
        except ChannelFull:
            logger.warning("drop %s for user %s: channel full", event, user_id)
            return False
        return True

# talkpair/signaling/presence.py
from typing import Dict, Optional


class PresenceRegistry:
    """
    userId -> 현재 살아있는 연결 핸들(Channels channel_name)
    "지금 이 유저에게 보낼 수 있나"의 유일한 기준
    """

    def __init__(self):
        self._handles: Dict[int, str] = {}

    def register(self, user_id, handle: str) -> Optional[str]:
        # 마지막 등록이 이김. 이전 핸들을 돌려줌
        previous = self._handles.get(user_id)
        self._handles[user_id] = handle
        return previous

    def lookup(self, user_id) -> Optional[str]:
        return self._handles.get(user_id)

    def unregister(self, user_id, handle: Optional[str] = None) -> bool:
        """
        handle을 주면 그게 현재 핸들일 때만 지움.
        재접속 후 옛 소켓이 늦게 끊겨도 새 연결이 지워지지 않게 하기 위함
        """
        current = self._handles.get(user_id)
        if current is None:
            return False
        if handle is not None and current != handle:
            return False
        del self._handles[user_id]
        return True

    def user_for(self, handle: str):
        for user_id, h in self._handles.items():
            if h == handle:
                return user_id
        return None

    def __contains__(self, user_id) -> bool:
        return user_id in self._handles

    def __len__(self) -> int:
        return len(self._handles)

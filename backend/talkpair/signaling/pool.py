# talkpair/signaling/pool.py
from collections import OrderedDict
from typing import Optional


class WaitingPool:
    """
    랜덤 매칭 대기열. 중복 없음, 오래 기다린 사람부터 꺼냄(FIFO)
    """

    def __init__(self):
        self._waiting: "OrderedDict[int, None]" = OrderedDict()

    def add(self, user_id) -> bool:
        if user_id in self._waiting:
            return False
        self._waiting[user_id] = None
        return True

    def remove(self, user_id) -> bool:
        return self._waiting.pop(user_id, _MISSING) is not _MISSING

    def pop(self) -> Optional[int]:
        if not self._waiting:
            return None
        user_id, _ = self._waiting.popitem(last=False)
        return user_id

    def requeue(self, user_id) -> None:
        # 매칭 실패로 되돌릴 때: 원래 순서대로 맨 앞에
        self._waiting[user_id] = None
        self._waiting.move_to_end(user_id, last=False)

    def snapshot(self) -> list:
        return list(self._waiting)

    def __contains__(self, user_id) -> bool:
        return user_id in self._waiting

    def __len__(self) -> int:
        return len(self._waiting)


_MISSING = object()

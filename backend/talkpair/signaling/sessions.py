# talkpair/signaling/sessions.py
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

RANDOM = "random"
DIRECT = "direct"

WAITING = "waiting"
ACTIVE = "active"
ENDED = "ended"

_NEXT_STATUS = {WAITING: {ACTIVE, ENDED}, ACTIVE: {ENDED}, ENDED: set()}


@dataclass
class Participant:
    user_id: int
    name: str = "Unknown"
    avatar: Optional[str] = None
    joined_at: Optional[datetime] = None
    left_at: Optional[datetime] = None

    def to_payload(self) -> dict:
        return {"id": self.user_id, "name": self.name, "avatar": self.avatar}


@dataclass
class TranscriptEntry:
    speaker_id: int
    text: str
    timestamp: datetime
    confidence: Optional[float] = None

    def to_payload(self) -> dict:
        return {
            "speaker": self.speaker_id,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
            "confidence": self.confidence,
        }


@dataclass
class CallSession:
    participants: List[Participant]
    type: str = RANDOM
    status: str = WAITING
    call_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    transcript: List[TranscriptEntry] = field(default_factory=list)

    @property
    def participant_ids(self) -> list:
        return [p.user_id for p in self.participants]

    def has_participant(self, user_id) -> bool:
        return user_id in self.participant_ids

    def participant(self, user_id) -> Optional[Participant]:
        for p in self.participants:
            if p.user_id == user_id:
                return p
        return None

    def others(self, user_id) -> List[Participant]:
        return [p for p in self.participants if p.user_id != user_id]

    def can_become(self, status: str) -> bool:
        return status in _NEXT_STATUS[self.status]

    def to_payload(self) -> dict:
        # 참여자 순서 유지: 0번이 offer를 보냄
        return {
            "callId": self.call_id,
            "participants": [p.to_payload() for p in self.participants],
        }

    def invite_payload(self) -> dict:
        caller, callee = self.participants[0], self.participants[1]
        return {
            "callId": self.call_id,
            "caller": caller.to_payload(),
            "callee": callee.to_payload(),
        }


def compute_duration(start_time: Optional[datetime], end_time: datetime) -> Optional[int]:
    # 한 번도 active가 안 된 통화는 길이 없음
    if start_time is None:
        return None
    return max(0, math.floor((end_time - start_time).total_seconds()))


class CallSessionStore:
    """
    진행 중인 통화의 메모리 테이블 (callId -> CallSession)
    종료되면 빠지고 DB에만 남음
    """

    def __init__(self):
        self._sessions: Dict[str, CallSession] = {}

    def add(self, session: CallSession) -> None:
        self._sessions[session.call_id] = session

    def get(self, call_id: str) -> Optional[CallSession]:
        return self._sessions.get(str(call_id))

    def claim(self, call_id: str) -> Optional[CallSession]:
        # 꺼내는 순간 다른 핸들러는 못 봄 (end_call 중복 방지)
        return self._sessions.pop(str(call_id), None)

    def calls_for(self, user_id) -> List[CallSession]:
        # 끝나지 않은 통화 전부 (수락 대기 중인 direct 포함)
        return [
            s for s in self._sessions.values()
            if s.status != ENDED and s.has_participant(user_id)
        ]

    def active_call_for(self, user_id) -> Optional[CallSession]:
        calls = self.calls_for(user_id)
        return calls[0] if calls else None

    def __contains__(self, call_id) -> bool:
        return str(call_id) in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

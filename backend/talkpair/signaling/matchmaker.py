# talkpair/signaling/matchmaker.py
import asyncio
import logging

from django.db import DatabaseError

from .exceptions import (
    AlreadyInCall,
    AlreadyQueued,
    FriendOffline,
    NotRegistered,
    OperationFailed,
    SignalingError,
)
from .sessions import ACTIVE, DIRECT, RANDOM, WAITING, CallSession, Participant

logger = logging.getLogger(__name__)


class Matchmaker:
    """
    대기열(WaitingPool) + presence로 두 유저를 묶어 CallSession 생성.

    pop-and-pair 구간은 asyncio.Lock으로 감쌈:
    프로필 조회/DB 저장에서 await로 양보하는 동안 다른 핸들러가
    같은 대기자를 또 꺼내거나 같은 유저를 두 번 매칭하면 안 됨
    """

    def __init__(self, *, pool, presence, store, messenger, repository, directory, clock):
        self.pool = pool
        self.presence = presence
        self.store = store
        self.messenger = messenger
        self.repository = repository
        self.directory = directory
        self.clock = clock
        self._lock = asyncio.Lock()

    async def join_queue(self, user_id):
        if user_id not in self.presence:
            raise NotRegistered()

        async with self._lock:
            if user_id in self.pool:
                raise AlreadyQueued()
            if self.store.active_call_for(user_id):
                raise AlreadyInCall()

            partner_id = self._pop_free_partner()
            if partner_id is None:
                self.pool.add(user_id)
                logger.info("user %s waiting for match (pool=%s)", user_id, len(self.pool))
                await self.messenger.to_user(user_id, "waiting_for_match", {})
                return None

            try:
                session = await self._create_session(
                    [partner_id, user_id],
                    type=RANDOM,
                    status=ACTIVE,
                    failure_message="Failed to join random queue",
                )
            except Exception:
                # 상대는 아직 접속 중이면 원래 자리(맨 앞)로 되돌림
                if partner_id in self.presence and partner_id not in self.pool:
                    self.pool.requeue(partner_id)
                raise

        logger.info("matched %s with %s in call %s", partner_id, user_id, session.call_id)

        payload = session.to_payload()
        # 핸들은 매칭 시점에 새로 조회. 상대가 그 사이 끊겼으면 알림만 생략
        if not await self.messenger.to_user(partner_id, "call_matched", payload):
            logger.warning("partner %s unreachable for call %s", partner_id, session.call_id)
        await self.messenger.to_user(user_id, "call_matched", payload)
        return session

    def leave_queue(self, user_id) -> bool:
        return self.pool.remove(user_id)

    async def initiate_direct_call(self, caller_id, friend_id):
        if caller_id == friend_id:
            raise SignalingError("Cannot call yourself")
        if self.presence.lookup(friend_id) is None:
            raise FriendOffline(friend_id)

        async with self._lock:
            if self.store.active_call_for(caller_id):
                raise AlreadyInCall()
            if self.store.active_call_for(friend_id):
                raise AlreadyInCall("Friend is already in a call")

            # 초대가 걸린 순간 양쪽 다 랜덤 대기열에서 빠짐 (대기 중 초대도 통화 중으로 취급)
            self.pool.remove(caller_id)
            if self.pool.remove(friend_id):
                logger.info("user %s left random queue for invite from %s", friend_id, caller_id)
            session = await self._create_session(
                [caller_id, friend_id],
                type=DIRECT,
                status=WAITING,
                failure_message="Failed to initiate call",
            )

        payload = session.invite_payload()
        if not await self.messenger.to_user(friend_id, "incoming_call", payload):
            logger.warning("friend %s went offline before invite %s", friend_id, session.call_id)
        await self.messenger.to_user(caller_id, "call_initiated", payload)
        return session

    # ---- helpers ----

    def _pop_free_partner(self):
        # 대기열에 남아 있지만 이미 통화(초대 포함)에 묶인 유저는 버림
        while True:
            partner_id = self.pool.pop()
            if partner_id is None:
                return None
            busy = self.store.active_call_for(partner_id)
            if busy is None:
                return partner_id
            logger.warning(
                "dropping %s from random queue: already in call %s", partner_id, busy.call_id
            )

    async def _create_session(self, user_ids, *, type, status, failure_message):
        profiles = await asyncio.gather(*(self.directory.profile(uid) for uid in user_ids))
        missing = [uid for uid, prof in zip(user_ids, profiles) if prof is None]
        if missing:
            logger.error("no profile for users %s", missing)
            raise OperationFailed(failure_message)

        now = self.clock()
        participants = []
        for idx, prof in enumerate(profiles):
            # direct 통화는 수락 전까지 callee joined_at 없음
            joined = now if (status == ACTIVE or idx == 0) else None
            participants.append(
                Participant(
                    user_id=prof["id"],
                    name=prof.get("name") or "Unknown",
                    avatar=prof.get("avatar"),
                    joined_at=joined,
                )
            )

        session = CallSession(
            participants=participants,
            type=type,
            status=status,
            start_time=now if status == ACTIVE else None,
        )

        try:
            await self.repository.create_call(session)
        except DatabaseError:
            logger.exception("failed to persist %s call for %s", type, user_ids)
            raise OperationFailed(failure_message)

        self.store.add(session)
        return session

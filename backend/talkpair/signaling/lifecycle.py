# talkpair/signaling/lifecycle.py
import asyncio
import logging

from django.db import DatabaseError

from talkpair.calls.feedback import generate_grammar_feedback

from .exceptions import CallNotFound, InvalidTransition, NotAParticipant, OperationFailed
from .sessions import ACTIVE, ENDED, WAITING, TranscriptEntry, compute_duration

logger = logging.getLogger(__name__)


class CallLifecycleManager:
    """
    CallSession 상태 전이(waiting -> active -> ended)의 유일한 주인.
    종료 시 DB 반영, 상대 알림, 문법 피드백(백그라운드, 실패해도 무시)까지
    """

    def __init__(
        self,
        *,
        store,
        pool,
        messenger,
        repository,
        clock,
        transcriber=None,
        analyzer=None,
    ):
        self.store = store
        self.pool = pool
        self.messenger = messenger
        self.repository = repository
        self.clock = clock
        self.transcriber = transcriber
        self.analyzer = analyzer
        self._lock = asyncio.Lock()
        self._background = set()

    # ---- direct call 수락/거절 ----

    async def accept_call(self, call_id: str, user_id):
        async with self._lock:
            session = self._callee_session(call_id, user_id)
            if session.status != WAITING:
                raise InvalidTransition("Call is no longer waiting")
            if any(other is not session for other in self.store.calls_for(user_id)):
                raise InvalidTransition("Already in another call")
            # await 전에 대기열에서 빼야 그 사이 랜덤 매칭에 안 잡힘
            self.pool.remove(user_id)

            now = self.clock()
            try:
                await self.repository.update_call(
                    session.call_id,
                    status=ACTIVE,
                    start_time=now,
                    joined_at={user_id: now},
                )
            except DatabaseError:
                logger.exception("failed to persist accept of call %s", call_id)
                raise OperationFailed("Failed to accept call")

            session.status = ACTIVE
            session.start_time = now
            session.participant(user_id).joined_at = now

        logger.info("call %s accepted by %s", session.call_id, user_id)
        payload = session.to_payload()
        for p in session.participants:
            await self.messenger.to_user(p.user_id, "call_accepted", payload)
        return session

    async def reject_call(self, call_id: str, user_id):
        async with self._lock:
            session = self._callee_session(call_id, user_id)
            if session.status != WAITING:
                raise InvalidTransition("Call is no longer waiting")

            now = self.clock()
            try:
                await self.repository.update_call(
                    session.call_id,
                    status=ENDED,
                    end_time=now,
                    duration_seconds=None,
                    left_at={user_id: now},
                )
            except DatabaseError:
                logger.exception("failed to persist reject of call %s", call_id)
                raise OperationFailed("Failed to reject call")

            self.store.claim(session.call_id)
            session.status = ENDED
            session.end_time = now

        caller = session.participants[0]
        await self.messenger.to_user(caller.user_id, "call_rejected", {"callId": session.call_id})
        return session

    # ---- 종료 ----

    async def end_call(self, call_id: str, user_id):
        async with self._lock:
            # 스토어에서 꺼내는 것이 곧 "종료 권한 획득". 두 번째 end_call은 못 찾음
            session = self.store.claim(call_id)
            if session is None:
                raise CallNotFound()
            if not session.has_participant(user_id):
                self.store.add(session)
                raise NotAParticipant()

            now = self.clock()
            duration = compute_duration(session.start_time, now)
            try:
                await self.repository.update_call(
                    session.call_id,
                    status=ENDED,
                    end_time=now,
                    duration_seconds=duration,
                    left_at={user_id: now},
                )
            except DatabaseError:
                logger.exception("failed to persist end of call %s", call_id)
                self.store.add(session)
                raise OperationFailed("Failed to end call")

            session.status = ENDED
            session.end_time = now
            session.duration_seconds = duration
            session.participant(user_id).left_at = now

        logger.info("call %s ended by %s (duration=%s)", session.call_id, user_id, duration)

        for p in session.others(user_id):
            await self.messenger.to_user(p.user_id, "call_ended", {"callId": session.call_id})

        self._schedule_feedback(session.call_id)
        return session

    # ---- transcript ----

    async def append_transcript(self, call_id: str, speaker_id, text: str, confidence=None):
        session = self.store.get(call_id)
        if session is None:
            raise CallNotFound()
        if not session.has_participant(speaker_id):
            raise NotAParticipant()
        if session.status != ACTIVE:
            raise InvalidTransition("Call is not active")

        entry = TranscriptEntry(
            speaker_id=speaker_id,
            text=text,
            timestamp=self.clock(),
            confidence=confidence,
        )
        # await 전에 붙여야 도착 순서 = 저장 순서
        session.transcript.append(entry)
        order = len(session.transcript) - 1

        try:
            await self.repository.add_transcript_line(session.call_id, entry, order)
        except DatabaseError:
            logger.exception("failed to persist transcript line %s of call %s", order, call_id)

        payload = {"callId": session.call_id, **entry.to_payload()}
        for p in session.participants:
            await self.messenger.to_user(p.user_id, "live_transcript", payload)
        return entry

    def transcript(self, call_id: str, user_id) -> list:
        session = self.store.get(call_id)
        if session is None:
            raise CallNotFound()
        if not session.has_participant(user_id):
            raise NotAParticipant()
        return [e.to_payload() for e in session.transcript]

    def submit_audio(self, call_id: str, speaker_id, audio: bytes) -> bool:
        """
        전사는 수십 초 걸릴 수 있어서 백그라운드로 돌림 (소켓 처리 막지 않게)
        """
        session = self.store.get(call_id)
        if session is None:
            raise CallNotFound()
        if not session.has_participant(speaker_id):
            raise NotAParticipant()
        if self.transcriber is None:
            logger.debug("transcription disabled, dropping audio for call %s", call_id)
            return False

        self._spawn(self._transcribe(session.call_id, speaker_id, audio))
        return True

    async def wait_background(self) -> None:
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ---- background ----

    def _spawn(self, coro):
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _transcribe(self, call_id, speaker_id, audio):
        try:
            result = await self.transcriber.transcribe(audio)
        except Exception:
            logger.warning("transcription failed for call %s", call_id, exc_info=True)
            return None
        if result is None or not result.text:
            return None

        try:
            return await self.append_transcript(call_id, speaker_id, result.text, result.confidence)
        except (CallNotFound, InvalidTransition):
            # 전사 도중 통화가 끝남
            logger.info("call %s ended before transcript arrived, dropped", call_id)
            return None

    def _schedule_feedback(self, call_id):
        if self.analyzer is None:
            return
        self._spawn(self._feedback(call_id))

    async def _feedback(self, call_id):
        try:
            await generate_grammar_feedback(
                call_id, repository=self.repository, analyzer=self.analyzer
            )
        except Exception:
            logger.exception("grammar feedback failed for call %s", call_id)

    def _callee_session(self, call_id, user_id):
        session = self.store.get(call_id)
        if session is None:
            raise CallNotFound()
        if not session.has_participant(user_id):
            raise NotAParticipant()
        if session.participants[0].user_id == user_id:
            raise InvalidTransition("Only the callee can answer")
        return session

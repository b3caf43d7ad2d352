# talkpair/signaling/coordinator.py
import logging

from django.conf import settings
from django.db import DatabaseError
from django.utils import timezone

from talkpair.calls.repository import CallRepository
from talkpair.speech.grammar import OpenAIGrammarAnalyzer
from talkpair.speech.transcription import AssemblyAITranscriber
from talkpair.users.services import UserDirectory

from .lifecycle import CallLifecycleManager
from .matchmaker import Matchmaker
from .notifier import ChannelLayerNotifier, Messenger
from .pool import WaitingPool
from .presence import PresenceRegistry
from .relay import SignalingRelay
from .sessions import CallSessionStore

logger = logging.getLogger(__name__)


class Coordinator:
    """
    프로세스당 하나. presence / 대기열 / 세션 스토어를 소유하고
    consumer에게 as_asgi(coordinator=...)로 넘겨짐 (모듈 전역 싱글톤 아님).

    단일 프로세스 메모리 전제: 여러 인스턴스로 늘리려면
    대기열과 presence를 원자적 pop이 되는 외부 저장소로 옮겨야 함
    """

    def __init__(
        self,
        *,
        notifier=None,
        repository=None,
        directory=None,
        transcriber=None,
        analyzer=None,
        clock=timezone.now,
    ):
        self.presence = PresenceRegistry()
        self.pool = WaitingPool()
        self.store = CallSessionStore()
        self.directory = directory or UserDirectory()
        self.repository = repository or CallRepository()
        self.messenger = Messenger(self.presence, notifier or ChannelLayerNotifier())

        self.matchmaker = Matchmaker(
            pool=self.pool,
            presence=self.presence,
            store=self.store,
            messenger=self.messenger,
            repository=self.repository,
            directory=self.directory,
            clock=clock,
        )
        self.relay = SignalingRelay(self.messenger)
        self.lifecycle = CallLifecycleManager(
            store=self.store,
            pool=self.pool,
            messenger=self.messenger,
            repository=self.repository,
            clock=clock,
            transcriber=transcriber,
            analyzer=analyzer,
        )

    async def connect(self, user_id, handle: str) -> None:
        previous = self.presence.register(user_id, handle)
        if previous and previous != handle:
            logger.info("user %s reconnected, replacing %s", user_id, previous)
        await self._set_online(user_id, True)

    async def disconnect(self, handle: str, user_id=None) -> bool:
        if user_id is None:
            user_id = self.presence.user_for(handle)
        if user_id is None:
            return False

        # 이미 새 소켓으로 재접속했으면 옛 소켓 정리는 무시
        if not self.presence.unregister(user_id, handle):
            return False

        self.matchmaker.leave_queue(user_id)
        await self._set_online(user_id, False)
        logger.info("user %s disconnected", user_id)
        return True

    async def _set_online(self, user_id, online: bool) -> None:
        try:
            await self.directory.set_online(user_id, online)
        except DatabaseError:
            logger.warning("failed to update online status of user %s", user_id, exc_info=True)


def build_coordinator(**overrides) -> Coordinator:
    """
    설정값으로 외부 연동(전사/문법분석)을 붙인 기본 코디네이터
    키가 없으면 해당 기능은 꺼짐
    """
    if "transcriber" not in overrides and settings.ASSEMBLYAI_API_KEY:
        overrides["transcriber"] = AssemblyAITranscriber()
    if "analyzer" not in overrides and settings.OPENAI_API_KEY:
        overrides["analyzer"] = OpenAIGrammarAnalyzer()
    return Coordinator(**overrides)

# talkpair/client/peer.py
import asyncio
import enum
import logging
import os
import platform
from dataclasses import dataclass

from aiortc import (
    RTCConfiguration,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)
from aiortc.contrib.media import MediaPlayer
from aiortc.sdp import candidate_from_sdp

logger = logging.getLogger(__name__)

DEFAULT_ICE_SERVERS = (
    "stun:stun.l.google.com:19302",
    "stun:stun1.l.google.com:19302",
)
DEFAULT_HANDSHAKE_TIMEOUT_SEC = float(os.environ.get("HANDSHAKE_TIMEOUT_SEC", "30"))


class PeerState(str, enum.Enum):
    NEW = "new"
    HAVE_LOCAL_MEDIA = "have-local-media"
    OFFER_SENT = "offer-sent"
    AWAITING_OFFER = "awaiting-offer"
    ANSWERED = "answered"
    CONNECTED = "connected"
    FAILED = "failed"
    CLOSED = "closed"


# 이 상태가 되면 wait_connected()가 깨어남
SETTLED_STATES = (PeerState.CONNECTED, PeerState.FAILED, PeerState.CLOSED)


@dataclass(frozen=True)
class StateTransition:
    previous: PeerState
    current: PeerState
    reason: str = ""


class PeerConnectionError(Exception):
    pass


class MediaAccessDenied(PeerConnectionError):
    pass


class HandshakeTimeout(PeerConnectionError):
    pass


def open_microphone(device: str = None, fmt: str = None):
    """
    플랫폼별 기본 마이크를 aiortc MediaPlayer로 연다.
    실패는 전부 MediaAccessDenied
    """
    system = platform.system()
    if device is None or fmt is None:
        if system == "Darwin":
            device, fmt = device or ":0", fmt or "avfoundation"
        elif system == "Windows":
            device, fmt = device or "audio=Microphone", fmt or "dshow"
        else:
            device, fmt = device or "default", fmt or "pulse"

    try:
        return MediaPlayer(device, format=fmt)
    except Exception as e:
        raise MediaAccessDenied(f"cannot open microphone {device!r} ({fmt}): {e}") from e


def default_peer_factory(ice_servers=DEFAULT_ICE_SERVERS):
    config = RTCConfiguration(iceServers=[RTCIceServer(urls=list(ice_servers))])
    return RTCPeerConnection(configuration=config)


def _stop_media(media) -> None:
    track = getattr(media, "audio", None)
    if track is not None:
        track.stop()


class PeerConnectionCoordinator:
    """
    통화 한 건의 WebRTC 핸드셰이크.

    - initiator: 로컬 미디어 -> offer 전송 -> answer 대기
    - responder: 로컬 미디어 -> offer 대기 -> answer 전송
    - remote description 전에 온 ICE candidate는 큐에 모았다가 한 번에 적용
    - handshake_timeout 안에 connected가 안 되면 failed
    """

    def __init__(
        self,
        signaling,
        call_id: str,
        target_user_id: int,
        *,
        media_factory=open_microphone,
        peer_factory=default_peer_factory,
        handshake_timeout: float = DEFAULT_HANDSHAKE_TIMEOUT_SEC,
    ):
        self.signaling = signaling
        self.call_id = call_id
        self.target_user_id = target_user_id
        self.media_factory = media_factory
        self.peer_factory = peer_factory
        self.handshake_timeout = handshake_timeout

        self.state = PeerState.NEW
        self.is_initiator = False
        self.pc = None
        self.media = None
        self.remote_track = None
        self.failure_reason = ""

        self._listeners = []
        self._pending_candidates = []
        self._pending_offer = None
        self._timer = None
        self._closing = False
        self._attached = []
        self._settled = asyncio.Event()

    # ---- observer ----

    def add_listener(self, fn) -> None:
        self._listeners.append(fn)

    def remove_listener(self, fn) -> None:
        if fn in self._listeners:
            self._listeners.remove(fn)

    def _transition(self, new: PeerState, reason: str = "") -> None:
        if new == self.state:
            return
        transition = StateTransition(self.state, new, reason)
        self.state = new
        if new == PeerState.FAILED:
            self.failure_reason = reason
        if new in SETTLED_STATES:
            self._cancel_timer()
            self._settled.set()

        logger.info("call %s peer %s -> %s %s", self.call_id, transition.previous.value, new.value, reason)
        for fn in list(self._listeners):
            try:
                fn(transition)
            except Exception:
                logger.exception("peer state listener failed")

    # ---- signaling wiring ----

    def attach(self, signaling=None) -> None:
        """webrtc_* 이벤트 중 이 통화/상대에게서 온 것만 받도록 등록"""
        signaling = signaling or self.signaling
        routes = {
            "webrtc_offer": self.handle_offer,
            "webrtc_answer": self.handle_answer,
            "webrtc_ice_candidate": self.handle_ice_candidate,
        }
        for event, method in routes.items():
            handler = self._filtered(method)
            signaling.on(event, handler)
            self._attached.append((signaling, event, handler))

    def _filtered(self, method):
        async def handler(data):
            if data.get("callId") != self.call_id:
                return
            sender = data.get("fromUserId")
            if sender is not None and sender != self.target_user_id:
                logger.warning("call %s: signal from unexpected user %s", self.call_id, sender)
                return
            await method(data.get("payload") or {})

        return handler

    def _detach(self) -> None:
        for signaling, event, handler in self._attached:
            signaling.off(event, handler)
        self._attached = []

    # ---- handshake ----

    async def initialize(self, is_initiator: bool = False) -> None:
        if self.state != PeerState.NEW:
            raise PeerConnectionError(f"already initialized ({self.state.value})")
        self.is_initiator = is_initiator

        try:
            media = self.media_factory()
        except MediaAccessDenied:
            raise
        except Exception as e:
            raise MediaAccessDenied(str(e)) from e
        if getattr(media, "audio", None) is None:
            _stop_media(media)
            raise MediaAccessDenied("no audio input track")

        self.media = media
        self.pc = self.peer_factory()
        self.pc.on("track", self._on_track)
        self.pc.on("connectionstatechange", self._on_connection_state_change)
        self.pc.addTrack(media.audio)
        self._transition(PeerState.HAVE_LOCAL_MEDIA)
        self._start_timer()

        try:
            if is_initiator:
                await self.pc.setLocalDescription(await self.pc.createOffer())
                await self._send("webrtc_offer", self.pc.localDescription)
                self._advance(PeerState.HAVE_LOCAL_MEDIA, PeerState.OFFER_SENT)
            else:
                self._advance(PeerState.HAVE_LOCAL_MEDIA, PeerState.AWAITING_OFFER)
        except Exception as e:
            self._transition(PeerState.FAILED, f"offer failed: {e}")
            raise

        # 미디어 준비 중에 먼저 도착한 offer
        if self._pending_offer is not None:
            offer, self._pending_offer = self._pending_offer, None
            await self.handle_offer(offer)

    async def handle_offer(self, payload: dict) -> None:
        if self.state == PeerState.NEW:
            self._pending_offer = payload
            return
        if self.is_initiator or self.state != PeerState.AWAITING_OFFER:
            logger.warning("call %s: unexpected offer in state %s", self.call_id, self.state.value)
            return

        try:
            await self.pc.setRemoteDescription(_description(payload))
            await self._flush_candidates()
            await self.pc.setLocalDescription(await self.pc.createAnswer())
            await self._send("webrtc_answer", self.pc.localDescription)
        except Exception as e:
            self._transition(PeerState.FAILED, f"answer failed: {e}")
            raise
        self._advance(PeerState.AWAITING_OFFER, PeerState.ANSWERED)

    async def handle_answer(self, payload: dict) -> None:
        if not self.is_initiator or self.state != PeerState.OFFER_SENT:
            logger.debug("call %s: ignoring answer in state %s", self.call_id, self.state.value)
            return

        try:
            await self.pc.setRemoteDescription(_description(payload))
        except Exception as e:
            self._transition(PeerState.FAILED, f"bad answer: {e}")
            raise
        await self._flush_candidates()
        self._advance(PeerState.OFFER_SENT, PeerState.ANSWERED)

    async def handle_ice_candidate(self, payload: dict) -> None:
        if self.state in (PeerState.FAILED, PeerState.CLOSED):
            return
        # 빈 candidate = end-of-candidates
        if not payload.get("candidate"):
            return
        if self.pc is None or self.pc.remoteDescription is None:
            self._pending_candidates.append(payload)
            return
        await self._add_candidate(payload)

    async def wait_connected(self) -> None:
        await self._settled.wait()
        if self.state == PeerState.CONNECTED:
            return
        if self.failure_reason == "handshake timeout":
            raise HandshakeTimeout(f"call {self.call_id} did not connect in {self.handshake_timeout}s")
        raise PeerConnectionError(self.failure_reason or f"peer {self.state.value}")

    async def cleanup(self) -> None:
        """여러 번 불려도 안전"""
        if self._closing or self.state == PeerState.CLOSED:
            return
        self._closing = True

        self._cancel_timer()
        self._detach()
        self._pending_candidates = []
        self._pending_offer = None

        media, self.media = self.media, None
        if media is not None:
            _stop_media(media)

        pc, self.pc = self.pc, None
        if pc is not None:
            await pc.close()

        self.remote_track = None
        self._transition(PeerState.CLOSED)

    # ---- internals ----

    def _advance(self, expected: PeerState, new: PeerState) -> None:
        # connectionstatechange가 먼저 와서 connected가 됐으면 되돌리지 않음
        if self.state == expected:
            self._transition(new)

    async def _send(self, event: str, description) -> None:
        await self.signaling.emit(event, {
            "callId": self.call_id,
            "targetUserId": self.target_user_id,
            "payload": {"type": description.type, "sdp": description.sdp},
        })

    async def _flush_candidates(self) -> None:
        pending, self._pending_candidates = self._pending_candidates, []
        for payload in pending:
            await self._add_candidate(payload)

    async def _add_candidate(self, payload: dict) -> None:
        raw = payload["candidate"]
        if raw.startswith("candidate:"):
            raw = raw[len("candidate:"):]
        try:
            candidate = candidate_from_sdp(raw)
        except (AssertionError, ValueError, IndexError):
            logger.warning("call %s: unparseable ICE candidate %r", self.call_id, payload["candidate"])
            return
        candidate.sdpMid = payload.get("sdpMid")
        candidate.sdpMLineIndex = payload.get("sdpMLineIndex")
        await self.pc.addIceCandidate(candidate)

    def _on_track(self, track) -> None:
        if track.kind == "audio":
            self.remote_track = track
            logger.info("call %s: remote audio track received", self.call_id)

    def _on_connection_state_change(self) -> None:
        if self.pc is None:
            return
        state = self.pc.connectionState
        if state == "connected":
            self._transition(PeerState.CONNECTED)
        elif state == "failed":
            self._transition(PeerState.FAILED, "ice failed")

    def _start_timer(self) -> None:
        if not self.handshake_timeout:
            return
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.handshake_timeout, self._on_handshake_timeout)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_handshake_timeout(self) -> None:
        self._timer = None
        if self.state not in SETTLED_STATES:
            self._transition(PeerState.FAILED, "handshake timeout")


def _description(payload: dict) -> RTCSessionDescription:
    return RTCSessionDescription(sdp=payload["sdp"], type=payload["type"])


async def start_matched_call(signaling, call: dict, my_user_id: int, **kwargs) -> PeerConnectionCoordinator:
    """
    call_matched / call_accepted 페이로드로 코디네이터를 만들고 시작.
    participants[0]이 offer를 보냄
    """
    participants = call["participants"]
    others = [p for p in participants if p["id"] != my_user_id]
    if len(others) != 1 or len(participants) != 2:
        raise PeerConnectionError(f"user {my_user_id} cannot join call {call.get('callId')}")

    peer = PeerConnectionCoordinator(signaling, call["callId"], others[0]["id"], **kwargs)
    peer.attach()
    await peer.initialize(is_initiator=participants[0]["id"] == my_user_id)
    return peer

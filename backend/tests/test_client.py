import asyncio
import json

import pytest
from aiortc import RTCSessionDescription

from talkpair.client.peer import (
    HandshakeTimeout,
    MediaAccessDenied,
    PeerConnectionCoordinator,
    PeerConnectionError,
    PeerState,
    start_matched_call,
)
from talkpair.client.signaling import SignalingClient

CANDIDATE = "candidate:842163049 1 udp 1677729535 192.0.2.10 54321 typ srflx raddr 0.0.0.0 rport 0"


class FakeWebSocket:
    def __init__(self, incoming=()):
        self.incoming = list(incoming)
        self.sent = []
        self.closed = False

    async def send(self, raw):
        self.sent.append(json.loads(raw))

    def __aiter__(self):
        return self._messages()

    async def _messages(self):
        for message in self.incoming:
            yield message

    async def close(self):
        self.closed = True


class FakeTrack:
    kind = "audio"

    def __init__(self):
        self.stopped = False

    def stop(self):
        self.stopped = True


class FakeMedia:
    def __init__(self, audio=True):
        self.audio = FakeTrack() if audio else None


class FakePeerConnection:
    def __init__(self):
        self.handlers = {}
        self.tracks = []
        self.candidates = []
        self.localDescription = None
        self.remoteDescription = None
        self.connectionState = "new"
        self.closed = 0

    def on(self, event, handler):
        self.handlers[event] = handler

    def addTrack(self, track):
        self.tracks.append(track)

    async def createOffer(self):
        return RTCSessionDescription(sdp="offer-sdp", type="offer")

    async def createAnswer(self):
        return RTCSessionDescription(sdp="answer-sdp", type="answer")

    async def setLocalDescription(self, description):
        self.localDescription = description

    async def setRemoteDescription(self, description):
        self.remoteDescription = description

    async def addIceCandidate(self, candidate):
        self.candidates.append(candidate)

    async def close(self):
        self.closed += 1

    def set_connection_state(self, state):
        self.connectionState = state
        self.handlers["connectionstatechange"]()


@pytest.fixture
async def signaling():
    ws = FakeWebSocket()

    async def connector(url):
        return ws

    client = SignalingClient("ws://test/ws/calls/", token="jwt", connector=connector)
    await client.connect()
    return client


def make_peer(signaling, **kwargs):
    kwargs.setdefault("media_factory", FakeMedia)
    kwargs.setdefault("peer_factory", FakePeerConnection)
    kwargs.setdefault("handshake_timeout", 5)
    peer = PeerConnectionCoordinator(signaling, "call-1", 2, **kwargs)
    states = []
    peer.add_listener(lambda t: states.append(t.current))
    return peer, states


def sent(signaling):
    return signaling._ws.sent


class TestSignalingClient:
    async def test_token_in_url(self):
        client = SignalingClient("ws://test/ws/calls/", token="abc")
        assert client.url == "ws://test/ws/calls/?token=abc"

    async def test_emit_envelope(self, signaling):
        await signaling.emit("join_random_queue")
        assert sent(signaling) == [{"event": "join_random_queue", "data": {}}]

    async def test_run_dispatches_to_handlers(self):
        ws = FakeWebSocket([
            json.dumps({"event": "waiting_for_match", "data": {}}),
            "garbage",
            json.dumps({"event": "call_matched", "data": {"callId": "c"}}),
        ])

        async def connector(url):
            return ws

        client = SignalingClient("ws://test", connector=connector)
        seen = []

        @client.on("call_matched")
        async def on_match(data):
            seen.append(data)

        async def broken(data):
            raise RuntimeError("handler bug")

        client.on("waiting_for_match", broken)
        await client.connect()
        await client.run()

        assert seen == [{"callId": "c"}]

    async def test_emit_before_connect(self):
        with pytest.raises(RuntimeError):
            await SignalingClient("ws://test").emit("user_online")


class TestPeerConnectionCoordinator:
    async def test_initiator_sends_offer(self, signaling):
        peer, states = make_peer(signaling)

        await peer.initialize(is_initiator=True)

        assert states == [PeerState.HAVE_LOCAL_MEDIA, PeerState.OFFER_SENT]
        assert sent(signaling) == [{
            "event": "webrtc_offer",
            "data": {
                "callId": "call-1",
                "targetUserId": 2,
                "payload": {"type": "offer", "sdp": "offer-sdp"},
            },
        }]
        assert len(peer.pc.tracks) == 1
        await peer.cleanup()

    async def test_initiator_applies_answer(self, signaling):
        peer, states = make_peer(signaling)
        await peer.initialize(is_initiator=True)

        await peer.handle_answer({"type": "answer", "sdp": "remote"})

        assert peer.pc.remoteDescription.sdp == "remote"
        assert states[-1] == PeerState.ANSWERED
        await peer.cleanup()

    async def test_responder_answers_offer(self, signaling):
        peer, states = make_peer(signaling)
        await peer.initialize(is_initiator=False)
        assert peer.state == PeerState.AWAITING_OFFER

        await peer.handle_offer({"type": "offer", "sdp": "remote"})

        assert states == [PeerState.HAVE_LOCAL_MEDIA, PeerState.AWAITING_OFFER, PeerState.ANSWERED]
        assert sent(signaling)[-1]["event"] == "webrtc_answer"
        assert sent(signaling)[-1]["data"]["payload"] == {"type": "answer", "sdp": "answer-sdp"}
        await peer.cleanup()

    async def test_offer_before_local_media_is_kept(self, signaling):
        peer, states = make_peer(signaling)

        await peer.handle_offer({"type": "offer", "sdp": "early"})
        await peer.initialize(is_initiator=False)

        assert peer.pc.remoteDescription.sdp == "early"
        assert peer.state == PeerState.ANSWERED
        await peer.cleanup()

    async def test_unexpected_answer_is_ignored(self, signaling):
        peer, _ = make_peer(signaling)
        await peer.initialize(is_initiator=False)

        await peer.handle_answer({"type": "answer", "sdp": "x"})

        assert peer.pc.remoteDescription is None
        assert peer.state == PeerState.AWAITING_OFFER
        await peer.cleanup()

    async def test_candidates_wait_for_remote_description(self, signaling):
        peer, _ = make_peer(signaling)
        await peer.initialize(is_initiator=True)

        await peer.handle_ice_candidate({"candidate": CANDIDATE, "sdpMid": "0", "sdpMLineIndex": 0})
        assert peer.pc.candidates == []

        await peer.handle_answer({"type": "answer", "sdp": "remote"})

        assert len(peer.pc.candidates) == 1
        candidate = peer.pc.candidates[0]
        assert candidate.ip == "192.0.2.10"
        assert candidate.port == 54321
        assert candidate.type == "srflx"
        assert candidate.sdpMid == "0"
        assert candidate.sdpMLineIndex == 0

        await peer.handle_ice_candidate({"candidate": CANDIDATE, "sdpMid": "0", "sdpMLineIndex": 0})
        assert len(peer.pc.candidates) == 2
        await peer.cleanup()

    async def test_bad_or_empty_candidates(self, signaling):
        peer, _ = make_peer(signaling)
        await peer.initialize(is_initiator=False)
        await peer.handle_offer({"type": "offer", "sdp": "remote"})

        await peer.handle_ice_candidate({"candidate": ""})
        await peer.handle_ice_candidate({"candidate": "candidate:nonsense"})

        assert peer.pc.candidates == []
        await peer.cleanup()

    async def test_connected(self, signaling):
        peer, states = make_peer(signaling)
        await peer.initialize(is_initiator=True)
        await peer.handle_answer({"type": "answer", "sdp": "remote"})

        peer.pc.set_connection_state("connected")

        await asyncio.wait_for(peer.wait_connected(), 1)
        assert states[-1] == PeerState.CONNECTED
        await peer.cleanup()

    async def test_ice_failure(self, signaling):
        peer, _ = make_peer(signaling)
        await peer.initialize(is_initiator=True)

        peer.pc.set_connection_state("failed")

        assert peer.state == PeerState.FAILED
        with pytest.raises(PeerConnectionError):
            await peer.wait_connected()
        await peer.cleanup()

    async def test_handshake_timeout(self, signaling):
        peer, states = make_peer(signaling, handshake_timeout=0.01)
        await peer.initialize(is_initiator=True)

        with pytest.raises(HandshakeTimeout):
            await asyncio.wait_for(peer.wait_connected(), 1)
        assert states[-1] == PeerState.FAILED
        await peer.cleanup()

    async def test_media_denied(self, signaling):
        def denied():
            raise PermissionError("microphone blocked")

        peer, states = make_peer(signaling, media_factory=denied)

        with pytest.raises(MediaAccessDenied):
            await peer.initialize(is_initiator=True)
        assert peer.state == PeerState.NEW
        assert states == []
        assert sent(signaling) == []

    async def test_media_without_audio(self, signaling):
        peer, _ = make_peer(signaling, media_factory=lambda: FakeMedia(audio=False))
        with pytest.raises(MediaAccessDenied):
            await peer.initialize(is_initiator=False)

    async def test_cleanup_is_idempotent(self, signaling):
        peer, states = make_peer(signaling)
        await peer.initialize(is_initiator=True)
        pc, track = peer.pc, peer.media.audio

        await peer.cleanup()
        await peer.cleanup()

        assert pc.closed == 1
        assert track.stopped is True
        assert states.count(PeerState.CLOSED) == 1
        assert peer.pc is None

        await peer.handle_ice_candidate({"candidate": CANDIDATE})
        assert pc.candidates == []

    async def test_attach_filters_by_call_and_sender(self, signaling):
        peer, _ = make_peer(signaling)
        peer.attach()
        await peer.initialize(is_initiator=True)

        answer = {"type": "answer", "sdp": "remote"}
        await signaling.dispatch(json.dumps({
            "event": "webrtc_answer",
            "data": {"callId": "other-call", "payload": answer, "fromUserId": 2},
        }))
        await signaling.dispatch(json.dumps({
            "event": "webrtc_answer",
            "data": {"callId": "call-1", "payload": answer, "fromUserId": 9},
        }))
        assert peer.state == PeerState.OFFER_SENT

        await signaling.dispatch(json.dumps({
            "event": "webrtc_answer",
            "data": {"callId": "call-1", "payload": answer, "fromUserId": 2},
        }))
        assert peer.state == PeerState.ANSWERED

        await peer.cleanup()
        assert signaling._handlers["webrtc_answer"] == []


class TestStartMatchedCall:
    CALL = {
        "callId": "call-1",
        "participants": [
            {"id": 1, "name": "Alice", "avatar": None},
            {"id": 2, "name": "Bob", "avatar": None},
        ],
    }

    async def test_first_participant_offers(self, signaling):
        peer = await start_matched_call(
            signaling, self.CALL, 1, media_factory=FakeMedia, peer_factory=FakePeerConnection
        )
        assert peer.is_initiator
        assert peer.target_user_id == 2
        assert peer.state == PeerState.OFFER_SENT
        await peer.cleanup()

    async def test_second_participant_waits(self, signaling):
        peer = await start_matched_call(
            signaling, self.CALL, 2, media_factory=FakeMedia, peer_factory=FakePeerConnection
        )
        assert not peer.is_initiator
        assert peer.target_user_id == 1
        assert peer.state == PeerState.AWAITING_OFFER
        await peer.cleanup()

    async def test_outsider(self, signaling):
        with pytest.raises(PeerConnectionError):
            await start_matched_call(signaling, self.CALL, 3)

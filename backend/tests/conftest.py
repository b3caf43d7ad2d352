"""Shared fixtures: in-memory collaborators for the signaling coordinator."""

import asyncio
from collections import defaultdict
from datetime import datetime, timedelta, timezone as dt_timezone

import pytest
from django.db import DatabaseError

from talkpair.signaling.coordinator import Coordinator


class RecordingNotifier:
    """Stands in for the channel layer; records (handle, event, data)."""

    def __init__(self):
        self.sent = []

    async def send(self, handle, event, data):
        self.sent.append((handle, event, data))

    def events(self, handle):
        return [event for h, event, _ in self.sent if h == handle]

    def payloads(self, handle, event):
        return [data for h, e, data in self.sent if h == handle and e == event]


class InMemoryRepository:
    def __init__(self):
        self.calls = {}
        self.lines = defaultdict(list)
        self.feedback = {}
        self.fail_on = set()

    def _check(self, op):
        if op in self.fail_on:
            raise DatabaseError(f"{op} failed")

    async def create_call(self, session):
        self._check("create_call")
        self.calls[session.call_id] = {
            "type": session.type,
            "status": session.status,
            "start_time": session.start_time,
            "end_time": None,
            "duration_seconds": None,
            "joined_at": {p.user_id: p.joined_at for p in session.participants},
            "left_at": {},
        }

    async def update_call(self, call_id, *, joined_at=None, left_at=None, **fields):
        self._check("update_call")
        record = self.calls[call_id]
        record.update(fields)
        record["joined_at"].update(joined_at or {})
        record["left_at"].update(left_at or {})

    async def add_transcript_line(self, call_id, entry, order):
        self._check("add_transcript_line")
        self.lines[call_id].append((order, entry))

    async def transcript_text(self, call_id):
        return " ".join(entry.text for _, entry in sorted(self.lines[call_id], key=lambda x: x[0]))

    async def save_feedback(self, call_id, original_text, analysis):
        self.feedback[call_id] = (original_text, analysis)
        return analysis


class FakeDirectory:
    def __init__(self):
        self.missing = set()
        self.online = {}
        self.fail_set_online = False

    async def profile(self, user_id):
        if user_id in self.missing:
            return None
        return {"id": user_id, "name": f"user{user_id}", "avatar": None}

    async def set_online(self, user_id, online):
        if self.fail_set_online:
            raise DatabaseError("set_online failed")
        self.online[user_id] = online


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 5, 1, 12, 0, 0, tzinfo=dt_timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


def handle(user_id):
    return f"conn-{user_id}"


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def directory():
    return FakeDirectory()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def coordinator(notifier, repository, directory, clock):
    return Coordinator(
        notifier=notifier,
        repository=repository,
        directory=directory,
        clock=clock,
    )


@pytest.fixture
def online(coordinator):
    """await online(1, 2) registers users 1 and 2 under conn-<id>."""

    async def _online(*user_ids):
        for user_id in user_ids:
            await coordinator.connect(user_id, handle(user_id))

    return _online


@pytest.fixture
def advance():
    async def _advance(n: int = 5):
        for _ in range(n):
            await asyncio.sleep(0)

    return _advance

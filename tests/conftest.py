"""
Shared fixtures for enrichment pipeline tests.

Provides a controllable clock and sleep, an on-disk SQLite email store, a
recording connection registry and a scripted LLM transport.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Union

import pytest

from src.email_processing.models import EmailRecord
from src.storage.database import create_db_engine, create_session_factory, init_db
from src.storage.email_repository import SQLEmailRepository


class FakeClock:
    """Manually advanced monotonic clock whose sleep moves time forward."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class RecordingSleep:
    """Sleep replacement that records requested delays and only yields."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)


class FakeConnection:
    """Connection that records emitted events."""

    def __init__(self, fail: bool = False):
        self.events: List[tuple] = []
        self.fail = fail

    async def emit(self, event_name: str, payload: Dict[str, Any]) -> None:
        if self.fail:
            raise ConnectionError("socket closed")
        self.events.append((event_name, payload))


class FakeRegistry:
    """Connection registry keyed by user id."""

    def __init__(self):
        self.connections: Dict[str, List[FakeConnection]] = {}

    def add(self, user_id: str, connection: Optional[FakeConnection] = None) -> FakeConnection:
        connection = connection or FakeConnection()
        self.connections.setdefault(user_id, []).append(connection)
        return connection

    def find_connections_for_user(self, owner_user_id: str) -> List[FakeConnection]:
        return list(self.connections.get(owner_user_id, []))


Reply = Union[str, Exception, Callable[[str], str]]


class ScriptedTransport:
    """
    LLM transport returning scripted replies in order.

    A reply may be a string, an exception to raise, or a callable receiving
    the prompt. Once the script is exhausted the last reply repeats.
    """

    def __init__(self, *replies: Reply):
        self.replies = list(replies)
        self.prompts: List[str] = []

    async def send(self, prompt: str, max_tokens: int) -> str:
        self.prompts.append(prompt)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(prompt)
        return reply


def make_record(message_id: str = "msg-1", **overrides) -> EmailRecord:
    """Build a valid email record with sensible defaults."""
    data = {
        "id": message_id,
        "mailbox_address": "owner@example.com",
        "owner_user_id": "user-1",
        "subject": f"Subject {message_id}",
        "from": "sender@example.com",
        "to": "owner@example.com",
        "content": f"Body of {message_id}. Please review the attached report by Friday.",
    }
    data.update(overrides)
    return EmailRecord.model_validate(data)


def analysis(index: Optional[int] = None, **overrides) -> Dict[str, Any]:
    """A well-formed analysis object as the LLM would return it."""
    result = {
        "summary": "The sender asks for a report review.",
        "category": "Work",
        "priority": "high",
        "sentiment": "neutral",
        "actionItems": ["Review the report"],
    }
    if index is not None:
        result["index"] = index
    result.update(overrides)
    return result


CATEGORIES = [
    {"name": "Work", "label": "Work", "description": "Work related emails"},
    {"name": "Personal", "label": "Personal", "description": "Friends and family"},
]


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def registry():
    return FakeRegistry()


@pytest.fixture
def repository(tmp_path):
    """SQLite-backed email repository in a temporary directory."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'emails.db'}")
    init_db(engine)
    yield SQLEmailRepository(create_session_factory(engine))
    engine.dispose()


@pytest.fixture
async def seeded_repository(repository):
    """Repository with the default owner's categories configured."""
    await repository.upsert_account("user-1", "owner@example.com", CATEGORIES)
    return repository

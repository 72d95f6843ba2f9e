"""Shared pytest fixtures for MatchRoom tests."""
import uuid
from datetime import datetime, timedelta, timezone

import fakeredis
import pytest

from backend import RedisBackend
from redis_keys import ALL_INDEXES
from schemas.rooms import Candidate
from services.matches import MatchQueryService
from services.notifications import NotificationFanout
from services.rooms import RoomService
from services.votes import VoteService


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now=None):
        self.now = now or datetime.now(timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingFanout:
    def __init__(self):
        self.published = []

    def publish(self, match):
        self.published.append(match)
        return 0


@pytest.fixture
def redis_server():
    return fakeredis.FakeServer()


@pytest.fixture
def redis_client(redis_server):
    return fakeredis.FakeRedis(server=redis_server, decode_responses=True)


@pytest.fixture
def backend(redis_client):
    """Backend with every secondary index flagged ready (index tier)."""
    backend = RedisBackend(redis_client)
    for name in ALL_INDEXES:
        backend.mark_index_ready(name)
    return backend


@pytest.fixture
def scan_backend():
    """Backend on a separate server whose indexes are not ready (scan tier)."""
    return RedisBackend(fakeredis.FakeRedis(decode_responses=True))


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def candidates():
    return [
        Candidate(id=7, title="Spirited Away", poster_path="https://img/7.jpg", release_date="2001-07-20"),
        Candidate(id=8, title="Paprika", poster_path="https://img/8.jpg", release_date="2006-11-25"),
        Candidate(id=9, title="Perfect Blue", poster_path=None, release_date="1997-07-25"),
    ]


@pytest.fixture
def fetch_candidates(candidates):
    calls = []

    def fetch(kind, tags):
        calls.append((kind, list(tags)))
        return [c.model_copy(update={"kind": kind}) for c in candidates]

    fetch.calls = calls
    return fetch


@pytest.fixture
def fanout():
    return RecordingFanout()


@pytest.fixture
def match_queries(backend):
    return MatchQueryService(backend)


@pytest.fixture
def room_service(backend, fetch_candidates, match_queries, clock):
    return RoomService(backend, fetch_candidates, match_queries=match_queries, clock=clock)


@pytest.fixture
def vote_service(backend, fanout, clock):
    return VoteService(backend, fanout, clock=clock)


@pytest.fixture
def real_fanout_vote_service(backend, clock):
    return VoteService(backend, NotificationFanout(backend), clock=clock)


@pytest.fixture
def user_ids():
    return [f"user-{uuid.uuid4().hex[:8]}" for _ in range(5)]

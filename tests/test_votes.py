"""Unit tests for VoteService: vote recording and exactly-once match creation."""
import threading
from concurrent.futures import ThreadPoolExecutor

import fakeredis
import pytest
import redis

from backend import RedisBackend
from errors import InvalidCandidate, RoomNotFound
from schemas.votes import ParticipationRecord
from services.matches import MatchQueryService
from services.votes import VoteService
from conftest import RecordingFanout


@pytest.fixture
def room(room_service):
    room = room_service.create_room("alice", "MOVIE", [])
    room_service.join_room("bob", room.code)
    return room


class TestRecordVote:
    def test_unknown_room(self, vote_service):
        with pytest.raises(RoomNotFound):
            vote_service.record_vote("alice", "missing", 7, True)

    def test_expired_room(self, vote_service, room, clock):
        clock.advance(hours=25)
        with pytest.raises(RoomNotFound):
            vote_service.record_vote("alice", room.id, 7, True)

    def test_invalid_candidate(self, vote_service, room, backend):
        with pytest.raises(InvalidCandidate):
            vote_service.record_vote("alice", room.id, 404, True)
        # rejected before any write
        assert {r.user_key for r in backend.get_participation_records(room.id)} == {"alice#JOINED", "bob#JOINED"}

    def test_vote_is_stored(self, vote_service, room, backend):
        assert vote_service.record_vote("alice", room.id, 8, False) is None
        records = {r.user_key: r for r in backend.get_participation_records(room.id)}
        assert records["alice#8"].vote is False
        assert records["alice#8"].is_participation is False

    def test_revote_overwrites(self, vote_service, room, backend, clock):
        vote_service.record_vote("alice", room.id, 8, False)
        clock.advance(seconds=5)
        vote_service.record_vote("alice", room.id, 8, True)
        votes = [r for r in backend.get_participation_records(room.id) if r.user_key == "alice#8"]
        assert len(votes) == 1
        assert votes[0].vote is True
        assert votes[0].timestamp == clock()

    def test_idempotent_revote(self, vote_service, room, backend, clock):
        vote_service.record_vote("alice", room.id, 7, True)
        before = {r.user_key: r for r in backend.get_participation_records(room.id)}
        clock.advance(seconds=1)
        vote_service.record_vote("alice", room.id, 7, True)
        after = {r.user_key: r for r in backend.get_participation_records(room.id)}
        assert before.keys() == after.keys()
        for key in before:
            assert before[key].model_dump(exclude={"timestamp"}) == after[key].model_dump(exclude={"timestamp"})


class TestMatchCondition:
    def test_no_vote_never_matches(self, vote_service, room, fanout):
        vote_service.record_vote("alice", room.id, 7, False)
        assert vote_service.record_vote("bob", room.id, 7, False) is None
        assert fanout.published == []

    def test_one_yes_is_not_enough(self, vote_service, room):
        assert vote_service.record_vote("alice", room.id, 7, True) is None

    def test_single_participant_never_matches(self, room_service, vote_service, backend, fanout):
        solo = room_service.create_room("alice", "MOVIE", [])
        for _ in range(5):
            assert vote_service.record_vote("alice", solo.id, 7, True) is None
        assert list(backend.scan_matches()) == []
        assert fanout.published == []

    def test_mixed_votes_do_not_match(self, vote_service, room):
        vote_service.record_vote("alice", room.id, 7, True)
        assert vote_service.record_vote("bob", room.id, 7, False) is None
        assert vote_service.record_vote("bob", room.id, 8, True) is None

    def test_all_yes_matches(self, vote_service, room, fanout, backend):
        vote_service.record_vote("alice", room.id, 7, True)
        match = vote_service.record_vote("bob", room.id, 7, True)
        assert match is not None
        assert match.id == f"{room.id}#7"
        assert match.candidate_id == 7
        assert match.title == "Spirited Away"
        assert match.poster_path == "https://img/7.jpg"
        assert match.matched_users == ["alice", "bob"]
        assert fanout.published == [match]
        assert backend.get_match(match.id) == match

    def test_changed_vote_can_complete_match(self, vote_service, room):
        vote_service.record_vote("alice", room.id, 7, True)
        vote_service.record_vote("bob", room.id, 7, False)
        assert vote_service.record_vote("bob", room.id, 7, True) is not None

    def test_silent_participant_blocks_match(self, room_service, vote_service, room):
        room_service.join_room("carol", room.code)
        vote_service.record_vote("alice", room.id, 7, True)
        assert vote_service.record_vote("bob", room.id, 7, True) is None
        match = vote_service.record_vote("carol", room.id, 7, True)
        assert match.matched_users == ["alice", "bob", "carol"]

    def test_voter_without_marker_counts(self, vote_service, room, backend):
        """A vote alone makes a user a participant."""
        backend.put_participation(ParticipationRecord.cast(room.id, "dave", 8, False), room.expires_at)
        vote_service.record_vote("alice", room.id, 7, True)
        assert vote_service.record_vote("bob", room.id, 7, True) is None

    def test_repeat_yes_after_match_returns_same(self, vote_service, room, fanout):
        vote_service.record_vote("alice", room.id, 7, True)
        match = vote_service.record_vote("bob", room.id, 7, True)
        again = vote_service.record_vote("alice", room.id, 7, True)
        assert again == match
        assert len(fanout.published) == 1


class TestMatchedSet:
    def test_late_joiner_not_in_matched_users(self, room_service, vote_service, room, backend):
        vote_service.record_vote("alice", room.id, 7, True)
        match = vote_service.record_vote("bob", room.id, 7, True)
        room_service.join_room("carol", room.code)
        vote_service.record_vote("carol", room.id, 7, True)
        stored = backend.get_match(match.id)
        assert stored.matched_users == ["alice", "bob"]
        assert stored == match


class TestConditionalCreate:
    def test_lost_race_returns_winner(self, backend, room, clock, fanout):
        """The existing-match check misses, the conditional create fails, the winner is returned."""
        vote_service = VoteService(backend, fanout, clock=clock)
        vote_service.record_vote("alice", room.id, 7, True)

        class LateBackend(RedisBackend):
            def __init__(self, client):
                super().__init__(client)
                self.reads = 0

            def get_match(self, match_id):
                self.reads += 1
                if self.reads == 1:
                    return None
                return super().get_match(match_id)

        winner = vote_service.record_vote("bob", room.id, 7, True)
        late = LateBackend(backend.redis_client)
        loser_fanout = RecordingFanout()
        result = VoteService(late, loser_fanout, clock=clock).record_vote("alice", room.id, 7, True)
        assert result == winner
        assert late.reads == 2
        assert loser_fanout.published == []

    def test_concurrent_voters_create_one_match(self, redis_server, backend, room_service, clock):
        voters = ["alice", "bob", "carol", "dave", "erin"]
        room = room_service.create_room(voters[0], "MOVIE", [])
        for user in voters[1:]:
            room_service.join_room(user, room.code)
        for user in voters:
            backend.put_participation(ParticipationRecord.cast(room.id, user, 7, True), room.expires_at)

        barrier = threading.Barrier(len(voters), timeout=10)
        created = []
        fanout = RecordingFanout()

        class RacingBackend(RedisBackend):
            """Holds every voter at the existing-match check so they all reach the create together."""

            def __init__(self, client):
                super().__init__(client)
                self.checked = False

            def get_match(self, match_id):
                if not self.checked:
                    self.checked = True
                    found = super().get_match(match_id)
                    barrier.wait()
                    return found
                return super().get_match(match_id)

            def create_match_if_absent(self, match):
                ok = super().create_match_if_absent(match)
                created.append(ok)
                return ok

        def cast(user):
            client = fakeredis.FakeRedis(server=redis_server, decode_responses=True)
            return VoteService(RacingBackend(client), fanout, clock=clock).record_vote(user, room.id, 7, True)

        with ThreadPoolExecutor(max_workers=len(voters)) as pool:
            results = list(pool.map(cast, voters))

        assert created.count(True) == 1
        assert len(created) == len(voters)
        assert all(r is not None for r in results)
        assert len({r.id for r in results}) == 1
        assert len({tuple(r.matched_users) for r in results}) == 1
        assert results[0].matched_users == sorted(voters)
        assert len(fanout.published) == 1
        assert [m.id for m in backend.scan_matches()] == [results[0].id]
        for user in voters:
            assert backend.get_user_match_ids(user, 50) == [results[0].id]


class TestInterruptedCreate:
    """The match key lands but a follow-up write fails before the indexes do."""

    class FlakyIndexBackend(RedisBackend):
        def __init__(self, client, failures=1):
            super().__init__(client)
            self.failures = failures

        def index_match(self, match):
            if self.failures:
                self.failures -= 1
                raise redis.ConnectionError("connection reset")
            super().index_match(match)

    def test_retry_repairs_indexes(self, backend, room, clock, fanout):
        service = VoteService(self.FlakyIndexBackend(backend.redis_client), fanout, clock=clock)
        service.record_vote("alice", room.id, 7, True)
        with pytest.raises(redis.ConnectionError):
            service.record_vote("bob", room.id, 7, True)

        stored = [m.id for m in backend.scan_matches()]
        assert stored == [f"{room.id}#7"]
        queries = MatchQueryService(backend)
        assert queries.find_room_match(room.id) is None

        match = service.record_vote("bob", room.id, 7, True)

        assert match.id == stored[0]
        assert queries.find_room_match(room.id) == match
        assert queries.find_user_matches("alice") == [match]
        assert queries.find_user_matches("bob") == [match]

    def test_other_voter_repairs_indexes(self, backend, room, clock, fanout):
        flaky = VoteService(self.FlakyIndexBackend(backend.redis_client), fanout, clock=clock)
        flaky.record_vote("alice", room.id, 7, True)
        with pytest.raises(redis.ConnectionError):
            flaky.record_vote("bob", room.id, 7, True)

        match = VoteService(backend, fanout, clock=clock).record_vote("alice", room.id, 7, True)

        queries = MatchQueryService(backend)
        assert queries.find_user_matches("bob") == [match]
        assert backend.get_room_match_ids(room.id) == [match.id]

    def test_lost_race_repairs_indexes(self, backend, room, clock, fanout):
        flaky = VoteService(self.FlakyIndexBackend(backend.redis_client), fanout, clock=clock)
        flaky.record_vote("alice", room.id, 7, True)
        with pytest.raises(redis.ConnectionError):
            flaky.record_vote("bob", room.id, 7, True)

        class MissesExisting(RedisBackend):
            def __init__(self, client):
                super().__init__(client)
                self.reads = 0

            def get_match(self, match_id):
                self.reads += 1
                return None if self.reads == 1 else super().get_match(match_id)

        late = MissesExisting(backend.redis_client)
        match = VoteService(late, fanout, clock=clock).record_vote("alice", room.id, 7, True)

        assert late.reads == 2
        assert MatchQueryService(backend).find_room_match(room.id) == match

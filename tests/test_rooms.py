"""Unit tests for RoomService: create, join, lookup and the caller's room list."""
import pytest

from errors import CatalogError, InvalidKind, RoomExpired, RoomNotFound, TooManyTags
from services.rooms import RoomService


class TestCreateRoom:
    def test_create_room(self, room_service, backend, fetch_candidates):
        room = room_service.create_room("host", "MOVIE", [28, 12])
        assert room.host_id == "host"
        assert room.kind == "MOVIE"
        assert room.tags == [28, 12]
        assert [c.id for c in room.candidates] == [7, 8, 9]
        assert fetch_candidates.calls == [("MOVIE", [28, 12])]
        assert backend.get_room(room.id) == room
        assert backend.get_room_id_by_code(room.code) == room.id

    def test_host_is_a_participant(self, room_service, backend):
        room = room_service.create_room("host", "TV", [])
        records = backend.get_participation_records(room.id)
        assert len(records) == 1
        assert records[0].user_key == "host#JOINED"
        assert records[0].is_participation
        assert records[0].candidate_id == -1
        assert records[0].vote is False

    def test_invalid_kind(self, room_service, fetch_candidates):
        with pytest.raises(InvalidKind):
            room_service.create_room("host", "BOOK", [])
        assert fetch_candidates.calls == []

    def test_too_many_tags(self, room_service, fetch_candidates):
        with pytest.raises(TooManyTags):
            room_service.create_room("host", "MOVIE", [1, 2, 3])
        assert fetch_candidates.calls == []

    def test_empty_candidates_allowed(self, backend, match_queries, clock):
        service = RoomService(backend, lambda kind, tags: [], match_queries=match_queries, clock=clock)
        room = service.create_room("host", "MOVIE", [])
        assert room.candidates == []

    def test_catalog_failure_claims_no_code(self, backend, match_queries, clock):
        def failing_fetch(kind, tags):
            raise CatalogError("Catalog API error: HTTP 500")

        service = RoomService(backend, failing_fetch, match_queries=match_queries, clock=clock)
        with pytest.raises(CatalogError):
            service.create_room("host", "MOVIE", [])
        assert list(backend.redis_client.scan_iter(match="room:code:*")) == []
        assert list(backend.scan_rooms()) == []
        assert backend.get_user_room_ids("host") == []


class TestJoinRoom:
    def test_join_by_code_case_insensitive(self, room_service, backend):
        room = room_service.create_room("host", "MOVIE", [])
        joined = room_service.join_room("guest", f"  {room.code.lower()} ")
        assert joined.id == room.id
        users = {r.user_id for r in backend.get_participation_records(room.id)}
        assert users == {"host", "guest"}

    def test_join_twice_keeps_one_marker(self, room_service, backend):
        room = room_service.create_room("host", "MOVIE", [])
        room_service.join_room("guest", room.code)
        room_service.join_room("guest", room.code)
        keys = sorted(r.user_key for r in backend.get_participation_records(room.id))
        assert keys == ["guest#JOINED", "host#JOINED"]

    def test_unknown_code(self, room_service):
        with pytest.raises(RoomNotFound):
            room_service.join_room("guest", "ZZZZZZ")

    def test_blank_code(self, room_service):
        with pytest.raises(RoomNotFound):
            room_service.join_room("guest", "   ")

    def test_expired_room(self, room_service, clock):
        room = room_service.create_room("host", "MOVIE", [])
        clock.advance(hours=25)
        with pytest.raises(RoomExpired):
            room_service.join_room("guest", room.code)

    def test_join_via_scan(self, scan_backend, fetch_candidates, clock):
        service = RoomService(scan_backend, fetch_candidates, clock=clock)
        room = service.create_room("host", "MOVIE", [])
        assert service.join_room("guest", room.code).id == room.id


class TestGetRoom:
    def test_get_room(self, room_service):
        room = room_service.create_room("host", "MOVIE", [])
        assert room_service.get_room(room.id) == room

    def test_missing_room(self, room_service):
        assert room_service.get_room("nope") is None

    def test_expired_room_is_none(self, room_service, clock):
        room = room_service.create_room("host", "MOVIE", [])
        clock.advance(hours=24, seconds=1)
        assert room_service.get_room(room.id) is None


class TestGetMyRooms:
    def test_hosted_and_joined_newest_first(self, room_service, clock):
        first = room_service.create_room("alice", "MOVIE", [])
        clock.advance(minutes=1)
        other = room_service.create_room("bob", "TV", [])
        room_service.join_room("alice", other.code)
        rooms = room_service.get_my_rooms("alice")
        assert [r.id for r in rooms] == [other.id, first.id]
        assert [r.id for r in room_service.get_my_rooms("bob")] == [other.id]

    def test_excludes_matched_rooms(self, room_service, vote_service):
        room = room_service.create_room("alice", "MOVIE", [])
        room_service.join_room("bob", room.code)
        vote_service.record_vote("alice", room.id, 7, True)
        assert vote_service.record_vote("bob", room.id, 7, True) is not None
        assert room_service.get_my_rooms("alice") == []
        assert room_service.get_my_rooms("bob") == []

    def test_excludes_expired_rooms(self, room_service, clock):
        room_service.create_room("alice", "MOVIE", [])
        clock.advance(days=2)
        assert room_service.get_my_rooms("alice") == []

    def test_unknown_user(self, room_service):
        assert room_service.get_my_rooms("nobody") == []

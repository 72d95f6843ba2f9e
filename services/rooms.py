import uuid
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from backend import RedisBackend
from constants import MAX_TAGS, ROOM_KINDS, ROOM_TTL_SECONDS
from errors import InvalidKind, RoomExpired, RoomNotFound, TooManyTags
from redis_keys import INDEX_ROOM_CODE
from schemas.rooms import Candidate, Room
from schemas.votes import ParticipationRecord
from services.matches import MatchQueryService
from services.room_codes import RoomCodeAllocator, utcnow
from logging_config import get_logger

logger = get_logger(__name__)

FetchCandidates = Callable[[str, List[int]], List[Candidate]]


class RoomService:
    def __init__(self, backend: RedisBackend, fetch_candidates: FetchCandidates,
                 allocator: RoomCodeAllocator = None, match_queries: MatchQueryService = None,
                 ttl_seconds: int = ROOM_TTL_SECONDS, clock: Callable[[], datetime] = utcnow):
        self.backend = backend
        self.fetch_candidates = fetch_candidates
        self.allocator = allocator or RoomCodeAllocator(backend, clock=clock)
        self.match_queries = match_queries or MatchQueryService(backend)
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    def create_room(self, user_id: str, kind: str, tags: List[int]) -> Room:
        if kind not in ROOM_KINDS:
            raise InvalidKind(f"Invalid kind. Must be one of {', '.join(ROOM_KINDS)}")
        if len(tags) > MAX_TAGS:
            raise TooManyTags(f"Maximum {MAX_TAGS} tags allowed")

        room_id = str(uuid.uuid4())
        created_at = self.clock()
        expires_at = created_at + timedelta(seconds=self.ttl_seconds)

        logger.info(f"Fetching {kind} candidates for tags: {tags}")
        candidates = self.fetch_candidates(kind, tags)
        if not candidates:
            logger.warning(f"No candidates returned for room {room_id}, proceeding with empty list")

        # a claimed code stays bound for the full TTL, so claim it once candidates are in hand
        code = self.allocator.allocate(room_id, expires_at)

        room = Room(
            id=room_id,
            code=code,
            host_id=user_id,
            kind=kind,
            tags=list(tags),
            candidates=candidates,
            created_at=created_at,
            expires_at=expires_at,
        )
        self.backend.create_room(room)
        # the host is a participant from the start
        self.backend.put_participation(ParticipationRecord.marker(room_id, user_id, created_at), expires_at)
        logger.info(f"Room created successfully: {room_id} with code: {code}, {len(candidates)} candidates")
        return room

    def _find_room_by_code(self, code: str) -> Optional[Room]:
        if self.backend.index_ready(INDEX_ROOM_CODE):
            room_id = self.backend.get_room_id_by_code(code)
            return self.backend.get_room(room_id) if room_id else None

        logger.warning(f"Room code index not ready, scanning rooms for code {code}")
        now = self.clock()
        found = [room for room in self.backend.scan_rooms() if room.code == code]
        if not found:
            return None
        # a live room wins over an expired record still holding the same code
        found.sort(key=lambda r: (not r.is_expired(now), r.created_at), reverse=True)
        return found[0]

    def join_room(self, user_id: str, code: str) -> Room:
        code = (code or "").strip().upper()
        if not code:
            raise RoomNotFound("Room code is required")

        room = self._find_room_by_code(code)
        if room is None:
            logger.warning(f"Join room failed: no room with code {code}")
            raise RoomNotFound("Room not found. Please check the room code.")
        if room.is_expired(self.clock()):
            logger.warning(f"Join room failed: room {room.id} expired")
            raise RoomExpired()

        self.backend.put_participation(ParticipationRecord.marker(room.id, user_id, self.clock()), room.expires_at)
        logger.info(f"User {user_id} joined room: {room.id} with code: {code}")
        return room

    def get_room(self, room_id: str) -> Optional[Room]:
        """The live room, or None when it is missing or past its expiry."""
        room = self.backend.get_room(room_id)
        if room is None or room.is_expired(self.clock()):
            return None
        return room

    def get_my_rooms(self, user_id: str) -> List[Room]:
        """Active, unmatched rooms the user hosted or took part in, newest first."""
        rooms = []
        gone = []
        for room_id in self.backend.get_user_room_ids(user_id):
            room = self.get_room(room_id)
            if room is None:
                gone.append(room_id)
                continue
            if self.match_queries.find_room_match(room_id) is not None:
                continue
            rooms.append(room)
        self.backend.forget_user_rooms(user_id, gone)
        rooms.sort(key=lambda r: r.created_at, reverse=True)
        logger.debug(f"User {user_id} has {len(rooms)} active rooms")
        return rooms

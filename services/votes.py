from datetime import datetime
from typing import Callable, Optional

from backend import RedisBackend
from errors import InvalidCandidate, RoomNotFound
from schemas.matches import Match, make_match_id
from schemas.rooms import Candidate, Room
from schemas.votes import ParticipationRecord
from services.notifications import NotificationFanout
from services.room_codes import utcnow
from logging_config import get_logger

logger = get_logger(__name__)


class VoteService:
    """Records votes and creates a match once every participant said yes to the same candidate.

    The match check (participants vs. yes-voters, then existing-match lookup)
    is not atomic. Exactly one match per (room, candidate) comes from the
    conditional create alone: the caller whose ``SET NX`` lands is the creator,
    every other caller re-reads and returns the creator's match.
    """

    def __init__(self, backend: RedisBackend, fanout: NotificationFanout = None,
                 clock: Callable[[], datetime] = utcnow):
        self.backend = backend
        self.fanout = fanout or NotificationFanout(backend)
        self.clock = clock

    def _load_room(self, room_id: str) -> Room:
        room = self.backend.get_room(room_id)
        if room is None or room.is_expired(self.clock()):
            logger.warning(f"Vote rejected: room {room_id} not found or expired")
            raise RoomNotFound()
        return room

    def record_vote(self, user_id: str, room_id: str, candidate_id: int, vote: bool) -> Optional[Match]:
        room = self._load_room(room_id)

        candidate = room.get_candidate(candidate_id)
        if candidate is None:
            logger.warning(f"Vote rejected: candidate {candidate_id} not in room {room_id}")
            raise InvalidCandidate()

        record = ParticipationRecord.cast(room_id, user_id, candidate_id, vote, self.clock())
        self.backend.put_participation(record, room.expires_at)
        logger.info(f"Vote recorded: User {user_id} voted {'YES' if vote else 'NO'} for candidate {candidate_id} in room {room_id}")

        if not vote:
            return None
        return self._check_for_match(room, candidate)

    def _check_for_match(self, room: Room, candidate: Candidate) -> Optional[Match]:
        records = self.backend.get_participation_records(room.id)
        participants = {r.user_id for r in records}
        positive = {
            r.user_id for r in records
            if not r.is_participation and r.candidate_id == candidate.id and r.vote
        }

        if len(participants) < 2 or positive != participants:
            logger.debug(f"No match yet in room {room.id}: {len(positive)}/{len(participants)} positive for candidate {candidate.id}")
            return None

        logger.info(f"Match condition met: all {len(participants)} users voted yes for candidate {candidate.id} in room {room.id}")
        match_id = make_match_id(room.id, candidate.id)
        existing = self.backend.get_match(match_id)
        if existing is not None:
            logger.debug(f"Match {match_id} already exists, returning existing match")
            return self._reindex(existing)

        match = Match(
            id=match_id,
            room_id=room.id,
            candidate_id=candidate.id,
            title=candidate.title,
            poster_path=candidate.poster_path,
            matched_users=sorted(participants),
            timestamp=self.clock(),
        )
        if not self.backend.create_match_if_absent(match):
            # another voter created it first
            winner = self.backend.get_match(match_id)
            logger.info(f"Match {match_id} created concurrently, returning the stored match")
            return self._reindex(winner)

        logger.info(f"Match created: {match_id} ({candidate.title}) with users {match.matched_users}")
        self.backend.index_match(match)
        self.fanout.publish(match)
        return match

    def _reindex(self, match: Match) -> Match:
        """Re-add a stored match to the room/user indexes.

        The creator indexes after its ``SET NX`` lands, and can fail in between.
        ZADD with the same score is a no-op, so every later caller repairs it.
        """
        self.backend.index_match(match)
        return match

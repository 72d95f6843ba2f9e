from typing import List, Optional

from backend import RedisBackend
from constants import CHECK_MATCHES_LIMIT, USER_MATCHES_LIMIT
from redis_keys import INDEX_ROOM_MATCHES, INDEX_USER_MATCHES
from schemas.matches import Match
from logging_config import get_logger

logger = get_logger(__name__)


def newest_first(matches: List[Match]) -> List[Match]:
    """Same order as ZREVRANGE on the user index: score, then member, descending."""
    return sorted(matches, key=lambda m: (m.score, m.id), reverse=True)


class MatchQueryService:
    """Read side for matches.

    Each query has two tiers. The index tier reads the sorted sets written at
    match creation; the scan tier walks every ``match:*`` key. The tier is
    picked by probing the index's ready flag, so callers see the same results
    either way.
    """

    def __init__(self, backend: RedisBackend):
        self.backend = backend

    def find_room_match(self, room_id: str) -> Optional[Match]:
        if self.backend.index_ready(INDEX_ROOM_MATCHES):
            match_ids = self.backend.get_room_match_ids(room_id, limit=1)
            if match_ids:
                return self.backend.get_match(match_ids[0])
            return None

        logger.warning(f"Room match index not ready, scanning matches for room {room_id}")
        matches = sorted(self.backend.scan_matches(room_id=room_id), key=lambda m: (m.score, m.id))
        return matches[0] if matches else None

    def find_user_matches(self, user_id: str, limit: int = USER_MATCHES_LIMIT) -> List[Match]:
        if self.backend.index_ready(INDEX_USER_MATCHES):
            match_ids = self.backend.get_user_match_ids(user_id, limit)
            matches = self.backend.get_matches(match_ids)
            logger.debug(f"Found {len(matches)} matches for user {user_id} via index")
            return matches

        logger.warning(f"User match index not ready, scanning matches for user {user_id}")
        matches = [m for m in self.backend.scan_matches() if user_id in m.matched_users]
        logger.debug(f"Found {len(matches)} matches for user {user_id} via scan")
        return newest_first(matches)[:limit]

    def check_user_matches(self, user_id: str) -> List[Match]:
        """Lightweight variant used by background polling."""
        return self.find_user_matches(user_id, limit=CHECK_MATCHES_LIMIT)

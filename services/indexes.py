from datetime import datetime
from typing import Callable, Dict

from backend import RedisBackend
from redis_keys import INDEX_ROOM_CODE, INDEX_ROOM_MATCHES, INDEX_USER_MATCHES
from services.room_codes import utcnow
from logging_config import get_logger

logger = get_logger(__name__)


class IndexBuilder:
    """Backfills the secondary indexes from full scans, then flags them ready.

    Writers keep the indexes current on every create. The backfill covers
    records written before an index existed; until it finishes, readers stay
    on the scan tier.
    """

    def __init__(self, backend: RedisBackend, clock: Callable[[], datetime] = utcnow):
        self.backend = backend
        self.clock = clock

    def build_room_code_index(self) -> int:
        now = self.clock()
        count = 0
        for room in self.backend.scan_rooms():
            if room.is_expired(now):
                continue
            if self.backend.claim_room_code(room.code, room.id, room.expires_at):
                count += 1
            elif self.backend.get_room_id_by_code(room.code) != room.id:
                logger.warning(f"Room code {room.code} of room {room.id} is held by another room")
        self.backend.mark_index_ready(INDEX_ROOM_CODE)
        return count

    def build_match_indexes(self) -> int:
        count = 0
        for match in self.backend.scan_matches():
            self.backend.index_match(match)
            count += 1
        self.backend.mark_index_ready(INDEX_ROOM_MATCHES)
        self.backend.mark_index_ready(INDEX_USER_MATCHES)
        return count

    def build_all(self) -> Dict[str, int]:
        logger.info("Backfilling secondary indexes")
        result = {
            INDEX_ROOM_CODE: self.build_room_code_index(),
            INDEX_ROOM_MATCHES: self.build_match_indexes(),
        }
        result[INDEX_USER_MATCHES] = result[INDEX_ROOM_MATCHES]
        logger.info(f"Index backfill complete: {result}")
        return result

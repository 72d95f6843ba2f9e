import random
from datetime import datetime, timezone
from typing import Callable

from backend import RedisBackend
from constants import ROOM_CODE_ALPHABET, ROOM_CODE_LENGTH, ROOM_CODE_MAX_ATTEMPTS
from errors import CodeExhaustedError
from redis_keys import INDEX_ROOM_CODE
from logging_config import get_logger

logger = get_logger(__name__)


def generate_room_code(length: int = ROOM_CODE_LENGTH) -> str:
    return ''.join(random.choices(ROOM_CODE_ALPHABET, k=length))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RoomCodeAllocator:
    """Hands out short join codes that no other live room is using."""

    def __init__(self, backend: RedisBackend, max_attempts: int = ROOM_CODE_MAX_ATTEMPTS,
                 generate: Callable[[], str] = generate_room_code, clock: Callable[[], datetime] = utcnow):
        self.backend = backend
        self.max_attempts = max_attempts
        self.generate = generate
        self.clock = clock

    def is_code_in_use(self, code: str) -> bool:
        if self.backend.index_ready(INDEX_ROOM_CODE):
            return self.backend.get_room_id_by_code(code) is not None
        logger.warning(f"Room code index not ready, scanning rooms for code {code}")
        now = self.clock()
        return any(room.code == code and not room.is_expired(now) for room in self.backend.scan_rooms())

    def allocate(self, room_id: str, expires_at: datetime) -> str:
        """Pick a free code and bind it to ``room_id`` until ``expires_at``.

        A code already held by a live room, or one another allocator claims
        between our check and our write, counts as a collision.
        """
        for attempt in range(1, self.max_attempts + 1):
            code = self.generate()
            if self.is_code_in_use(code):
                logger.debug(f"Room code {code} in use (attempt {attempt}/{self.max_attempts})")
                continue
            if self.backend.claim_room_code(code, room_id, expires_at):
                logger.debug(f"Allocated room code {code} for room {room_id} after {attempt} attempt(s)")
                return code
            logger.debug(f"Room code {code} claimed concurrently (attempt {attempt}/{self.max_attempts})")
        logger.error(f"Could not allocate a room code for room {room_id} after {self.max_attempts} attempts")
        raise CodeExhaustedError()

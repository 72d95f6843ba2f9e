import redis
import json
from datetime import datetime
from typing import Iterator, List, Optional
from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD
from redis_keys import (
    REDIS_META_KEY, REDIS_CODE_KEY, REDIS_VOTES_KEY, REDIS_ROOM_MATCHES_KEY, REDIS_USER_ROOMS_KEY,
    REDIS_USER_MATCHES_KEY, REDIS_MATCH_KEY, REDIS_INDEX_READY_KEY, REDIS_ROOM_CHANNEL,
    REDIS_USER_CHANNEL, REDIS_META_PATTERN, REDIS_MATCH_PATTERN, REDIS_ROOM_MATCH_PATTERN,
)
from schemas.rooms import Room
from schemas.matches import Match
from schemas.votes import ParticipationRecord
from logging_config import get_logger

logger = get_logger(__name__)

# Room hash fields stored as json strings
ROOM_JSON_FIELDS = ("tags", "candidates")

SCAN_COUNT = 500

redis_client = redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, decode_responses=True)
# Separate connection for pub/sub (required by Redis)
pubsub_client = redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, decode_responses=True)


def _to_epoch(when: datetime) -> int:
    return int(when.timestamp())


class RedisBackend:
    """Store primitives: point lookups, index lookups, scans and conditional writes.

    Nothing here coordinates more than one key at a time; callers that need
    exactly-once semantics rely on ``SET NX`` through ``create_match_if_absent``
    and ``claim_room_code``.
    """

    def __init__(self, client: redis.Redis = None, pubsub: redis.Redis = None):
        self.redis_client = client if client is not None else redis_client
        self.pubsub_client = pubsub if pubsub is not None else (client if client is not None else pubsub_client)

    def ping(self) -> bool:
        try:
            return bool(self.redis_client.ping())
        except redis.RedisError as e:
            logger.error(f"Redis ping failed: {e}")
            return False

    # ------------------------------------------------------------------ #
    # Rooms
    # ------------------------------------------------------------------ #

    def create_room(self, room: Room):
        logger.info(f"Creating room {room.id} (code {room.code}) expiring at {room.expires_at.isoformat()}")
        key = REDIS_META_KEY.format(slug=room.id)
        room_data_str = {}
        for k, v in room.model_dump(mode="json").items():
            if v is None:
                continue
            if k in ROOM_JSON_FIELDS:
                room_data_str[k] = json.dumps(v)
            else:
                room_data_str[k] = str(v)
        pipe = self.redis_client.pipeline(transaction=False)
        pipe.hset(key, mapping=room_data_str)
        pipe.expireat(key, _to_epoch(room.expires_at))
        pipe.execute()
        logger.debug(f"Room {room.id} stored under key: {key}")
        return room.id

    def get_room(self, room_id: str) -> Optional[Room]:
        logger.debug(f"Fetching room {room_id}")
        key = REDIS_META_KEY.format(slug=room_id)
        room_data = self.redis_client.hgetall(key)
        if not room_data:
            logger.debug(f"Room {room_id} not found in Redis")
            return None
        return self._decode_room(room_data)

    def scan_rooms(self) -> Iterator[Room]:
        """Full scan over every stored room. Slow path for when an index is not ready."""
        for key in self.redis_client.scan_iter(match=REDIS_META_PATTERN, count=SCAN_COUNT):
            room_data = self.redis_client.hgetall(key)
            if room_data:
                yield self._decode_room(room_data)

    def _decode_room(self, room_data: dict) -> Room:
        result = dict(room_data)
        for field in ROOM_JSON_FIELDS:
            if field in result:
                result[field] = json.loads(result[field])
        return Room.model_validate(result)

    # ------------------------------------------------------------------ #
    # Room code alias index
    # ------------------------------------------------------------------ #

    def claim_room_code(self, code: str, room_id: str, expires_at: datetime) -> bool:
        """Conditionally bind ``code`` to ``room_id`` until the room expires."""
        key = REDIS_CODE_KEY.format(code=code)
        claimed = self.redis_client.set(key, room_id, nx=True, exat=_to_epoch(expires_at))
        logger.debug(f"Claim of room code {code} for room {room_id}: {'ok' if claimed else 'taken'}")
        return bool(claimed)

    def get_room_id_by_code(self, code: str) -> Optional[str]:
        return self.redis_client.get(REDIS_CODE_KEY.format(code=code))

    # ------------------------------------------------------------------ #
    # Participation records
    # ------------------------------------------------------------------ #

    def put_participation(self, record: ParticipationRecord, expires_at: datetime):
        """Unconditional upsert of a marker or vote. Last writer wins."""
        votes_key = REDIS_VOTES_KEY.format(slug=record.room_id)
        user_rooms_key = REDIS_USER_ROOMS_KEY.format(user_id=record.user_id)
        pipe = self.redis_client.pipeline(transaction=False)
        pipe.hset(votes_key, record.user_key, record.model_dump_json())
        pipe.expireat(votes_key, _to_epoch(expires_at))
        pipe.zadd(user_rooms_key, {record.room_id: record.timestamp.timestamp()})
        pipe.execute()
        logger.debug(f"Stored participation record {record.user_key} in room {record.room_id}")
        return True

    def get_participation_records(self, room_id: str) -> List[ParticipationRecord]:
        votes_key = REDIS_VOTES_KEY.format(slug=room_id)
        raw = self.redis_client.hgetall(votes_key)
        return [ParticipationRecord.model_validate_json(v) for v in raw.values()]

    def get_user_room_ids(self, user_id: str) -> List[str]:
        """Rooms the user hosted, joined or voted in, most recent activity first."""
        return self.redis_client.zrevrange(REDIS_USER_ROOMS_KEY.format(user_id=user_id), 0, -1)

    def forget_user_rooms(self, user_id: str, room_ids: List[str]):
        if room_ids:
            self.redis_client.zrem(REDIS_USER_ROOMS_KEY.format(user_id=user_id), *room_ids)

    # ------------------------------------------------------------------ #
    # Matches
    # ------------------------------------------------------------------ #

    def create_match_if_absent(self, match: Match) -> bool:
        """Conditional create. Returns False when a match already exists for the key."""
        key = REDIS_MATCH_KEY.format(match_id=match.id)
        created = self.redis_client.set(key, match.model_dump_json(), nx=True)
        return bool(created)

    def get_match(self, match_id: str) -> Optional[Match]:
        raw = self.redis_client.get(REDIS_MATCH_KEY.format(match_id=match_id))
        if raw is None:
            return None
        return Match.model_validate_json(raw)

    def get_matches(self, match_ids: List[str]) -> List[Match]:
        """Batch point lookup preserving the order of ``match_ids``."""
        if not match_ids:
            return []
        keys = [REDIS_MATCH_KEY.format(match_id=match_id) for match_id in match_ids]
        return [Match.model_validate_json(raw) for raw in self.redis_client.mget(keys) if raw is not None]

    def index_match(self, match: Match):
        pipe = self.redis_client.pipeline(transaction=False)
        pipe.zadd(REDIS_ROOM_MATCHES_KEY.format(slug=match.room_id), {match.id: match.score})
        for user_id in match.matched_users:
            pipe.zadd(REDIS_USER_MATCHES_KEY.format(user_id=user_id), {match.id: match.score})
        pipe.execute()
        logger.debug(f"Indexed match {match.id} for room {match.room_id} and {len(match.matched_users)} users")

    def get_room_match_ids(self, room_id: str, limit: int = 1) -> List[str]:
        return self.redis_client.zrange(REDIS_ROOM_MATCHES_KEY.format(slug=room_id), 0, limit - 1)

    def get_user_match_ids(self, user_id: str, limit: int) -> List[str]:
        return self.redis_client.zrevrange(REDIS_USER_MATCHES_KEY.format(user_id=user_id), 0, limit - 1)

    def scan_matches(self, room_id: str = None) -> Iterator[Match]:
        pattern = REDIS_ROOM_MATCH_PATTERN.format(slug=room_id) if room_id else REDIS_MATCH_PATTERN
        for key in self.redis_client.scan_iter(match=pattern, count=SCAN_COUNT):
            raw = self.redis_client.get(key)
            if raw is not None:
                yield Match.model_validate_json(raw)

    # ------------------------------------------------------------------ #
    # Index capability flags
    # ------------------------------------------------------------------ #

    def index_ready(self, name: str) -> bool:
        return bool(self.redis_client.exists(REDIS_INDEX_READY_KEY.format(name=name)))

    def mark_index_ready(self, name: str):
        logger.info(f"Index {name} marked ready")
        self.redis_client.set(REDIS_INDEX_READY_KEY.format(name=name), datetime.now().isoformat())

    def clear_index_ready(self, name: str):
        self.redis_client.delete(REDIS_INDEX_READY_KEY.format(name=name))

    # ------------------------------------------------------------------ #
    # Pub/Sub
    # ------------------------------------------------------------------ #

    def get_room_channel_name(self, room_id: str) -> str:
        """Get the Redis pub/sub channel name for a room."""
        return REDIS_ROOM_CHANNEL.format(slug=room_id)

    def get_user_channel_name(self, user_id: str) -> str:
        return REDIS_USER_CHANNEL.format(user_id=user_id)

    def publish_message(self, channel: str, message: dict) -> int:
        """Publish a json message to a pub/sub channel. Returns the number of receivers."""
        message_json = json.dumps(message)
        subscribers = self.redis_client.publish(channel, message_json)
        logger.debug(f"Published message to channel {channel}, {subscribers} subscribers")
        return subscribers

    def subscribe(self, *channels: str):
        """Create a pubsub subscriber for the given channels."""
        logger.debug(f"Subscribing to Redis channels {channels}")
        pubsub = self.pubsub_client.pubsub()
        pubsub.subscribe(*channels)
        return pubsub


redis_backend = RedisBackend()

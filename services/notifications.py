import redis

from backend import RedisBackend
from schemas.matches import Match, MatchEvent
from logging_config import get_logger

logger = get_logger(__name__)


class NotificationFanout:
    """Broadcasts a new match on the room channel and on each matched user's channel.

    Delivery is best effort. A failed publish is logged and dropped; clients
    pick the match up again through polling.
    """

    def __init__(self, backend: RedisBackend):
        self.backend = backend

    def publish(self, match: Match) -> int:
        payload = MatchEvent.from_match(match).model_dump(mode="json")
        channels = [self.backend.get_room_channel_name(match.room_id)]
        channels += [self.backend.get_user_channel_name(user_id) for user_id in match.matched_users]

        delivered = 0
        for channel in channels:
            try:
                delivered += self.backend.publish_message(channel, payload)
            except redis.RedisError as e:
                logger.error(f"Failed to publish match {match.id} on {channel}: {e}")
        logger.info(f"Match {match.id} published on {len(channels)} channels, {delivered} receivers")
        return delivered

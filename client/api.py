from typing import List, Optional

import httpx

from schemas.matches import Match
from logging_config import get_logger

logger = get_logger(__name__)

USER_ID_HEADER = "X-User-Id"


class MatchApiClient:
    """Pull side of the client: the match query endpoints over HTTP."""

    def __init__(self, base_url: str, user_id: str, timeout: float = 10.0,
                 transport: httpx.AsyncBaseTransport = None):
        self.user_id = user_id
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip('/'),
            headers={USER_ID_HEADER: user_id},
            timeout=timeout,
            transport=transport,
        )

    async def find_room_match(self, room_id: str) -> Optional[Match]:
        resp = await self._client.get(f"/rooms/{room_id}/match")
        resp.raise_for_status()
        data = resp.json()
        return Match.model_validate(data) if data else None

    async def get_my_matches(self) -> List[Match]:
        resp = await self._client.get("/matches")
        resp.raise_for_status()
        return [Match.model_validate(item) for item in resp.json()]

    async def check_user_matches(self) -> List[Match]:
        resp = await self._client.get("/matches/check")
        resp.raise_for_status()
        return [Match.model_validate(item) for item in resp.json()]

    async def room_matches(self, room_id: str) -> List[Match]:
        """``find_room_match`` shaped for a poller: zero or one match."""
        match = await self.find_room_match(room_id)
        return [match] if match else []

    async def aclose(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

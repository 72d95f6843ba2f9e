from functools import lru_cache
from typing import Optional

from fastapi import Depends, Request, WebSocket

from backend import RedisBackend, redis_backend
from errors import AuthError
from services.catalog import CatalogClient
from services.matches import MatchQueryService
from services.notifications import NotificationFanout
from services.rooms import FetchCandidates, RoomService
from services.votes import VoteService

USER_ID_HEADER = "X-User-Id"


def _user_id_from(headers, query_params) -> Optional[str]:
    user_id = headers.get(USER_ID_HEADER) or query_params.get("user_id")
    if user_id and user_id.strip():
        return user_id.strip()
    return None


def current_user_id(request: Request) -> str:
    """Identity collaborator: the caller's user id, resolved per request."""
    user_id = _user_id_from(request.headers, request.query_params)
    if not user_id:
        raise AuthError()
    return user_id


def websocket_user_id(websocket: WebSocket) -> Optional[str]:
    # browsers cannot set headers on the upgrade request, so the query string is accepted too
    return _user_id_from(websocket.headers, websocket.query_params)


def get_backend() -> RedisBackend:
    return redis_backend


@lru_cache(maxsize=1)
def _catalog_client() -> CatalogClient:
    return CatalogClient()


def get_fetch_candidates() -> FetchCandidates:
    return _catalog_client().fetch_candidates


def get_match_queries(backend: RedisBackend = Depends(get_backend)) -> MatchQueryService:
    return MatchQueryService(backend)


def get_room_service(backend: RedisBackend = Depends(get_backend),
                     fetch_candidates: FetchCandidates = Depends(get_fetch_candidates),
                     match_queries: MatchQueryService = Depends(get_match_queries)) -> RoomService:
    return RoomService(backend, fetch_candidates, match_queries=match_queries)


def get_vote_service(backend: RedisBackend = Depends(get_backend)) -> VoteService:
    return VoteService(backend, NotificationFanout(backend))

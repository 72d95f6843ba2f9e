from fastapi import APIRouter, Depends
from schemas.matches import Match
from dependencies import current_user_id, get_match_queries
from services.matches import MatchQueryService
from typing import List, Optional
from logging_config import get_logger

logger = get_logger(__name__)

matches_router = APIRouter(tags=["matches"])


@matches_router.get("/matches", response_model=List[Match])
def get_my_matches(user_id: str = Depends(current_user_id),
                   match_queries: MatchQueryService = Depends(get_match_queries)):
    """Matches involving the caller, newest first."""
    return match_queries.find_user_matches(user_id)


@matches_router.get("/matches/check", response_model=List[Match])
def check_user_matches(user_id: str = Depends(current_user_id),
                       match_queries: MatchQueryService = Depends(get_match_queries)):
    return match_queries.check_user_matches(user_id)


@matches_router.get("/rooms/{room_id}/match", response_model=Optional[Match])
def check_room_match(room_id: str,
                     user_id: str = Depends(current_user_id),
                     match_queries: MatchQueryService = Depends(get_match_queries)):
    match = match_queries.find_room_match(room_id)
    logger.debug(f"Room match check for {room_id} by {user_id}: {match.id if match else None}")
    return match

from fastapi import APIRouter, Depends, HTTPException
from schemas.votes import VoteRequest, VoteResponse
from dependencies import current_user_id, get_vote_service
from errors import MatchRoomError
from services.votes import VoteService
from logging_config import get_logger

logger = get_logger(__name__)

votes_router = APIRouter(prefix="/rooms", tags=["votes"])


@votes_router.post("/{room_id}/votes", response_model=VoteResponse)
def vote(room_id: str, vote_request: VoteRequest,
         user_id: str = Depends(current_user_id),
         vote_service: VoteService = Depends(get_vote_service)):
    # Body: { "candidate_id": 550, "vote": true }
    # Response: { "success": true, "match": null | {...} }
    try:
        match = vote_service.record_vote(user_id, room_id, vote_request.candidate_id, vote_request.vote)
    except MatchRoomError:
        raise
    except Exception as e:
        logger.error(f"Error recording vote in room {room_id} for user {user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to record vote")
    return VoteResponse(success=True, match=match)

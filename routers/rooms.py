from fastapi import APIRouter, Depends, HTTPException, Request
from schemas.rooms import CreateRoomRequest, JoinRoomRequest, Room
from dependencies import current_user_id, get_room_service
from errors import MatchRoomError
from services.rooms import RoomService
from typing import List
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])


@rooms_router.post("/", response_model=Room, status_code=201)
def create_room(room: CreateRoomRequest, request: Request,
                user_id: str = Depends(current_user_id),
                room_service: RoomService = Depends(get_room_service)):
    # Body: { "kind": "MOVIE" | "TV", "tags": [28, 12] }  (at most 2 tags)
    logger.info(f"Room creation request from user {user_id} ({request.client.host if request.client else 'unknown'}), kind: {room.kind}, tags: {room.tags}")
    try:
        return room_service.create_room(user_id, room.kind, room.tags)
    except MatchRoomError:
        raise
    except Exception as e:
        logger.error(f"Error creating room: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create room")


@rooms_router.post("/join", response_model=Room)
def join_room(join_room_request: JoinRoomRequest,
              user_id: str = Depends(current_user_id),
              room_service: RoomService = Depends(get_room_service)):
    # Body: { "code": "7HD92F" }  (case-insensitive)
    logger.info(f"Join room request from user {user_id} with code {join_room_request.code}")
    return room_service.join_room(user_id, join_room_request.code)


@rooms_router.get("/", response_model=List[Room])
def get_my_rooms(user_id: str = Depends(current_user_id),
                 room_service: RoomService = Depends(get_room_service)):
    """Active rooms without a match that the caller hosts or participates in, newest first."""
    return room_service.get_my_rooms(user_id)


@rooms_router.get("/{room_id}", response_model=Room)
def get_room_details(room_id: str,
                     user_id: str = Depends(current_user_id),
                     room_service: RoomService = Depends(get_room_service)):
    room = room_service.get_room(room_id)
    if not room:
        logger.warning(f"Room details failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")
    return room

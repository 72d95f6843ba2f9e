from fastapi import Depends, FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from routers.rooms import rooms_router
from routers.votes import votes_router
from routers.matches import matches_router
from backend import RedisBackend, redis_backend
from constants import BUILD_INDEXES_ON_STARTUP, LOG_FILE, LOG_LEVEL
from dependencies import get_backend, websocket_user_id
from errors import MatchRoomError
from realtime import ChannelRelay
from services.indexes import IndexBuilder
from services.room_codes import utcnow
from logging_config import get_logger, setup_logging

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if redis_backend.ping():
        logger.info("Redis client connected successfully")
        if BUILD_INDEXES_ON_STARTUP:
            IndexBuilder(redis_backend).build_all()
    else:
        logger.error("Redis is unreachable at startup; queries will fail until it comes back")
    yield
    await relay.shutdown()
    logger.info("Application shutdown complete")


app = FastAPI(title="MatchRoom", lifespan=lifespan)

# Configure CORS to allow all origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(rooms_router)
app.include_router(votes_router)
app.include_router(matches_router)

relay = ChannelRelay(redis_backend)

logger.info("FastAPI application initialized")


@app.exception_handler(MatchRoomError)
async def matchroom_error_handler(request: Request, exc: MatchRoomError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.get("/health")
def health(backend: RedisBackend = Depends(get_backend)):
    redis_ok = backend.ping()
    return JSONResponse(
        status_code=200 if redis_ok else 503,
        content={"status": "ok" if redis_ok else "degraded", "redis": redis_ok},
    )


@app.websocket("/rooms/{room_id}/matches/ws")
async def room_matches_websocket(room_id: str, websocket: WebSocket):
    """Match events for one room. Query parameter ``user_id`` when the header cannot be set."""
    user_id = websocket_user_id(websocket)
    if not user_id:
        await websocket.close(code=1008, reason="User ID is required")
        return

    room = redis_backend.get_room(room_id)
    if not room or room.is_expired(utcnow()):
        logger.info(f"WebSocket connection rejected: Room {room_id} not found or expired")
        await websocket.close(code=1008, reason="Room not found")
        return

    await relay.serve(websocket, redis_backend.get_room_channel_name(room_id))


@app.websocket("/matches/ws")
async def user_matches_websocket(websocket: WebSocket):
    """Match events for the calling user, wherever they are in the app."""
    user_id = websocket_user_id(websocket)
    if not user_id:
        await websocket.close(code=1008, reason="User ID is required")
        return

    await relay.serve(websocket, redis_backend.get_user_channel_name(user_id))

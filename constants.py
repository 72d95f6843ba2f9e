import os

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

REDIS_URL = f"redis://:{REDIS_PASSWORD}@{REDIS_HOST}:{REDIS_PORT}" if REDIS_PASSWORD else f"redis://{REDIS_HOST}:{REDIS_PORT}"

# Rooms
ROOM_TTL_SECONDS = int(os.getenv("ROOM_TTL_SECONDS", 24 * 60 * 60))
ROOM_CODE_LENGTH = int(os.getenv("ROOM_CODE_LENGTH", 6))
ROOM_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
ROOM_CODE_MAX_ATTEMPTS = int(os.getenv("ROOM_CODE_MAX_ATTEMPTS", 10))
ROOM_KINDS = ("MOVIE", "TV")
MAX_TAGS = int(os.getenv("MAX_TAGS", 2))

# Participation markers use this in place of a candidate id
PARTICIPATION_SENTINEL = -1

# Match queries
USER_MATCHES_LIMIT = int(os.getenv("USER_MATCHES_LIMIT", 50))
CHECK_MATCHES_LIMIT = int(os.getenv("CHECK_MATCHES_LIMIT", 10))
BUILD_INDEXES_ON_STARTUP = os.getenv("BUILD_INDEXES_ON_STARTUP", "true").lower() in ("1", "true", "yes")

# Content catalog (TMDB compatible)
CATALOG_BASE_URL = os.getenv("CATALOG_BASE_URL", "https://api.themoviedb.org/3")
CATALOG_API_KEY = os.getenv("CATALOG_API_KEY", "")
CATALOG_IMAGE_BASE_URL = os.getenv("CATALOG_IMAGE_BASE_URL", "https://image.tmdb.org/t/p/w500")
CATALOG_TIMEOUT_SECONDS = float(os.getenv("CATALOG_TIMEOUT_SECONDS", 10.0))
CANDIDATE_COUNT = int(os.getenv("CANDIDATE_COUNT", 50))

# Client side reconciliation
ROOM_POLL_INTERVAL = float(os.getenv("ROOM_POLL_INTERVAL", 3.0))
ACCOUNT_POLL_INTERVAL = float(os.getenv("ACCOUNT_POLL_INTERVAL", 8.0))
PUSH_RETRY_BASE = float(os.getenv("PUSH_RETRY_BASE", 1.0))
PUSH_MAX_RETRIES = int(os.getenv("PUSH_MAX_RETRIES", 3))
POLL_MAX_FAILURES = int(os.getenv("POLL_MAX_FAILURES", 5))
POLL_MAX_BACKOFF = float(os.getenv("POLL_MAX_BACKOFF", 60.0))

# Server
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))
RELOAD = os.getenv("RELOAD", "false").lower() in ("1", "true", "yes")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

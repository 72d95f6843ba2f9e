import uvicorn

from constants import HOST, LOG_FILE, LOG_LEVEL, PORT, RELOAD
from logging_config import get_logger, setup_logging

logger = get_logger(__name__)


def main():
    """Console entry point for the ``matchroom`` script."""
    setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
    logger.info(f"Starting MatchRoom server on {HOST}:{PORT} (reload={RELOAD})")
    # app is imported by uvicorn so reload workers pick up code changes
    uvicorn.run("app:app", host=HOST, port=PORT, reload=RELOAD, log_config=None)


if __name__ == "__main__":
    main()

import logging

from core.config import settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging() -> None:
    """
    Configure root logging once (uvicorn may have installed handlers already).
    """
    root = logging.getLogger()
    level = getattr(logging, str(settings.LOG_LEVEL).upper(), logging.INFO)

    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    root.setLevel(level)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

"""Logging setup shared by the API process and CLI scripts."""
import logging

from listingwatch.core.config import settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str | None = None) -> None:
    """Configure the root logger once; later calls only adjust the level."""
    resolved = getattr(logging, (level or settings.log_level).upper(), logging.INFO)
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=resolved, format=LOG_FORMAT)
    root.setLevel(resolved)

    # APScheduler is chatty at INFO
    logging.getLogger("apscheduler").setLevel(max(resolved, logging.WARNING))

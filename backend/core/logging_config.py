import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install the process-wide log format (called once at app startup)."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)

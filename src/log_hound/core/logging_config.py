import logging
import sys

from log_hound.core.config import settings

# Libraries whose protocol chatter only matters while debugging
NOISY_LOGGERS = ("botocore", "boto3", "paramiko", "urllib3", "s3transfer")


class LibraryNoiseFilter(logging.Filter):
    """Drop sub-WARNING records from third-party transports unless debugging."""

    def __init__(self, debug: bool = False):
        super().__init__()
        self.debug = debug

    def filter(self, record):
        if self.debug or record.levelno >= logging.WARNING:
            return True
        return not any(
            record.name == name or record.name.startswith(name + ".")
            for name in NOISY_LOGGERS
        )


def setup_logging(debug: bool = None):
    """Configure stderr logging; debug mode enables protocol tracing."""
    if debug is None:
        debug = settings.debug
    level = logging.DEBUG if debug else logging.WARNING

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # stdout carries search results, so diagnostics go to stderr
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    console_handler.setFormatter(formatter)
    console_handler.addFilter(LibraryNoiseFilter(debug))

    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if debug else logging.WARNING)

    return root_logger

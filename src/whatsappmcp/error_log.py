import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Optional

from .errors import error_kind

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Send console logging to stderr; stdout carries the MCP channel."""
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)


def describe_error(error: Optional[BaseException]) -> str:
    if error is None:
        return ""
    return json.dumps(
        {"kind": error_kind(error).value, "type": type(error).__name__, "message": str(error)},
        default=str,
    )


class ErrorLog:
    """Console error logging plus a best-effort append-only file.

    Each file line is ``<ISO-8601 timestamp> - <message> <json error>``.
    Failing to write the file only produces a console warning.
    """

    def __init__(self, path: str):
        self.path = path

    def error(self, message: str, error: Optional[BaseException] = None) -> None:
        if error is not None:
            logger.error("%s: %s", message, error, exc_info=error)
        else:
            logger.error(message)
        self.write_to_file(message, error)

    def write_to_file(self, message: str, error: Optional[BaseException] = None) -> None:
        timestamp = datetime.now(timezone.utc).isoformat()
        line = f"{timestamp} - {message} {describe_error(error)}\n"
        try:
            os.makedirs(os.path.dirname(self.path), exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            logger.warning("Failed to write to log file %s: %s", self.path, e)

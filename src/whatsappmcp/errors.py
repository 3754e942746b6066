"""Error kinds raised and handled across the server."""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    SCHEMA_VALIDATION = "schema_validation"
    AUTOMATION_EXECUTION = "automation_execution"
    TRANSPORT = "transport"
    UNHANDLED = "unhandled"


class WhatsAppMCPError(Exception):
    """Base for whatsapp-mcp errors."""
    kind: ErrorKind = ErrorKind.UNHANDLED


class ConfigError(WhatsAppMCPError):
    """Invalid configuration in the environment."""
    pass


class SchemaValidationError(WhatsAppMCPError):
    """Tool arguments do not match the tool's input schema."""
    kind = ErrorKind.SCHEMA_VALIDATION


class AutomationExecutionError(WhatsAppMCPError):
    """osascript exited non-zero, timed out or could not be started."""
    kind = ErrorKind.AUTOMATION_EXECUTION

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class TransportError(WhatsAppMCPError):
    """The stdio channel with the host failed."""
    kind = ErrorKind.TRANSPORT


class UnhandledError(WhatsAppMCPError):
    """An exception escaped every other layer."""
    kind = ErrorKind.UNHANDLED


def error_kind(error: BaseException) -> ErrorKind:
    """Tag any exception with the error kind it belongs to."""
    if isinstance(error, WhatsAppMCPError):
        return error.kind
    return ErrorKind.UNHANDLED

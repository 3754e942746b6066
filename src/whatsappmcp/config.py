import logging
import os
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Optional

from .errors import ConfigError

ENV_PREFIX = "WHATSAPP_MCP_"
DEFAULT_LOG_DIR = os.path.join("~", "Library", "Logs", "whatsapp-mcp")


class SelectionStrategy(Enum):
    """How the send script finds the search field and picks a contact."""
    KEYBOARD = "keyboard"
    SEARCH_ENTER = "search-enter"
    ELEMENT = "element"


@dataclass(frozen=True)
class AutomationTimings:
    """Named settle intervals (seconds) inserted between UI steps.

    The UI automation layer has no completion events, so each step simply
    waits. Too short and keystrokes land in the wrong place; too long and
    every send gets slower. Success is probabilistic either way.
    """
    activate: float = 1.0
    search_focus: float = 0.5
    clear: float = 0.5
    search_results: float = 1.5
    navigation: float = 0.3
    conversation_open: float = 0.8
    message_typed: float = 0.5
    after_send: float = 0.3

    @classmethod
    def zero(cls) -> "AutomationTimings":
        return cls(**{f.name: 0.0 for f in fields(cls)})


@dataclass(frozen=True)
class ServerConfig:
    app_name: str = "WhatsApp"
    log_dir: str = DEFAULT_LOG_DIR
    selection: SelectionStrategy = SelectionStrategy.KEYBOARD
    script_timeout: Optional[float] = None
    osascript: str = "osascript"
    log_level: str = "INFO"
    timings: AutomationTimings = field(default_factory=AutomationTimings)

    @property
    def error_log_path(self) -> str:
        return os.path.join(os.path.expanduser(self.log_dir), "error.log")


def _parse_seconds(name: str, raw: str) -> float:
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number of seconds, got {raw!r}")
    if value < 0:
        raise ConfigError(f"{name} must not be negative, got {raw!r}")
    return value


def load_timings(env=None) -> AutomationTimings:
    """Read ``WHATSAPP_MCP_DELAY_<NAME>`` overrides on top of the defaults."""
    env = os.environ if env is None else env
    overrides = {}
    for f in fields(AutomationTimings):
        var = f"{ENV_PREFIX}DELAY_{f.name.upper()}"
        raw = env.get(var)
        if raw:
            overrides[f.name] = _parse_seconds(var, raw)
    return replace(AutomationTimings(), **overrides)


def load_config(env=None) -> ServerConfig:
    """Build the server configuration from environment variables.

    Args:
        env: Mapping to read instead of ``os.environ`` (used by tests).

    Raises:
        ConfigError: If a variable holds a value that cannot be used.
    """
    env = os.environ if env is None else env

    selection_raw = env.get(f"{ENV_PREFIX}SELECTION", SelectionStrategy.KEYBOARD.value)
    try:
        selection = SelectionStrategy(selection_raw.strip().lower())
    except ValueError:
        valid = [s.value for s in SelectionStrategy]
        raise ConfigError(f"Invalid {ENV_PREFIX}SELECTION: '{selection_raw}'. Must be one of {valid}")

    timeout_raw = env.get(f"{ENV_PREFIX}SCRIPT_TIMEOUT")
    script_timeout = None
    if timeout_raw:
        script_timeout = _parse_seconds(f"{ENV_PREFIX}SCRIPT_TIMEOUT", timeout_raw)
        if script_timeout == 0:
            raise ConfigError(f"{ENV_PREFIX}SCRIPT_TIMEOUT must be greater than zero")

    app_name = env.get(f"{ENV_PREFIX}APP_NAME", "WhatsApp")
    if not app_name or '"' in app_name or "\\" in app_name:
        raise ConfigError(f"Invalid {ENV_PREFIX}APP_NAME: {app_name!r}")

    log_level = env.get(f"{ENV_PREFIX}LOG_LEVEL", "INFO").upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigError(f"Invalid {ENV_PREFIX}LOG_LEVEL: {log_level!r}")

    return ServerConfig(
        app_name=app_name,
        log_dir=env.get(f"{ENV_PREFIX}LOG_DIR", DEFAULT_LOG_DIR),
        selection=selection,
        script_timeout=script_timeout,
        osascript=env.get(f"{ENV_PREFIX}OSASCRIPT", "osascript"),
        log_level=log_level,
        timings=load_timings(env),
    )

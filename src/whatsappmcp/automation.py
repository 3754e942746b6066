import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from .applescript import AppleScriptRunner, applescript_string
from .config import AutomationTimings, SelectionStrategy, ServerConfig

logger = logging.getLogger(__name__)

SEND_OK = "Message sent using optimized timing"
SEND_FAILED_PREFIX = "Failed to send message: "

# keystroke (ASCII character 31) is the down arrow
DOWN_ARROW = "keystroke (ASCII character 31)"
BACKSPACE = "keystroke (ASCII character 8)"
ENTER_KEY = "key code 36"

ScriptExecutor = Callable[[str], Awaitable[str]]


def _delay(seconds: float) -> str:
    return f"delay {seconds:g}"


def _focus_search(strategy: SelectionStrategy, timings: AutomationTimings) -> List[str]:
    if strategy is SelectionStrategy.SEARCH_ENTER:
        # Cmd+S opens search with an empty field
        return [
            'keystroke "s" using {command down}',
            _delay(timings.search_focus),
        ]
    if strategy is SelectionStrategy.ELEMENT:
        return [
            "set searchField to text field 1 of group 1 of window 1",
            "set focused of searchField to true",
            _delay(timings.search_focus),
            'set value of searchField to ""',
            _delay(timings.clear),
        ]
    return [
        'keystroke "f" using {command down}',
        _delay(timings.search_focus),
        'keystroke "a" using {command down}',
        BACKSPACE,
        _delay(timings.clear),
    ]


def _select_contact(strategy: SelectionStrategy, timings: AutomationTimings) -> List[str]:
    if strategy is SelectionStrategy.SEARCH_ENTER:
        return [ENTER_KEY]
    if strategy is SelectionStrategy.ELEMENT:
        # the top search hit is already highlighted
        return ["keystroke return"]
    return [
        DOWN_ARROW,
        _delay(timings.navigation),
        DOWN_ARROW,
        _delay(timings.navigation),
        "keystroke return",
    ]


def _send_key(strategy: SelectionStrategy) -> str:
    if strategy is SelectionStrategy.SEARCH_ENTER:
        return ENTER_KEY
    return "keystroke return"


def build_send_script(
    contact_name: str,
    message: str,
    app_name: str = "WhatsApp",
    strategy: SelectionStrategy = SelectionStrategy.KEYBOARD,
    timings: Optional[AutomationTimings] = None,
) -> str:
    """Build the AppleScript that types ``message`` into ``contact_name``'s chat.

    The contact is found through the app's search field and picked with a
    fixed keystroke sequence, which depends on the WhatsApp UI version.
    """
    timings = timings or AutomationTimings()
    app = applescript_string(app_name)
    steps = (
        _focus_search(strategy, timings)
        + [
            f"keystroke {applescript_string(contact_name)}",
            _delay(timings.search_results),
        ]
        + _select_contact(strategy, timings)
        + [
            _delay(timings.conversation_open),
            f"keystroke {applescript_string(message)}",
            _delay(timings.message_typed),
            _send_key(strategy),
            _delay(timings.after_send),
            f"return {applescript_string(SEND_OK)}",
        ]
    )
    body = "\n".join(f"      {line}" for line in steps)
    return (
        f"tell application {app} to activate\n"
        f"{_delay(timings.activate)}\n"
        f'tell application "System Events"\n'
        f"  tell process {app}\n"
        f"    try\n"
        f"{body}\n"
        f"    on error errMsg\n"
        f"      return {applescript_string(SEND_FAILED_PREFIX)} & errMsg\n"
        f"    end try\n"
        f"  end tell\n"
        f"end tell"
    )


def build_status_script(app_name: str = "WhatsApp") -> str:
    return (
        'tell application "System Events"\n'
        f"  return (exists process {applescript_string(app_name)})\n"
        "end tell"
    )


def parse_running(output: str) -> bool:
    return output.strip().lower() == "true"


class WhatsAppAutomation:
    """Drives the WhatsApp desktop app through System Events.

    Only one script runs at a time: the app has a single UI, and two
    interleaved sends would type into the wrong chat. Waiting calls are
    served in arrival order.
    """

    def __init__(
        self,
        executor: ScriptExecutor,
        app_name: str = "WhatsApp",
        strategy: SelectionStrategy = SelectionStrategy.KEYBOARD,
        timings: Optional[AutomationTimings] = None,
    ):
        self._executor = executor
        self.app_name = app_name
        self.strategy = strategy
        self.timings = timings or AutomationTimings()
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: ServerConfig) -> "WhatsAppAutomation":
        runner = AppleScriptRunner(osascript=config.osascript, timeout=config.script_timeout)
        return cls(
            runner.execute,
            app_name=config.app_name,
            strategy=config.selection,
            timings=config.timings,
        )

    async def execute(self, script: str) -> str:
        async with self._lock:
            return await self._executor(script)

    async def send_message(self, contact_name: str, message: str) -> str:
        script = build_send_script(
            contact_name, message,
            app_name=self.app_name,
            strategy=self.strategy,
            timings=self.timings,
        )
        logger.info("Sending message to %r (%s selection)", contact_name, self.strategy.value)
        result = await self.execute(script)
        if result.startswith(SEND_FAILED_PREFIX):
            logger.warning("Send script reported: %s", result)
        return result

    async def is_running(self) -> bool:
        output = await self.execute(build_status_script(self.app_name))
        return parse_running(output)

import asyncio
import logging
import sys
import time
from typing import Any, Dict, Optional

from whatsappmcp import SERVER_NAME, SERVER_VERSION
from whatsappmcp.automation import WhatsAppAutomation
from whatsappmcp.config import ServerConfig, load_config
from whatsappmcp.dispatcher import ToolDispatcher
from whatsappmcp.error_log import ErrorLog, configure_logging
from whatsappmcp.errors import UnhandledError
import whatsappmcp.definitions as wamcpdef
import whatsappmcp.implementations as wamcpimpl

logger = logging.getLogger("whatsappmcp.server")

# give the error log a moment to flush before exiting non-zero
EXIT_DELAY = 1.0

IMPLEMENTATIONS = {
    wamcpdef.SEND_MESSAGE: wamcpimpl.send_whatsapp_message_impl,
    wamcpdef.CHECK_STATUS: wamcpimpl.check_whatsapp_status_impl,
    wamcpdef.LIST_CONTACTS: wamcpimpl.list_recent_contacts_impl,
}


def create_dispatcher(automation: WhatsAppAutomation, error_log: ErrorLog) -> ToolDispatcher:
    """Register every tool against ``automation`` on a fresh dispatcher."""
    dispatcher = ToolDispatcher(SERVER_NAME, SERVER_VERSION, error_log)
    for tool in wamcpdef.get_tools():
        impl = IMPLEMENTATIONS[tool.name]

        async def handler(arguments: Dict[str, Any], impl=impl):
            return await impl(automation, arguments)

        dispatcher.register_tool(tool, handler)
    return dispatcher


def install_exception_hooks(error_log: ErrorLog, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
    def excepthook(exc_type, exc, tb):
        error_log.error("Uncaught exception", exc)

    sys.excepthook = excepthook

    if loop is not None:
        def handle_loop_exception(loop, context):
            message = context.get("message", "unknown error")
            error = context.get("exception") or UnhandledError(message)
            error_log.error(f"Unhandled rejection: {message}", error)

        loop.set_exception_handler(handle_loop_exception)


async def run(config: ServerConfig, error_log: ErrorLog) -> None:
    install_exception_hooks(error_log, asyncio.get_running_loop())

    logger.info("Setting up MCP server...")
    automation = WhatsAppAutomation.from_config(config)
    dispatcher = create_dispatcher(automation, error_log)
    logger.info(
        "WhatsApp MCP Server is running (app=%s, selection=%s)",
        config.app_name, config.selection.value,
    )
    await dispatcher.serve_stdio()


def main() -> None:
    configure_logging()
    error_log = ErrorLog(ServerConfig().error_log_path)

    logger.info("Initializing WhatsApp MCP Server")
    try:
        config = load_config()
        error_log = ErrorLog(config.error_log_path)
        logging.getLogger().setLevel(config.log_level)
    except Exception as e:
        error_log.error("Error starting server", e)
        time.sleep(EXIT_DELAY)
        sys.exit(1)

    try:
        asyncio.run(run(config, error_log))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    except Exception as e:
        error_log.error("Fatal error in main", e)
        time.sleep(EXIT_DELAY)
        sys.exit(1)


if __name__ == "__main__":
    main()

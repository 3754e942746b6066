import logging
from typing import Any

from .automation import WhatsAppAutomation
from .results import ToolResult

logger = logging.getLogger(__name__)

RUNNING_TEXT = "WhatsApp is currently running."
NOT_RUNNING_TEXT = (
    "WhatsApp is not currently running. "
    "Please start WhatsApp before trying to send messages."
)
CONTACTS_LIMITATION_TEXT = (
    "Due to WhatsApp's privacy protections, listing contacts programmatically is limited. "
    "Please specify the exact contact name when sending messages."
)


async def send_whatsapp_message_impl(automation: WhatsAppAutomation, arguments: dict[str, Any]) -> ToolResult:
    contact_name = arguments.get("contactName")
    try:
        message = arguments["message"]
        contact_name = arguments["contactName"]
        result = await automation.send_message(contact_name, message)
        logger.info("Send script finished: %s", result)
        return ToolResult.text(f'Message sent to {contact_name}: "{message}"')
    except Exception as e:
        logger.error("Error sending message to %r: %s", contact_name, e)
        return ToolResult.error(f"Error sending message: {e}")


async def check_whatsapp_status_impl(automation: WhatsAppAutomation, arguments: dict[str, Any]) -> ToolResult:
    try:
        running = await automation.is_running()
    except Exception as e:
        logger.error("Error checking WhatsApp status: %s", e)
        return ToolResult.error(f"Error checking WhatsApp status: {e}")
    return ToolResult.text(RUNNING_TEXT if running else NOT_RUNNING_TEXT)


async def list_recent_contacts_impl(automation: WhatsAppAutomation, arguments: dict[str, Any]) -> ToolResult:
    # WhatsApp exposes no contact list to System Events
    return ToolResult.text(CONTACTS_LIMITATION_TEXT)

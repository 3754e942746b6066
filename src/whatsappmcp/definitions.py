import mcp.types as types

SEND_MESSAGE = "send-whatsapp-message"
CHECK_STATUS = "check-whatsapp-status"
LIST_CONTACTS = "list-recent-contacts"

NO_ARGUMENTS = {
    "type": "object",
    "properties": {},
    "additionalProperties": False,
}


def get_tools() -> list[types.Tool]:
    return [
        types.Tool(
            name=SEND_MESSAGE,
            description="Send a message to a contact on WhatsApp",
            inputSchema={
                "type": "object",
                "properties": {
                    "contactName": {
                        "type": "string",
                        "minLength": 1,
                        "description": "Full name of the contact as it appears in WhatsApp",
                    },
                    "message": {
                        "type": "string",
                        "description": "Message content to send",
                    },
                },
                "required": ["contactName", "message"],
                "additionalProperties": False,
            },
        ),
        types.Tool(
            name=CHECK_STATUS,
            description="Check if WhatsApp is currently running",
            inputSchema=dict(NO_ARGUMENTS),
        ),
        types.Tool(
            name=LIST_CONTACTS,
            description="List recently contacted people on WhatsApp (simplified)",
            inputSchema=dict(NO_ARGUMENTS),
        ),
    ]

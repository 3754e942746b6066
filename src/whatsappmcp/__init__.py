from .automation import WhatsAppAutomation
from .config import AutomationTimings, SelectionStrategy, ServerConfig, load_config
from .dispatcher import ToolDispatcher
from .error_log import ErrorLog
from .results import ToolResult

SERVER_NAME = "WhatsApp-Helper"
SERVER_VERSION = "1.0.0"

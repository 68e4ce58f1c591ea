"""Configuration constants for chat message intake."""

import os


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() not in ("0", "false", "no", "off")


# Classification
TASK_WORTHY_THRESHOLD = 0.6
TITLE_MAX_LENGTH = 200
UNTITLED_TASK_TITLE = "Untitled task"
DEFAULT_WORKFLOW_TYPE = "general"

# Conversation context handed to the classifier
CONTEXT_MESSAGE_LIMIT = int(os.environ.get("TALLY_CONTEXT_MESSAGES", "10"))
CONTEXT_TASK_LIMIT = int(os.environ.get("TALLY_CONTEXT_TASKS", "10"))

# LLM Configuration
LLM_ENABLED = _env_flag("TALLY_LLM_ENABLED", True)
DEFAULT_OLLAMA_MODEL = os.environ.get("TALLY_OLLAMA_MODEL", "llama3.2:3b")
DEFAULT_OLLAMA_BASE_URL = os.environ.get("OLLAMA_HOST", "http://localhost:11434")
DEFAULT_OLLAMA_TIMEOUT = float(os.environ.get("TALLY_OLLAMA_TIMEOUT", "15.0"))  # seconds
DEFAULT_OLLAMA_MAX_RETRIES = 2
DEFAULT_OLLAMA_TEMPERATURE = 0.1
EXTRACTION_TOOL_NAME = "extract_task_info"

# Storage Configuration
DEFAULT_DATABASE_PATH = os.path.expanduser(
    os.environ.get("TALLY_DATABASE_PATH", "~/.tally/tally.db")
)
DEFAULT_WAL_MODE = True

# Database Schema Version
SCHEMA_VERSION = 1

# MCP Server Configuration
DEFAULT_MCP_HOST = "localhost"
DEFAULT_MCP_PORT = 3001
DEFAULT_MCP_SERVER_NAME = "tally-tasks"

# Task naming
CORRECTION_LOOKBACK = 10
MAX_NAMING_SUGGESTIONS = 3
SUGGESTION_SIMILARITY_THRESHOLD = 0.5
HIGH_VALUE_AMOUNT = 50000

# Finance workflow vocabulary, in classification order
KNOWN_WORKFLOW_TYPES = (
    "invoice-generation",
    "payment-reconciliation",
    "monthly-close",
    "vendor-onboarding",
    "model-change",
    "annual-planning",
)

WORKFLOW_PREFIXES = {
    "invoice-generation": "INV",
    "payment-reconciliation": "PAY",
    "monthly-close": "CLOSE",
    "annual-planning": "PLAN",
    "model-change": "MODEL",
    "vendor-onboarding": "VENDOR",
    "general": "TASK",
}

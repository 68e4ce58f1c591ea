"""Structured task extraction using a local LLM via Ollama tool calls."""

import asyncio
import logging
import time
from typing import Any

import ollama

from .config import (
    DEFAULT_OLLAMA_BASE_URL,
    DEFAULT_OLLAMA_MAX_RETRIES,
    DEFAULT_OLLAMA_MODEL,
    DEFAULT_OLLAMA_TEMPERATURE,
    DEFAULT_OLLAMA_TIMEOUT,
    EXTRACTION_TOOL_NAME,
    KNOWN_WORKFLOW_TYPES,
    TASK_WORTHY_THRESHOLD,
)
from .date_resolver import DateExpressionResolver
from .exceptions import ClassificationError
from .interfaces import MessageClassifier, StructuredGenerationBackend
from .models import (
    ClassificationContext,
    ExtractionResult,
    MessageType,
    MetadataValue,
    TaskAction,
    TaskPriority,
    TaskStatus,
    User,
)

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("isTask", "confidence", "messageType", "reasoning")

EXTRACTION_TOOL_DESCRIPTION = (
    "Analyzes a message in a finance team chat to determine intent and extract task "
    "information. Understands nuances like questions, comments, observations, and "
    "actual work items."
)


def _string_list(description: str) -> dict[str, Any]:
    return {"type": "array", "items": {"type": "string"}, "description": description}


EXTRACTION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "isTask": {
            "type": "boolean",
            "description": (
                "Whether this requires tracking (new task, update, or comment on existing "
                "work). False for general questions, observations, or casual conversation."
            ),
        },
        "confidence": {
            "type": "number",
            "description": (
                "Confidence score from 0.0 to 1.0. Use low scores (0.1-0.3) for vague/unclear "
                "messages, medium (0.4-0.6) for possible tasks, high (0.7-1.0) for clear "
                "actionable work."
            ),
        },
        "messageType": {
            "type": "string",
            "enum": [message_type.value for message_type in MessageType],
            "description": (
                "task=new work to create/complete, comment=note about existing task, "
                "question=asking for help/clarification, observation=noting an issue, "
                "conversation=casual chat"
            ),
        },
        "action": {
            "type": "string",
            "enum": [action.value for action in TaskAction],
            "description": (
                "create=new task, update=modify existing, complete=mark done, "
                "block=mark as blocked, handoff=reassign, comment=add note, "
                "rename=change task title, retag=change task tags"
            ),
        },
        "taskTitle": {
            "type": "string",
            "description": "Clear, concise title for NEW tasks. Omit for comments/questions about existing tasks.",
        },
        "taskReference": {
            "type": "string",
            "description": (
                "For comments/questions/updates: keywords from the task being referenced "
                '(e.g., "Humana invoice", "TechCorp payment", "October close")'
            ),
        },
        "commentText": {
            "type": "string",
            "description": "For comments/questions/observations: the comment text to add to the related task",
        },
        "newTaskTitle": {
            "type": "string",
            "description": "For rename action: the new title the user wants for the task",
        },
        "newTags": _string_list("For retag action: the new tags the user wants for the task"),
        "assigneeNames": _string_list("Names of people assigned or mentioned"),
        "deadline": {
            "type": "string",
            "description": 'Natural language deadline if mentioned (e.g., "tomorrow", "Friday", "October 31")',
        },
        "status": {
            "type": "string",
            "enum": [status.value for status in TaskStatus],
            "description": "Task status",
        },
        "priority": {
            "type": "string",
            "enum": [priority.value for priority in TaskPriority],
            "description": "Priority level",
        },
        "workflowType": {
            "type": "string",
            "description": ", ".join(KNOWN_WORKFLOW_TYPES) + ", or general",
        },
        "blockedBy": {"type": "string", "description": "What is blocking this task if blocked"},
        "batchItems": _string_list(
            'If multiple items mentioned (e.g., "invoices for Acme and TechCorp"), list them separately'
        ),
        "metadata": {
            "type": "object",
            "description": "Finance metadata: invoiceNumber, customerName, amount, etc.",
        },
        "reasoning": {"type": "string", "description": "Brief explanation of your classification"},
    },
    "required": list(REQUIRED_FIELDS),
}

CLASSIFICATION_GUIDANCE = """IMPORTANT GUIDANCE:

1. MESSAGE TYPES:
   - task: Clear actionable work ("I'm starting the Humana invoice", "Generate TechCorp invoice")
   - comment: Observation about existing work ("the invoice has some issues", "this looks good")
   - question: Asking for help ("how can I not do this?", "what's the amount?", "is this ready?")
   - observation: Noting a problem without clear action ("will have some issue", "something seems off")
   - conversation: Casual chat ("hey", "thanks", "good morning")
   Only comment, question and observation messages are linked to existing tasks;
   task messages create or update tasks.

2. VAGUE MESSAGES (give LOW confidence 0.1-0.3):
   - "combine the invoice with october" - unclear what action to take
   - "the invoice" - incomplete, no action

3. COMMENTS AND QUESTIONS ON EXISTING WORK:
   - Set taskReference with keywords to find the task
   - Put the comment or question itself in commentText

4. CLEAR TASKS (high confidence 0.7-1.0) need a concrete entity and an action:
   - "I am starting Humana Invoice October 2025"
   - "Generated invoice for TechCorp $25k"
   - "Blocked on payment from Acme"

5. RENAME/RETAG ACTIONS:
   - "rename the Humana invoice to Humana Q4 Invoice" -> task/rename, taskReference: "Humana invoice", newTaskTitle: "Humana Q4 Invoice"
   - "tag the TechCorp payment as urgent and high-value" -> task/retag, taskReference: "TechCorp payment", newTags: ["urgent", "high-value"]

Examples:
- "hey how are you" -> conversation, confidence: 0.05
- "I am starting Humana Invoice October 2025" -> task/create, confidence: 0.95
- "combine the invoice with october" -> observation, confidence: 0.2
- "invoice will have some issue" -> observation, confidence: 0.3
- "how can I not do this?" -> question, confidence: 0.5, taskReference from context
- "the TechCorp invoice looks wrong" -> comment, confidence: 0.7, taskReference: "TechCorp invoice"
- "Waiting on Acme payment" -> task/block, confidence: 0.9

Be strict: only use high confidence (0.7+) for clear, actionable work with enough details."""


class OllamaExtractionBackend(StructuredGenerationBackend):
    """Requests a single tool call from an Ollama chat model."""

    def __init__(
        self,
        model: str = DEFAULT_OLLAMA_MODEL,
        base_url: str = DEFAULT_OLLAMA_BASE_URL,
        timeout: float = DEFAULT_OLLAMA_TIMEOUT,
        max_retries: int = DEFAULT_OLLAMA_MAX_RETRIES,
        temperature: float = DEFAULT_OLLAMA_TEMPERATURE,
    ) -> None:
        """
        Initialize the Ollama backend.

        Args:
            model: Ollama model name (must support tool calling)
            base_url: Ollama service URL
            timeout: Request timeout in seconds
            max_retries: Maximum attempts on timeout
            temperature: LLM temperature for generation
        """
        self.model = model
        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max_retries
        self.temperature = temperature
        self._client = ollama.AsyncClient(host=base_url)

    async def submit(
        self, instructions: str, tool_name: str, schema: dict[str, Any]
    ) -> dict[str, Any]:
        tool = {
            "type": "function",
            "function": {
                "name": tool_name,
                "description": EXTRACTION_TOOL_DESCRIPTION,
                "parameters": schema,
            },
        }

        for attempt in range(self.max_retries):
            try:
                response = await asyncio.wait_for(
                    self._client.chat(
                        model=self.model,
                        messages=[{"role": "user", "content": instructions}],
                        tools=[tool],
                        options={"temperature": self.temperature},
                    ),
                    timeout=self.timeout,
                )
                return self._tool_arguments(response, tool_name)

            except TimeoutError as e:
                logger.error(f"Timeout on attempt {attempt + 1}/{self.max_retries}: {e}")
                if attempt < self.max_retries - 1:
                    # Exponential backoff
                    await asyncio.sleep(2**attempt)
                else:
                    raise ClassificationError(
                        f"Max retries exceeded after {self.max_retries} attempts"
                    ) from e

            except ClassificationError:
                raise

            except ConnectionError as e:
                logger.error(f"Connection error: {e}")
                raise ClassificationError(f"Connection failed: {e}") from e

            except Exception as e:
                logger.error(f"Extraction error: {e}")
                raise ClassificationError(f"Extraction failed: {e}") from e

        raise ClassificationError(f"Max retries exceeded after {self.max_retries} attempts")

    @staticmethod
    def _tool_arguments(response: Any, tool_name: str) -> dict[str, Any]:
        tool_calls = response["message"].get("tool_calls") or []
        for call in tool_calls:
            function = call["function"]
            if function["name"] != tool_name:
                continue
            arguments = function["arguments"]
            if not isinstance(arguments, dict):
                raise ClassificationError("Tool call arguments are not an object")
            return dict(arguments)
        raise ClassificationError(f"No {tool_name} tool call in response")


class StructuredExtractor(MessageClassifier):
    """
    Classifies messages by asking a structured-generation backend to fill in
    the extraction schema, then maps names, dates and thresholds locally.
    """

    def __init__(
        self,
        backend: StructuredGenerationBackend | None,
        date_resolver: DateExpressionResolver | None = None,
        workflow_names: list[str] | None = None,
    ) -> None:
        """
        Initialize the extractor.

        Args:
            backend: Structured-generation capability; None means unavailable
            date_resolver: Resolver for deadline text
            workflow_names: Workflow vocabulary to offer the model
        """
        self.backend = backend
        self.date_resolver = date_resolver or DateExpressionResolver()
        self.workflow_names = workflow_names or [
            name.replace("-", " ") for name in KNOWN_WORKFLOW_TYPES
        ]

    def build_instructions(self, message: str, context: ClassificationContext) -> str:
        """
        Build the instruction bundle for one message.

        Args:
            message: Raw chat message
            context: User directory, recent conversation and open tasks

        Returns:
            Prompt text
        """
        # Keep the message on one line so it cannot close the quoted block
        sanitized = message.replace("\n", " ").replace('"', "'")[:1000]
        user_list = ", ".join(user.name for user in context.users) or "(none)"

        sections = [
            "You are analyzing a message in a finance team's task tracker chat. "
            "Your job is to understand INTENT and NUANCE.",
            "",
            "Context:",
            f"- Team members: {user_list}",
            f"- Finance workflows: {', '.join(self.workflow_names)}",
        ]
        if context.conversation:
            sections += ["", "Recent conversation:", *context.conversation]
        if context.open_tasks:
            sections += ["", "Recent active tasks:"]
            sections += [f'- "{task.title}" ({task.status.value})' for task in context.open_tasks]

        sections += [
            "",
            "Analyze this message:",
            f'"{sanitized}"',
            "",
            CLASSIFICATION_GUIDANCE,
            "",
            f"Respond by calling the {EXTRACTION_TOOL_NAME} tool.",
        ]
        return "\n".join(sections)

    async def classify(
        self, message: str, context: ClassificationContext
    ) -> ExtractionResult:
        if self.backend is None:
            raise ClassificationError("No structured-generation backend configured")
        if not message or not message.strip():
            raise ClassificationError("Empty message provided for extraction")

        start_time = time.time()
        arguments = await self.backend.submit(
            self.build_instructions(message, context), EXTRACTION_TOOL_NAME, EXTRACTION_SCHEMA
        )
        result = self.parse_arguments(arguments, context.users)

        logger.info(
            f"Extraction complete: type={result.message_type.value}, "
            f"action={result.action.value if result.action else None}, "
            f"confidence={result.confidence:.2f}, time={time.time() - start_time:.3f}s"
        )
        return result

    def parse_arguments(self, arguments: dict[str, Any], users: list[User]) -> ExtractionResult:
        """
        Validate tool-call arguments and turn them into an ExtractionResult.

        Raises:
            ClassificationError: If required fields are missing or malformed
        """
        missing = [name for name in REQUIRED_FIELDS if name not in arguments]
        if missing:
            raise ClassificationError(f"Missing required field(s): {', '.join(missing)}")

        try:
            message_type = MessageType(str(arguments["messageType"]).lower())
        except ValueError as e:
            raise ClassificationError(f"Invalid messageType '{arguments['messageType']}'") from e

        try:
            confidence = float(arguments["confidence"])
        except (TypeError, ValueError) as e:
            raise ClassificationError(f"Invalid confidence '{arguments['confidence']}'") from e
        confidence = min(max(confidence, 0.0), 1.0)

        is_task = _as_bool(arguments["isTask"])
        batch_items = _strings(arguments.get("batchItems"))

        result = ExtractionResult(
            confidence=confidence,
            is_task_worthy=is_task and confidence >= TASK_WORTHY_THRESHOLD,
            message_type=message_type,
            action=_optional_enum(TaskAction, arguments.get("action"), "action"),
            task_title=_optional_text(arguments.get("taskTitle")),
            task_reference=_optional_text(arguments.get("taskReference")),
            comment_text=_optional_text(arguments.get("commentText")),
            new_task_title=_optional_text(arguments.get("newTaskTitle")),
            new_tags=_strings(arguments.get("newTags")),
            assignees=self.map_assignees(_strings(arguments.get("assigneeNames")), users),
            status=_optional_enum(TaskStatus, arguments.get("status"), "status"),
            priority=_optional_enum(TaskPriority, arguments.get("priority"), "priority"),
            workflow_type=_optional_text(arguments.get("workflowType")),
            blocked_by=_optional_text(arguments.get("blockedBy")),
            batch_items=batch_items,
            metadata=_metadata(arguments.get("metadata")),
            reasoning=_optional_text(arguments.get("reasoning")),
            source="llm",
        )

        deadline_text = _optional_text(arguments.get("deadline"))
        if deadline_text:
            result.deadline = self.date_resolver.resolve(deadline_text)

        if len(batch_items) >= 2:
            result.suggestions = [
                f"Create {len(batch_items)} separate tasks?",
                "Create one grouped task?",
            ]

        return result

    @staticmethod
    def map_assignees(names: list[str], users: list[User]) -> list[str]:
        """Map names to user IDs by case-insensitive containment in either direction."""
        assignees: list[str] = []
        for name in names:
            lower_name = name.strip().lower()
            if not lower_name:
                continue
            for user in users:
                lower_user = user.name.strip().lower()
                if not lower_user:
                    continue
                if lower_name in lower_user or lower_user in lower_name:
                    if user.id not in assignees:
                        assignees.append(user.id)
                    break
        return assignees


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _strings(value: Any) -> list[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if str(item).strip()]


def _optional_enum(enum_type: Any, value: Any, field_name: str) -> Any:
    if value in (None, ""):
        return None
    try:
        return enum_type(str(value).lower())
    except ValueError:
        logger.warning(f"Invalid {field_name} '{value}' in extraction, ignoring")
        return None


def _metadata(value: Any) -> dict[str, MetadataValue]:
    """Keep only the scalar kinds a task's metadata may hold."""
    if not isinstance(value, dict):
        return {}
    metadata: dict[str, MetadataValue] = {}
    for key, item in value.items():
        if isinstance(item, (str, int, float, bool)):
            metadata[str(key)] = item
        elif isinstance(item, list):
            metadata[str(key)] = [str(element) for element in item]
        else:
            logger.debug(f"Dropping non-scalar metadata field '{key}'")
    return metadata

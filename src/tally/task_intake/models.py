"""Data models for message intake functionality."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

# Workflow-specific metadata values are a small closed set of scalar kinds
MetadataValue = str | int | float | bool | list[str]


class TaskStatus(str, Enum):
    """Task status enumeration."""

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TaskPriority(str, Enum):
    """Task priority enumeration."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class MessageType(str, Enum):
    """What kind of chat message was received."""

    TASK = "task"
    COMMENT = "comment"
    QUESTION = "question"
    OBSERVATION = "observation"
    CONVERSATION = "conversation"


class TaskAction(str, Enum):
    """What a task-type message asks us to do."""

    CREATE = "create"
    UPDATE = "update"
    COMPLETE = "complete"
    BLOCK = "block"
    HANDOFF = "handoff"
    COMMENT = "comment"
    RENAME = "rename"
    RETAG = "retag"


ACTIVE_STATUSES = frozenset({TaskStatus.TODO, TaskStatus.IN_PROGRESS})
OPEN_STATUSES = frozenset(
    {TaskStatus.TODO, TaskStatus.IN_PROGRESS, TaskStatus.BLOCKED}
)
LINKABLE_MESSAGE_TYPES = frozenset(
    {MessageType.COMMENT, MessageType.QUESTION, MessageType.OBSERVATION}
)


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


@dataclass
class User:
    """A team member in the user directory."""

    id: str
    name: str
    email: str
    avatar: str | None = None
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return _jsonable(asdict(self))


@dataclass
class Task:
    """Represents a tracked piece of work."""

    id: str
    title: str
    created_by: str
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    workflow_type: str = "general"
    assignees: list[str] = field(default_factory=list)
    description: str | None = None
    deadline: datetime | None = None
    blocked_by: str | None = None
    metadata: dict[str, MetadataValue] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return _jsonable(asdict(self))


@dataclass
class ExtractionResult:
    """Structured result of classifying one chat message."""

    confidence: float
    is_task_worthy: bool
    message_type: MessageType
    action: TaskAction | None = None
    task_title: str | None = None
    task_reference: str | None = None
    comment_text: str | None = None
    new_task_title: str | None = None
    new_tags: list[str] = field(default_factory=list)
    assignees: list[str] = field(default_factory=list)
    deadline: datetime | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    workflow_type: str | None = None
    blocked_by: str | None = None
    batch_items: list[str] = field(default_factory=list)
    metadata: dict[str, MetadataValue] = field(default_factory=dict)
    suggestions: list[str] = field(default_factory=list)
    reasoning: str | None = None
    source: str = "rules"

    def to_dict(self) -> dict[str, Any]:
        """Serialize for storage alongside the message."""
        return _jsonable(asdict(self))


@dataclass
class Message:
    """A chat message, annotated with its extraction and linked tasks."""

    id: str
    user_id: str
    user_name: str
    content: str
    timestamp: datetime | None = None
    parsed_data: dict[str, Any] | None = None
    related_task_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return _jsonable(asdict(self))


@dataclass
class TaskNameCorrection:
    """A user correction to a generated task title or tag set."""

    id: str
    original_title: str
    corrected_title: str
    workflow_type: str
    original_tags: list[str] = field(default_factory=list)
    corrected_tags: list[str] = field(default_factory=list)
    user_message: str = ""
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return _jsonable(asdict(self))


@dataclass
class WorkflowStage:
    """One ordered stage of a workflow."""

    id: str
    name: str
    order: int


@dataclass
class WorkflowField:
    """One typed field of a workflow's schema."""

    id: str
    name: str
    type: str
    required: bool = False
    options: list[str] = field(default_factory=list)


@dataclass
class Workflow:
    """A finance workflow definition. Only ``slug`` matters to classification."""

    id: str
    name: str
    slug: str
    description: str = ""
    stages: list[WorkflowStage] = field(default_factory=list)
    fields: list[WorkflowField] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return _jsonable(asdict(self))


@dataclass
class NamingResult:
    """Result of enhancing a raw task title."""

    short_id: str
    enhanced_title: str
    tags: list[str]
    reasoning: str


@dataclass
class ClassificationContext:
    """Everything a classifier may look at besides the message itself."""

    users: list[User] = field(default_factory=list)
    conversation: list[str] = field(default_factory=list)
    open_tasks: list[Task] = field(default_factory=list)


@dataclass
class IntakeResult:
    """Outcome of processing one chat message."""

    message: Message
    tasks: list[Task]
    extraction: ExtractionResult
    processing_time: float = 0.0

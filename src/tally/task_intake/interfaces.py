"""Abstract interfaces for the message intake system."""

from abc import ABC, abstractmethod
from typing import Any

from tally.task_intake.models import (
    ClassificationContext,
    ExtractionResult,
    Message,
    Task,
    TaskNameCorrection,
    TaskStatus,
    User,
    Workflow,
)


class UserDirectory(ABC):
    """Read access to the team's user directory."""

    @abstractmethod
    async def list_users(self) -> list[User]:
        """
        List every known user.

        Returns:
            Users in directory order (by name)
        """
        pass

    @abstractmethod
    async def get_user(self, user_id: str) -> User | None:
        """
        Look up one user.

        Args:
            user_id: User ID

        Returns:
            The user, or None when the ID is unknown
        """
        pass


class TaskRepository(ABC):
    """Keyed store of tasks with point lookups and linear scans."""

    @abstractmethod
    async def create_task(self, task: Task) -> Task:
        """
        Persist a new task.

        Args:
            task: Task to store; created_at/updated_at are assigned here

        Returns:
            The stored task with timestamps set

        Raises:
            DatabaseError: If the task cannot be stored
        """
        pass

    @abstractmethod
    async def get_task(self, task_id: str) -> Task | None:
        """Get a task by ID, or None when absent."""
        pass

    @abstractmethod
    async def list_tasks(
        self,
        workflow_type: str | None = None,
        status: TaskStatus | None = None,
        assignee: str | None = None,
    ) -> list[Task]:
        """
        List tasks, newest first, with optional filters.

        Args:
            workflow_type: Only tasks of this workflow type
            status: Only tasks in this status
            assignee: Only tasks assigned to this user ID

        Returns:
            Matching tasks
        """
        pass

    @abstractmethod
    async def update_task(self, task_id: str, updates: dict[str, Any]) -> Task | None:
        """
        Merge the provided fields into a task and bump updated_at.

        Args:
            task_id: Task ID
            updates: Field names and new values; omitted fields are untouched

        Returns:
            The updated task, or None when the task does not exist

        Raises:
            DatabaseError: If the update fails
        """
        pass

    @abstractmethod
    async def delete_task(self, task_id: str) -> bool:
        """Delete a task. Returns True when something was deleted."""
        pass


class MessageRepository(ABC):
    """Append-only log of chat messages."""

    @abstractmethod
    async def append_message(self, message: Message) -> Message:
        """
        Append a message to the log.

        Args:
            message: Message to store; the timestamp is assigned here

        Returns:
            The stored message

        Raises:
            DatabaseError: If the message cannot be stored
        """
        pass

    @abstractmethod
    async def list_recent_messages(self, limit: int) -> list[Message]:
        """Most recent messages, newest first."""
        pass

    @abstractmethod
    async def list_messages(self, limit: int = 100, offset: int = 0) -> list[Message]:
        """A page of messages, newest first."""
        pass


class CorrectionStore(ABC):
    """Learning store for task name corrections."""

    @abstractmethod
    async def add_correction(self, correction: TaskNameCorrection) -> TaskNameCorrection:
        """Append a correction record; created_at is assigned here."""
        pass

    @abstractmethod
    async def list_corrections(
        self, workflow_type: str | None = None, limit: int = 10
    ) -> list[TaskNameCorrection]:
        """Most recent corrections, newest first, optionally for one workflow type."""
        pass


class WorkflowCatalog(ABC):
    """Source of the workflow vocabulary."""

    @abstractmethod
    async def list_workflows(self) -> list[Workflow]:
        """List the known workflows."""
        pass


class MessageClassifier(ABC):
    """Anything that turns a chat message into an extraction."""

    @abstractmethod
    async def classify(
        self, message: str, context: ClassificationContext
    ) -> ExtractionResult:
        """
        Classify a chat message.

        Args:
            message: Raw message text
            context: User directory, recent conversation and open tasks

        Returns:
            ExtractionResult describing the message

        Raises:
            ClassificationError: If this classifier cannot produce a result
        """
        pass


class StructuredGenerationBackend(ABC):
    """External capability that fills in a named, typed schema from instructions."""

    @abstractmethod
    async def submit(
        self, instructions: str, tool_name: str, schema: dict[str, Any]
    ) -> dict[str, Any]:
        """
        Submit instructions and request a call of the named tool.

        Args:
            instructions: Natural-language instruction bundle
            tool_name: Name of the function-call-style schema
            schema: JSON schema of the tool arguments

        Returns:
            The tool-call arguments

        Raises:
            ClassificationError: On any failure, including malformed responses
        """
        pass

"""Message intake service: classify chat messages and reconcile them with tasks."""

import logging
import re
import time
import uuid
from typing import Any

from .config import (
    CONTEXT_MESSAGE_LIMIT,
    CONTEXT_TASK_LIMIT,
    DEFAULT_OLLAMA_MODEL,
    DEFAULT_WORKFLOW_TYPE,
    LLM_ENABLED,
    UNTITLED_TASK_TITLE,
)
from .database import TaskDatabase
from .date_resolver import DateExpressionResolver
from .exceptions import UserNotFoundError
from .fallback import FallbackClassifier
from .interfaces import MessageClassifier, MessageRepository, TaskRepository, UserDirectory
from .llm_extractor import OllamaExtractionBackend, StructuredExtractor
from .models import (
    LINKABLE_MESSAGE_TYPES,
    OPEN_STATUSES,
    ClassificationContext,
    ExtractionResult,
    IntakeResult,
    Message,
    MetadataValue,
    Task,
    TaskAction,
    TaskPriority,
    TaskStatus,
    User,
)
from .rule_classifier import DeterministicClassifier
from .task_matcher import TaskMatcher
from .task_naming import InMemorySequenceCounter, TaskNamingEngine

logger = logging.getLogger(__name__)

_TARGETED_UPDATE_ACTIONS = frozenset({TaskAction.UPDATE, TaskAction.COMPLETE, TaskAction.BLOCK})
_INVOICE_NUMBER_ITEM = re.compile(r"INV-\d+", re.IGNORECASE)


class MessageIntakeService:
    """
    Turns chat messages into task mutations.

    Each message is classified, then created, updated, linked or reassigned
    against the task pool. The message itself is stored once, after every task
    mutation, carrying the IDs of the tasks it created or touched.
    """

    def __init__(
        self,
        users: UserDirectory,
        tasks: TaskRepository,
        messages: MessageRepository,
        classifier: MessageClassifier | None = None,
        matcher: TaskMatcher | None = None,
        naming_engine: TaskNamingEngine | None = None,
        context_message_limit: int = CONTEXT_MESSAGE_LIMIT,
        context_task_limit: int = CONTEXT_TASK_LIMIT,
    ) -> None:
        """
        Initialize the intake service.

        Args:
            users: User directory
            tasks: Task repository
            messages: Message log
            classifier: Message classifier; anything but the rule-based one is
                wrapped so that its failures fall back to the rules
            matcher: Task reference matcher
            naming_engine: Optional title/tag enrichment for new tasks
            context_message_limit: Recent messages passed to the classifier
            context_task_limit: Open tasks passed to the classifier
        """
        self._users = users
        self._tasks = tasks
        self._messages = messages
        if isinstance(classifier, (FallbackClassifier, DeterministicClassifier)):
            self._classifier: MessageClassifier = classifier
        else:
            self._classifier = FallbackClassifier(classifier)
        self._matcher = matcher or TaskMatcher()
        self._naming_engine = naming_engine
        self._context_message_limit = context_message_limit
        self._context_task_limit = context_task_limit

    @property
    def naming_engine(self) -> TaskNamingEngine | None:
        return self._naming_engine

    async def build_context(self, users: list[User]) -> ClassificationContext:
        """
        Gather the conversation and open tasks handed to the classifier.

        Conversation lines are oldest first as "<userName>: <content>"; open
        tasks are the newest ones that are neither completed nor cancelled.
        """
        recent_messages = await self._messages.list_recent_messages(self._context_message_limit)
        conversation = [f"{message.user_name}: {message.content}" for message in reversed(recent_messages)]

        open_tasks = [task for task in await self._tasks.list_tasks() if task.status in OPEN_STATUSES]

        return ClassificationContext(
            users=users,
            conversation=conversation,
            open_tasks=open_tasks[: self._context_task_limit],
        )

    async def process_message(self, user_id: str, content: str) -> IntakeResult:
        """
        Process one chat message end to end.

        Args:
            user_id: ID of the sender
            content: Raw message text

        Returns:
            IntakeResult with the stored message, the created/updated tasks and the extraction

        Raises:
            UserNotFoundError: If the sender is unknown (nothing is stored)
            DatabaseError: If a task creation or the message itself cannot be stored
        """
        start_time = time.time()

        user = await self._users.get_user(user_id)
        if user is None:
            logger.warning(f"❌ Rejecting message from unknown user {user_id}")
            raise UserNotFoundError(f"User with ID {user_id} not found")

        logger.info(f"🎯 Processing message from {user.name}: '{content}'")

        users = await self._users.list_users()
        context = await self.build_context(users)
        extraction = await self._classifier.classify(content, context)

        logger.info(
            f"📊 Extraction ({extraction.source}): type={extraction.message_type.value}, "
            f"action={extraction.action.value if extraction.action else None}, "
            f"confidence={extraction.confidence:.2f}, task_worthy={extraction.is_task_worthy}"
        )

        touched, related_task_ids = await self._reconcile(user, content, extraction)

        message = Message(
            id=str(uuid.uuid4()),
            user_id=user.id,
            user_name=user.name,
            content=content,
            parsed_data=extraction.to_dict(),
            related_task_ids=related_task_ids,
        )
        saved = await self._messages.append_message(message)

        processing_time = time.time() - start_time
        logger.info(
            f"🎉 Message stored: {len(touched)} task(s) affected, "
            f"links={related_task_ids}, processing_time={processing_time:.3f}s"
        )

        return IntakeResult(
            message=saved,
            tasks=touched,
            extraction=extraction,
            processing_time=processing_time,
        )

    async def _reconcile(
        self, user: User, content: str, extraction: ExtractionResult
    ) -> tuple[list[Task], list[str]]:
        """Apply an extraction to the task pool; returns the affected tasks and the message links."""
        if extraction.message_type in LINKABLE_MESSAGE_TYPES:
            linked = await self._link_by_reference(extraction.task_reference)
            return [], linked

        if not extraction.is_task_worthy:
            return [], []

        action = extraction.action or TaskAction.CREATE

        if action == TaskAction.CREATE:
            return await self._create_from_extraction(user, extraction)

        if action in _TARGETED_UPDATE_ACTIONS:
            return await self._update_targets(user, extraction)

        if action == TaskAction.HANDOFF:
            return await self._handoff(extraction)

        if action == TaskAction.COMMENT:
            return [], await self._link_by_reference(extraction.task_reference)

        if action == TaskAction.RENAME:
            return await self._rename(content, extraction)

        if action == TaskAction.RETAG:
            return await self._retag(content, extraction)

        return [], []

    async def _link_by_reference(self, reference: str | None) -> list[str]:
        """Link to the single best match for a reference, if any."""
        if not reference:
            return []

        matches = self._matcher.find_by_reference(reference, await self._tasks.list_tasks())
        if not matches:
            logger.info(f"🔗 No task matches reference '{reference}', message left unlinked")
            return []

        logger.info(f"🔗 Linked message to task {matches[0].id} ('{matches[0].title}')")
        return [matches[0].id]

    async def _resolve_targets(self, extraction: ExtractionResult) -> list[Task]:
        all_tasks = await self._tasks.list_tasks()
        if extraction.task_reference:
            return self._matcher.find_by_reference(extraction.task_reference, all_tasks)
        if extraction.task_title:
            return self._matcher.find_by_similar_title(extraction.task_title, all_tasks)
        return []

    async def _create_from_extraction(
        self, user: User, extraction: ExtractionResult
    ) -> tuple[list[Task], list[str]]:
        if len(extraction.batch_items) >= 2:
            base_title = extraction.task_title or UNTITLED_TASK_TITLE
            created = [
                await self._create_task(
                    user,
                    extraction,
                    f"{base_title} - {item}",
                    metadata=self.batch_item_metadata(extraction, item),
                )
                for item in extraction.batch_items
            ]
        else:
            created = [await self._create_task(user, extraction)]
        return created, [task.id for task in created]

    async def _update_targets(
        self, user: User, extraction: ExtractionResult
    ) -> tuple[list[Task], list[str]]:
        targets = await self._resolve_targets(extraction)

        if not targets:
            if not extraction.task_title:
                return [], []
            logger.info(
                f"⚠️ No matching task for {extraction.action.value if extraction.action else 'update'} "
                f"'{extraction.task_title}', creating a new task instead"
            )
            task = await self._create_task(user, extraction)
            return [task], [task.id]

        updated_tasks: list[Task] = []
        for task in targets:
            try:
                updated = await self._tasks.update_task(task.id, self.field_updates(task, extraction))
            except Exception as e:
                logger.error(f"Failed to update task {task.id}, skipping: {e}")
                continue
            if updated is not None:
                logger.info(f"✏️ Updated task {updated.id} ('{updated.title}') -> {updated.status.value}")
                updated_tasks.append(updated)

        return updated_tasks, [task.id for task in updated_tasks]

    async def _handoff(self, extraction: ExtractionResult) -> tuple[list[Task], list[str]]:
        targets = await self._resolve_targets(extraction)
        if not extraction.assignees:
            return [], []

        updated_tasks: list[Task] = []
        for task in targets:
            try:
                updated = await self._tasks.update_task(
                    task.id, {"assignees": list(extraction.assignees)}
                )
            except Exception as e:
                logger.error(f"Failed to reassign task {task.id}, skipping: {e}")
                continue
            if updated is not None:
                logger.info(f"🤝 Reassigned task {updated.id} to {updated.assignees}")
                updated_tasks.append(updated)

        return updated_tasks, [task.id for task in updated_tasks]

    async def _rename(
        self, content: str, extraction: ExtractionResult
    ) -> tuple[list[Task], list[str]]:
        if not extraction.task_reference or not extraction.new_task_title:
            return [], []

        matches = self._matcher.find_by_reference(
            extraction.task_reference, await self._tasks.list_tasks()
        )
        if not matches:
            return [], []

        task = matches[0]
        updated = await self._tasks.update_task(task.id, {"title": extraction.new_task_title})
        if updated is None:
            return [], []

        logger.info(f"✏️ Renamed task {task.id}: '{task.title}' -> '{updated.title}'")
        if self._naming_engine is not None:
            tags = _tag_list(task.metadata.get("tags"))
            await self._naming_engine.record_correction(
                task.title, updated.title, task.workflow_type, tags, tags, content
            )
        return [updated], [updated.id]

    async def _retag(
        self, content: str, extraction: ExtractionResult
    ) -> tuple[list[Task], list[str]]:
        if not extraction.task_reference or not extraction.new_tags:
            return [], []

        matches = self._matcher.find_by_reference(
            extraction.task_reference, await self._tasks.list_tasks()
        )
        if not matches:
            return [], []

        task = matches[0]
        original_tags = _tag_list(task.metadata.get("tags"))
        updated = await self._tasks.update_task(
            task.id, {"metadata": {**task.metadata, "tags": list(extraction.new_tags)}}
        )
        if updated is None:
            return [], []

        logger.info(f"🏷️ Retagged task {task.id}: {original_tags} -> {extraction.new_tags}")
        if self._naming_engine is not None:
            await self._naming_engine.record_correction(
                task.title,
                task.title,
                task.workflow_type,
                original_tags,
                list(extraction.new_tags),
                content,
            )
        return [updated], [updated.id]

    @staticmethod
    def field_updates(task: Task, extraction: ExtractionResult) -> dict[str, Any]:
        """
        Fields an extraction changes on an existing task.

        Status, priority, assignees and deadline are overwritten when present.
        A blocker forces ``blocked``; ``complete`` forces ``completed`` and wins
        over a blocker. Metadata is merged, extraction keys winning.
        """
        updates: dict[str, Any] = {}
        if extraction.status:
            updates["status"] = extraction.status
        if extraction.priority:
            updates["priority"] = extraction.priority
        if extraction.assignees:
            updates["assignees"] = list(extraction.assignees)
        if extraction.deadline:
            updates["deadline"] = extraction.deadline
        if extraction.blocked_by:
            updates["blocked_by"] = extraction.blocked_by
            updates["status"] = TaskStatus.BLOCKED
        if extraction.action == TaskAction.COMPLETE:
            updates["status"] = TaskStatus.COMPLETED
        if extraction.metadata:
            updates["metadata"] = {**task.metadata, **extraction.metadata}
        return updates

    @staticmethod
    def batch_item_metadata(extraction: ExtractionResult, item: str) -> dict[str, MetadataValue]:
        """Metadata for one batch task: the item replaces the message-wide invoice or customer."""
        metadata = dict(extraction.metadata)
        if _INVOICE_NUMBER_ITEM.fullmatch(item.strip()):
            metadata["invoiceNumber"] = item.strip().upper()
        elif "customerName" in metadata or extraction.workflow_type == "invoice-generation":
            metadata["customerName"] = item
        return metadata

    async def _create_task(
        self,
        user: User,
        extraction: ExtractionResult,
        title: str | None = None,
        metadata: dict[str, MetadataValue] | None = None,
    ) -> Task:
        """Build a task from an extraction, enrich its naming metadata and store it."""
        status = extraction.status or TaskStatus.TODO
        if extraction.blocked_by:
            status = TaskStatus.BLOCKED
        if extraction.action == TaskAction.COMPLETE:
            status = TaskStatus.COMPLETED

        task = Task(
            id=str(uuid.uuid4()),
            title=title or extraction.task_title or UNTITLED_TASK_TITLE,
            created_by=user.id,
            status=status,
            priority=extraction.priority or TaskPriority.MEDIUM,
            workflow_type=extraction.workflow_type or DEFAULT_WORKFLOW_TYPE,
            assignees=list(extraction.assignees) or [user.id],
            deadline=extraction.deadline,
            blocked_by=extraction.blocked_by,
            metadata=dict(extraction.metadata if metadata is None else metadata),
        )

        if self._naming_engine is not None:
            try:
                naming = self._naming_engine.enhance(task.title, task.workflow_type, task.metadata)
            except Exception as e:
                logger.warning(f"Task naming failed for '{task.title}': {e}")
            else:
                task.metadata.update(
                    {
                        "taskCode": naming.short_id,
                        "suggestedTitle": naming.enhanced_title,
                        "tags": naming.tags,
                    }
                )

        created = await self._tasks.create_task(task)
        logger.info(
            f"✅ Created task {created.id}: '{created.title}' "
            f"({created.workflow_type}, {created.status.value})"
        )
        return created


def _tag_list(value: Any) -> list[str]:
    return [str(tag) for tag in value] if isinstance(value, list) else []


async def create_intake_service(
    database: TaskDatabase,
    use_llm: bool = LLM_ENABLED,
    model: str = DEFAULT_OLLAMA_MODEL,
) -> MessageIntakeService:
    """
    Wire a database-backed intake service.

    Seeds the default workflows and the naming counter from stored task codes.

    Args:
        database: Initialized task database
        use_llm: Use the Ollama extractor with the rule-based fallback
        model: Ollama model name

    Returns:
        Ready-to-use MessageIntakeService
    """
    await database.seed_default_workflows()

    date_resolver = DateExpressionResolver()
    primary: MessageClassifier | None = None
    if use_llm:
        workflows = await database.list_workflows()
        primary = StructuredExtractor(
            OllamaExtractionBackend(model=model),
            date_resolver=date_resolver,
            workflow_names=[workflow.name for workflow in workflows] or None,
        )

    counter = InMemorySequenceCounter()
    for workflow_type, number in (await database.max_task_codes()).items():
        counter.seed(workflow_type, number)

    logger.info(f"Intake service ready (LLM {'enabled: ' + model if use_llm else 'disabled'})")

    return MessageIntakeService(
        users=database,
        tasks=database,
        messages=database,
        classifier=FallbackClassifier(primary, DeterministicClassifier(date_resolver)),
        naming_engine=TaskNamingEngine(counter=counter, correction_store=database),
    )

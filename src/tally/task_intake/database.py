"""Database layer for message intake using SQLite."""

import json
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import aiosqlite

from tally.task_intake.config import DEFAULT_WAL_MODE, SCHEMA_VERSION
from tally.task_intake.exceptions import DatabaseError, SchemaError
from tally.task_intake.interfaces import (
    CorrectionStore,
    MessageRepository,
    TaskRepository,
    UserDirectory,
    WorkflowCatalog,
)
from tally.task_intake.models import (
    Message,
    Task,
    TaskNameCorrection,
    TaskPriority,
    TaskStatus,
    User,
    Workflow,
    WorkflowField,
    WorkflowStage,
)
from tally.task_intake.task_naming import parse_task_code
from tally.task_intake.workflows import default_workflows

logger = logging.getLogger(__name__)

DEMO_USERS = (
    ("Alice Johnson", "alice@example.com"),
    ("Bob Smith", "bob@example.com"),
    ("Sarah Chen", "sarah@example.com"),
    ("Mike Davis", "mike@example.com"),
)

UPDATABLE_TASK_FIELDS = frozenset(
    {
        "title",
        "description",
        "status",
        "priority",
        "workflow_type",
        "assignees",
        "deadline",
        "blocked_by",
        "metadata",
    }
)
_JSON_TASK_FIELDS = frozenset({"assignees", "metadata"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _parse_datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class TaskDatabase(
    UserDirectory, TaskRepository, MessageRepository, CorrectionStore, WorkflowCatalog
):
    """SQLite storage for users, tasks, messages, workflows and naming corrections."""

    def __init__(self, db_path: str, wal_mode: bool = DEFAULT_WAL_MODE) -> None:
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file (use ":memory:" for in-memory)
            wal_mode: Enable WAL mode for concurrent access
        """
        self.db_path = db_path
        self.wal_mode = wal_mode
        self._connection: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Initialize database schema and connection."""
        if self._connection is None:
            try:
                self._connection = await aiosqlite.connect(self.db_path)
            except Exception as e:
                raise DatabaseError(f"Failed to open database {self.db_path}: {e}") from e
            self._connection.row_factory = aiosqlite.Row

            # Enable WAL mode for concurrent access (not supported in :memory:)
            if self.wal_mode and self.db_path != ":memory:":
                await self._connection.execute("PRAGMA journal_mode=WAL")

            await self._connection.execute("PRAGMA foreign_keys=ON")

        await self._create_schema()
        logger.info(f"Database ready at {self.db_path} (schema v{SCHEMA_VERSION})")

    async def _create_schema(self) -> None:
        """Create database schema with tables and indexes."""
        async with self._get_connection() as conn:
            await conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
                """
            )

            cursor = await conn.execute("SELECT MAX(version) FROM schema_version")
            result = await cursor.fetchone()
            current_version = result[0] if result and result[0] is not None else 0

            if current_version > SCHEMA_VERSION:
                raise SchemaError(
                    f"Database schema v{current_version} is newer than supported v{SCHEMA_VERSION}"
                )
            if current_version < SCHEMA_VERSION:
                await self._apply_migrations(conn, current_version)

            await conn.commit()

    async def _apply_migrations(
        self, conn: aiosqlite.Connection, from_version: int
    ) -> None:
        """
        Apply database migrations.

        Args:
            conn: Database connection
            from_version: Current schema version
        """
        if from_version < 1:
            await conn.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    email TEXT UNIQUE NOT NULL,
                    avatar TEXT,
                    created_at TEXT NOT NULL
                )
                """
            )
            await conn.execute(
                """
                CREATE TABLE IF NOT EXISTS workflows (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    slug TEXT NOT NULL,
                    description TEXT,
                    stages TEXT NOT NULL,
                    fields TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            await conn.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT,
                    status TEXT NOT NULL,
                    priority TEXT NOT NULL,
                    workflow_type TEXT NOT NULL,
                    assignees TEXT NOT NULL,
                    deadline TEXT,
                    blocked_by TEXT,
                    metadata TEXT NOT NULL,
                    created_by TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY (created_by) REFERENCES users(id)
                )
                """
            )
            await conn.execute(
                """
                CREATE TABLE IF NOT EXISTS messages (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    user_name TEXT NOT NULL,
                    content TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    parsed_data TEXT,
                    related_task_ids TEXT,
                    FOREIGN KEY (user_id) REFERENCES users(id)
                )
                """
            )
            await conn.execute(
                """
                CREATE TABLE IF NOT EXISTS task_name_corrections (
                    id TEXT PRIMARY KEY,
                    original_title TEXT NOT NULL,
                    corrected_title TEXT NOT NULL,
                    workflow_type TEXT NOT NULL,
                    original_tags TEXT NOT NULL,
                    corrected_tags TEXT NOT NULL,
                    user_message TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )

            await conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_workflow_type ON tasks(workflow_type)"
            )
            await conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status)")
            await conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_created_at ON tasks(created_at)"
            )
            await conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_messages_timestamp ON messages(timestamp)"
            )
            await conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_corrections_workflow_type "
                "ON task_name_corrections(workflow_type)"
            )

            await conn.execute(
                "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )

    @asynccontextmanager
    async def _get_connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Get database connection context manager.

        Yields:
            Database connection

        Raises:
            DatabaseError: If connection is not initialized
        """
        if self._connection is None:
            raise DatabaseError("Database not initialized")
        yield self._connection

    async def get_schema_version(self) -> int:
        async with self._get_connection() as conn:
            cursor = await conn.execute("SELECT MAX(version) FROM schema_version")
            result = await cursor.fetchone()
            return result[0] if result and result[0] is not None else 0

    async def close(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def _write(self, query: str, params: tuple[Any, ...] | list[Any], what: str) -> int:
        """Execute and commit one write; returns the affected row count."""
        try:
            async with self._get_connection() as conn:
                cursor = await conn.execute(query, params)
                await conn.commit()
                return cursor.rowcount
        except DatabaseError:
            raise
        except Exception as e:
            raise DatabaseError(f"Failed to {what}: {e}") from e

    # Users

    async def add_user(self, name: str, email: str, avatar: str | None = None) -> User:
        """
        Add a user to the directory.

        Raises:
            DatabaseError: If the email is already taken or the insert fails
        """
        user = User(
            id=str(uuid.uuid4()), name=name, email=email, avatar=avatar, created_at=_utcnow()
        )
        await self._write(
            "INSERT INTO users (id, name, email, avatar, created_at) VALUES (?, ?, ?, ?, ?)",
            (user.id, user.name, user.email, user.avatar, _isoformat(user.created_at)),
            f"add user {email}",
        )
        return user

    async def list_users(self) -> list[User]:
        async with self._get_connection() as conn:
            cursor = await conn.execute("SELECT * FROM users ORDER BY name")
            rows = await cursor.fetchall()
            return [self._row_to_user(row) for row in rows]

    async def get_user(self, user_id: str) -> User | None:
        async with self._get_connection() as conn:
            cursor = await conn.execute("SELECT * FROM users WHERE id = ?", (user_id,))
            row = await cursor.fetchone()
            return self._row_to_user(row) if row else None

    async def seed_demo_users(self) -> list[User]:
        """Create the demo team when the directory is empty. Returns the users created."""
        if await self.list_users():
            return []
        created = [await self.add_user(name, email) for name, email in DEMO_USERS]
        logger.info(f"Seeded {len(created)} demo users")
        return created

    # Tasks

    async def create_task(self, task: Task) -> Task:
        now = _utcnow()
        task.created_at = now
        task.updated_at = now
        await self._write(
            """
            INSERT INTO tasks (
                id, title, description, status, priority, workflow_type, assignees,
                deadline, blocked_by, metadata, created_by, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                task.id,
                task.title,
                task.description,
                TaskStatus(task.status).value,
                TaskPriority(task.priority).value,
                task.workflow_type,
                json.dumps(task.assignees),
                _isoformat(task.deadline),
                task.blocked_by,
                json.dumps(task.metadata),
                task.created_by,
                _isoformat(task.created_at),
                _isoformat(task.updated_at),
            ),
            f"create task {task.id}",
        )
        return task

    async def get_task(self, task_id: str) -> Task | None:
        async with self._get_connection() as conn:
            cursor = await conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,))
            row = await cursor.fetchone()
            return self._row_to_task(row) if row else None

    async def list_tasks(
        self,
        workflow_type: str | None = None,
        status: TaskStatus | None = None,
        assignee: str | None = None,
    ) -> list[Task]:
        query = "SELECT * FROM tasks WHERE 1=1"
        params: list[Any] = []

        if workflow_type is not None:
            query += " AND workflow_type = ?"
            params.append(workflow_type)

        if status is not None:
            # Handle both enum and string values
            status_value = status.value if isinstance(status, TaskStatus) else status
            query += " AND status = ?"
            params.append(status_value)

        query += " ORDER BY created_at DESC, rowid DESC"

        async with self._get_connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            tasks = [self._row_to_task(row) for row in rows]

        if assignee is not None:
            tasks = [task for task in tasks if assignee in task.assignees]
        return tasks

    async def update_task(self, task_id: str, updates: dict[str, Any]) -> Task | None:
        unknown = set(updates) - UPDATABLE_TASK_FIELDS
        if unknown:
            raise ValueError(f"Cannot update task field(s): {', '.join(sorted(unknown))}")

        set_clauses = ["updated_at = ?"]
        params: list[Any] = [_isoformat(_utcnow())]

        for field_name, value in updates.items():
            set_clauses.append(f"{field_name} = ?")
            if field_name in _JSON_TASK_FIELDS:
                empty: list[str] | dict[str, Any] = [] if field_name == "assignees" else {}
                params.append(json.dumps(value if value is not None else empty))
            elif isinstance(value, Enum):
                params.append(value.value)
            elif isinstance(value, datetime):
                params.append(_isoformat(value))
            else:
                params.append(value)

        params.append(task_id)
        query = f"UPDATE tasks SET {', '.join(set_clauses)} WHERE id = ?"
        updated_rows = await self._write(query, params, f"update task {task_id}")

        if updated_rows == 0:
            return None
        return await self.get_task(task_id)

    async def delete_task(self, task_id: str) -> bool:
        deleted_rows = await self._write(
            "DELETE FROM tasks WHERE id = ?", (task_id,), f"delete task {task_id}"
        )
        return deleted_rows > 0

    async def max_task_codes(self) -> dict[str, int]:
        """
        Highest short-id number per workflow type, from the stored ``taskCode`` metadata.

        Used to seed the naming counter so short ids keep increasing across restarts.
        """
        floors: dict[str, int] = {}
        for task in await self.list_tasks():
            parsed = parse_task_code(str(task.metadata.get("taskCode", "")))
            if parsed is None:
                continue
            number = parsed[1]
            if number > floors.get(task.workflow_type, 0):
                floors[task.workflow_type] = number
        return floors

    # Messages

    async def append_message(self, message: Message) -> Message:
        message.timestamp = _utcnow()
        await self._write(
            """
            INSERT INTO messages (
                id, user_id, user_name, content, timestamp, parsed_data, related_task_ids
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                message.id,
                message.user_id,
                message.user_name,
                message.content,
                _isoformat(message.timestamp),
                json.dumps(message.parsed_data) if message.parsed_data is not None else None,
                json.dumps(message.related_task_ids),
            ),
            f"append message {message.id}",
        )
        return message

    async def get_message(self, message_id: str) -> Message | None:
        async with self._get_connection() as conn:
            cursor = await conn.execute("SELECT * FROM messages WHERE id = ?", (message_id,))
            row = await cursor.fetchone()
            return self._row_to_message(row) if row else None

    async def list_recent_messages(self, limit: int) -> list[Message]:
        return await self.list_messages(limit=limit, offset=0)

    async def list_messages(self, limit: int = 100, offset: int = 0) -> list[Message]:
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM messages ORDER BY timestamp DESC, rowid DESC LIMIT ? OFFSET ?",
                (limit, offset),
            )
            rows = await cursor.fetchall()
            return [self._row_to_message(row) for row in rows]

    # Naming corrections

    async def add_correction(self, correction: TaskNameCorrection) -> TaskNameCorrection:
        correction.created_at = _utcnow()
        await self._write(
            """
            INSERT INTO task_name_corrections (
                id, original_title, corrected_title, workflow_type,
                original_tags, corrected_tags, user_message, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                correction.id,
                correction.original_title,
                correction.corrected_title,
                correction.workflow_type,
                json.dumps(correction.original_tags),
                json.dumps(correction.corrected_tags),
                correction.user_message,
                _isoformat(correction.created_at),
            ),
            "record naming correction",
        )
        return correction

    async def list_corrections(
        self, workflow_type: str | None = None, limit: int = 10
    ) -> list[TaskNameCorrection]:
        query = "SELECT * FROM task_name_corrections"
        params: list[Any] = []
        if workflow_type is not None:
            query += " WHERE workflow_type = ?"
            params.append(workflow_type)
        query += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        params.append(limit)

        async with self._get_connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return [self._row_to_correction(row) for row in rows]

    # Workflows

    async def add_workflow(self, workflow: Workflow) -> Workflow:
        now = _utcnow()
        workflow.created_at = now
        workflow.updated_at = now
        await self._write(
            """
            INSERT INTO workflows (
                id, name, slug, description, stages, fields, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                workflow.id,
                workflow.name,
                workflow.slug,
                workflow.description,
                json.dumps([asdict(stage) for stage in workflow.stages]),
                json.dumps([asdict(field) for field in workflow.fields]),
                _isoformat(workflow.created_at),
                _isoformat(workflow.updated_at),
            ),
            f"add workflow {workflow.name}",
        )
        return workflow

    async def list_workflows(self) -> list[Workflow]:
        async with self._get_connection() as conn:
            cursor = await conn.execute("SELECT * FROM workflows ORDER BY created_at, rowid")
            rows = await cursor.fetchall()
            return [self._row_to_workflow(row) for row in rows]

    async def seed_default_workflows(self) -> list[Workflow]:
        """Insert the default finance workflows whose names are not taken yet."""
        existing = {workflow.name for workflow in await self.list_workflows()}
        created = [
            await self.add_workflow(workflow)
            for workflow in default_workflows()
            if workflow.name not in existing
        ]
        if created:
            logger.info(f"Seeded {len(created)} default workflows")
        return created

    # Row mapping

    def _row_to_user(self, row: aiosqlite.Row) -> User:
        return User(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            avatar=row["avatar"],
            created_at=_parse_datetime(row["created_at"]),
        )

    def _row_to_task(self, row: aiosqlite.Row) -> Task:
        """
        Convert database row to Task object.

        Args:
            row: Database row

        Returns:
            Task object
        """
        return Task(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            status=TaskStatus(row["status"]),
            priority=TaskPriority(row["priority"]),
            workflow_type=row["workflow_type"],
            assignees=json.loads(row["assignees"]) if row["assignees"] else [],
            deadline=_parse_datetime(row["deadline"]),
            blocked_by=row["blocked_by"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            created_by=row["created_by"],
            created_at=_parse_datetime(row["created_at"]),
            updated_at=_parse_datetime(row["updated_at"]),
        )

    def _row_to_message(self, row: aiosqlite.Row) -> Message:
        return Message(
            id=row["id"],
            user_id=row["user_id"],
            user_name=row["user_name"],
            content=row["content"],
            timestamp=_parse_datetime(row["timestamp"]),
            parsed_data=json.loads(row["parsed_data"]) if row["parsed_data"] else None,
            related_task_ids=(
                json.loads(row["related_task_ids"]) if row["related_task_ids"] else []
            ),
        )

    def _row_to_correction(self, row: aiosqlite.Row) -> TaskNameCorrection:
        return TaskNameCorrection(
            id=row["id"],
            original_title=row["original_title"],
            corrected_title=row["corrected_title"],
            workflow_type=row["workflow_type"],
            original_tags=json.loads(row["original_tags"]),
            corrected_tags=json.loads(row["corrected_tags"]),
            user_message=row["user_message"],
            created_at=_parse_datetime(row["created_at"]),
        )

    def _row_to_workflow(self, row: aiosqlite.Row) -> Workflow:
        return Workflow(
            id=row["id"],
            name=row["name"],
            slug=row["slug"],
            description=row["description"] or "",
            stages=[WorkflowStage(**stage) for stage in json.loads(row["stages"])],
            fields=[WorkflowField(**field) for field in json.loads(row["fields"])],
            created_at=_parse_datetime(row["created_at"]),
            updated_at=_parse_datetime(row["updated_at"]),
        )

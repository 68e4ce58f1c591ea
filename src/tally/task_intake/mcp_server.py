"""MCP Server for chat message intake using FastMCP."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

from fastmcp import FastMCP

from .config import (
    DEFAULT_DATABASE_PATH,
    DEFAULT_MCP_HOST,
    DEFAULT_MCP_PORT,
    DEFAULT_MCP_SERVER_NAME,
)
from .database import TaskDatabase
from .exceptions import TaskNotFoundError, UserNotFoundError
from .intake_service import MessageIntakeService, create_intake_service
from .models import TaskStatus

logger = logging.getLogger(__name__)

# Create FastMCP server instance
mcp = FastMCP(DEFAULT_MCP_SERVER_NAME)

# Globals (initialized in cli_entry())
_intake_service: MessageIntakeService | None = None
_database: TaskDatabase | None = None

AVAILABLE_TOOLS = (
    "post_message",
    "list_tasks",
    "get_task",
    "delete_task",
    "list_messages",
    "list_users",
    "list_workflows",
    "record_task_name_correction",
    "get_task_name_suggestions",
)


def get_intake_service() -> MessageIntakeService:
    """Get the global intake service instance."""
    if _intake_service is None:
        raise RuntimeError("Intake service not initialized")
    return _intake_service


def set_intake_service(service: MessageIntakeService | None) -> None:
    """Set the global intake service instance (for testing)."""
    global _intake_service
    _intake_service = service


def get_database() -> TaskDatabase:
    """Get the global database instance."""
    if _database is None:
        raise RuntimeError("Database not initialized")
    return _database


def set_database(database: TaskDatabase | None) -> None:
    """Set the global database instance (for testing)."""
    global _database
    _database = database


async def _post_message_impl(user_id: str, content: str) -> dict[str, Any]:
    """Implementation of post_message tool."""
    try:
        result = await get_intake_service().process_message(user_id, content)
        return {
            "success": True,
            "message": result.message.to_dict(),
            "tasks": [task.to_dict() for task in result.tasks],
            "extraction": result.extraction.to_dict(),
            "processing_time": result.processing_time,
        }

    except UserNotFoundError as e:
        logger.warning(f"Unknown user: {e}")
        return {"success": False, "error": str(e)}
    except Exception as e:
        logger.error(f"Error processing message: {e}")
        return {"success": False, "error": str(e)}


async def _list_tasks_impl(
    workflow_type: str | None = None,
    status: str | None = None,
    assignee: str | None = None,
) -> dict[str, Any]:
    """Implementation of list_tasks tool."""
    try:
        status_filter = None
        if status:
            try:
                status_filter = TaskStatus(status)
            except ValueError:
                return {"success": False, "error": f"Invalid status: {status}"}

        tasks = await get_database().list_tasks(
            workflow_type=workflow_type, status=status_filter, assignee=assignee
        )
        return {"success": True, "tasks": [task.to_dict() for task in tasks]}

    except Exception as e:
        logger.error(f"Error listing tasks: {e}")
        return {"success": False, "error": str(e)}


async def _get_task_impl(task_id: str) -> dict[str, Any]:
    """Implementation of get_task tool."""
    try:
        task = await get_database().get_task(task_id)
        if task is None:
            raise TaskNotFoundError(f"Task with ID {task_id} not found")
        return {"success": True, "task": task.to_dict()}

    except TaskNotFoundError as e:
        logger.warning(f"Task not found: {e}")
        return {"success": False, "error": str(e)}
    except Exception as e:
        logger.error(f"Error getting task: {e}")
        return {"success": False, "error": str(e)}


async def _delete_task_impl(task_id: str) -> dict[str, Any]:
    """Implementation of delete_task tool."""
    try:
        if not await get_database().delete_task(task_id):
            raise TaskNotFoundError(f"Task with ID {task_id} not found")
        return {"success": True}

    except TaskNotFoundError as e:
        logger.warning(f"Task not found: {e}")
        return {"success": False, "error": str(e)}
    except Exception as e:
        logger.error(f"Error deleting task: {e}")
        return {"success": False, "error": str(e)}


async def _list_messages_impl(limit: int = 100, offset: int = 0) -> dict[str, Any]:
    """Implementation of list_messages tool."""
    try:
        if limit < 1 or offset < 0:
            return {"success": False, "error": "limit must be positive and offset non-negative"}
        messages = await get_database().list_messages(limit=limit, offset=offset)
        return {"success": True, "messages": [message.to_dict() for message in messages]}

    except Exception as e:
        logger.error(f"Error listing messages: {e}")
        return {"success": False, "error": str(e)}


async def _list_users_impl() -> dict[str, Any]:
    """Implementation of list_users tool."""
    try:
        users = await get_database().list_users()
        return {"success": True, "users": [user.to_dict() for user in users]}

    except Exception as e:
        logger.error(f"Error listing users: {e}")
        return {"success": False, "error": str(e)}


async def _list_workflows_impl() -> dict[str, Any]:
    """Implementation of list_workflows tool."""
    try:
        workflows = await get_database().list_workflows()
        return {"success": True, "workflows": [workflow.to_dict() for workflow in workflows]}

    except Exception as e:
        logger.error(f"Error listing workflows: {e}")
        return {"success": False, "error": str(e)}


async def _record_task_name_correction_impl(
    original_title: str,
    corrected_title: str,
    workflow_type: str = "general",
    original_tags: list[str] | None = None,
    corrected_tags: list[str] | None = None,
    user_message: str = "",
) -> dict[str, Any]:
    """Implementation of record_task_name_correction tool."""
    try:
        naming_engine = get_intake_service().naming_engine
        if naming_engine is None:
            return {"success": False, "error": "Task naming is not enabled"}

        correction = await naming_engine.record_correction(
            original_title,
            corrected_title,
            workflow_type,
            original_tags,
            corrected_tags,
            user_message,
        )
        if correction is None:
            return {"success": False, "error": "Correction could not be recorded"}
        return {"success": True, "correction": correction.to_dict()}

    except Exception as e:
        logger.error(f"Error recording correction: {e}")
        return {"success": False, "error": str(e)}


async def _get_task_name_suggestions_impl(
    title: str, workflow_type: str = "general"
) -> dict[str, Any]:
    """Implementation of get_task_name_suggestions tool."""
    try:
        naming_engine = get_intake_service().naming_engine
        suggestions = (
            await naming_engine.get_suggestions(title, workflow_type) if naming_engine else []
        )
        return {"success": True, "suggestions": suggestions}

    except Exception as e:
        logger.error(f"Error getting suggestions: {e}")
        return {"success": False, "error": str(e)}


# FastMCP decorated wrappers (for actual MCP server)
@mcp.tool()
async def post_message(user_id: str, content: str) -> dict[str, Any]:
    """
    Post a chat message; tasks are created, updated or linked from it.

    Args:
        user_id: ID of the sender
        content: Message text

    Returns:
        Dictionary with the stored message, affected tasks and the extraction
    """
    return await _post_message_impl(user_id=user_id, content=content)


@mcp.tool()
async def list_tasks(
    workflow_type: str | None = None,
    status: str | None = None,
    assignee: str | None = None,
) -> dict[str, Any]:
    """
    List tasks, newest first, with optional filters.

    Args:
        workflow_type: Filter by workflow type (e.g. invoice-generation)
        status: Filter by status (todo, in_progress, blocked, completed, cancelled)
        assignee: Filter by assigned user ID

    Returns:
        Dictionary with tasks list
    """
    return await _list_tasks_impl(workflow_type=workflow_type, status=status, assignee=assignee)


@mcp.tool()
async def get_task(task_id: str) -> dict[str, Any]:
    """Get one task by ID."""
    return await _get_task_impl(task_id=task_id)


@mcp.tool()
async def delete_task(task_id: str) -> dict[str, Any]:
    """Delete a task by ID."""
    return await _delete_task_impl(task_id=task_id)


@mcp.tool()
async def list_messages(limit: int = 100, offset: int = 0) -> dict[str, Any]:
    """
    List chat messages, newest first.

    Args:
        limit: Page size
        offset: Number of messages to skip

    Returns:
        Dictionary with messages list
    """
    return await _list_messages_impl(limit=limit, offset=offset)


@mcp.tool()
async def list_users() -> dict[str, Any]:
    """List the team's users."""
    return await _list_users_impl()


@mcp.tool()
async def list_workflows() -> dict[str, Any]:
    """List the finance workflows."""
    return await _list_workflows_impl()


@mcp.tool()
async def record_task_name_correction(
    original_title: str,
    corrected_title: str,
    workflow_type: str = "general",
    original_tags: list[str] | None = None,
    corrected_tags: list[str] | None = None,
    user_message: str = "",
) -> dict[str, Any]:
    """
    Record a correction to a generated task title or tag set.

    Args:
        original_title: Title as generated
        corrected_title: Title as the user wants it
        workflow_type: Workflow type of the task
        original_tags: Tags as generated
        corrected_tags: Tags as the user wants them
        user_message: Message that triggered the correction

    Returns:
        Dictionary with the stored correction
    """
    return await _record_task_name_correction_impl(
        original_title=original_title,
        corrected_title=corrected_title,
        workflow_type=workflow_type,
        original_tags=original_tags,
        corrected_tags=corrected_tags,
        user_message=user_message,
    )


@mcp.tool()
async def get_task_name_suggestions(title: str, workflow_type: str = "general") -> dict[str, Any]:
    """Suggest better task names based on similar past corrections."""
    return await _get_task_name_suggestions_impl(title=title, workflow_type=workflow_type)


async def setup(database_path: str = DEFAULT_DATABASE_PATH) -> MessageIntakeService:
    """Open the database, seed it and install the globals the tools use."""
    if database_path != ":memory:":
        database_path = str(Path(database_path).expanduser())
        Path(database_path).parent.mkdir(parents=True, exist_ok=True)

    database = TaskDatabase(database_path)
    await database.initialize()
    await database.seed_demo_users()

    service = await create_intake_service(database)
    set_database(database)
    set_intake_service(service)

    logger.info(f"MCP Server initialized with {len(AVAILABLE_TOOLS)} tools")
    return service


def cli_entry() -> None:
    """CLI entry point for the MCP server."""
    # Check for transport argument
    transport_type = "stdio"
    if len(sys.argv) > 1 and sys.argv[1] in ("stdio", "sse", "http"):
        transport_type = "sse" if sys.argv[1] == "http" else sys.argv[1]

    # Initialize database and service before FastMCP takes over
    asyncio.run(setup())

    if transport_type == "sse":
        logger.info(f"Server will listen on http://{DEFAULT_MCP_HOST}:{DEFAULT_MCP_PORT}")

    # FastMCP's run() manages its own event loop
    if transport_type == "stdio":
        mcp.run(transport="stdio")
    else:
        mcp.run(transport="sse", host=DEFAULT_MCP_HOST, port=DEFAULT_MCP_PORT)


if __name__ == "__main__":
    cli_entry()

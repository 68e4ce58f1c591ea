"""Command-line interface for chat message intake."""

import argparse
import asyncio
import sys
from pathlib import Path

from .logging_utils import configure_logging
from .task_intake.config import DEFAULT_DATABASE_PATH, DEFAULT_OLLAMA_MODEL, LLM_ENABLED
from .task_intake.database import TaskDatabase
from .task_intake.exceptions import TaskIntakeError, UserNotFoundError
from .task_intake.intake_service import MessageIntakeService, create_intake_service
from .task_intake.models import IntakeResult, Task, User


def format_task(task: Task) -> str:
    """One-line summary of a task."""
    code = task.metadata.get("taskCode")
    prefix = f"[{code}] " if code else ""
    line = f"{prefix}{task.title} ({task.status.value}, {task.priority.value}, {task.workflow_type})"
    if task.blocked_by:
        line += f" - blocked by: {task.blocked_by}"
    if task.deadline:
        line += f" - due {task.deadline.date().isoformat()}"
    return line


class TallyCLI:
    """Command-line front end for the intake service."""

    def __init__(self, service: MessageIntakeService, database: TaskDatabase, user: User) -> None:
        """
        Initialize the CLI.

        Args:
            service: Intake service used to process messages
            database: Store used for listings
            user: Sender of every message typed in this session
        """
        self._service = service
        self._database = database
        self._user = user
        self._message_count = 0

    async def post(self, content: str) -> IntakeResult | None:
        """Process one message and print what happened to the task board."""
        content = content.strip()
        if not content:
            return None

        result = await self._service.process_message(self._user.id, content)
        self._message_count += 1
        extraction = result.extraction

        action = extraction.action.value if extraction.action else "-"
        print(
            f"[{self._message_count}] {extraction.message_type.value}/{action} "
            f"({round(extraction.confidence * 100)}%)"
        )
        for task in result.tasks:
            print(f"  ✅ {format_task(task)}")
        if not result.tasks and result.message.related_task_ids:
            print(f"  🔗 Linked to {', '.join(result.message.related_task_ids)}")
        for suggestion in extraction.suggestions:
            print(f"  💡 {suggestion}")
        return result

    async def run_interactive(self) -> None:
        """Read messages from stdin, one per line, until EOF or Ctrl+C."""
        print(f"💬 Posting as {self._user.name}. One message per line, Ctrl+D to finish.")
        loop = asyncio.get_running_loop()
        while True:
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line:
                break
            await self.post(line)

    async def print_tasks(self) -> None:
        tasks = await self._database.list_tasks()
        if not tasks:
            print("No tasks yet.")
        for task in tasks:
            print(f"- {format_task(task)}")

    async def print_users(self) -> None:
        for user in await self._database.list_users():
            marker = "*" if user.id == self._user.id else " "
            print(f"{marker} {user.name} <{user.email}> ({user.id})")


def resolve_user(users: list[User], name_or_id: str | None) -> User:
    """
    Pick the sender by ID, full name or first name (case-insensitive).

    Defaults to the first user in the directory.

    Raises:
        UserNotFoundError: If nobody matches
    """
    if not users:
        raise UserNotFoundError("The user directory is empty")
    if not name_or_id:
        return users[0]

    wanted = name_or_id.strip().lower()
    for user in users:
        if user.id == name_or_id or user.name.lower() == wanted:
            return user
    for user in users:
        if user.name.split()[0].lower() == wanted:
            return user
    raise UserNotFoundError(f"User '{name_or_id}' not found")


async def main(
    message: str | None = None,
    user: str | None = None,
    database_path: str = DEFAULT_DATABASE_PATH,
    use_llm: bool = LLM_ENABLED,
    model: str = DEFAULT_OLLAMA_MODEL,
    list_tasks: bool = False,
    list_users: bool = False,
) -> int:
    """
    Main entry point for the CLI application.

    Returns:
        Process exit status
    """
    database = TaskDatabase(database_path)
    try:
        await database.initialize()
        await database.seed_demo_users()
        service = await create_intake_service(database, use_llm=use_llm, model=model)

        try:
            sender = resolve_user(await database.list_users(), user)
        except UserNotFoundError as e:
            print(f"❌ {e}")
            return 1

        cli = TallyCLI(service, database, sender)

        if list_users:
            await cli.print_users()
        if list_tasks:
            await cli.print_tasks()
        if list_users or list_tasks:
            return 0

        if message:
            await cli.post(message)
        else:
            await cli.run_interactive()
        return 0

    except (KeyboardInterrupt, asyncio.CancelledError):
        print("\n👋 Goodbye!")
        return 0
    except TaskIntakeError as e:
        print(f"❌ {e}")
        return 1
    finally:
        await database.close()


def create_argument_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        description="Tally - Turn team chat messages into tracked finance tasks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  tally "I am starting Humana Invoice October 2025"     # Post one message
  tally --user Bob "Blocked on payment from Acme"        # Post as another user
  tally --no-llm                                         # Rule-based parsing only, read stdin
  tally --list-tasks                                     # Show the task board
  tally -v --model llama3.1:8b "Generate invoices for Acme and TechCorp"

Without a message, messages are read from stdin one per line until EOF.
        """,
    )

    parser.add_argument("message", nargs="?", default=None, help="Message to post")

    parser.add_argument(
        "--user",
        type=str,
        default=None,
        metavar="NAME|ID",
        help="Sender (user ID, full name or first name; default: first user)",
    )

    parser.add_argument(
        "--database",
        type=str,
        default=DEFAULT_DATABASE_PATH,
        metavar="PATH",
        help=f"SQLite database file (default: {DEFAULT_DATABASE_PATH})",
    )

    parser.add_argument(
        "--no-llm",
        action="store_true",
        help="Disable the Ollama extractor and use rule-based parsing only",
    )

    parser.add_argument(
        "--model",
        type=str,
        default=DEFAULT_OLLAMA_MODEL,
        help=f"Ollama model used for extraction (default: {DEFAULT_OLLAMA_MODEL})",
    )

    parser.add_argument("--list-tasks", action="store_true", help="List tasks and exit")

    parser.add_argument("--list-users", action="store_true", help="List users and exit")

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging and debug information",
    )

    parser.add_argument(
        "--trace",
        action="store_true",
        help="Enable trace logging (most verbose, includes pattern decisions)",
    )

    return parser


def handle_arguments(args: argparse.Namespace) -> bool:
    """
    Apply process-wide settings from parsed arguments.

    Args:
        args: Parsed arguments from argparse

    Returns:
        True if execution should continue
    """
    configure_logging(verbose=args.verbose, trace=args.trace)

    if args.database != ":memory:":
        try:
            Path(args.database).expanduser().parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            print(f"❌ Cannot create database directory: {e}")
            return False

    return True


def cli_entry_with_args() -> None:
    """CLI entry point with argument parsing."""
    parser = create_argument_parser()
    args = parser.parse_args()

    if not handle_arguments(args):
        sys.exit(1)

    try:
        exit_code = asyncio.run(
            main(
                message=args.message,
                user=args.user,
                database_path=(
                    args.database
                    if args.database == ":memory:"
                    else str(Path(args.database).expanduser())
                ),
                use_llm=LLM_ENABLED and not args.no_llm,
                model=args.model,
                list_tasks=args.list_tasks,
                list_users=args.list_users,
            )
        )
    except KeyboardInterrupt:
        exit_code = 0

    sys.exit(exit_code)


if __name__ == "__main__":
    cli_entry_with_args()

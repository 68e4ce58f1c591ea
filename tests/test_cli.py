"""Tests for CLI interface functionality."""

from datetime import datetime, timezone
from io import StringIO
from unittest.mock import AsyncMock, patch

import pytest

from tally.main import TallyCLI, format_task, main, resolve_user
from tally.task_intake.exceptions import UserNotFoundError
from tally.task_intake.models import (
    ExtractionResult,
    IntakeResult,
    Message,
    MessageType,
    Task,
    TaskAction,
    TaskStatus,
    User,
)

ALICE = User(id="u-alice", name="Alice Johnson", email="alice@example.com")
BOB = User(id="u-bob", name="Bob Smith", email="bob@example.com")


def intake_result(
    tasks: list[Task], related: list[str], extraction: ExtractionResult
) -> IntakeResult:
    message = Message(
        id="m1",
        user_id=ALICE.id,
        user_name=ALICE.name,
        content="x",
        related_task_ids=related,
    )
    return IntakeResult(message=message, tasks=tasks, extraction=extraction)


@pytest.mark.unit
class TestFormatting:
    """One-line task summaries."""

    def test_format_task(self) -> None:
        task = Task(
            id="t1",
            title="Humana Invoice October 2025",
            created_by=ALICE.id,
            workflow_type="invoice-generation",
            metadata={"taskCode": "INV-0001"},
        )

        assert format_task(task) == (
            "[INV-0001] Humana Invoice October 2025 (todo, medium, invoice-generation)"
        )

    def test_format_blocked_task_with_deadline(self) -> None:
        task = Task(
            id="t1",
            title="payment from Acme",
            created_by=ALICE.id,
            status=TaskStatus.BLOCKED,
            blocked_by="payment from Acme",
            deadline=datetime(2025, 10, 31, tzinfo=timezone.utc),
        )

        assert format_task(task) == (
            "payment from Acme (blocked, medium, general)"
            " - blocked by: payment from Acme - due 2025-10-31"
        )


@pytest.mark.unit
class TestResolveUser:
    """Picking the message sender."""

    def test_default_is_first_user(self) -> None:
        assert resolve_user([ALICE, BOB], None) is ALICE

    @pytest.mark.parametrize("name_or_id", ["u-bob", "bob smith", "Bob", " BOB "])
    def test_match_by_id_or_name(self, name_or_id: str) -> None:
        assert resolve_user([ALICE, BOB], name_or_id) is BOB

    def test_unknown_user(self) -> None:
        with pytest.raises(UserNotFoundError, match="Nobody"):
            resolve_user([ALICE, BOB], "Nobody")

    def test_empty_directory(self) -> None:
        with pytest.raises(UserNotFoundError):
            resolve_user([], "Alice")


@pytest.mark.unit
class TestTallyCLI:
    """Test cases for the TallyCLI class."""

    def test_cli_initialization(self) -> None:
        cli = TallyCLI(service=AsyncMock(), database=AsyncMock(), user=ALICE)

        assert cli._user is ALICE
        assert cli._message_count == 0

    @pytest.mark.asyncio
    async def test_post_prints_created_tasks(self) -> None:
        task = Task(
            id="t1",
            title="invoices - Acme",
            created_by=ALICE.id,
            workflow_type="invoice-generation",
        )
        extraction = ExtractionResult(
            confidence=0.9,
            is_task_worthy=True,
            message_type=MessageType.TASK,
            action=TaskAction.CREATE,
            suggestions=["Create 2 separate tasks?"],
        )
        service = AsyncMock()
        service.process_message.return_value = intake_result([task], ["t1"], extraction)
        cli = TallyCLI(service=service, database=AsyncMock(), user=ALICE)

        with patch("builtins.print") as mock_print:
            result = await cli.post("  Generate invoices for Acme and TechCorp  ")

        assert result is not None
        service.process_message.assert_awaited_once_with(
            ALICE.id, "Generate invoices for Acme and TechCorp"
        )
        mock_print.assert_any_call("[1] task/create (90%)")
        mock_print.assert_any_call("  ✅ invoices - Acme (todo, medium, invoice-generation)")
        mock_print.assert_any_call("  💡 Create 2 separate tasks?")

    @pytest.mark.asyncio
    async def test_post_prints_links(self) -> None:
        extraction = ExtractionResult(
            confidence=0.4,
            is_task_worthy=False,
            message_type=MessageType.COMMENT,
            action=TaskAction.COMMENT,
        )
        service = AsyncMock()
        service.process_message.return_value = intake_result([], ["t1"], extraction)
        cli = TallyCLI(service=service, database=AsyncMock(), user=ALICE)

        with patch("builtins.print") as mock_print:
            await cli.post("fyi: the TechCorp invoice looks wrong")

        mock_print.assert_any_call("[1] comment/comment (40%)")
        mock_print.assert_any_call("  🔗 Linked to t1")

    @pytest.mark.asyncio
    async def test_blank_input_is_ignored(self) -> None:
        service = AsyncMock()
        cli = TallyCLI(service=service, database=AsyncMock(), user=ALICE)

        assert await cli.post("   ") is None
        service.process_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_run_interactive_reads_until_eof(self) -> None:
        extraction = ExtractionResult(
            confidence=0.1, is_task_worthy=False, message_type=MessageType.CONVERSATION
        )
        service = AsyncMock()
        service.process_message.return_value = intake_result([], [], extraction)
        cli = TallyCLI(service=service, database=AsyncMock(), user=ALICE)

        with patch("sys.stdin", StringIO("hey\n\nthanks\n")):
            with patch("builtins.print"):
                await cli.run_interactive()

        assert service.process_message.await_count == 2
        assert cli._message_count == 2

    @pytest.mark.asyncio
    async def test_print_tasks_empty(self) -> None:
        database = AsyncMock()
        database.list_tasks.return_value = []
        cli = TallyCLI(service=AsyncMock(), database=database, user=ALICE)

        with patch("builtins.print") as mock_print:
            await cli.print_tasks()

        mock_print.assert_called_once_with("No tasks yet.")


@pytest.mark.integration
@pytest.mark.asyncio
class TestMain:
    """Runs of main() against an in-memory database with rule-based parsing."""

    async def test_post_single_message(self, capsys: pytest.CaptureFixture[str]) -> None:
        exit_code = await main(
            message="I am starting Humana Invoice October 2025",
            database_path=":memory:",
            use_llm=False,
        )

        output = capsys.readouterr().out
        assert exit_code == 0
        assert "[1] task/create (" in output
        assert "[INV-0001] Humana Invoice October 2025 (todo, medium, invoice-generation)" in output

    async def test_list_tasks_on_empty_board(self, capsys: pytest.CaptureFixture[str]) -> None:
        exit_code = await main(database_path=":memory:", use_llm=False, list_tasks=True)

        assert exit_code == 0
        assert "No tasks yet." in capsys.readouterr().out

    async def test_unknown_sender(self, capsys: pytest.CaptureFixture[str]) -> None:
        exit_code = await main(
            message="hello", user="Nobody", database_path=":memory:", use_llm=False
        )

        assert exit_code == 1
        assert "❌ User 'Nobody' not found" in capsys.readouterr().out

    async def test_post_as_named_user(self, capsys: pytest.CaptureFixture[str]) -> None:
        exit_code = await main(
            message="Blocked on payment from Acme",
            user="Bob",
            database_path=":memory:",
            use_llm=False,
        )

        output = capsys.readouterr().out
        assert exit_code == 0
        assert "task/block" in output
        assert "blocked by: payment from Acme" in output

"""Unit tests for the classifier fallback wrapper."""

from unittest.mock import AsyncMock

import pytest

from tally.task_intake.exceptions import ClassificationError
from tally.task_intake.fallback import FallbackClassifier
from tally.task_intake.models import (
    ClassificationContext,
    ExtractionResult,
    MessageType,
    Task,
    TaskAction,
    User,
)
from tally.task_intake.rule_classifier import DeterministicClassifier


@pytest.fixture
def context() -> ClassificationContext:
    return ClassificationContext(
        users=[User(id="u-bob", name="Bob Smith", email="bob@example.com")],
        conversation=["Bob Smith: hi"],
        open_tasks=[Task(id="t1", title="Acme invoice", created_by="u-bob")],
    )


@pytest.mark.unit
@pytest.mark.asyncio
class TestFallbackClassifier:
    """Primary first, rules on failure."""

    async def test_primary_result_is_used(self, context: ClassificationContext) -> None:
        expected = ExtractionResult(
            confidence=0.95, is_task_worthy=True, message_type=MessageType.TASK, source="llm"
        )
        primary = AsyncMock()
        primary.classify.return_value = expected
        fallback = AsyncMock(spec=DeterministicClassifier)

        classifier = FallbackClassifier(primary, fallback)
        result = await classifier.classify("Generate TechCorp invoice", context)

        assert result is expected
        primary.classify.assert_awaited_once_with("Generate TechCorp invoice", context)
        fallback.classify.assert_not_awaited()

    @pytest.mark.parametrize(
        "error",
        [ClassificationError("Connection failed"), TimeoutError("slow"), ValueError("bad json")],
    )
    async def test_any_primary_failure_falls_back(
        self, context: ClassificationContext, error: Exception
    ) -> None:
        primary = AsyncMock()
        primary.classify.side_effect = error

        classifier = FallbackClassifier(primary)
        result = await classifier.classify("Pass the Acme invoice to Bob", context)

        assert result.source == "rules"
        assert result.action == TaskAction.HANDOFF
        assert result.assignees == ["u-bob"]

    async def test_fallback_only_sees_users(self, context: ClassificationContext) -> None:
        primary = AsyncMock()
        primary.classify.side_effect = ClassificationError("down")
        fallback = AsyncMock(spec=DeterministicClassifier)
        fallback.classify.return_value = ExtractionResult(
            confidence=0.1, is_task_worthy=False, message_type=MessageType.CONVERSATION
        )

        await FallbackClassifier(primary, fallback).classify("hey", context)

        passed_context = fallback.classify.call_args.args[1]
        assert passed_context.users == context.users
        assert passed_context.conversation == []
        assert passed_context.open_tasks == []

    async def test_no_primary_uses_rules(self, context: ClassificationContext) -> None:
        result = await FallbackClassifier(None).classify("hey how are you", context)

        assert result.message_type == MessageType.CONVERSATION
        assert result.source == "rules"

    async def test_failure_is_not_remembered(self, context: ClassificationContext) -> None:
        expected = ExtractionResult(
            confidence=0.9, is_task_worthy=True, message_type=MessageType.TASK, source="llm"
        )
        primary = AsyncMock()
        primary.classify.side_effect = [ClassificationError("blip"), expected]

        classifier = FallbackClassifier(primary)
        first = await classifier.classify("Generate TechCorp invoice", context)
        second = await classifier.classify("Generate TechCorp invoice", context)

        assert first.source == "rules"
        assert second is expected
        assert primary.classify.await_count == 2

"""Unit tests for the rule-based message classifier."""

from datetime import datetime, timezone

import pytest

from tally.task_intake.date_resolver import DateExpressionResolver
from tally.task_intake.models import (
    ClassificationContext,
    MessageType,
    TaskAction,
    TaskPriority,
    TaskStatus,
    User,
)
from tally.task_intake.rule_classifier import (
    DeterministicClassifier,
    extract_amount,
    extract_month,
)

REFERENCE = datetime(2025, 10, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def users() -> list[User]:
    return [
        User(id="u-alice", name="Alice Johnson", email="alice@example.com"),
        User(id="u-bob", name="Bob Smith", email="bob@example.com"),
        User(id="u-sarah", name="Sarah Chen", email="sarah@example.com"),
        User(id="u-mike", name="Mike Davis", email="mike@example.com"),
    ]


@pytest.fixture
def classifier() -> DeterministicClassifier:
    return DeterministicClassifier(DateExpressionResolver(now=lambda: REFERENCE))


@pytest.mark.unit
class TestConversationalMessages:
    """Greetings and acknowledgements never become tasks."""

    @pytest.mark.parametrize(
        "message",
        ["hey how are you", "Hello team", "Good morning!", "thanks!", "ok", "sounds good", ""],
    )
    def test_greetings(
        self, classifier: DeterministicClassifier, users: list[User], message: str
    ) -> None:
        result = classifier.classify_text(message, users)

        assert result.message_type == MessageType.CONVERSATION
        assert result.confidence == 0.1
        assert result.is_task_worthy is False
        assert result.action is None
        assert result.source == "rules"

    def test_salutation_before_a_request_is_not_a_greeting(
        self, classifier: DeterministicClassifier, users: list[User]
    ) -> None:
        result = classifier.classify_text(
            "Hi team, please generate INV-1001 for Acme $25,000 by Friday", users
        )

        assert result.message_type == MessageType.TASK
        assert result.is_task_worthy is True
        assert result.action == TaskAction.CREATE
        assert result.workflow_type == "invoice-generation"
        assert result.metadata["invoiceNumber"] == "INV-1001"

    @pytest.mark.parametrize("message", ["Hey there!", "Hi team, how was the weekend?"])
    def test_salutation_without_work_stays_conversational(
        self, classifier: DeterministicClassifier, users: list[User], message: str
    ) -> None:
        result = classifier.classify_text(message, users)

        assert result.message_type == MessageType.CONVERSATION
        assert result.is_task_worthy is False

    def test_low_confidence_chatter_is_observation(
        self, classifier: DeterministicClassifier, users: list[User]
    ) -> None:
        result = classifier.classify_text("random chatter about lunch", users)

        assert result.message_type == MessageType.OBSERVATION
        assert result.confidence == 0.5
        assert result.is_task_worthy is False
        assert result.task_title is None


@pytest.mark.unit
class TestActionDetection:
    """The action table is evaluated in order and the first row wins."""

    @pytest.mark.parametrize(
        ("message", "action", "weight"),
        [
            ("Create vendor list", TaskAction.CREATE, 0.8),
            ("I am starting Humana Invoice October 2025", TaskAction.CREATE, 0.8),
            ("Updated the forecast numbers", TaskAction.UPDATE, 0.8),
            ("Finished the Acme reconciliation", TaskAction.COMPLETE, 0.9),
            ("Humana Invoice October 2025 is done", TaskAction.COMPLETE, 0.9),
            ("We're waiting on the bank statement", TaskAction.BLOCK, 0.85),
            ("The Acme payment is stuck", TaskAction.BLOCK, 0.85),
            ("Hand the close checklist over to Sarah", TaskAction.HANDOFF, 0.9),
            ("Give the budget review to Mike", TaskAction.HANDOFF, 0.9),
            ("note: customer called back", TaskAction.COMMENT, 0.3),
            ("Humana wants a call", TaskAction.CREATE, 0.5),
        ],
    )
    def test_detect_action(self, message: str, action: TaskAction, weight: float) -> None:
        detected, base, _ = DeterministicClassifier.detect_action(message)

        assert detected == action
        assert base == weight

    def test_indicators_boost_confidence(
        self, classifier: DeterministicClassifier, users: list[User]
    ) -> None:
        plain = classifier.classify_text("Create vendor list", users)
        boosted = classifier.classify_text("Create INV-1001 invoice for $500 by Friday", users)

        assert plain.confidence == 0.9
        assert boosted.confidence == 1.0

    def test_boost_is_capped(self, users: list[User]) -> None:
        indicators = DeterministicClassifier.detect_indicators(
            "Please send INV-1001 invoice for $500 by Friday"
        )
        result = DeterministicClassifier().classify_text(
            "note: please send INV-1001 invoice for $500 by Friday", users
        )

        assert len(indicators) == 5
        # 0.3 base for a comment plus the 0.3 cap
        assert result.confidence == 0.6

    @pytest.mark.parametrize(
        "message",
        [
            "hey",
            "Create vendor list",
            "fyi: looks wrong",
            "Blocked on payment from Acme",
            "x" * 500,
            "Generate invoices for Acme and TechCorp by tomorrow, please, urgent $5,000",
            "???",
        ],
    )
    def test_confidence_bounds_and_threshold(
        self, classifier: DeterministicClassifier, users: list[User], message: str
    ) -> None:
        result = classifier.classify_text(message, users)

        assert 0.0 <= result.confidence <= 1.0
        assert result.is_task_worthy == (result.confidence >= 0.6)


@pytest.mark.unit
class TestExtraction:
    """Field extraction for task-worthy messages."""

    def test_starting_an_invoice(self, classifier: DeterministicClassifier, users: list[User]) -> None:
        """Test a message announcing new work."""
        result = classifier.classify_text("I am starting Humana Invoice October 2025", users)

        assert result.message_type == MessageType.TASK
        assert result.action == TaskAction.CREATE
        assert result.is_task_worthy is True
        assert result.confidence >= 0.8
        assert result.task_title == "Humana Invoice October 2025"
        assert result.workflow_type == "invoice-generation"
        assert result.status is None
        assert result.assignees == []
        assert result.metadata == {"customerName": "Humana"}
        assert result.deadline == datetime(2025, 10, 1, tzinfo=timezone.utc)

    def test_blocked_message(self, classifier: DeterministicClassifier, users: list[User]) -> None:
        result = classifier.classify_text("Blocked on payment from Acme", users)

        assert result.action == TaskAction.BLOCK
        assert result.status == TaskStatus.BLOCKED
        assert result.blocked_by == "payment from Acme"
        assert result.task_title == "payment from Acme"
        assert result.workflow_type == "payment-reconciliation"
        assert result.metadata["customerName"] == "Acme"

    def test_completion_strips_trailing_status(
        self, classifier: DeterministicClassifier, users: list[User]
    ) -> None:
        result = classifier.classify_text("Humana Invoice October 2025 is done", users)

        assert result.action == TaskAction.COMPLETE
        assert result.status == TaskStatus.COMPLETED
        assert result.task_title == "Humana Invoice October 2025"

    def test_handoff_titles_the_object(
        self, classifier: DeterministicClassifier, users: list[User]
    ) -> None:
        result = classifier.classify_text("Pass the Acme invoice to Bob", users)

        assert result.action == TaskAction.HANDOFF
        assert result.task_title == "Acme invoice"
        assert result.assignees == ["u-bob"]

    def test_comment_keeps_reference(
        self, classifier: DeterministicClassifier, users: list[User]
    ) -> None:
        result = classifier.classify_text("fyi: the TechCorp invoice looks wrong", users)

        assert result.message_type == MessageType.COMMENT
        assert result.action == TaskAction.COMMENT
        assert result.task_reference == "the TechCorp invoice looks wrong"
        assert result.comment_text == "the TechCorp invoice looks wrong"
        assert result.is_task_worthy is False

    def test_priority_keywords(self, classifier: DeterministicClassifier, users: list[User]) -> None:
        result = classifier.classify_text("Urgent: generate the Acme invoice", users)
        assert result.priority == TaskPriority.URGENT

    def test_status_keywords_match_substrings(self) -> None:
        # Containment, not whole words
        assert DeterministicClassifier.extract_status("Create the active directory invoice") == (
            TaskStatus.IN_PROGRESS
        )

    def test_long_titles_are_truncated(
        self, classifier: DeterministicClassifier, users: list[User]
    ) -> None:
        result = classifier.classify_text("Create invoice " + "x" * 300, users)

        assert result.task_title is not None
        assert len(result.task_title) == 203
        assert result.task_title.endswith("...")

    def test_default_action_title_is_whole_message(
        self, classifier: DeterministicClassifier, users: list[User]
    ) -> None:
        result = classifier.classify_text("Acme invoice needs review", users)

        assert result.action == TaskAction.CREATE
        assert result.task_title == "Acme invoice needs review"


@pytest.mark.unit
class TestAssignees:
    """Assignee detection against the user directory."""

    def test_full_name(self, users: list[User]) -> None:
        assert DeterministicClassifier.extract_assignees("assign to sarah chen", users) == ["u-sarah"]

    def test_mention_handle(self, users: list[User]) -> None:
        assert DeterministicClassifier.extract_assignees("@alice please review", users) == ["u-alice"]
        assert DeterministicClassifier.extract_assignees("@mikedavis can you", users) == ["u-mike"]

    def test_first_name_must_be_capitalized(self, users: list[User]) -> None:
        assert DeterministicClassifier.extract_assignees("Mike will take it", users) == ["u-mike"]
        assert DeterministicClassifier.extract_assignees("bob the builder", users) == []

    def test_several_users_in_directory_order(self, users: list[User]) -> None:
        assignees = DeterministicClassifier.extract_assignees("Bob and Alice split the close", users)
        assert assignees == ["u-alice", "u-bob"]

    def test_blank_user_names_are_skipped(self, users: list[User]) -> None:
        directory = [User(id="u-blank", name="  ", email="blank@example.com"), *users]

        assert DeterministicClassifier.extract_assignees("Bob takes the close", directory) == ["u-bob"]


@pytest.mark.unit
class TestWorkflowAndMetadata:
    """Workflow detection and workflow-specific metadata."""

    @pytest.mark.parametrize(
        ("message", "workflow_type"),
        [
            ("Generate TechCorp invoice", "invoice-generation"),
            ("Reconcile the invoice payment", "invoice-generation"),
            ("Match bank transactions", "payment-reconciliation"),
            ("Start October monthly close", "monthly-close"),
            ("Onboard Acme Software as a vendor", "vendor-onboarding"),
            ("Update revenue model to v2.1", "model-change"),
            ("Kick off annual planning", "annual-planning"),
            ("Call the auditor", None),
        ],
    )
    def test_detect_workflow_type(self, message: str, workflow_type: str | None) -> None:
        assert DeterministicClassifier.detect_workflow_type(message) == workflow_type

    def test_invoice_metadata(self, users: list[User]) -> None:
        metadata = DeterministicClassifier.extract_metadata(
            "Generated invoice INV-1001 for TechCorp $25k", "invoice-generation", users
        )

        assert metadata == {
            "invoiceNumber": "INV-1001",
            "customerName": "TechCorp",
            "amount": 25000,
        }

    def test_paid_flag(self, users: list[User]) -> None:
        metadata = DeterministicClassifier.extract_metadata(
            "Acme paid INV-2002", "payment-reconciliation", users
        )

        assert metadata["paid"] is True
        assert metadata["invoiceNumber"] == "INV-2002"

    def test_monthly_close_metadata(self, users: list[User]) -> None:
        metadata = DeterministicClassifier.extract_metadata(
            "Start October 2025 monthly close", "monthly-close", users
        )
        assert metadata == {"month": "October", "year": 2025}

    def test_model_change_metadata(self, users: list[User]) -> None:
        metadata = DeterministicClassifier.extract_metadata(
            "Update Revenue Forecast model to v2.1", "model-change", users
        )
        assert metadata == {"version": "2.1", "modelName": "Revenue"}

    def test_vendor_metadata(self, users: list[User]) -> None:
        metadata = DeterministicClassifier.extract_metadata(
            "Onboard Acme Software as a vendor", "vendor-onboarding", users
        )
        assert metadata == {"vendorName": "Acme Software", "category": "Software"}

    def test_annual_planning_metadata(self, users: list[User]) -> None:
        metadata = DeterministicClassifier.extract_metadata(
            "Start 2026 annual budget planning for Marketing", "annual-planning", users
        )
        assert metadata == {"year": 2026, "department": "Marketing"}

    def test_no_workflow_no_metadata(self, users: list[User]) -> None:
        assert DeterministicClassifier.extract_metadata("Call Acme", None, users) == {}

    def test_users_are_not_customers(self, users: list[User]) -> None:
        entities = DeterministicClassifier.extract_entities("Alice Johnson invoiced Humana", users)
        assert entities == ["Humana"]


@pytest.mark.unit
class TestBatchDetection:
    """Several work items in one message."""

    def test_named_customers(self, classifier: DeterministicClassifier, users: list[User]) -> None:
        result = classifier.classify_text("Generate invoices for Acme and TechCorp", users)

        assert result.batch_items == ["Acme", "TechCorp"]
        assert result.suggestions == ["Create 2 separate tasks?", "Create one grouped task?"]

    def test_comma_separated_list(self, users: list[User]) -> None:
        items = DeterministicClassifier.detect_batch_items(
            "Send invoices to Acme, Globex, and Initech", users
        )
        assert items == ["Acme", "Globex", "Initech"]

    def test_invoice_numbers_win(self, users: list[User]) -> None:
        items = DeterministicClassifier.detect_batch_items(
            "Chase INV-1001 and INV-1002 for Acme and TechCorp", users
        )
        assert items == ["INV-1001", "INV-1002"]

    def test_users_are_not_batch_items(self, users: list[User]) -> None:
        assert DeterministicClassifier.detect_batch_items("Alice and Bob review the close", users) == []

    def test_single_item_is_not_a_batch(
        self, classifier: DeterministicClassifier, users: list[User]
    ) -> None:
        result = classifier.classify_text("Generate TechCorp invoice", users)

        assert result.batch_items == []
        assert result.suggestions == []


@pytest.mark.unit
class TestAmountsAndMonths:
    """Helpers for money and month extraction."""

    @pytest.mark.parametrize(
        ("text", "amount"),
        [
            ("Generated invoice for TechCorp $25k", 25000),
            ("Payment of $1,250.50 received", 1250.5),
            ("$2m budget", 2000000),
            ("Invoice INV-1001 for 5,000", 5000),
            ("October 2025 invoice for 300 units", 300),
            ("October 2025 invoice", None),
            ("no figures here", None),
        ],
    )
    def test_extract_amount(self, text: str, amount: float | int | None) -> None:
        assert extract_amount(text) == amount

    def test_extract_month(self) -> None:
        assert extract_month("start the september close") == "September"
        assert extract_month("we may close in May") == "May"
        assert extract_month("we may close soon") is None


@pytest.mark.unit
@pytest.mark.asyncio
class TestClassifierInterface:
    """The async classifier entry point."""

    async def test_classify_uses_context_users(
        self, classifier: DeterministicClassifier, users: list[User]
    ) -> None:
        result = await classifier.classify(
            "Pass the Acme invoice to Bob", ClassificationContext(users=users)
        )

        assert result.assignees == ["u-bob"]

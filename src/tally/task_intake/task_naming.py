"""Deterministic task naming: short ids, title templates, tags and correction learning."""

import logging
import re
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime

from dateutil import parser as dateutil_parser

from .config import (
    CORRECTION_LOOKBACK,
    HIGH_VALUE_AMOUNT,
    MAX_NAMING_SUGGESTIONS,
    SUGGESTION_SIMILARITY_THRESHOLD,
    WORKFLOW_PREFIXES,
)
from .interfaces import CorrectionStore
from .models import MetadataValue, NamingResult, TaskNameCorrection

logger = logging.getLogger(__name__)

MONTHS = {
    "january": 1,
    "february": 2,
    "march": 3,
    "april": 4,
    "may": 5,
    "june": 6,
    "july": 7,
    "august": 8,
    "september": 9,
    "october": 10,
    "november": 11,
    "december": 12,
}
MONTH_ABBREVIATIONS = {name[:3]: number for name, number in MONTHS.items()}
MONTH_ABBREVIATIONS["sept"] = 9

_TASK_CODE = re.compile(r"^([A-Z]+)-(\d+)$")
_TITLE_YEAR = re.compile(r"\b(\d{4})\b")
_TITLE_WORD = re.compile(r"[A-Za-z]+")


class SequenceCounter(ABC):
    """Source of per-workflow-type sequence numbers for short ids."""

    @abstractmethod
    def next(self, workflow_type: str) -> int:
        """Return the next number for a workflow type, strictly increasing, starting at 1."""
        pass

    @abstractmethod
    def seed(self, workflow_type: str, value: int) -> None:
        """Ensure later numbers for the workflow type are greater than value."""
        pass


class InMemorySequenceCounter(SequenceCounter):
    """
    Process-local counter.

    Numbers restart at 1 with every new process unless seeded, and separate
    processes will hand out colliding numbers.
    """

    def __init__(self) -> None:
        self._counters: dict[str, int] = {}

    def next(self, workflow_type: str) -> int:
        value = self._counters.get(workflow_type, 0) + 1
        self._counters[workflow_type] = value
        return value

    def seed(self, workflow_type: str, value: int) -> None:
        if value > self._counters.get(workflow_type, 0):
            self._counters[workflow_type] = value

    def current(self, workflow_type: str) -> int:
        return self._counters.get(workflow_type, 0)


def workflow_prefix(workflow_type: str | None) -> str:
    return WORKFLOW_PREFIXES.get(workflow_type or "general", WORKFLOW_PREFIXES["general"])


def parse_task_code(code: str) -> tuple[str, int] | None:
    """Split a short id like ``INV-0042`` into its prefix and number."""
    match = _TASK_CODE.match(code or "")
    if not match:
        return None
    return match.group(1), int(match.group(2))


def title_similarity(first: str, second: str) -> float:
    """Shared-word ratio: words of the first title found in the second, over the longer word count."""
    first_words = first.lower().split()
    second_words = second.lower().split()
    if not first_words or not second_words:
        return 0.0
    common = [word for word in first_words if word in second_words]
    return len(common) / max(len(first_words), len(second_words))


class TaskNamingEngine:
    """
    Enhances raw task titles with a short id, a workflow template and tags.

    The learning hook records user corrections and surfaces advisory rename
    suggestions; it never rewrites titles on its own.
    """

    def __init__(
        self,
        counter: SequenceCounter | None = None,
        correction_store: CorrectionStore | None = None,
        current_year: Callable[[], int] | None = None,
    ) -> None:
        """
        Initialize the naming engine.

        Args:
            counter: Sequence source for short ids (in-memory by default)
            correction_store: Where corrections are recorded and read back
            current_year: Clock used when a template needs a year that was not extracted
        """
        self.counter = counter or InMemorySequenceCounter()
        self.correction_store = correction_store
        self._current_year = current_year or (lambda: datetime.now().year)

    def generate_short_id(self, workflow_type: str | None) -> str:
        key = workflow_type or "general"
        return f"{workflow_prefix(key)}-{self.counter.next(key):04d}"

    def enhance(
        self,
        raw_title: str,
        workflow_type: str | None,
        metadata: dict[str, MetadataValue] | None = None,
    ) -> NamingResult:
        """
        Produce an enhanced title and tag set for a new task.

        Args:
            raw_title: Title extracted from the message
            workflow_type: Workflow type, "general" when unknown
            metadata: Extracted workflow metadata

        Returns:
            NamingResult with the short id, enhanced title, unique tags and reasoning
        """
        metadata = metadata or {}
        workflow_type = workflow_type or "general"
        short_id = self.generate_short_id(workflow_type)

        builders = {
            "invoice-generation": self._invoice,
            "payment-reconciliation": self._payment,
            "monthly-close": self._monthly_close,
            "annual-planning": self._annual_planning,
            "model-change": self._model_change,
            "vendor-onboarding": self._vendor,
        }
        builder = builders.get(workflow_type)
        if builder:
            enhanced_title, tags = builder(short_id, raw_title, metadata)
        else:
            enhanced_title, tags = f"{short_id}: {raw_title}", ["general"]

        month_tag = self.derive_month_tag(raw_title, metadata)
        if month_tag:
            tags.append(month_tag)

        unique_tags = list(dict.fromkeys(tag for tag in tags if tag))
        reasoning = (
            f"Auto-enhanced with {short_id} and {len(unique_tags)} tags "
            f"based on {workflow_type} workflow"
        )
        logger.debug(f"Enhanced '{raw_title}' -> '{enhanced_title}' {unique_tags}")

        return NamingResult(
            short_id=short_id,
            enhanced_title=enhanced_title,
            tags=unique_tags,
            reasoning=reasoning,
        )

    def _invoice(
        self, short_id: str, raw_title: str, metadata: dict[str, MetadataValue]
    ) -> tuple[str, list[str]]:
        customer = _text(metadata.get("customerName")) or "Unknown"
        amount = _format_amount(metadata.get("amount"))
        invoice_number = _text(metadata.get("invoiceNumber"))

        if invoice_number:
            title = f"{short_id}: {invoice_number} - {customer} {amount}".strip()
        else:
            title = f"{short_id}: {customer} Invoice {amount}".strip()

        tags = ["invoice", "billing"]
        if metadata.get("customerName"):
            tags.append(customer.lower())
        amount_value = metadata.get("amount")
        if _is_number(amount_value) and amount_value > HIGH_VALUE_AMOUNT:  # type: ignore[operator]
            tags.append("high-value")
        return title, tags

    def _payment(
        self, short_id: str, raw_title: str, metadata: dict[str, MetadataValue]
    ) -> tuple[str, list[str]]:
        invoice_number = _text(metadata.get("invoiceNumber"))
        amount = _format_amount(metadata.get("amount"))

        tags = ["payment", "reconciliation"]
        if invoice_number:
            tags.append(invoice_number.lower())
            return f"{short_id}: Reconcile {invoice_number} {amount}".strip(), tags
        return f"{short_id}: {raw_title}", tags

    def _monthly_close(
        self, short_id: str, raw_title: str, metadata: dict[str, MetadataValue]
    ) -> tuple[str, list[str]]:
        month = _text(metadata.get("month"))
        year = metadata.get("year") or self._current_year()

        tags = ["monthly-close", "financial-reporting"]
        if month:
            tags.append(month.lower())
            return f"{short_id}: {month} {year} Financial Close", tags
        return f"{short_id}: {raw_title}", tags

    def _annual_planning(
        self, short_id: str, raw_title: str, metadata: dict[str, MetadataValue]
    ) -> tuple[str, list[str]]:
        year = metadata.get("year") or self._current_year() + 1
        department = _text(metadata.get("department"))

        tags = ["planning", "annual", "budgeting"]
        if metadata.get("year"):
            tags.append(f"fy{year}")
        if department:
            return f"{short_id}: FY{year} {department} Budget Planning", tags
        return f"{short_id}: FY{year} Annual Plan", tags

    def _model_change(
        self, short_id: str, raw_title: str, metadata: dict[str, MetadataValue]
    ) -> tuple[str, list[str]]:
        version = _text(metadata.get("version"))
        model_name = _text(metadata.get("modelName"))

        tags = ["model", "change-control"]
        if version:
            tags.append(f"v{version}")
        if version and model_name:
            return f"{short_id}: {model_name} v{version}", tags
        return f"{short_id}: {raw_title}", tags

    def _vendor(
        self, short_id: str, raw_title: str, metadata: dict[str, MetadataValue]
    ) -> tuple[str, list[str]]:
        vendor_name = _text(metadata.get("vendorName"))
        category = _text(metadata.get("category"))

        tags = ["vendor", "onboarding"]
        if category:
            tags.append(category.lower())
        if vendor_name:
            suffix = f" ({category})" if category else ""
            return f"{short_id}: Onboard {vendor_name}{suffix}", tags
        return f"{short_id}: {raw_title}", tags

    @staticmethod
    def derive_month_tag(raw_title: str, metadata: dict[str, MetadataValue]) -> str | None:
        """
        Normalized ``YYYY-MM`` tag for the period a task is about.

        Sources, first success wins: year+month metadata, a year and a month name
        in the raw title, then a parseable ``dueDate`` metadata value.
        """
        year = metadata.get("year")
        month = _month_number(metadata.get("month"))
        if year and month:
            try:
                return f"{int(str(year)):04d}-{month:02d}"
            except ValueError:
                pass

        year_match = _TITLE_YEAR.search(raw_title or "")
        if year_match:
            for word in _TITLE_WORD.findall(raw_title):
                title_month = MONTHS.get(word.lower())
                if title_month:
                    return f"{year_match.group(1)}-{title_month:02d}"

        due_date = metadata.get("dueDate")
        if isinstance(due_date, str) and due_date.strip():
            try:
                parsed = dateutil_parser.parse(due_date)
            except (ValueError, OverflowError):
                return None
            return f"{parsed.year:04d}-{parsed.month:02d}"

        return None

    async def record_correction(
        self,
        original_title: str,
        corrected_title: str,
        workflow_type: str,
        original_tags: list[str] | None = None,
        corrected_tags: list[str] | None = None,
        user_message: str = "",
    ) -> TaskNameCorrection | None:
        """
        Record a user correction for future suggestions.

        Returns:
            The stored correction, or None when no store is configured or storing failed
        """
        if self.correction_store is None:
            return None

        correction = TaskNameCorrection(
            id=str(uuid.uuid4()),
            original_title=original_title,
            corrected_title=corrected_title,
            workflow_type=workflow_type or "general",
            original_tags=list(original_tags or []),
            corrected_tags=list(corrected_tags or []),
            user_message=user_message,
        )
        try:
            stored = await self.correction_store.add_correction(correction)
        except Exception as e:
            logger.warning(f"Failed to record task name correction: {e}")
            return None

        logger.info(f"📝 Recorded naming correction: '{original_title}' -> '{corrected_title}'")
        return stored

    async def get_suggestions(self, title: str, workflow_type: str) -> list[str]:
        """
        Advisory rename suggestions drawn from similar past corrections.

        Args:
            title: Title to compare against recorded corrections
            workflow_type: Only corrections for this workflow type are consulted

        Returns:
            Up to three "Consider: ..." strings; empty on any storage error
        """
        if self.correction_store is None:
            return []

        try:
            corrections = await self.correction_store.list_corrections(
                workflow_type=workflow_type, limit=CORRECTION_LOOKBACK
            )
        except Exception as e:
            logger.warning(f"Failed to load task name corrections: {e}")
            return []

        suggestions = [
            f'Consider: "{correction.corrected_title}" (based on similar past correction)'
            for correction in corrections
            if title_similarity(title, correction.original_title) > SUGGESTION_SIMILARITY_THRESHOLD
        ]
        return suggestions[:MAX_NAMING_SUGGESTIONS]


def _text(value: MetadataValue | None) -> str:
    if value is None or isinstance(value, (list, bool)):
        return ""
    return str(value).strip()


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _format_amount(value: MetadataValue | None) -> str:
    if not _is_number(value) or not value:
        return ""
    if float(value).is_integer():  # type: ignore[arg-type]
        return f"${int(value):,}"  # type: ignore[arg-type]
    return f"${value:,.2f}"


def _month_number(value: MetadataValue | None) -> int | None:
    if value is None or isinstance(value, (bool, list)):
        return None
    text = str(value).strip().lower()
    if text.isdigit():
        number = int(text)
        return number if 1 <= number <= 12 else None
    return MONTHS.get(text) or MONTH_ABBREVIATIONS.get(text.rstrip("."))

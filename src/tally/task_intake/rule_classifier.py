"""Rule-based message classifier used when no language model is available."""

import re
from collections.abc import Iterable
from dataclasses import dataclass

from tally.logging_utils import get_logger

from .config import TASK_WORTHY_THRESHOLD, TITLE_MAX_LENGTH
from .date_resolver import DateExpressionResolver
from .interfaces import MessageClassifier
from .models import (
    ClassificationContext,
    ExtractionResult,
    MessageType,
    MetadataValue,
    TaskAction,
    TaskPriority,
    TaskStatus,
    User,
)

logger = get_logger(__name__)

DEFAULT_ACTION_CONFIDENCE = 0.5
GREETING_CONFIDENCE = 0.1
INDICATOR_BOOST = 0.1
MAX_INDICATOR_BOOST = 0.3

# Optional sentence subject: "I am starting ...", "we've finished ...", "I just added ..."
_SUBJECT = r"(?:(?:i|we|i'm|we're|i've|we've|i'll|we'll)\s+(?:am\s+|are\s+|have\s+|will\s+)?(?:just\s+|now\s+|already\s+)?)?"

GREETING_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^(?:hi|hello|hey|hiya|howdy|yo)\b", re.IGNORECASE),
    re.compile(r"^good\s+(?:morning|afternoon|evening|night)\b", re.IGNORECASE),
    re.compile(r"^(?:thanks|thank\s+you|thx|ty|cheers)\b", re.IGNORECASE),
    re.compile(r"^how\s+(?:are|is)\s+(?:you|everyone|everybody|it\s+going)\b", re.IGNORECASE),
    re.compile(
        r"^(?:ok|okay|k|sure|yes|yep|yeah|no|nope|cool|great|nice|got\s+it|sounds\s+good|will\s+do|lol|bye)[\s!.,:)]*$",
        re.IGNORECASE,
    ),
)

# "Hi team, ..." style salutation in front of the actual message
GREETING_OPENER = re.compile(
    r"^(?:hi|hello|hey|hiya|howdy|yo|good\s+(?:morning|afternoon|evening))"
    r"(?:\s+\w+)?\s*[,!.:\-]+\s*",
    re.IGNORECASE,
)
# Indicator families needed after a salutation to treat the message as work
MIN_INDICATORS_AFTER_GREETING = 2


@dataclass(frozen=True)
class ActionRule:
    """One row of the action table: a pattern, the action it signals and its weight."""

    action: TaskAction
    weight: float
    pattern: re.Pattern[str]


def _rule(action: TaskAction, weight: float, pattern: str) -> ActionRule:
    return ActionRule(action, weight, re.compile(pattern, re.IGNORECASE))


# Evaluated in declared order; the first matching row wins
ACTION_RULES: tuple[ActionRule, ...] = (
    _rule(
        TaskAction.CREATE,
        0.8,
        rf"^{_SUBJECT}(?:create[sd]?|creating|add(?:ed|ing)?|start(?:ed|ing)?|begin(?:ning)?|began|"
        r"working\s+on|generat(?:e|ed|ing)|processing|prepar(?:e|ed|ing)|draft(?:ed|ing)?|"
        r"need(?:s)?\s+to)\s+(.+)",
    ),
    _rule(
        TaskAction.UPDATE,
        0.8,
        rf"^{_SUBJECT}(?:update[sd]?|updating|change[sd]?|changing|modif(?:y|ied|ying)|revis(?:e|ed|ing))\s+(.+)",
    ),
    _rule(
        TaskAction.COMPLETE,
        0.9,
        rf"^{_SUBJECT}(?:complete[sd]?|done|finish(?:ed)?|closed)\s+(.+)",
    ),
    _rule(
        TaskAction.COMPLETE,
        0.9,
        r"^(.+?)\s+(?:is\s+|are\s+|has\s+been\s+|have\s+been\s+)?(?:complete|completed|done|finished)[.!]*$",
    ),
    _rule(
        TaskAction.BLOCK,
        0.85,
        rf"^{_SUBJECT}(?:blocked?|stuck|waiting)\s+(?:on\s+|for\s+|by\s+)?(.+)",
    ),
    _rule(
        TaskAction.BLOCK,
        0.85,
        r"^(.+?)\s+(?:is\s+|are\s+)?(?:blocked|stuck)(?:\s+(?:on|by)\s+(.+))?$",
    ),
    _rule(
        TaskAction.HANDOFF,
        0.9,
        rf"^{_SUBJECT}(?:pass(?:ing)?|hand(?:ing)?|assign(?:ing)?|reassign(?:ing)?|transfer(?:ring)?)\s+(.+?)\s+(?:over\s+)?to\s+(.+)",
    ),
    _rule(
        TaskAction.HANDOFF,
        0.9,
        rf"^{_SUBJECT}(?:give|giving)\s+(.+?)\s+to\s+(.+)",
    ),
    _rule(
        TaskAction.COMMENT,
        0.3,
        r"^(?:note|fyi|update|heads\s+up|just|actually|btw)\s*:\s*(.+)",
    ),
)

# Distinct families of evidence that a message describes trackable work
TASK_INDICATORS: tuple[tuple[str, re.Pattern[str]], ...] = (
    (
        "finance",
        re.compile(
            r"\b(?:invoic\w*|payments?|reconcil\w*|budget\w*|forecast\w*|billing|vendors?|"
            r"suppliers?|payroll|accruals?|ledger|journal\s+entr\w*|close)\b",
            re.IGNORECASE,
        ),
    ),
    ("document_number", re.compile(r"\b(?:INV|PO)-?\d+\b", re.IGNORECASE)),
    (
        "currency_amount",
        re.compile(r"\$\s?\d|\b\d[\d,]*(?:\.\d+)?\s?(?:k\s+)?(?:usd|dollars)\b", re.IGNORECASE),
    ),
    (
        "obligation",
        re.compile(r"\b(?:need(?:s)?\s+to|must|should|have\s+to|has\s+to|please)\b", re.IGNORECASE),
    ),
    (
        "deadline",
        re.compile(
            r"\b(?:by|before|until|due)\s+(?:today|tomorrow|tonight|eod|eow|end\s+of|next|this|"
            r"monday|tuesday|wednesday|thursday|friday|saturday|sunday|\d)|\bdeadline\b|\basap\b",
            re.IGNORECASE,
        ),
    ),
)

# Substring containment, first entry wins; "complete" also contains "comp"-style overlaps
STATUS_KEYWORDS: tuple[tuple[str, TaskStatus], ...] = (
    ("todo", TaskStatus.TODO),
    ("to do", TaskStatus.TODO),
    ("pending", TaskStatus.TODO),
    ("in progress", TaskStatus.IN_PROGRESS),
    ("working", TaskStatus.IN_PROGRESS),
    ("active", TaskStatus.IN_PROGRESS),
    ("blocked", TaskStatus.BLOCKED),
    ("stuck", TaskStatus.BLOCKED),
    ("waiting", TaskStatus.BLOCKED),
    ("complete", TaskStatus.COMPLETED),
    ("completed", TaskStatus.COMPLETED),
    ("done", TaskStatus.COMPLETED),
    ("finished", TaskStatus.COMPLETED),
    ("cancelled", TaskStatus.CANCELLED),
    ("canceled", TaskStatus.CANCELLED),
)

PRIORITY_KEYWORDS: tuple[tuple[str, TaskPriority], ...] = (
    ("urgent", TaskPriority.URGENT),
    ("critical", TaskPriority.URGENT),
    ("asap", TaskPriority.URGENT),
    ("high", TaskPriority.HIGH),
    ("important", TaskPriority.HIGH),
    ("medium", TaskPriority.MEDIUM),
    ("normal", TaskPriority.MEDIUM),
    ("low", TaskPriority.LOW),
    ("minor", TaskPriority.LOW),
)

WORKFLOW_PATTERNS: tuple[tuple[str, tuple[re.Pattern[str], ...]], ...] = (
    (
        "invoice-generation",
        (
            re.compile(r"invoice|invoicing|billing|bill", re.IGNORECASE),
            re.compile(r"INV-\d+", re.IGNORECASE),
        ),
    ),
    (
        "payment-reconciliation",
        (
            re.compile(r"payment|reconcil|matching|paid|receipt", re.IGNORECASE),
            re.compile(r"bank|transaction", re.IGNORECASE),
        ),
    ),
    (
        "monthly-close",
        (
            re.compile(r"month(?:ly)?\s+close|close(?:ing)?\s+(?:the\s+)?month", re.IGNORECASE),
            re.compile(r"end\s+of\s+month|eom", re.IGNORECASE),
            re.compile(r"financial\s+close", re.IGNORECASE),
        ),
    ),
    (
        "vendor-onboarding",
        (
            re.compile(r"vendor|supplier", re.IGNORECASE),
            re.compile(r"onboard", re.IGNORECASE),
        ),
    ),
    (
        "model-change",
        (
            re.compile(r"model|forecast|budget", re.IGNORECASE),
            re.compile(r"change\s+control|version|approval", re.IGNORECASE),
        ),
    ),
    (
        "annual-planning",
        (
            re.compile(r"annual|yearly|year-end", re.IGNORECASE),
            re.compile(r"plan(?:ning)?|budget", re.IGNORECASE),
        ),
    ),
)

BLOCKER_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"(?:blocked?|stuck|waiting)\s+(?:on|for|by)\s+(.+)", re.IGNORECASE),
    re.compile(r"(?:blocked?|stuck)(?:\s+because\s+|\s+-\s+|\s*:\s+)(.+)", re.IGNORECASE),
)

MONTH_NAMES = (
    "january",
    "february",
    "march",
    "april",
    "may",
    "june",
    "july",
    "august",
    "september",
    "october",
    "november",
    "december",
)

VENDOR_CATEGORIES = ("Software", "Services", "Supplies", "Consulting")
DEPARTMENTS = ("Sales", "Marketing", "Engineering", "Finance", "Operations", "HR", "Legal", "Support")

_LEADING_WORDS = re.compile(
    rf"^{_SUBJECT}(?:create[sd]?|creating|add(?:ed|ing)?|start(?:ed|ing)?|begin(?:ning)?|began|"
    r"complete[sd]?|completing|done|finish(?:ed|ing)?|closed|update[sd]?|updating|"
    r"change[sd]?|changing|modif(?:y|ied|ying)|working\s+on|work\s+on|blocked?|stuck|waiting|"
    r"need(?:s)?\s+to|generat(?:e|ed|ing)|processing|prepar(?:e|ed|ing)|draft(?:ed|ing)?)\b"
    r"(?:\s+(?:on|for|by|with))?\s+",
    re.IGNORECASE,
)
_LEADING_ARTICLE = re.compile(r"^(?:the|a|an)\s+", re.IGNORECASE)
_TRAILING_FILLERS: tuple[re.Pattern[str], ...] = (
    re.compile(r"[.!?]+$"),
    re.compile(r"\s+(?:for|by|to|on)\s+(?:me|you|us|them)$", re.IGNORECASE),
    re.compile(r"\s+(?:today|tomorrow|this\s+week|next\s+week|asap)$", re.IGNORECASE),
    re.compile(
        r"\s+(?:is\s+|are\s+|has\s+been\s+|have\s+been\s+)?(?:complete|completed|done|finished|blocked|stuck)$",
        re.IGNORECASE,
    ),
)

_INVOICE_NUMBER = re.compile(r"\bINV-(\d+)\b", re.IGNORECASE)
_ENTITY = re.compile(r"\b[A-Z][A-Za-z0-9&'.]*(?:\s+[A-Z][A-Za-z0-9&'.]*)*")
_LIST_ITEM_SEPARATOR = re.compile(r"\s*,\s*(?:and\s+)?|\s+and\s+")
_ENTITY_LIST = re.compile(
    r"[A-Z][A-Za-z0-9&'.]*(?:\s+[A-Z][A-Za-z0-9&'.]*)*"
    r"(?:(?:\s*,\s*(?:and\s+)?|\s+and\s+)[A-Z][A-Za-z0-9&'.]*(?:\s+[A-Z][A-Za-z0-9&'.]*)*)+"
)
_DOLLAR_AMOUNT = re.compile(r"\$\s?(\d{1,3}(?:,\d{3})+|\d+)(\.\d+)?\s*([km])?\b", re.IGNORECASE)
_BARE_AMOUNT = re.compile(r"(?<![\w.$-])(\d{1,3}(?:,\d{3})+|\d+)(\.\d{2})?(?![\w.-])")
_YEAR = re.compile(r"\b(20\d{2})\b")
_VERSION = re.compile(r"\bv(?:ersion)?\s*(\d+(?:\.\d+)*)\b", re.IGNORECASE)
_PAID = re.compile(r"paid|received|cleared", re.IGNORECASE)

# Capitalized words that never name a customer, vendor or model
NON_ENTITY_WORDS = frozenset(
    {
        "a", "an", "the", "i", "we", "our", "my", "this", "that", "these", "those",
        "and", "for", "from", "to", "on", "by", "with", "of", "in", "at",
        "create", "created", "creating", "add", "added", "start", "started", "starting",
        "begin", "began", "generate", "generated", "generating", "processing",
        "prepare", "prepared", "preparing", "draft", "drafted", "drafting",
        "complete", "completed", "done", "finish", "finished", "closed", "update", "updated",
        "change", "changed", "working", "need", "needs", "please", "blocked", "block",
        "stuck", "waiting", "pass", "passing", "hand", "handing", "assign", "reassign",
        "transfer", "give", "giving", "note", "fyi", "just", "actually", "heads", "btw",
        "invoice", "invoices", "invoicing", "payment", "payments", "bill", "billing",
        "reconciliation", "reconcile", "close", "monthly", "month", "financial",
        "vendor", "vendors", "supplier", "onboarding", "onboard", "model", "forecast",
        "budget", "annual", "plan", "planning", "version", "approval", "review",
        "today", "tomorrow", "urgent", "asap", "high", "low", "important",
        "hey", "hi", "hello", "thanks", "q1", "q2", "q3", "q4", "fy",
        "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
        *MONTH_NAMES,
    }
)


class DeterministicClassifier(MessageClassifier):
    """
    Pattern-table classifier for chat messages.

    Total by construction: every input yields a well-formed ExtractionResult.
    """

    def __init__(self, date_resolver: DateExpressionResolver | None = None) -> None:
        self._date_resolver = date_resolver or DateExpressionResolver()

    async def classify(
        self, message: str, context: ClassificationContext
    ) -> ExtractionResult:
        return self.classify_text(message, context.users)

    def classify_text(self, message: str, users: list[User]) -> ExtractionResult:
        """
        Classify a message using the pattern tables.

        Args:
            message: Raw chat message
            users: User directory, used for assignee detection

        Returns:
            ExtractionResult with confidence in [0, 1]
        """
        content = (message or "").strip()

        opener = GREETING_OPENER.match(content)
        if opener and len(self.detect_indicators(content)) >= MIN_INDICATORS_AFTER_GREETING:
            logger.trace(f"Stripping salutation '{opener.group(0).strip()}'")  # type: ignore[attr-defined]
            content = content[opener.end() :]

        if not content or self._is_conversational(content):
            return ExtractionResult(
                confidence=GREETING_CONFIDENCE,
                is_task_worthy=False,
                message_type=MessageType.CONVERSATION,
                reasoning="Detected as conversational greeting/acknowledgment",
            )

        action, base_confidence, action_match = self.detect_action(content)
        indicators = self.detect_indicators(content)
        boost = min(INDICATOR_BOOST * len(indicators), MAX_INDICATOR_BOOST)
        confidence = round(min(base_confidence + boost, 1.0), 2)
        is_task_worthy = confidence >= TASK_WORTHY_THRESHOLD

        reasoning = (
            f"Matched {action.value} pattern (base {base_confidence:.2f})"
            if action_match
            else f"No action pattern matched, defaulting to create (base {base_confidence:.2f})"
        )
        if indicators:
            reasoning += f"; task indicators: {', '.join(indicators)}"

        logger.trace(  # type: ignore[attr-defined]
            f"Rule classification: action={action.value}, confidence={confidence:.2f}, "
            f"indicators={indicators}"
        )

        if action == TaskAction.COMMENT:
            body = action_match.group(1).strip() if action_match else content
            return ExtractionResult(
                confidence=confidence,
                is_task_worthy=is_task_worthy,
                message_type=MessageType.COMMENT,
                action=TaskAction.COMMENT,
                task_reference=body,
                comment_text=body,
                reasoning=reasoning,
            )

        if not is_task_worthy:
            return ExtractionResult(
                confidence=confidence,
                is_task_worthy=False,
                message_type=MessageType.OBSERVATION,
                action=action,
                reasoning=reasoning,
            )

        result = ExtractionResult(
            confidence=confidence,
            is_task_worthy=True,
            message_type=MessageType.TASK,
            action=action,
            reasoning=reasoning,
        )

        batch_items = self.detect_batch_items(content, users)
        if len(batch_items) >= 2:
            result.batch_items = batch_items
            result.suggestions = [
                f"Create {len(batch_items)} separate tasks?",
                "Create one grouped task?",
            ]

        if action == TaskAction.HANDOFF and action_match:
            result.task_title = self.extract_title(action_match.group(1))
        else:
            result.task_title = self.extract_title(content)

        result.assignees = self.extract_assignees(content, users)
        result.deadline = self._date_resolver.resolve(content)
        result.status = self.extract_status(content)
        result.priority = self.extract_priority(content)
        result.workflow_type = self.detect_workflow_type(content)

        if action == TaskAction.BLOCK:
            result.blocked_by = self.extract_blocker(content)

        result.metadata = self.extract_metadata(content, result.workflow_type, users)

        logger.debug(
            f"Rule extraction: title='{result.task_title}', workflow={result.workflow_type}, "
            f"assignees={result.assignees}, batch={result.batch_items}"
        )
        return result

    @staticmethod
    def _is_conversational(content: str) -> bool:
        return any(pattern.search(content) for pattern in GREETING_PATTERNS)

    @staticmethod
    def detect_action(content: str) -> tuple[TaskAction, float, re.Match[str] | None]:
        """Return the first matching action rule, or create at the default weight."""
        for rule in ACTION_RULES:
            match = rule.pattern.search(content)
            if match:
                return rule.action, rule.weight, match
        return TaskAction.CREATE, DEFAULT_ACTION_CONFIDENCE, None

    @staticmethod
    def detect_indicators(content: str) -> list[str]:
        """Names of the task-indicator families present in the message."""
        return [name for name, pattern in TASK_INDICATORS if pattern.search(content)]

    @staticmethod
    def extract_title(content: str) -> str:
        """Strip leading action verbs/articles and trailing filler from a message."""
        title = content.strip()

        # "need to generate the invoice" needs more than one pass
        for _ in range(3):
            stripped = _LEADING_WORDS.sub("", title, count=1)
            stripped = _LEADING_ARTICLE.sub("", stripped, count=1).strip()
            if stripped == title:
                break
            title = stripped

        for pattern in _TRAILING_FILLERS:
            title = pattern.sub("", title).strip()

        if len(title) > TITLE_MAX_LENGTH:
            title = title[:TITLE_MAX_LENGTH] + "..."

        return title or content[:100]

    @staticmethod
    def extract_assignees(content: str, users: list[User]) -> list[str]:
        """
        Find directory users mentioned in a message.

        Full names match case-insensitively as whole words or @-mentions; a bare
        first name only counts when written capitalized.
        """
        assignees: list[str] = []

        for user in users:
            if not user.name.strip() or user.id in assignees:
                continue
            full_name = re.escape(user.name.strip())
            handle = re.escape(user.name.replace(" ", "").lower())
            first_name = re.escape(user.name.split()[0])
            patterns = (
                re.compile(rf"\b(?:to|for|assign(?:ed)?\s+to)\s+{full_name}\b", re.IGNORECASE),
                re.compile(rf"@(?:{handle}|{first_name})\b", re.IGNORECASE),
                re.compile(rf"\b{full_name}\b", re.IGNORECASE),
                re.compile(rf"\b{first_name}\b"),
            )
            if any(pattern.search(content) for pattern in patterns):
                assignees.append(user.id)

        return assignees

    @staticmethod
    def extract_status(content: str) -> TaskStatus | None:
        lower_content = content.lower()
        for keyword, status in STATUS_KEYWORDS:
            if keyword in lower_content:
                return status
        return None

    @staticmethod
    def extract_priority(content: str) -> TaskPriority | None:
        lower_content = content.lower()
        for keyword, priority in PRIORITY_KEYWORDS:
            if keyword in lower_content:
                return priority
        return None

    @staticmethod
    def detect_workflow_type(content: str) -> str | None:
        for workflow_type, patterns in WORKFLOW_PATTERNS:
            if any(pattern.search(content) for pattern in patterns):
                return workflow_type
        return None

    @staticmethod
    def extract_blocker(content: str) -> str | None:
        for pattern in BLOCKER_PATTERNS:
            match = pattern.search(content)
            if match:
                return match.group(1).strip().rstrip(".!")
        return None

    @classmethod
    def detect_batch_items(cls, content: str, users: list[User]) -> list[str]:
        """
        Detect several distinct work items mentioned together.

        Several invoice numbers win over a list of capitalized names joined by
        "and" or commas. Directory users are never batch items.
        """
        invoice_numbers = _unique(m.group(0).upper() for m in _INVOICE_NUMBER.finditer(content))
        if len(invoice_numbers) >= 2:
            return invoice_numbers

        excluded = _user_name_words(users)
        text = _INVOICE_NUMBER.sub(" ", content)
        for span in _ENTITY_LIST.finditer(text):
            items = []
            for part in _LIST_ITEM_SEPARATOR.split(span.group(0)):
                runs = _entity_runs(part, excluded)
                if runs:
                    items.append(runs[0])
            items = _unique(items)
            if len(items) >= 2:
                return items
        return []

    @classmethod
    def extract_entities(cls, content: str, users: list[User]) -> list[str]:
        """Capitalized name sequences, minus verbs, months, finance nouns and users."""
        excluded = _user_name_words(users)
        text = _INVOICE_NUMBER.sub(" ", content)
        entities: list[str] = []
        for match in _ENTITY.finditer(text):
            entities.extend(_entity_runs(match.group(0), excluded))
        return _unique(entities)

    @classmethod
    def extract_metadata(
        cls, content: str, workflow_type: str | None, users: list[User]
    ) -> dict[str, MetadataValue]:
        """Workflow-specific metadata; empty when no workflow was detected."""
        metadata: dict[str, MetadataValue] = {}
        if not workflow_type:
            return metadata

        if workflow_type in ("invoice-generation", "payment-reconciliation"):
            invoice_match = _INVOICE_NUMBER.search(content)
            if invoice_match:
                metadata["invoiceNumber"] = invoice_match.group(0).upper()

            entities = cls.extract_entities(content, users)
            if entities:
                metadata["customerName"] = entities[0]

            amount = extract_amount(content)
            if amount is not None:
                metadata["amount"] = amount

            if _PAID.search(content):
                metadata["paid"] = True

        elif workflow_type == "monthly-close":
            month = extract_month(content)
            if month:
                metadata["month"] = month
            year_match = _YEAR.search(content)
            if year_match:
                metadata["year"] = int(year_match.group(1))

        elif workflow_type == "model-change":
            version_match = _VERSION.search(content)
            if version_match:
                metadata["version"] = version_match.group(1)
            entities = cls.extract_entities(content, users)
            if entities:
                metadata["modelName"] = entities[0]

        elif workflow_type == "vendor-onboarding":
            entities = cls.extract_entities(content, users)
            if entities:
                metadata["vendorName"] = entities[0]
            for category in VENDOR_CATEGORIES:
                if re.search(rf"\b{category[:-1]}", content, re.IGNORECASE):
                    metadata["category"] = category
                    break

        elif workflow_type == "annual-planning":
            year_match = _YEAR.search(content)
            if year_match:
                metadata["year"] = int(year_match.group(1))
            for department in DEPARTMENTS:
                if re.search(rf"\b{department}\b", content):
                    metadata["department"] = department
                    break

        return metadata


def extract_amount(content: str) -> float | int | None:
    """
    Money amount in a message.

    A "$"-prefixed figure wins (with k/m suffixes); otherwise the first bare
    figure that is not a year, document number or version.
    """
    match = _DOLLAR_AMOUNT.search(content)
    if match:
        value = float(match.group(1).replace(",", "") + (match.group(2) or ""))
        suffix = (match.group(3) or "").lower()
        if suffix == "k":
            value *= 1_000
        elif suffix == "m":
            value *= 1_000_000
        return _normalize_number(value)

    for match in _BARE_AMOUNT.finditer(content):
        digits = match.group(1)
        if "," not in digits and _YEAR.fullmatch(digits):
            continue
        return _normalize_number(float(digits.replace(",", "") + (match.group(2) or "")))
    return None


def extract_month(content: str) -> str | None:
    """Capitalized calendar month named in a message."""
    for word in re.findall(r"[A-Za-z]+", content):
        lower_word = word.lower()
        if lower_word in MONTH_NAMES:
            # "may" is usually a verb
            if lower_word == "may" and word != "May":
                continue
            return lower_word.capitalize()
    return None


def _normalize_number(value: float) -> float | int:
    return int(value) if value.is_integer() else value


def _unique(items: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for item in items:
        key = item.strip()
        if key and key.lower() not in {existing.lower() for existing in seen}:
            seen[key] = None
    return list(seen)


def _user_name_words(users: list[User]) -> frozenset[str]:
    words: set[str] = set()
    for user in users:
        words.update(part.lower() for part in user.name.split())
    return frozenset(words)


def _entity_runs(sequence: str, excluded: frozenset[str]) -> list[str]:
    """Split a capitalized sequence at non-entity words, keeping the remaining runs."""
    runs: list[str] = []
    current: list[str] = []
    for word in sequence.split():
        bare = word.strip(".,'").lower()
        if bare in NON_ENTITY_WORDS or bare in excluded or not word[0].isupper():
            if current:
                runs.append(" ".join(current))
                current = []
            continue
        current.append(word.rstrip(".,"))
    if current:
        runs.append(" ".join(current))
    return runs

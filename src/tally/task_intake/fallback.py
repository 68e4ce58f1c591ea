"""Classifier wrapper that degrades to the rule-based classifier on any failure."""

import logging

from .interfaces import MessageClassifier
from .models import ClassificationContext, ExtractionResult
from .rule_classifier import DeterministicClassifier

logger = logging.getLogger(__name__)


class FallbackClassifier(MessageClassifier):
    """
    Tries the primary classifier on every call and falls back to the
    deterministic one when it fails.

    No degraded state is remembered between calls. The fallback only receives
    the user directory, not the conversation or open tasks.
    """

    def __init__(
        self,
        primary: MessageClassifier | None,
        fallback: DeterministicClassifier | None = None,
    ) -> None:
        """
        Initialize the wrapper.

        Args:
            primary: Preferred classifier; None means always use the fallback
            fallback: Total rule-based classifier
        """
        self.primary = primary
        self.fallback = fallback or DeterministicClassifier()

    async def classify(
        self, message: str, context: ClassificationContext
    ) -> ExtractionResult:
        if self.primary is not None:
            try:
                return await self.primary.classify(message, context)
            except Exception as e:
                logger.warning(f"⚠️ Primary classifier failed, using rule-based fallback: {e}")

        return await self.fallback.classify(message, ClassificationContext(users=context.users))

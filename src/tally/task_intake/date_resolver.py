"""Resolve natural-language deadline expressions to absolute timestamps."""

import logging
import re
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from dateutil import parser as dateutil_parser
from dateutil.relativedelta import relativedelta

logger = logging.getLogger(__name__)

_Resolver = Callable[[re.Match[str]], datetime | None]

WEEKDAYS = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

_MONTH = (
    r"(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|"
    r"aug(?:ust)?|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)"
)

_DAY_AFTER_TOMORROW = re.compile(r"\bday\s+after\s+tomorrow\b", re.IGNORECASE)
_TOMORROW = re.compile(r"\btomorrow\b", re.IGNORECASE)
_TODAY = re.compile(r"\b(?:today|tonight|eod|end\s+of\s+(?:the\s+)?day)\b", re.IGNORECASE)
_END_OF_MONTH = re.compile(r"\b(?:eom|end\s+of\s+(?:the\s+)?month)\b", re.IGNORECASE)
_NEXT_PERIOD = re.compile(r"\bnext\s+(week|month|year)\b", re.IGNORECASE)
_IN_PERIOD = re.compile(r"\bin\s+(\d{1,3})\s+(day|week|month)s?\b", re.IGNORECASE)
_WEEKDAY = re.compile(
    r"\b(?:(?:next|this|on|by)\s+)?(monday|tuesday|wednesday|thursday|friday|saturday|sunday)\b",
    re.IGNORECASE,
)
_ISO_DATE = re.compile(r"\b\d{4}-\d{2}-\d{2}(?:[T ]\d{2}:\d{2}(?::\d{2})?)?\b")
_SLASH_DATE = re.compile(r"(?<![\w/])\d{1,2}/\d{1,2}(?:/\d{2,4})?(?![\w/])")
_MONTH_DAY = re.compile(
    rf"\b({_MONTH})\.?(?:\s+(\d{{1,2}})(?:st|nd|rd|th)?(?!\d))?(?:,?\s+(\d{{4}}))?\b",
    re.IGNORECASE,
)
_DAY_MONTH = re.compile(
    rf"\b(\d{{1,2}})(?:st|nd|rd|th)?\s+(?:of\s+)?({_MONTH})\b(?:,?\s+(\d{{4}}))?",
    re.IGNORECASE,
)


class DateExpressionResolver:
    """
    Finds the first date expression in free text and resolves it.

    Relative expressions are resolved against the current time in UTC; parsed
    results without a timezone are stamped UTC. Parse failures are silent.
    """

    def __init__(self, now: Callable[[], datetime] | None = None) -> None:
        """
        Initialize the resolver.

        Args:
            now: Clock returning an aware datetime (defaults to UTC now)
        """
        self._now = now or (lambda: datetime.now(timezone.utc))

    def resolve(
        self, text: str | None, reference_time: datetime | None = None
    ) -> datetime | None:
        """
        Resolve the first recognized date expression in text.

        Args:
            text: Free text that may contain a date expression
            reference_time: Reference time for relative expressions

        Returns:
            Absolute timezone-aware datetime, or None if nothing was recognized
        """
        if not text or not text.strip():
            return None

        reference = reference_time or self._now()
        if reference.tzinfo is None:
            reference = reference.replace(tzinfo=timezone.utc)

        candidates: list[tuple[int, int, re.Match[str], _Resolver]] = []
        resolvers: list[tuple[re.Pattern[str], _Resolver]] = [
            (_DAY_AFTER_TOMORROW, lambda m: reference + timedelta(days=2)),
            (_TOMORROW, lambda m: reference + timedelta(days=1)),
            (_TODAY, lambda m: reference),
            (_END_OF_MONTH, lambda m: self._end_of_month(reference)),
            (_NEXT_PERIOD, lambda m: self._next_period(m, reference)),
            (_IN_PERIOD, lambda m: self._in_period(m, reference)),
            (_WEEKDAY, lambda m: self._weekday(m, reference)),
            (_ISO_DATE, lambda m: self._parse(m.group(0), reference)),
            (_SLASH_DATE, lambda m: self._parse(m.group(0), reference)),
            (_MONTH_DAY, lambda m: self._month_day(m, reference)),
            (_DAY_MONTH, lambda m: self._parse(m.group(0), reference)),
        ]
        for priority, (pattern, resolver) in enumerate(resolvers):
            for match in pattern.finditer(text):
                candidates.append((match.start(), priority, match, resolver))

        # Leftmost expression wins; at the same offset, the declared order decides
        for _, _, match, resolver in sorted(candidates, key=lambda c: (c[0], c[1])):
            try:
                resolved = resolver(match)
            except (ValueError, OverflowError) as e:
                logger.debug(f"Could not resolve date expression '{match.group(0)}': {e}")
                continue
            if resolved is not None:
                if resolved.tzinfo is None:
                    resolved = resolved.replace(tzinfo=timezone.utc)
                return resolved

        return None

    @staticmethod
    def _parse(expression: str, reference: datetime) -> datetime | None:
        default = reference.replace(hour=0, minute=0, second=0, microsecond=0)
        try:
            return dateutil_parser.parse(expression, default=default)
        except (ValueError, dateutil_parser.ParserError):
            return None

    @staticmethod
    def _end_of_month(reference: datetime) -> datetime:
        first_of_next = reference.replace(day=1) + relativedelta(months=1)
        return first_of_next - timedelta(days=1)

    @staticmethod
    def _next_period(match: re.Match[str], reference: datetime) -> datetime:
        unit = match.group(1).lower()
        if unit == "week":
            return reference + timedelta(weeks=1)
        if unit == "month":
            return reference + relativedelta(months=1)
        return reference + relativedelta(years=1)

    @staticmethod
    def _in_period(match: re.Match[str], reference: datetime) -> datetime:
        amount = int(match.group(1))
        unit = match.group(2).lower()
        if unit == "day":
            return reference + timedelta(days=amount)
        if unit == "week":
            return reference + timedelta(weeks=amount)
        return reference + relativedelta(months=amount)

    @staticmethod
    def _weekday(match: re.Match[str], reference: datetime) -> datetime:
        target_weekday = WEEKDAYS[match.group(1).lower()]
        days_ahead = target_weekday - reference.weekday()
        if days_ahead <= 0:  # Target day already happened this week
            days_ahead += 7
        return reference + timedelta(days=days_ahead)

    def _month_day(self, match: re.Match[str], reference: datetime) -> datetime | None:
        month, day, year = match.group(1), match.group(2), match.group(3)
        # A bare month name is not a date, and "may" is usually a verb
        if day is None and year is None:
            return None
        if month.lower() == "may" and month != "May":
            return None
        if day is None:
            reference = reference.replace(day=1)
        return self._parse(match.group(0), reference)

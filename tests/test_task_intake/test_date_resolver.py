"""Unit tests for the deadline expression resolver."""

from datetime import datetime, timezone

import pytest

from tally.task_intake.date_resolver import DateExpressionResolver

# Wednesday
REFERENCE = datetime(2025, 10, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def resolver() -> DateExpressionResolver:
    return DateExpressionResolver(now=lambda: REFERENCE)


@pytest.mark.unit
class TestRelativeExpressions:
    """Expressions resolved against the reference time."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("send it tomorrow", datetime(2025, 10, 16, 12, 0, tzinfo=timezone.utc)),
            ("the day after tomorrow works", datetime(2025, 10, 17, 12, 0, tzinfo=timezone.utc)),
            ("needed by EOD", REFERENCE),
            ("close by end of month", datetime(2025, 10, 31, 12, 0, tzinfo=timezone.utc)),
            ("in 3 days please", datetime(2025, 10, 18, 12, 0, tzinfo=timezone.utc)),
            ("in 2 weeks", datetime(2025, 10, 29, 12, 0, tzinfo=timezone.utc)),
            ("next week", datetime(2025, 10, 22, 12, 0, tzinfo=timezone.utc)),
            ("next month", datetime(2025, 11, 15, 12, 0, tzinfo=timezone.utc)),
        ],
    )
    def test_relative(self, resolver: DateExpressionResolver, text: str, expected: datetime) -> None:
        assert resolver.resolve(text) == expected

    def test_weekday_later_this_week(self, resolver: DateExpressionResolver) -> None:
        assert resolver.resolve("due by Friday") == datetime(2025, 10, 17, 12, 0, tzinfo=timezone.utc)

    def test_same_weekday_means_next_week(self, resolver: DateExpressionResolver) -> None:
        assert resolver.resolve("on Wednesday") == datetime(2025, 10, 22, 12, 0, tzinfo=timezone.utc)

    def test_explicit_reference_time_overrides_clock(self, resolver: DateExpressionResolver) -> None:
        reference = datetime(2024, 2, 28, 9, 0, tzinfo=timezone.utc)
        assert resolver.resolve("tomorrow", reference) == datetime(2024, 2, 29, 9, 0, tzinfo=timezone.utc)

    def test_naive_reference_is_treated_as_utc(self, resolver: DateExpressionResolver) -> None:
        resolved = resolver.resolve("tomorrow", datetime(2025, 1, 1, 8, 0))
        assert resolved == datetime(2025, 1, 2, 8, 0, tzinfo=timezone.utc)


@pytest.mark.unit
class TestAbsoluteExpressions:
    """Calendar dates in several spellings."""

    def test_iso_date(self, resolver: DateExpressionResolver) -> None:
        assert resolver.resolve("due 2025-11-03") == datetime(2025, 11, 3, tzinfo=timezone.utc)

    def test_month_and_day(self, resolver: DateExpressionResolver) -> None:
        assert resolver.resolve("finish by October 31") == datetime(2025, 10, 31, tzinfo=timezone.utc)

    def test_day_and_month(self, resolver: DateExpressionResolver) -> None:
        assert resolver.resolve("15 November") == datetime(2025, 11, 15, tzinfo=timezone.utc)

    def test_month_and_year_means_first_of_month(self, resolver: DateExpressionResolver) -> None:
        resolved = resolver.resolve("I am starting Humana Invoice October 2025")
        assert resolved == datetime(2025, 10, 1, tzinfo=timezone.utc)

    def test_results_are_timezone_aware(self, resolver: DateExpressionResolver) -> None:
        resolved = resolver.resolve("2025-12-01")
        assert resolved is not None
        assert resolved.tzinfo is not None


@pytest.mark.unit
class TestUnresolvable:
    """Inputs that must come back as None."""

    @pytest.mark.parametrize(
        "text",
        ["", "   ", None, "no date here", "may I ask something", "the October numbers"],
    )
    def test_returns_none(self, resolver: DateExpressionResolver, text: str | None) -> None:
        assert resolver.resolve(text) is None

    def test_leftmost_expression_wins(self, resolver: DateExpressionResolver) -> None:
        resolved = resolver.resolve("tomorrow or Friday, whichever works")
        assert resolved == datetime(2025, 10, 16, 12, 0, tzinfo=timezone.utc)

"""Resolve free-text task references against existing tasks."""

import json

from tally.logging_utils import get_logger

from .models import ACTIVE_STATUSES, Task

logger = get_logger(__name__)

PHRASE_SCORE = 100
TITLE_KEYWORD_SCORE = 10
METADATA_KEYWORD_SCORE = 5
ACTIVE_STATUS_SCORE = 2

MIN_KEYWORD_LENGTH = 3
MIN_SIGNIFICANT_WORD_LENGTH = 4
MIN_COMMON_WORDS = 2


class TaskMatcher:
    """Ranks existing tasks against a reference phrase or a provisional title."""

    def score(self, keywords: str, task: Task) -> int:
        """
        Score one task against a reference phrase.

        Args:
            keywords: Free-text reference, e.g. "the Acme invoice"
            task: Candidate task

        Returns:
            Non-negative score; 0 means no evidence at all
        """
        phrase = keywords.strip().lower()
        terms = self._search_terms(phrase)
        if not terms:
            return 0

        title = task.title.lower()
        metadata_blob = json.dumps(task.metadata, default=str).lower()

        score = 0
        if phrase in title:
            score += PHRASE_SCORE
        for term in terms:
            if term in title:
                score += TITLE_KEYWORD_SCORE
            if term in metadata_blob:
                score += METADATA_KEYWORD_SCORE

        # The active-status bonus only breaks ties between tasks with real evidence
        if score > 0 and task.status in ACTIVE_STATUSES:
            score += ACTIVE_STATUS_SCORE

        return score

    def find_by_reference(self, keywords: str | None, tasks: list[Task]) -> list[Task]:
        """
        Rank tasks by how well they match an explicit reference.

        Args:
            keywords: Reference phrase extracted from a message
            tasks: Candidate tasks in repository order

        Returns:
            Tasks with a positive score, best first; ties keep repository order
        """
        if not keywords or not self._search_terms(keywords.lower()):
            return []

        scored = [(self.score(keywords, task), task) for task in tasks]
        ranked = [
            task
            for score, task in sorted(
                (item for item in scored if item[0] > 0),
                key=lambda item: item[0],
                reverse=True,
            )
        ]

        logger.debug(f"Reference '{keywords}' matched {len(ranked)} of {len(tasks)} tasks")
        return ranked

    def find_by_similar_title(self, title: str | None, tasks: list[Task]) -> list[Task]:
        """
        Last-resort lookup by shared significant words.

        Returns at most one task: the first one sharing at least two words longer
        than three characters with the title.
        """
        if not title:
            return []

        title_words = self._significant_words(title)
        if len(title_words) < MIN_COMMON_WORDS:
            return []

        for task in tasks:
            common = title_words & self._significant_words(task.title)
            if len(common) >= MIN_COMMON_WORDS:
                logger.debug(f"Title '{title}' resembles task {task.id} ({sorted(common)})")
                return [task]
        return []

    @staticmethod
    def _search_terms(phrase: str) -> list[str]:
        return [term for term in phrase.split() if len(term) >= MIN_KEYWORD_LENGTH]

    @staticmethod
    def _significant_words(text: str) -> set[str]:
        return {
            word for word in text.lower().split() if len(word) >= MIN_SIGNIFICANT_WORD_LENGTH
        }

"""
Ordered collection of quiz questions.
"""
import logging
from typing import Iterator, List

from .errors import IndexOutOfRangeError
from .models import Question, QuestionStatus

logger = logging.getLogger(__name__)


class QuestionSet:
    """
    Questions in insertion order.

    Indices are always contiguous 0..n-1; removing a question shifts the
    ones after it down by one. Duplicate place names are allowed.
    """

    def __init__(self, questions: List[Question] = None):
        self._questions: List[Question] = list(questions or [])

    def append(self, question: Question) -> int:
        """Add a question at the end and return its index."""
        self._questions.append(question)
        logger.debug(f"Appended question {len(self._questions) - 1}: {question.place_name}")
        return len(self._questions) - 1

    def remove_at(self, index: int) -> Question:
        """
        Remove and return the question at ``index``.

        Raises:
            IndexOutOfRangeError: If index is not in 0..n-1 (negative indices are rejected)
        """
        self._check_index(index)
        removed = self._questions.pop(index)
        logger.debug(f"Removed question {index}: {removed.place_name}")
        return removed

    def get(self, index: int) -> Question:
        self._check_index(index)
        return self._questions[index]

    def clear(self) -> None:
        self._questions.clear()

    def reset_status(self) -> None:
        """Mark every question unanswered again."""
        for question in self._questions:
            question.status = QuestionStatus.UNANSWERED

    def place_names(self) -> List[str]:
        return [q.place_name for q in self._questions]

    def _check_index(self, index: int) -> None:
        if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < len(self._questions):
            raise IndexOutOfRangeError(index, len(self._questions))

    def __len__(self) -> int:
        return len(self._questions)

    def __iter__(self) -> Iterator[Question]:
        return iter(list(self._questions))

    def __getitem__(self, index: int) -> Question:
        return self.get(index)

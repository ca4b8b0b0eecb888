"""
Question reads and mutations within a topic.

Reads
─────
get_questions               cached, tag "questions", long TTL
search_questions            cached, tags "questions" + "search", short TTL
search_questions_paginated  uncached, returns a SearchResult

Mutations
─────────
add_question / update_question raise NotFoundError, ValidationError or
DuplicateError. delete_question never raises; it reports the outcome as an
ActionState. Every successful mutation invalidates the "questions" tag, which
drops both cached reads for every topic.

Each mutation runs its whole read-modify-write inside with_retry, retrying
only on DatastoreError. There is no document lock: two concurrent adds of the
same text to one topic can both pass the duplicate check.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone
from uuid import uuid4

from config.settings import Settings
from qbank import query as query_engine
from qbank import store
from qbank.cache import ReadCache
from qbank.errors import DatastoreError, DuplicateError, NotFoundError, ValidationError
from qbank.models import (
    ALL_DIFFICULTIES,
    ActionState,
    Difficulty,
    Question,
    QuestionForm,
    QuestionPatch,
    SearchParams,
    SearchResult,
    Topic,
)
from qbank.retry import with_retry

logger = logging.getLogger(__name__)

QUESTIONS_TAG = "questions"
SEARCH_TAG = "search"

DUPLICATE_MESSAGE = "A question with this text already exists"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _normalise(text: str) -> str:
    return text.strip().lower()


def _parse_difficulty(value: str) -> Difficulty:
    try:
        return Difficulty(value)
    except ValueError:
        levels = ", ".join(d.value for d in Difficulty)
        raise ValidationError(f"Difficulty must be one of: {levels}") from None


def _is_duplicate(questions: list[Question], text: str, exclude_id: str | None = None) -> bool:
    wanted = _normalise(text)
    return any(
        q.id != exclude_id and _normalise(q.question) == wanted for q in questions
    )


class QuestionService:
    """Reads and validated mutations of the questions embedded in topics.

    Args:
        cache: Shared read cache; mutations invalidate its "questions" tag.
        settings: Retry, timeout and TTL configuration.
        sleep: Backoff wait function, replaceable in tests.
    """

    def __init__(
        self,
        cache: ReadCache,
        settings: Settings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.cache = cache
        self.settings = settings or Settings()
        self._sleep = sleep
        self._cached_questions = cache.cached(
            self._load_questions,
            ["questions"],
            tags={QUESTIONS_TAG},
            ttl_seconds=self.settings.questions_cache_ttl,
        )
        self._cached_search = cache.cached(
            self._load_search,
            ["question-search"],
            tags={QUESTIONS_TAG, SEARCH_TAG},
            ttl_seconds=self.settings.search_cache_ttl,
        )

    # ── Helpers ────────────────────────────────────────────────────────────

    def _retry(self, operation):
        return with_retry(
            operation,
            max_attempts=self.settings.retry_max_attempts,
            base_delay=self.settings.retry_base_delay,
            retry_on=(DatastoreError,),
            sleep=self._sleep,
        )

    def _find_topic(self, topic_id: str) -> Topic | None:
        return store.find_by_id(topic_id, timeout=self.settings.datastore_timeout)

    def _require_topic(self, topic_id: str) -> Topic:
        topic = self._find_topic(topic_id)
        if topic is None:
            raise NotFoundError("Topic not found")
        return topic

    def _save(self, topic: Topic) -> None:
        saved = store.update_by_id(topic.id, topic, timeout=self.settings.datastore_timeout)
        if saved is None:
            raise NotFoundError("Topic not found")

    # ── Reads ──────────────────────────────────────────────────────────────
    # A missing topic is cached as None so repeated lookups skip the datastore.

    def _load_questions(self, topic_id: str) -> list[Question] | None:
        topic = self._find_topic(topic_id)
        return list(topic.questions) if topic else None

    def _load_search(
        self, topic_id: str, query: str, difficulty: str, limit: int
    ) -> list[Question] | None:
        topic = self._find_topic(topic_id)
        if topic is None:
            return None
        return query_engine.search(topic.questions, query, difficulty, limit)

    def list_questions(self, topic_id: str) -> list[Question]:
        """Every question of a topic (cached).

        Raises:
            NotFoundError: The topic does not exist.
            DatastoreError: The topic could not be read.
        """
        questions = self._cached_questions(topic_id)
        if questions is None:
            raise NotFoundError("Topic not found")
        return questions

    def find_questions(
        self,
        topic_id: str,
        query: str = "",
        difficulty: str | Difficulty = ALL_DIFFICULTIES,
        limit: int = query_engine.DEFAULT_SEARCH_LIMIT,
    ) -> list[Question]:
        """Filtered, relevance-ranked questions of a topic (cached).

        Raises the same errors as :meth:`list_questions`.
        """
        level = getattr(difficulty, "value", difficulty)
        questions = self._cached_search(topic_id, query, level, limit)
        if questions is None:
            raise NotFoundError("Topic not found")
        return questions

    def get_questions(self, topic_id: str) -> list[Question]:
        """Return every question of a topic, or [] if it cannot be read."""
        try:
            return self.list_questions(topic_id)
        except NotFoundError:
            return []
        except Exception:
            logger.exception("Failed to get questions for topic=%s", topic_id)
            return []

    def search_questions(
        self,
        topic_id: str,
        query: str = "",
        difficulty: str | Difficulty = ALL_DIFFICULTIES,
        limit: int = query_engine.DEFAULT_SEARCH_LIMIT,
    ) -> list[Question]:
        """Like :meth:`find_questions`, but [] on a missing topic or failure."""
        try:
            return self.find_questions(topic_id, query, difficulty, limit)
        except NotFoundError:
            return []
        except Exception:
            logger.exception("Failed to search questions for topic=%s", topic_id)
            return []

    def search_questions_paginated(self, topic_id: str, params: SearchParams) -> SearchResult:
        """One page of filtered questions with total and has-more (uncached)."""
        try:
            topic = self._find_topic(topic_id)
        except Exception:
            logger.exception("Failed to search questions for topic=%s", topic_id)
            return SearchResult()
        if topic is None:
            return SearchResult()
        return query_engine.query(topic.questions, params)

    # ── Mutations ──────────────────────────────────────────────────────────

    def add_question(self, topic_id: str, form: QuestionForm) -> list[Question]:
        """Append a question to a topic and return its full question list.

        See :meth:`add_question_to_topic` for the errors raised.
        """
        return self.add_question_to_topic(topic_id, form).questions

    def add_question_to_topic(self, topic_id: str, form: QuestionForm) -> Topic:
        """Append a question to a topic.

        Args:
            topic_id: Owning topic.
            form: Question text, answer, difficulty and keywords.

        Returns:
            The updated topic document.

        Raises:
            NotFoundError: The topic does not exist.
            ValidationError: A required field is missing or blank, or the
                difficulty is not a known level.
            DuplicateError: The topic already has a question with the same
                trimmed, case-insensitive text.
        """

        def attempt() -> Topic:
            topic = self._require_topic(topic_id)
            if not (form.question or "").strip():
                raise ValidationError("Question text is required")
            if not (form.answer or "").strip():
                raise ValidationError("Answer text is required")
            if not form.difficulty:
                raise ValidationError("Difficulty level is required")
            difficulty = _parse_difficulty(form.difficulty)
            if _is_duplicate(topic.questions, form.question):
                raise DuplicateError(DUPLICATE_MESSAGE)

            now = _now()
            topic.questions.append(
                Question(
                    id=uuid4().hex,
                    question=form.question,
                    answer=form.answer,
                    difficulty=difficulty,
                    keywords=list(form.keywords),
                    created_at=now,
                    updated_at=now,
                )
            )
            topic.updated_at = now
            self._save(topic)
            return topic

        try:
            topic = self._retry(attempt)
        except Exception as exc:
            logger.warning("Failed to add question to topic=%s: %s", topic_id, exc)
            raise

        self.cache.invalidate(QUESTIONS_TAG)
        logger.info("Added question to topic=%s (%d total)", topic_id, len(topic.questions))
        return topic

    def update_question(
        self, topic_id: str, question_id: str, patch: QuestionPatch
    ) -> Question:
        """Merge *patch* into an existing question.

        Fields absent from the patch keep their stored value.

        Raises:
            NotFoundError: The topic or question does not exist.
            ValidationError: A provided question or answer is blank, or a
                provided difficulty is not a known level.
            DuplicateError: The new text collides with another question.
        """
        changes = patch.changes()

        def attempt() -> Question:
            topic = self._require_topic(topic_id)
            current = topic.find_question(question_id)
            if current is None:
                raise NotFoundError("Question not found")

            if "question" in changes and not changes["question"].strip():
                raise ValidationError("Question text cannot be empty")
            if "answer" in changes and not changes["answer"].strip():
                raise ValidationError("Answer text cannot be empty")
            if "difficulty" in changes:
                changes["difficulty"] = _parse_difficulty(changes["difficulty"])
            if (
                "question" in changes
                and changes["question"] != current.question
                and _is_duplicate(topic.questions, changes["question"], exclude_id=question_id)
            ):
                raise DuplicateError(DUPLICATE_MESSAGE)

            now = _now()
            updated = current.model_copy(update={**changes, "updated_at": now})
            topic.questions = [
                updated if q.id == question_id else q for q in topic.questions
            ]
            topic.updated_at = now
            self._save(topic)
            return updated

        try:
            question = self._retry(attempt)
        except Exception as exc:
            logger.warning(
                "Failed to update question=%s in topic=%s: %s", question_id, topic_id, exc
            )
            raise

        self.cache.invalidate(QUESTIONS_TAG)
        logger.info("Updated question=%s in topic=%s", question_id, topic_id)
        return question

    def delete_question(self, topic_id: str, question_id: str) -> ActionState:
        """Remove a question from a topic.

        Returns:
            ``ActionState(success=True)`` on success, otherwise
            ``success=False`` with the reason in ``error``. Never raises.
        """

        def attempt() -> ActionState:
            topic = self._find_topic(topic_id)
            if topic is None:
                return ActionState(success=False, error="Topic not found")
            if topic.find_question(question_id) is None:
                return ActionState(success=False, error="Question not found")
            topic.questions = [q for q in topic.questions if q.id != question_id]
            topic.updated_at = _now()
            self._save(topic)
            return ActionState(success=True)

        try:
            state = self._retry(attempt)
        except Exception as exc:
            logger.exception("Failed to delete question=%s in topic=%s", question_id, topic_id)
            return ActionState(success=False, error=str(exc) or "Failed to delete question")

        if state.success:
            self.cache.invalidate(QUESTIONS_TAG)
            logger.info("Deleted question=%s from topic=%s", question_id, topic_id)
        return state

"""
Optimistic question list for interactive clients.

A list view applies the user's change to what it displays before the server
answers, then either adopts the server's answer or rolls back.

States
──────
IDLE        displayed list == last confirmed list
OPTIMISTIC  one action applied locally, waiting for the server

  IDLE ──dispatch──▶ OPTIMISTIC ──confirm──▶ IDLE (server result shown)
                                └─reject───▶ IDLE (snapshot restored, error set)

Only one action may be in flight; dispatching from OPTIMISTIC raises.

An optimistic add shows a placeholder with a temporary id. The id is never
mapped to the server's id: confirming an add replaces the whole list with the
one the server returned.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from qbank import query as query_engine
from qbank.models import (
    ALL_DIFFICULTIES,
    ActionState,
    Difficulty,
    Question,
    QuestionForm,
    QuestionPatch,
    split_keywords,
)

logger = logging.getLogger(__name__)

#: Maximum number of questions shown while a search or filter is active.
FILTERED_VIEW_LIMIT = 100

MIN_QUESTION_LENGTH = 10
MIN_ANSWER_LENGTH = 5


# ── Form checks ────────────────────────────────────────────────────────────


def validate_question_form(
    question: str | None, answer: str | None, difficulty: str | None
) -> ActionState:
    """Check a question form before it is submitted.

    Stricter than the server: the question needs at least 10 characters and
    the answer at least 5, after trimming.
    """
    if not (question or "").strip():
        return ActionState(success=False, error="Question is required")
    if not (answer or "").strip():
        return ActionState(success=False, error="Answer is required")
    if not difficulty:
        return ActionState(success=False, error="Difficulty is required")
    if len(question.strip()) < MIN_QUESTION_LENGTH:
        return ActionState(
            success=False,
            error=f"Question must be at least {MIN_QUESTION_LENGTH} characters long",
        )
    if len(answer.strip()) < MIN_ANSWER_LENGTH:
        return ActionState(
            success=False,
            error=f"Answer must be at least {MIN_ANSWER_LENGTH} characters long",
        )
    return ActionState(success=True)


def parse_keywords(text: str) -> list[str]:
    """Turn the comma-separated keywords field into a list."""
    return split_keywords(text or "")


# ── Actions ────────────────────────────────────────────────────────────────


class ListState(str, Enum):
    IDLE = "idle"
    OPTIMISTIC = "optimistic"


class ActionKind(str, Enum):
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class OptimisticAction:
    """A user change to apply locally ahead of the server."""

    kind: ActionKind
    question_id: str | None = None
    form: QuestionForm | None = None
    patch: QuestionPatch | None = None

    @classmethod
    def add(cls, form: QuestionForm) -> OptimisticAction:
        return cls(kind=ActionKind.ADD, form=form)

    @classmethod
    def update(cls, question_id: str, patch: QuestionPatch) -> OptimisticAction:
        return cls(kind=ActionKind.UPDATE, question_id=question_id, patch=patch)

    @classmethod
    def delete(cls, question_id: str) -> OptimisticAction:
        return cls(kind=ActionKind.DELETE, question_id=question_id)


def _temporary_id() -> str:
    return "tmp-" + secrets.token_hex(5)


def _difficulty(value: str | None) -> Difficulty:
    if not value:
        raise ValueError("Difficulty is required")
    try:
        return Difficulty(value)
    except ValueError:
        levels = ", ".join(d.value for d in Difficulty)
        raise ValueError(f"Difficulty must be one of: {levels}") from None


def _placeholder(form: QuestionForm) -> Question:
    now = datetime.now(timezone.utc)
    return Question(
        id=_temporary_id(),
        question=form.question or "",
        answer=form.answer or "",
        difficulty=_difficulty(form.difficulty),
        keywords=list(form.keywords),
        created_at=now,
        updated_at=now,
    )


def _merge(question: Question, patch: QuestionPatch) -> Question:
    changes = patch.changes()
    if "difficulty" in changes:
        changes["difficulty"] = _difficulty(changes["difficulty"])
    return question.model_copy(update=changes)


# ── List state machine ─────────────────────────────────────────────────────


class OptimisticQuestionList:
    """Displayed question list with optimistic mutations and rollback."""

    def __init__(
        self,
        questions: list[Question],
        query: str = "",
        difficulty: str = ALL_DIFFICULTIES,
    ) -> None:
        self.confirmed: list[Question] = list(questions)
        self.displayed: list[Question] = list(questions)
        self.query = query
        self.difficulty = difficulty
        self.state = ListState.IDLE
        self.error: str | None = None
        self._snapshot: list[Question] | None = None
        self._pending: OptimisticAction | None = None

    @property
    def has_active_filters(self) -> bool:
        return bool(self.query.strip()) or self.difficulty != ALL_DIFFICULTIES

    @property
    def visible(self) -> list[Question]:
        """What the view shows: the displayed list, filtered if a search is active."""
        if not self.has_active_filters:
            return list(self.displayed)
        return query_engine.search(
            self.displayed, self.query, self.difficulty, FILTERED_VIEW_LIMIT
        )

    def set_filters(self, query: str = "", difficulty: str = ALL_DIFFICULTIES) -> None:
        self.query = query
        self.difficulty = difficulty

    def dispatch(self, action: OptimisticAction) -> None:
        """Apply *action* locally and wait for the server's verdict.

        Raises:
            RuntimeError: Another action is still pending.
            ValueError: The action cannot be shown locally (missing or
                unknown difficulty). The list is left untouched.
        """
        if self.state is ListState.OPTIMISTIC:
            raise RuntimeError("Another optimistic action is still pending")

        if action.kind is ActionKind.ADD:
            displayed = [_placeholder(action.form), *self.displayed]
        elif action.kind is ActionKind.UPDATE:
            displayed = [
                _merge(q, action.patch) if q.id == action.question_id else q
                for q in self.displayed
            ]
        else:
            displayed = [q for q in self.displayed if q.id != action.question_id]

        self._snapshot = list(self.confirmed)
        self._pending = action
        self.error = None
        self.displayed = displayed
        self.state = ListState.OPTIMISTIC

    def confirm(self, result: Any = None) -> None:
        """Adopt the server's result for the pending action.

        Args:
            result: The full question list for an add, the updated question
                for an update; ignored for a delete.
        """
        action = self._require_pending()
        if action.kind is ActionKind.ADD:
            self.confirmed = list(result)
        elif action.kind is ActionKind.UPDATE:
            self.confirmed = [result if q.id == result.id else q for q in self.confirmed]
        else:
            self.confirmed = [q for q in self.confirmed if q.id != action.question_id]
        self._settle()

    def reject(self, error: str) -> None:
        """Roll back to the list as it was before the pending action."""
        action = self._require_pending()
        self.confirmed = list(self._snapshot)
        self.error = error
        logger.info("Rolled back optimistic %s: %s", action.kind.value, error)
        self._settle()

    def run(self, action: OptimisticAction, server_call: Callable[[], Any]) -> bool:
        """Dispatch *action*, call the server, and confirm or roll back.

        Returns:
            True if the server accepted the change.
        """
        try:
            self.dispatch(action)
        except ValueError as exc:
            # Nothing was applied, so there is nothing to roll back.
            self.error = str(exc)
            logger.info("Refused optimistic %s: %s", action.kind.value, exc)
            return False

        if action.kind is ActionKind.ADD:
            text = (action.form.question or "").lower()
            if any(q.question.lower() == text for q in self.confirmed):
                self.reject("A question with this text already exists")
                return False

        try:
            result = server_call()
        except Exception as exc:
            self.reject(str(exc) or f"Failed to {action.kind.value} question")
            return False

        if isinstance(result, ActionState) and not result.success:
            self.reject(result.error or f"Failed to {action.kind.value} question")
            return False

        self.confirm(result)
        return True

    def _require_pending(self) -> OptimisticAction:
        if self.state is not ListState.OPTIMISTIC or self._pending is None:
            raise RuntimeError("No optimistic action is pending")
        return self._pending

    def _settle(self) -> None:
        self.displayed = list(self.confirmed)
        self._snapshot = None
        self._pending = None
        self.state = ListState.IDLE

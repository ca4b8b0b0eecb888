"""
Pydantic models shared across the question bank.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class Difficulty(str, Enum):
    """Difficulty level of a single question."""

    EASY = "easy"
    MODERATE = "moderate"
    HARD = "hard"


#: Difficulty filter value meaning "do not filter".
ALL_DIFFICULTIES = "all"


def split_keywords(text: str) -> list[str]:
    """Split a comma-separated keyword field, dropping blank entries."""
    return [part.strip() for part in text.split(",") if part.strip()]


class Question(BaseModel):
    """A question embedded in exactly one Topic."""

    id: str
    question: str
    answer: str
    difficulty: Difficulty
    keywords: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None


class Topic(BaseModel):
    """A named collection of questions, persisted as one document."""

    id: str
    name: str
    questions: list[Question] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def find_question(self, question_id: str) -> Question | None:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None


class QuestionForm(BaseModel):
    """Payload for adding a question. Missing fields are left as None so the
    mutation service can report which one is absent."""

    question: str | None = None
    answer: str | None = None
    difficulty: str | None = None
    keywords: list[str] = Field(default_factory=list)

    @field_validator("keywords", mode="before")
    @classmethod
    def _split_keyword_text(cls, value):
        if value is None:
            return []
        return split_keywords(value) if isinstance(value, str) else value


class QuestionPatch(BaseModel):
    """Partial update of a question.

    A field that is absent or null leaves the stored value unchanged; any
    other value overwrites it.
    """

    question: str | None = None
    answer: str | None = None
    difficulty: str | None = None
    keywords: list[str] | None = None

    @field_validator("keywords", mode="before")
    @classmethod
    def _split_keyword_text(cls, value):
        return split_keywords(value) if isinstance(value, str) else value

    def changes(self) -> dict:
        """Return only the fields that should overwrite the stored question."""
        return self.model_dump(exclude_none=True)


class SearchParams(BaseModel):
    """Filter, search and pagination parameters for a question listing.

    ``difficulty`` is a free string: values other than the known levels are
    treated as ``"all"`` by the query engine.
    """

    query: str = ""
    difficulty: str = ALL_DIFFICULTIES
    limit: int = 20
    offset: int = 0


class SearchResult(BaseModel):
    """One page of a filtered question listing."""

    items: list[Question] = Field(default_factory=list)
    total: int = 0
    has_more: bool = False


class ActionState(BaseModel):
    """Outcome of an operation that reports failure instead of raising."""

    success: bool
    error: str | None = None

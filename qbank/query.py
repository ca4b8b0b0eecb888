"""Filtering, relevance ranking and pagination over a topic's questions.

Everything here is pure: the functions take the full in-memory question list
and never touch the datastore or the cache.

Matching is case-insensitive substring containment of the trimmed query in
the question text, the answer text, or any keyword. Relevance ranking is a
stable sort: question-text matches first, then answer-text matches, and
equal-rank questions keep their input order (``search``) or are ordered
newest first (``query``).
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from qbank.models import ALL_DIFFICULTIES, Difficulty, Question, SearchParams, SearchResult

_LEVELS: frozenset[str] = frozenset(d.value for d in Difficulty)

#: Default page size for the non-paginated search.
DEFAULT_SEARCH_LIMIT = 50


def _level(difficulty: str | Difficulty | None) -> str:
    value = getattr(difficulty, "value", difficulty)
    return value if value in _LEVELS else ALL_DIFFICULTIES


def _matches(question: Question, term: str) -> bool:
    return (
        term in question.question.lower()
        or term in question.answer.lower()
        or any(term in keyword.lower() for keyword in question.keywords)
    )


def _relevance(question: Question, term: str) -> tuple[bool, bool]:
    # False sorts first, so matches lead.
    return (
        term not in question.question.lower(),
        term not in question.answer.lower(),
    )


def _created(question: Question) -> float:
    return question.created_at.timestamp() if question.created_at else 0.0


def filter_questions(
    questions: Iterable[Question],
    query: str = "",
    difficulty: str | Difficulty = ALL_DIFFICULTIES,
) -> list[Question]:
    """Apply the difficulty and text filters, preserving input order.

    An unrecognised difficulty is treated as ``"all"``.
    """
    result = list(questions)
    level = _level(difficulty)
    if level != ALL_DIFFICULTIES:
        result = [q for q in result if _level(q.difficulty) == level]

    term = query.strip().lower()
    if term:
        result = [q for q in result if _matches(q, term)]
    return result


def search(
    questions: Sequence[Question],
    query: str = "",
    difficulty: str | Difficulty = ALL_DIFFICULTIES,
    limit: int = DEFAULT_SEARCH_LIMIT,
) -> list[Question]:
    """Filter and rank *questions*, returning at most *limit* of them.

    Ties in relevance keep their order from *questions*.
    """
    filtered = filter_questions(questions, query, difficulty)
    term = query.strip().lower()
    if term:
        filtered.sort(key=lambda q: _relevance(q, term))
    return filtered[:limit] if limit > 0 else []


def query(questions: Sequence[Question], params: SearchParams) -> SearchResult:
    """Filter, rank and paginate *questions*.

    Relevance ties (and every question when the query is empty) are ordered
    by descending creation time; questions without one sort as oldest.

    Args:
        questions: The topic's full question list.
        params: Search text, difficulty filter, page size and offset.

    Returns:
        A SearchResult whose ``total`` counts every filtered question and
        whose ``items`` is the ``[offset, offset + limit)`` slice.
    """
    filtered = filter_questions(questions, params.query, params.difficulty)
    term = params.query.strip().lower()
    if term:
        filtered.sort(key=lambda q: (*_relevance(q, term), -_created(q)))
    else:
        filtered.sort(key=lambda q: -_created(q))

    total = len(filtered)
    offset = max(0, params.offset)
    limit = params.limit
    items = filtered[offset:offset + limit] if limit > 0 else []
    return SearchResult(items=items, total=total, has_more=offset + limit < total)

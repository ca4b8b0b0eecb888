"""
SQLite-backed topic document store.

Each topic is stored as one JSON document that embeds its questions, so a
question never exists outside its topic and deleting a topic removes its
questions with it.

Schema
──────
table: topics
  id         TEXT PRIMARY KEY
  name       TEXT NOT NULL
  created_at TEXT NOT NULL  (ISO-8601 UTC)
  document   TEXT NOT NULL  (Topic serialised as JSON)
"""

from __future__ import annotations

import logging
import os
import re
import sqlite3
from contextlib import contextmanager
from pathlib import Path

from qbank.errors import DatastoreTimeout, DatastoreUnavailable
from qbank.models import Topic

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path(__file__).parent.parent / "data" / "questions.db"

#: Seconds to wait on a locked database before giving up.
DEFAULT_TIMEOUT = 5.0


def _db_path() -> Path:
    """Return the database file path, honouring a DB_PATH env var if set."""
    env = os.getenv("DB_PATH")
    return Path(env) if env else DEFAULT_DB_PATH


def _regexp(pattern: str, value: str | None) -> bool:
    return value is not None and re.search(pattern, value, re.IGNORECASE) is not None


def _translate(exc: sqlite3.OperationalError) -> Exception:
    message = str(exc)
    if "locked" in message or "busy" in message:
        return DatastoreTimeout(message)
    return DatastoreUnavailable(message)


@contextmanager
def _connect(timeout: float = DEFAULT_TIMEOUT):
    """Yield a connected sqlite3.Connection, creating the file/dir if needed.

    SQLite operational failures are re-raised as DatastoreTimeout or
    DatastoreUnavailable.
    """
    path = _db_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(path), timeout=timeout)
    except (OSError, sqlite3.OperationalError) as exc:
        raise DatastoreUnavailable(str(exc)) from exc
    conn.row_factory = sqlite3.Row
    conn.create_function("REGEXP", 2, _regexp)
    try:
        yield conn
        conn.commit()
    except sqlite3.OperationalError as exc:
        conn.rollback()
        raise _translate(exc) from exc
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _from_row(row: sqlite3.Row) -> Topic:
    return Topic.model_validate_json(row["document"])


def init_db() -> None:
    """Create the topics table if it doesn't exist yet."""
    with _connect() as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS topics (
                id         TEXT PRIMARY KEY,
                name       TEXT NOT NULL,
                created_at TEXT NOT NULL,
                document   TEXT NOT NULL
            )
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_topics_name ON topics (name)")
    logger.info("Topic store initialised at %s", _db_path())


def find_by_id(topic_id: str, timeout: float = DEFAULT_TIMEOUT) -> Topic | None:
    """Fetch a single topic document.

    Args:
        topic_id: The topic id to look up.
        timeout: Seconds to wait on a locked database.

    Returns:
        The Topic, or None if not found.
    """
    with _connect(timeout) as conn:
        row = conn.execute(
            "SELECT document FROM topics WHERE id = ?", (topic_id,)
        ).fetchone()
    return _from_row(row) if row is not None else None


def _collect(rows: list[sqlite3.Row]) -> list[Topic]:
    topics: list[Topic] = []
    for row in rows:
        try:
            topics.append(_from_row(row))
        except Exception as exc:
            logger.warning("Skipping corrupt topic document id=%s: %s", row["id"], exc)
    return topics


def find_all(timeout: float = DEFAULT_TIMEOUT) -> list[Topic]:
    """Return every topic, oldest first."""
    with _connect(timeout) as conn:
        rows = conn.execute(
            "SELECT id, document FROM topics ORDER BY created_at, rowid"
        ).fetchall()
    return _collect(rows)


def find_by_name_filter(pattern: str, timeout: float = DEFAULT_TIMEOUT) -> list[Topic]:
    """Return topics whose name matches the regular expression *pattern*.

    Matching is case-insensitive and unanchored.
    """
    with _connect(timeout) as conn:
        rows = conn.execute(
            "SELECT id, document FROM topics WHERE name REGEXP ? "
            "ORDER BY created_at, rowid",
            (pattern,),
        ).fetchall()
    return _collect(rows)


def find_by_name(name: str, timeout: float = DEFAULT_TIMEOUT) -> Topic | None:
    """Return the topic with exactly this name, if any."""
    with _connect(timeout) as conn:
        row = conn.execute(
            "SELECT document FROM topics WHERE name = ? LIMIT 1", (name,)
        ).fetchone()
    return _from_row(row) if row is not None else None


def create(topic: Topic, timeout: float = DEFAULT_TIMEOUT) -> Topic:
    """Insert a new topic document and return it."""
    with _connect(timeout) as conn:
        conn.execute(
            "INSERT INTO topics (id, name, created_at, document) VALUES (?, ?, ?, ?)",
            (
                topic.id,
                topic.name,
                topic.created_at.isoformat() if topic.created_at else "",
                topic.model_dump_json(),
            ),
        )
    logger.info("Created topic id=%s name=%r", topic.id, topic.name)
    return topic


def update_by_id(topic_id: str, topic: Topic, timeout: float = DEFAULT_TIMEOUT) -> Topic | None:
    """Replace the stored document for *topic_id*.

    Returns:
        The stored Topic, or None if no topic has that id.
    """
    with _connect(timeout) as conn:
        cursor = conn.execute(
            "UPDATE topics SET name = ?, document = ? WHERE id = ?",
            (topic.name, topic.model_dump_json(), topic_id),
        )
    if cursor.rowcount == 0:
        return None
    return topic


def delete_by_id(topic_id: str, timeout: float = DEFAULT_TIMEOUT) -> bool:
    """Delete a topic and every question it holds.

    Returns:
        True if a row was deleted, False if not found.
    """
    with _connect(timeout) as conn:
        cursor = conn.execute("DELETE FROM topics WHERE id = ?", (topic_id,))
    deleted = cursor.rowcount > 0
    if deleted:
        logger.info("Deleted topic id=%s", topic_id)
    return deleted

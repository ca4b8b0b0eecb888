"""Topic listing, lookup, creation, renaming, deletion and name search."""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable
from datetime import datetime, timezone
from uuid import uuid4

from config.settings import Settings
from qbank import store
from qbank.cache import ReadCache
from qbank.errors import DatastoreError, DuplicateError, NotFoundError, ValidationError
from qbank.models import Topic
from qbank.questions import QUESTIONS_TAG
from qbank.retry import with_retry

logger = logging.getLogger(__name__)

UNIQUE_NAME_MESSAGE = "Topic name must be unique"


class TopicService:
    """CRUD over topic documents. Names are unique (exact match)."""

    def __init__(
        self,
        cache: ReadCache,
        settings: Settings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.cache = cache
        self.settings = settings or Settings()
        self._sleep = sleep

    def _retry(self, operation):
        return with_retry(
            operation,
            max_attempts=self.settings.retry_max_attempts,
            base_delay=self.settings.retry_base_delay,
            retry_on=(DatastoreError,),
            sleep=self._sleep,
        )

    @staticmethod
    def _clean_name(name: str | None) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Topic name is required")
        return name

    def list_topics(self) -> list[Topic]:
        timeout = self.settings.datastore_timeout
        return self._retry(lambda: store.find_all(timeout=timeout))

    def get_topic(self, topic_id: str) -> Topic:
        timeout = self.settings.datastore_timeout
        topic = self._retry(lambda: store.find_by_id(topic_id, timeout=timeout))
        if topic is None:
            raise NotFoundError("Topic not found")
        return topic

    def create_topic(self, name: str) -> Topic:
        """Create an empty topic.

        Raises:
            ValidationError: The name is blank.
            DuplicateError: Another topic already has this name.
        """
        name = self._clean_name(name)
        timeout = self.settings.datastore_timeout

        def attempt() -> Topic:
            if store.find_by_name(name, timeout=timeout) is not None:
                raise DuplicateError(UNIQUE_NAME_MESSAGE)
            now = datetime.now(timezone.utc)
            topic = Topic(id=uuid4().hex, name=name, questions=[], created_at=now, updated_at=now)
            return store.create(topic, timeout=timeout)

        return self._retry(attempt)

    def rename_topic(self, topic_id: str, name: str) -> Topic:
        """Give an existing topic a new, unique name."""
        name = self._clean_name(name)
        timeout = self.settings.datastore_timeout

        def attempt() -> Topic:
            clash = store.find_by_name(name, timeout=timeout)
            if clash is not None and clash.id != topic_id:
                raise DuplicateError(UNIQUE_NAME_MESSAGE)
            topic = store.find_by_id(topic_id, timeout=timeout)
            if topic is None:
                raise NotFoundError("Topic not found")
            topic.name = name
            topic.updated_at = datetime.now(timezone.utc)
            if store.update_by_id(topic_id, topic, timeout=timeout) is None:
                raise NotFoundError("Topic not found")
            return topic

        topic = self._retry(attempt)
        logger.info("Renamed topic id=%s to %r", topic_id, name)
        return topic

    def delete_topic(self, topic_id: str) -> None:
        """Delete a topic together with all of its questions."""
        timeout = self.settings.datastore_timeout
        if not self._retry(lambda: store.delete_by_id(topic_id, timeout=timeout)):
            raise NotFoundError("Topic not found")
        self.cache.invalidate(QUESTIONS_TAG)

    def search_topics(self, query: str) -> list[Topic]:
        """Topics whose name contains *query*, ignoring case.

        An empty query lists every topic. Failures are logged and yield [].
        """
        query = (query or "").strip()
        timeout = self.settings.datastore_timeout
        try:
            if not query:
                return self._retry(lambda: store.find_all(timeout=timeout))
            logger.info("Searching topics for %r", query)
            pattern = re.escape(query)
            return self._retry(lambda: store.find_by_name_filter(pattern, timeout=timeout))
        except Exception:
            logger.exception("Error searching topics for %r", query)
            return []

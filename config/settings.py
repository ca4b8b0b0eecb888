"""Question bank settings, read from environment variables.

Usage:
    from config.settings import Settings
    settings = Settings()
    settings.validate()   # raises ValueError on nonsensical values
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field


@dataclass
class Settings:
    """Centralised application configuration.

    All values are read from environment variables at instantiation time
    so tests can override them with ``monkeypatch.setenv``.
    """

    # ── Datastore ───────────────────────────────────────────────────────────
    # The database file location is read from DB_PATH by qbank.store itself.
    #: Seconds a single datastore call may wait on a locked database.
    datastore_timeout: float = field(
        default_factory=lambda: float(os.environ.get("DATASTORE_TIMEOUT", "5"))
    )

    # ── Flask ───────────────────────────────────────────────────────────────
    debug: bool = field(
        default_factory=lambda: os.environ.get("FLASK_DEBUG", "0") == "1"
    )
    port: int = field(
        default_factory=lambda: int(os.environ.get("PORT", "5001"))
    )

    # ── Retry ───────────────────────────────────────────────────────────────
    retry_max_attempts: int = field(
        default_factory=lambda: int(os.environ.get("RETRY_MAX_ATTEMPTS", "3"))
    )
    #: Base delay in seconds; the wait after failed attempt ``n`` is ``base * 2**(n - 1)``.
    retry_base_delay: float = field(
        default_factory=lambda: float(os.environ.get("RETRY_BASE_DELAY", "1.0"))
    )

    # ── Cache ───────────────────────────────────────────────────────────────
    questions_cache_ttl: int = field(
        default_factory=lambda: int(os.environ.get("QUESTIONS_CACHE_TTL", "3600"))
    )
    search_cache_ttl: int = field(
        default_factory=lambda: int(os.environ.get("SEARCH_CACHE_TTL", "300"))
    )

    def validate(self) -> None:
        """Raise ``ValueError`` if any setting is out of range."""
        if self.retry_max_attempts < 1:
            raise ValueError("RETRY_MAX_ATTEMPTS must be at least 1.")
        if self.retry_base_delay < 0:
            raise ValueError("RETRY_BASE_DELAY must not be negative.")
        if self.datastore_timeout <= 0:
            raise ValueError("DATASTORE_TIMEOUT must be positive.")
        if self.questions_cache_ttl < 0 or self.search_cache_ttl < 0:
            raise ValueError("Cache TTLs must not be negative.")

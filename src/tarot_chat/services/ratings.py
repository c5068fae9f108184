"""Rating finalizer: completes a session exactly once."""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol
from uuid import UUID

from tarot_chat.domain.errors import (
    AlreadyCompletedError,
    InvalidRatingError,
    NotFoundError,
)
from tarot_chat.domain.models import ProviderRecord
from tarot_chat.services.sessions import SessionLifecycleManager

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


class RatingRepository(Protocol):
    """Persistence interface for the atomic completion unit."""

    def finalize_rating(
        self,
        session_id: UUID,
        provider_id: UUID,
        value: int,
        completed_at: datetime,
    ) -> ProviderRecord | None:
        """Complete the session and fold the rating into provider stats.

        Returns the updated provider, or None when the session was already
        completed and nothing changed.
        """


@dataclass
class RatingFinalizer:
    """Validates ratings and applies them atomically per provider."""

    lifecycle: SessionLifecycleManager
    repository: RatingRepository
    _locks: dict[UUID, threading.Lock] = field(default_factory=dict, repr=False)
    _locks_guard: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def submit(
        self, session_id: UUID, provider_id: UUID, value: object
    ) -> ProviderRecord:
        """Apply a 1..5 rating and complete the session."""
        rating = _validate_rating(value)
        session = self.lifecycle.ensure_completable(session_id)
        if session.provider_id != provider_id:
            raise NotFoundError("Session not found for this provider")

        with self._lock_for(provider_id):
            provider = self.repository.finalize_rating(
                session_id=session_id,
                provider_id=provider_id,
                value=rating,
                completed_at=self.lifecycle.now(),
            )
        if provider is None:
            raise AlreadyCompletedError()
        logger.info(
            "Session rated",
            extra={
                "session_id": str(session_id),
                "provider_id": str(provider_id),
                "rating": rating,
            },
        )
        return provider

    def _lock_for(self, provider_id: UUID) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(provider_id)
            if lock is None:
                lock = self._locks[provider_id] = threading.Lock()
            return lock


def _validate_rating(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise InvalidRatingError()
    if isinstance(value, float) and not value.is_integer():
        raise InvalidRatingError()
    rating = int(value)
    if not MIN_RATING <= rating <= MAX_RATING:
        raise InvalidRatingError()
    return rating


def fold_rating(
    rating: float, total_ratings: int, value: int
) -> tuple[float, int]:
    """Return the new running average and count after adding one rating."""
    count = total_ratings + 1
    return (rating * total_ratings + value) / count, count

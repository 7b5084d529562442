"""Attempt limiter for guest selfie matching."""

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from guest_access.domain.guests import RateLimitResult, RateLimitWindow

logger = logging.getLogger(__name__)


class RateLimitRepository(Protocol):
    """Persistence interface for attempt windows."""

    def get_window(
        self, gallery_id: str, guest_session_id: str
    ) -> RateLimitWindow | None:
        """Return the attempt window for a guest session, if present."""

    def create_window(
        self, gallery_id: str, guest_session_id: str, window_start: datetime
    ) -> RateLimitWindow | None:
        """Insert a window with one attempt; None if one already exists."""

    def reset_window(
        self, window_id: str, expected_window_start: datetime, window_start: datetime
    ) -> bool:
        """Restart a window at one attempt if it still has the expected start."""

    def increment_attempts(self, window_id: str, max_attempts: int) -> int | None:
        """Atomically add one attempt below the cap and return the new count."""

    def delete_for_gallery(self, gallery_id: str) -> None:
        """Delete every window of a gallery."""


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class AttemptLimiter:
    """Bounds matching attempts per guest session within a fixed window.

    An expired window is reset in full, so a guest gets a fresh budget of
    ``max_attempts`` as soon as the window ends.
    """

    repository: RateLimitRepository
    max_attempts: int = 10
    window_seconds: int = 3600
    clock: Callable[[], datetime] = field(default=_utcnow)

    def check(self, gallery_id: str, guest_session_id: str) -> RateLimitResult:
        """Record an attempt and return whether it is allowed."""
        now = self.clock()
        window = self.repository.get_window(gallery_id, guest_session_id)

        if window is None:
            created = self.repository.create_window(gallery_id, guest_session_id, now)
            if created is not None:
                return self._fresh_window()
            window = self.repository.get_window(gallery_id, guest_session_id)
            if window is None:
                return self._unavailable()

        age_seconds = (now - window.window_start).total_seconds()
        if age_seconds > self.window_seconds:
            if self.repository.reset_window(window.id, window.window_start, now):
                return self._fresh_window()
            window = self.repository.get_window(gallery_id, guest_session_id)
            if window is None:
                return self._unavailable()
            age_seconds = max((now - window.window_start).total_seconds(), 0.0)

        reset_in = math.ceil(self.window_seconds - age_seconds)
        if window.attempt_count >= self.max_attempts:
            return self._denied(reset_in)

        count = self.repository.increment_attempts(window.id, self.max_attempts)
        if count is None:
            return self._denied(reset_in)
        return RateLimitResult(
            allowed=True,
            remaining=max(self.max_attempts - count, 0),
            reset_in_seconds=reset_in,
        )

    def clear_for_gallery(self, gallery_id: str) -> None:
        """Delete all attempt windows of a gallery."""
        self.repository.delete_for_gallery(gallery_id)

    def _fresh_window(self) -> RateLimitResult:
        return RateLimitResult(
            allowed=True,
            remaining=self.max_attempts - 1,
            reset_in_seconds=self.window_seconds,
        )

    def _denied(self, reset_in: int) -> RateLimitResult:
        minutes = math.ceil(reset_in / 60)
        return RateLimitResult(
            allowed=False,
            remaining=0,
            reset_in_seconds=reset_in,
            error=f"Rate limit exceeded. Try again in {minutes} minutes.",
        )

    def _unavailable(self) -> RateLimitResult:
        logger.warning("Attempt window could not be read after a concurrent write")
        return RateLimitResult(
            allowed=False,
            remaining=0,
            reset_in_seconds=self.window_seconds,
            error="Rate limit state unavailable. Try again later.",
        )

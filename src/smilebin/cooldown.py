"""Backs off from the annotation store after a network failure."""

import logging
import time
from collections.abc import Callable

LOG = logging.getLogger(__name__)

RETRY_INTERVAL_SECONDS = 180.0


class NetworkCooldown:
    """
    Remembers when the store last failed at the network level.

    While the cooldown is active, callers pass `active()` as the skip flag
    to fetches so no subprocesses are spawned for a store that is down.
    """

    def __init__(
        self,
        retry_interval: float = RETRY_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.retry_interval = retry_interval
        self._clock = clock
        self.next_retry_at: float | None = None

    def record_failure(self) -> None:
        self.next_retry_at = self._clock() + self.retry_interval
        LOG.warning(
            "Annotation store unreachable; pausing fetches for %.0f seconds",
            self.retry_interval,
        )

    def reset(self) -> None:
        self.next_retry_at = None

    def active(self) -> bool:
        if self.next_retry_at is None:
            return False
        return self._clock() < self.next_retry_at

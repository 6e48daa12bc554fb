"""
Status cache — time-bounded cache of the aggregate host status.

Detection shells out dozens of times, so repeated status requests within
the TTL return the same snapshot. Every mutating operation calls
``invalidate()`` on success; a value computed before an invalidation is
never returned after it.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from hostforge.core.models.status import HostStatus

logger = logging.getLogger(__name__)

DEFAULT_TTL = 5.0


class StatusCache:
    """Cache a ``HostStatus`` for ``ttl`` seconds.

    Args:
        compute: Builds a fresh snapshot (runs the detectors).
        ttl: Maximum age in seconds of a returned snapshot.
        clock: Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        compute: Callable[[], HostStatus],
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._compute = compute
        self.ttl = ttl
        self._clock = clock
        self._value: HostStatus | None = None
        self._stamp = 0.0
        self._generation = 0

    def get(self, force_refresh: bool = False) -> HostStatus:
        now = self._clock()
        if (
            not force_refresh
            and self._value is not None
            and now - self._stamp < self.ttl
        ):
            return self._value

        generation = self._generation
        value = self._compute()
        # Only keep the result if nothing invalidated the cache meanwhile
        if generation == self._generation:
            self._value = value
            self._stamp = now
        logger.debug("Status recomputed (forced=%s)", force_refresh)
        return value

    def invalidate(self) -> None:
        self._value = None
        self._stamp = 0.0
        self._generation += 1

    @property
    def cached(self) -> bool:
        return self._value is not None

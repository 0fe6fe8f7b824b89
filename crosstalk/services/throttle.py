"""
crosstalk.services.throttle — Per-user relay cooldown
======================================================

A user may feed the relay at most once per ``cooldown`` seconds.  Anything
faster is dropped silently; there is no queue, since a delayed chat
message is worse than a missing one.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


class RelayCooldown:
    """Fixed per-user cooldown keyed by user id.

    - ``cooldown <= 0`` disables the check.
    - Expired stamps are pruned once the table passes ``prune_threshold``.
    """

    def __init__(
        self,
        cooldown: float = 3,
        *,
        clock: Callable[[], float] = time.time,
        prune_threshold: int = 1024,
    ) -> None:
        self.cooldown = cooldown
        self._clock = clock
        self._prune_threshold = prune_threshold
        self._last: dict[int, float] = {}

    def is_allowed(self, user_id: int) -> bool:
        """Return True and start a new window, or False if still cooling down."""
        if self.cooldown <= 0:
            return True
        now = self._clock()
        last = self._last.get(user_id)
        if last is not None and now - last < self.cooldown:
            return False
        self._last[user_id] = now
        if len(self._last) > self._prune_threshold:
            self._prune(now)
        return True

    def _prune(self, now: float) -> None:
        cutoff = now - self.cooldown
        before = len(self._last)
        self._last = {uid: t for uid, t in self._last.items() if t > cutoff}
        logger.debug("Pruned %d expired cooldown stamps", before - len(self._last))

    def reset(self, user_id: int | None = None) -> None:
        if user_id is None:
            self._last.clear()
        else:
            self._last.pop(user_id, None)

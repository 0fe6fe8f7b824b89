"""
crosstalk.engine.mapping — Source ↔ Relayed Message Map
========================================================

Tracks, for every relayed message, which copy landed in which channel:

* forward:  ``source id → {target channel id → relayed id}``
* reverse:  ``relayed id → source id``
* origin:   ``source id → source channel id``

Replies, reactions and deletes resolve through these maps.  Entries are
opened as soon as a relay starts and filled in as each target send
completes, so a forward entry may be partially populated for a moment.

The store is bounded.  When it grows past ``capacity`` the oldest entries
are dropped (with their reverse entries) until ``capacity - capacity // 5``
remain.  Very old messages therefore stop mirroring replies, reactions and
deletes; that trade-off bounds memory under sustained traffic.
"""

from __future__ import annotations

import logging
from collections import OrderedDict

logger = logging.getLogger(__name__)


class MessageMappingStore:
    """Bounded, insertion-ordered mapping of relayed messages."""

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._forward: OrderedDict[int, dict[int, int]] = OrderedDict()
        self._reverse: dict[int, int] = {}
        self._origin: dict[int, int] = {}

    def __len__(self) -> int:
        return len(self._forward)

    def __contains__(self, source_id: int) -> bool:
        return source_id in self._forward

    @property
    def low_watermark(self) -> int:
        return self.capacity - self.capacity // 5

    # -----------------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------------
    def open(self, source_id: int, source_channel_id: int) -> None:
        """Start tracking *source_id*; evicts the oldest entries when full."""
        self._forward[source_id] = {}
        self._forward.move_to_end(source_id)
        self._origin[source_id] = source_channel_id
        if len(self._forward) > self.capacity:
            self._evict()

    def record(self, source_id: int, target_channel_id: int, relayed_id: int) -> bool:
        """Attach one delivered copy.  Returns False if the source is gone.

        A send that completes after its entry was purged or evicted is
        dropped so no orphan reverse entry is left behind.
        """
        targets = self._forward.get(source_id)
        if targets is None:
            return False
        if target_channel_id == self._origin.get(source_id):
            raise ValueError("a relayed copy cannot live in the source channel")
        targets[target_channel_id] = relayed_id
        self._reverse[relayed_id] = source_id
        return True

    def purge(self, source_id: int) -> None:
        """Forget *source_id* and every copy of it."""
        targets = self._forward.pop(source_id, None) or {}
        for relayed_id in targets.values():
            self._reverse.pop(relayed_id, None)
        self._origin.pop(source_id, None)

    def _evict(self) -> None:
        target = self.low_watermark
        evicted = 0
        while len(self._forward) > target:
            source_id, targets = self._forward.popitem(last=False)
            for relayed_id in targets.values():
                self._reverse.pop(relayed_id, None)
            self._origin.pop(source_id, None)
            evicted += 1
        logger.debug("Evicted %d oldest message mappings", evicted)

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------
    def resolve(self, message_id: int) -> tuple[int, bool] | None:
        """Map any tracked id to ``(source id, message_id is the source)``."""
        if message_id in self._forward:
            return message_id, True
        source_id = self._reverse.get(message_id)
        if source_id is not None:
            return source_id, False
        return None

    def is_tracked(self, message_id: int) -> bool:
        return message_id in self._forward or message_id in self._reverse

    def targets(self, source_id: int) -> dict[int, int]:
        """Snapshot of ``target channel → relayed id`` for *source_id*."""
        return dict(self._forward.get(source_id, {}))

    def source_channel(self, source_id: int) -> int | None:
        return self._origin.get(source_id)

    def copy_in(self, source_id: int, channel_id: int) -> int | None:
        """The relayed copy of *source_id* in *channel_id*, if one exists."""
        return self._forward.get(source_id, {}).get(channel_id)

    def source_ids(self) -> list[int]:
        """Tracked source ids, oldest first."""
        return list(self._forward)

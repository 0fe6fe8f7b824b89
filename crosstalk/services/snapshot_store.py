"""
crosstalk.services.snapshot_store — Registry Snapshot Persistence
==================================================================

The registry persists the complete set of global channels after every
mutation.  Each room is one ``global_channels`` row whose ``payload`` is
``GlobalChannel.to_dict()``; a save upserts every room and deletes rows
for rooms that no longer exist, all in one transaction.

:class:`SqlSnapshotStore` adapts the two functions to the registry's
``load()`` / ``save()`` collaborator shape.  :class:`MemorySnapshotStore`
keeps serialized dicts in memory for tests and throwaway runs.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy import Engine, delete, select

from crosstalk.database.engine import get_session
from crosstalk.database.models import GlobalChannelRow
from crosstalk.engine.channels import GlobalChannel

logger = logging.getLogger(__name__)


def load_snapshot(engine: Engine) -> dict[str, GlobalChannel]:
    """Read every stored room.  Rows that fail to parse are skipped and logged."""
    channels: dict[str, GlobalChannel] = {}
    with get_session(engine) as session:
        for row in session.scalars(select(GlobalChannelRow)):
            try:
                gc = GlobalChannel.from_dict(row.payload)
            except (KeyError, TypeError, ValueError):
                logger.exception("Skipping unreadable global channel row %s", row.id)
                continue
            channels[gc.id] = gc
    return channels


def save_snapshot(engine: Engine, channels: Mapping[str, GlobalChannel]) -> None:
    """Replace the stored snapshot with *channels*."""
    with get_session(engine) as session:
        for gc in channels.values():
            session.merge(GlobalChannelRow(id=gc.id, payload=gc.to_dict()))
        stale = delete(GlobalChannelRow)
        if channels:
            stale = stale.where(GlobalChannelRow.id.not_in(list(channels)))
        session.execute(stale)
    logger.debug("Saved %d global channels", len(channels))


class SqlSnapshotStore:
    """Registry store backed by the ``global_channels`` table."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def load(self) -> dict[str, GlobalChannel]:
        return load_snapshot(self.engine)

    def save(self, channels: Mapping[str, GlobalChannel]) -> None:
        save_snapshot(self.engine, channels)


class MemorySnapshotStore:
    """In-process store.  Round-trips through ``to_dict`` like the SQL one."""

    def __init__(self, initial: Mapping[str, GlobalChannel] | None = None) -> None:
        self.data: dict[str, dict[str, Any]] = {
            gid: gc.to_dict() for gid, gc in (initial or {}).items()
        }
        self.saves = 0

    def load(self) -> dict[str, GlobalChannel]:
        return {gid: GlobalChannel.from_dict(copy.deepcopy(d)) for gid, d in self.data.items()}

    def save(self, channels: Mapping[str, GlobalChannel]) -> None:
        self.data = {gid: gc.to_dict() for gid, gc in channels.items()}
        self.saves += 1

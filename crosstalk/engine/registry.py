"""
crosstalk.engine.registry — Channel Registry
=============================================

Durable record of every global channel, its tenant links and its
moderation state, plus the reverse index ``tenant channel id → global id``
that the relay path consults on every inbound message.

Every mutating operation runs under one lock, keeps the forward link map
and the reverse index in step, and persists the full snapshot through the
injected store before returning.  If the save fails, the in-memory change
is rolled back and :class:`~crosstalk.engine.errors.PersistenceFailure`
is raised, so memory never runs ahead of the stored snapshot.

Threading:
    Mutations may run on a worker thread (``run_db``) while the event loop
    relays messages.  Readers below take the same lock and return copies,
    so the loop never iterates a dict a worker is changing.
"""

from __future__ import annotations

import dataclasses
import logging
import secrets
import threading
import time
from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any, Protocol

from crosstalk import constants
from crosstalk.engine.channels import ChannelRef, GlobalChannel, Visibility
from crosstalk.engine.errors import (
    AlreadyLinked,
    Banned,
    ChannelInUse,
    KeyMismatch,
    NotFound,
    PersistenceFailure,
)

logger = logging.getLogger(__name__)

_MSG_NOT_FOUND = "Global chat channel not found."
_MSG_NOT_LINKED = "That server is not linked to this channel."
_MSG_SAVE_FAILED = "Could not save the change. Nothing was modified; please try again."


class SnapshotStore(Protocol):
    """Persistence collaborator: whole-registry load and save."""

    def load(self) -> dict[str, GlobalChannel]:
        ...

    def save(self, channels: Mapping[str, GlobalChannel]) -> None:
        ...


def generate_key() -> str:
    """Random 6-character alphanumeric join key."""
    return "".join(
        secrets.choice(constants.JOIN_KEY_ALPHABET)
        for _ in range(constants.JOIN_KEY_LENGTH)
    )


def _restore(gc: GlobalChannel, snapshot: dict[str, Any]) -> None:
    """Put *gc* back to *snapshot* in place, keeping object identity."""
    restored = GlobalChannel.from_dict(snapshot)
    for f in dataclasses.fields(gc):
        setattr(gc, f.name, getattr(restored, f.name))


class ChannelRegistry:
    """All global channels, keyed by id, with a reverse link index.

    Parameters
    ----------
    store:
        Snapshot persistence; loaded once on construction.
    clock:
        Epoch-seconds source used for mute expiry.
    """

    def __init__(self, store: SnapshotStore, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._clock = clock
        self._lock = threading.RLock()
        self._channels: dict[str, GlobalChannel] = {}
        self._reverse: dict[int, str] = {}
        self._invalidation_listeners: list[Callable[[int], None]] = []
        self.reload()

    # -----------------------------------------------------------------------
    # Loading / persistence
    # -----------------------------------------------------------------------
    def reload(self) -> None:
        """Replace in-memory state with the stored snapshot."""
        data = self._store.load()
        with self._lock:
            self._channels = dict(data)
            self._rebuild_reverse_index()
        logger.info("Loaded %d global chat channels", len(self._channels))

    def _rebuild_reverse_index(self) -> None:
        self._reverse = {}
        for gc in self._channels.values():
            for channel_id in gc.linked_channels.values():
                self._reverse[channel_id] = gc.id

    @contextmanager
    def _transaction(self, gc: GlobalChannel | None = None) -> Iterator[None]:
        """Apply the enclosed mutation and save it, or undo it.

        Must be entered with ``self._lock`` held.  *gc* is the channel the
        block mutates in place; additions and removals of whole channels
        are covered by the copy of the channel map.
        """
        channels = dict(self._channels)
        reverse = dict(self._reverse)
        before = gc.to_dict() if gc is not None else None
        try:
            yield
            self._store.save(self._channels)
        except Exception as exc:
            self._channels = channels
            self._reverse = reverse
            if gc is not None and before is not None:
                _restore(gc, before)
            logger.exception("Registry save failed; change rolled back")
            raise PersistenceFailure(_MSG_SAVE_FAILED) from exc

    def add_invalidation_listener(self, listener: Callable[[int], None]) -> None:
        """Call *listener(channel_id)* whenever a tenant channel loses its link."""
        self._invalidation_listeners.append(listener)

    def _drop_link(self, gc: GlobalChannel, tenant_id: int) -> int | None:
        channel_id = gc.linked_channels.pop(tenant_id, None)
        if channel_id is not None:
            self._reverse.pop(channel_id, None)
            for listener in self._invalidation_listeners:
                listener(channel_id)
        return channel_id

    # -----------------------------------------------------------------------
    # Lookups
    # -----------------------------------------------------------------------
    def get(self, global_id: str) -> GlobalChannel | None:
        with self._lock:
            return self._channels.get(global_id)

    def require(self, global_id: str) -> GlobalChannel:
        with self._lock:
            gc = self._channels.get(global_id)
        if gc is None:
            raise NotFound(_MSG_NOT_FOUND)
        return gc

    def channel_for(self, channel_id: int) -> GlobalChannel | None:
        """Global channel that *channel_id* is linked into, if any."""
        with self._lock:
            global_id = self._reverse.get(channel_id)
            return self._channels.get(global_id) if global_id else None

    def tenant_for(self, gc: GlobalChannel, channel_id: int) -> int | None:
        with self._lock:
            return gc.tenant_for_channel(channel_id)

    def refs(self, gc: GlobalChannel) -> list[ChannelRef]:
        """Snapshot of every channel linked into *gc*."""
        with self._lock:
            return gc.refs()

    def ref_for(self, gc: GlobalChannel, channel_id: int) -> ChannelRef | None:
        tenant_id = self.tenant_for(gc, channel_id)
        return ChannelRef(tenant_id, channel_id) if tenant_id is not None else None

    def linked_ref(self, global_id: str, tenant_id: int) -> ChannelRef | None:
        with self._lock:
            gc = self.require(global_id)
            channel_id = gc.linked_channels.get(tenant_id)
        return ChannelRef(tenant_id, channel_id) if channel_id is not None else None

    def is_muted(self, gc: GlobalChannel, tenant_id: int) -> bool:
        """True while *tenant_id* is muted; expired mutes are dropped lazily."""
        with self._lock:
            until = gc.muted_tenants.get(tenant_id)
            if until is None:
                return False
            if until <= 0:
                return True
            if self._clock() >= until:
                gc.muted_tenants.pop(tenant_id, None)
                return False
            return True

    def channels_for_user(self, user_id: int) -> list[GlobalChannel]:
        with self._lock:
            return [gc for gc in self._channels.values() if gc.has_manage_access(user_id)]

    def public_channels(self) -> list[GlobalChannel]:
        with self._lock:
            return [gc for gc in self._channels.values() if gc.visibility is Visibility.PUBLIC]

    def reverse_index(self) -> dict[int, str]:
        """Copy of ``tenant channel id → global id``."""
        with self._lock:
            return dict(self._reverse)

    def __len__(self) -> int:
        return len(self._channels)

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------
    def _generate_id(self) -> str:
        while True:
            suffix = "".join(
                secrets.choice(constants.GLOBAL_ID_ALPHABET)
                for _ in range(constants.GLOBAL_ID_LENGTH)
            )
            candidate = constants.GLOBAL_ID_PREFIX + suffix
            if candidate not in self._channels:
                return candidate

    def create(
        self,
        name: str,
        description: str,
        visibility: Visibility | str,
        key_required: bool,
        key: str | None,
        owner_id: int,
        *,
        message_prefix: str | None = None,
        message_suffix: str | None = None,
    ) -> GlobalChannel:
        """Create and persist a new global channel.

        A key-protected room with no key supplied gets a generated one.
        """
        if key_required and not key:
            key = generate_key()
        parsed = Visibility.parse(visibility)
        with self._lock:
            gc = GlobalChannel(
                id=self._generate_id(),
                name=name,
                description=description,
                owner_id=owner_id,
                visibility=parsed,
                key_required=key_required,
                key=key if key_required else None,
                message_prefix=_optional_template(message_prefix),
                message_suffix=_optional_template(message_suffix),
                created_at=self._clock(),
            )
            with self._transaction():
                self._channels[gc.id] = gc
        logger.info("Created global channel %s (%s) for owner %d", gc.id, name, owner_id)
        return gc

    def delete(self, global_id: str) -> GlobalChannel:
        """Remove a channel, its reverse-index entries and cached identities."""
        with self._lock:
            gc = self.require(global_id)
            with self._transaction(gc):
                for tenant_id in list(gc.linked_channels):
                    self._drop_link(gc, tenant_id)
                del self._channels[global_id]
        logger.info("Deleted global channel %s", global_id)
        return gc

    def edit(
        self,
        global_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
        visibility: Visibility | str | None = None,
        key: str | None = None,
        message_prefix: str | None = None,
        message_suffix: str | None = None,
    ) -> GlobalChannel:
        """Update the given fields.

        For templates, ``"reset"`` restores the default and ``"{}"`` blanks it.
        """
        parsed = Visibility.parse(visibility) if visibility else None
        with self._lock:
            gc = self.require(global_id)
            with self._transaction(gc):
                if name:
                    gc.name = name
                if description is not None:
                    gc.description = description
                if parsed is not None:
                    gc.visibility = parsed
                if key:
                    gc.key = key
                    gc.key_required = True
                if message_prefix is not None:
                    gc.message_prefix = _optional_template(message_prefix)
                if message_suffix is not None:
                    gc.message_suffix = _optional_template(message_suffix)
        return gc

    # -----------------------------------------------------------------------
    # Linking
    # -----------------------------------------------------------------------
    def link(
        self,
        global_id: str,
        tenant_id: int,
        channel_id: int,
        provided_key: str | None = None,
    ) -> GlobalChannel:
        """Link a tenant's text channel into a global channel."""
        with self._lock:
            gc = self.require(global_id)
            if tenant_id in gc.banned_tenants:
                raise Banned("This server is banned from this global chat channel.")
            if gc.is_linked(tenant_id):
                raise AlreadyLinked("This server already has a channel linked to this global chat.")
            if gc.key_required and (not provided_key or provided_key != gc.key):
                raise KeyMismatch("Invalid or missing key for this global chat channel.")
            if channel_id in self._reverse:
                raise ChannelInUse("This text channel is already linked to another global chat channel.")

            with self._transaction(gc):
                gc.linked_channels[tenant_id] = channel_id
                gc.kicked_tenants.discard(tenant_id)
                self._reverse[channel_id] = global_id
        logger.info("Linked channel %d (tenant %d) into %s", channel_id, tenant_id, global_id)
        return gc

    def unlink(self, tenant_id: int, channel_id: int) -> None:
        """Tenant-initiated unlink of its own channel."""
        with self._lock:
            global_id = self._reverse.get(channel_id)
            if global_id is None:
                raise NotFound("This channel is not linked to any global chat channel.")
            gc = self._channels.get(global_id)
            if gc is None:
                self._reverse.pop(channel_id, None)
                raise NotFound("Global chat channel data not found. Link removed.")
            if gc.linked_channels.get(tenant_id) != channel_id:
                raise NotFound("This channel is not linked by this server.")
            with self._transaction(gc):
                self._drop_link(gc, tenant_id)

    def unlink_tenant(self, global_id: str, tenant_id: int) -> None:
        """Owner-initiated removal of any tenant's link."""
        with self._lock:
            gc = self.require(global_id)
            if not gc.is_linked(tenant_id):
                raise NotFound(_MSG_NOT_LINKED)
            with self._transaction(gc):
                self._drop_link(gc, tenant_id)

    # -----------------------------------------------------------------------
    # Moderation state
    # -----------------------------------------------------------------------
    def ban(self, global_id: str, tenant_id: int) -> int | None:
        """Ban a tenant (linked or not); returns the channel id it lost, if any."""
        with self._lock:
            gc = self.require(global_id)
            with self._transaction(gc):
                gc.banned_tenants.add(tenant_id)
                channel_id = self._drop_link(gc, tenant_id)
        return channel_id

    def unban(self, global_id: str, tenant_id: int) -> None:
        with self._lock:
            gc = self.require(global_id)
            if tenant_id not in gc.banned_tenants:
                raise NotFound("That server is not banned.")
            with self._transaction(gc):
                gc.banned_tenants.discard(tenant_id)

    def kick(self, global_id: str, tenant_id: int) -> int:
        """Unlink a tenant; unlike a ban it may link again later."""
        with self._lock:
            gc = self.require(global_id)
            if not gc.is_linked(tenant_id):
                raise NotFound(_MSG_NOT_LINKED)
            with self._transaction(gc):
                gc.kicked_tenants.add(tenant_id)
                channel_id = self._drop_link(gc, tenant_id)
        return channel_id

    def mute(self, global_id: str, tenant_id: int, duration_seconds: float) -> float:
        """Mute for *duration_seconds*; ``<= 0`` mutes permanently.

        Returns the stored expiry (``0`` for permanent).
        """
        with self._lock:
            gc = self.require(global_id)
            if not gc.is_linked(tenant_id):
                raise NotFound(_MSG_NOT_LINKED)
            until = 0.0 if duration_seconds <= 0 else self._clock() + duration_seconds
            with self._transaction(gc):
                gc.muted_tenants[tenant_id] = until
        return until

    def unmute(self, global_id: str, tenant_id: int) -> None:
        with self._lock:
            gc = self.require(global_id)
            with self._transaction(gc):
                gc.muted_tenants.pop(tenant_id, None)

    def warn(self, global_id: str, tenant_id: int, reason: str | None) -> list[str]:
        with self._lock:
            gc = self.require(global_id)
            if not gc.is_linked(tenant_id):
                raise NotFound(_MSG_NOT_LINKED)
            with self._transaction(gc):
                reasons = gc.warnings.setdefault(tenant_id, [])
                reasons.append(reason or constants.NO_REASON)
            return list(reasons)

    def unwarn(self, global_id: str, tenant_id: int) -> None:
        with self._lock:
            gc = self.require(global_id)
            with self._transaction(gc):
                gc.warnings.pop(tenant_id, None)

    # -----------------------------------------------------------------------
    # Rules and staff
    # -----------------------------------------------------------------------
    def set_rules(self, global_id: str, rules: Iterable[str]) -> GlobalChannel:
        cleaned = [r.strip() for r in rules if r and r.strip()]
        with self._lock:
            gc = self.require(global_id)
            with self._transaction(gc):
                gc.rules = cleaned
        return gc

    def add_co_owner(self, global_id: str, user_id: int) -> None:
        self._mutate_staff(global_id, lambda gc: gc.co_owner_ids.add(user_id))

    def remove_co_owner(self, global_id: str, user_id: int) -> None:
        self._mutate_staff(global_id, lambda gc: gc.co_owner_ids.discard(user_id))

    def add_moderator(self, global_id: str, user_id: int) -> None:
        self._mutate_staff(global_id, lambda gc: gc.moderator_ids.add(user_id))

    def remove_moderator(self, global_id: str, user_id: int) -> None:
        self._mutate_staff(global_id, lambda gc: gc.moderator_ids.discard(user_id))

    def _mutate_staff(self, global_id: str, change: Callable[[GlobalChannel], None]) -> None:
        with self._lock:
            gc = self.require(global_id)
            with self._transaction(gc):
                change(gc)


def _optional_template(raw: str | None) -> str | None:
    if raw is None or raw.strip().lower() == constants.TEMPLATE_RESET:
        return None
    if raw.strip() == constants.TEMPLATE_BLANK:
        return ""
    return raw

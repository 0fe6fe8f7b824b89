"""
crosstalk.engine.relay — Fan-Out, Cascade Delete and Reaction Mirror
=====================================================================

**Why this file exists:**
This is the core of Crosstalk.  One :class:`RelayService` instance owns
the mutable relay state (mapping store, webhook cache, delete-suppression
set) and exposes the three entry points the bot's listeners call:

1. :meth:`RelayService.relay` — a message was posted in a linked channel.
2. :meth:`RelayService.handle_delete` — a message was deleted.
3. :meth:`RelayService.relay_reaction` — a reaction was added.

Each entry point does its bookkeeping synchronously, then spawns one
independent task per target channel.  Targets never wait on each other,
and one failing target (missing permissions, deleted webhook, outage)
is logged and isolated.  Nothing on these paths raises to the caller.

Loop prevention for deletes:
    Every id the cascade is about to delete is put in a suppression set
    *before* any delete is issued.  The platform's own delete
    notifications for those ids are ignored by :meth:`handle_delete`,
    and each id leaves the set as soon as its delete completes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from dataclasses import dataclass
from typing import Any

from crosstalk import constants
from crosstalk.config import CrosstalkConfig
from crosstalk.engine.channels import ChannelRef, GlobalChannel
from crosstalk.engine.errors import ErrorKind
from crosstalk.engine.formatting import build_reply_quote, jump_link, resolve_display_name
from crosstalk.engine.mapping import MessageMappingStore
from crosstalk.engine.platform import ChatPlatform
from crosstalk.engine.presenter import IdentityPresenter
from crosstalk.engine.registry import ChannelRegistry

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Inbound envelopes
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RelayAuthor:
    """Who wrote the message, as the templates need it."""

    name: str                        # effective (server) name → {user}
    username: str | None = None      # account name → {username}
    display_name: str | None = None  # global display name → {displayname}
    pronouns: str | None = None
    avatar_url: str | None = None


@dataclass(frozen=True, slots=True)
class ReplyContext:
    """The message being replied to."""

    author: str
    content: str
    message_id: int | None = None


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------
class RelayService:
    """Owns all relay state; one instance per bot."""

    def __init__(
        self,
        registry: ChannelRegistry,
        platform: ChatPlatform,
        *,
        mapping: MessageMappingStore | None = None,
        presenter: IdentityPresenter | None = None,
        display_name_limit: int = constants.DISPLAY_NAME_LIMIT,
        reply_preview_length: int = constants.REPLY_PREVIEW_LENGTH,
    ) -> None:
        self.registry = registry
        self.platform = platform
        self.mapping = mapping or MessageMappingStore(constants.MAPPING_CAPACITY)
        self.presenter = presenter or IdentityPresenter(platform)
        self.display_name_limit = display_name_limit
        self.reply_preview_length = reply_preview_length
        self._pending_deletes: set[int] = set()
        self._tasks: set[asyncio.Task] = set()

        # Unlinked or deleted channels must not keep a cached webhook.
        registry.add_invalidation_listener(self.presenter.invalidate)

    @classmethod
    def from_config(
        cls, registry: ChannelRegistry, platform: ChatPlatform, cfg: CrosstalkConfig
    ) -> RelayService:
        return cls(
            registry,
            platform,
            mapping=MessageMappingStore(cfg.mapping_capacity),
            presenter=IdentityPresenter(
                platform,
                webhook_name=cfg.webhook_name,
                warning_cooldown=cfg.permission_warning_cooldown_seconds,
            ),
            display_name_limit=cfg.display_name_limit,
            reply_preview_length=cfg.reply_preview_length,
        )

    # -----------------------------------------------------------------------
    # Task bookkeeping
    # -----------------------------------------------------------------------
    def _spawn(self, coro: Coroutine[Any, Any, None], what: str) -> None:
        task = asyncio.get_running_loop().create_task(self._guarded(coro, what))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @staticmethod
    async def _guarded(coro: Coroutine[Any, Any, None], what: str) -> None:
        try:
            await coro
        except Exception:
            logger.exception("Unhandled error during %s", what)

    async def wait_idle(self) -> None:
        """Wait until every spawned per-target task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def pending_deletes(self) -> frozenset[int]:
        return frozenset(self._pending_deletes)

    def is_delete_pending(self, message_id: int) -> bool:
        return message_id in self._pending_deletes

    def _linked_ref(self, gc: GlobalChannel, channel_id: int) -> ChannelRef | None:
        ref = self.registry.ref_for(gc, channel_id)
        if ref is None or not self.platform.channel_exists(ref):
            return None
        return ref

    # -----------------------------------------------------------------------
    # Relay
    # -----------------------------------------------------------------------
    def relay(
        self,
        source_channel_id: int,
        author: RelayAuthor,
        content: str,
        reply: ReplyContext | None = None,
        source_message_id: int | None = None,
    ) -> int:
        """Fan *content* out to every other linked channel.

        Must be called from the event loop.  Returns the number of targets
        a delivery task was started for.
        """
        gc = self.registry.channel_for(source_channel_id)
        if gc is None:
            return 0

        source_tenant = self.registry.tenant_for(gc, source_channel_id)
        if source_tenant is not None and self.registry.is_muted(gc, source_tenant):
            logger.debug(
                "Relay from channel %d dropped (%s): tenant %d is muted",
                source_channel_id, ErrorKind.SILENT_DROP, source_tenant,
            )
            return 0

        tenant_name = (
            self.platform.resolve_tenant_display_name(source_tenant)
            if source_tenant is not None else None
        )
        username = resolve_display_name(
            author=author.name,
            tenant_name=tenant_name,
            username=author.username,
            display_name=author.display_name,
            pronouns=author.pronouns,
            prefix_template=gc.message_prefix,
            suffix_template=gc.message_suffix,
            limit=self.display_name_limit,
        )

        # Open the entry now so reactions/deletes that race the sends resolve.
        if source_message_id is not None:
            self.mapping.open(source_message_id, source_channel_id)

        reply_source_id: int | None = None
        if reply is not None and reply.message_id is not None:
            resolved = self.mapping.resolve(reply.message_id)
            if resolved is not None:
                reply_source_id = resolved[0]

        dispatched = 0
        for ref in self.registry.refs(gc):
            if ref.channel_id == source_channel_id:
                continue
            if self.registry.is_muted(gc, ref.tenant_id):
                continue
            if not self.platform.channel_exists(ref):
                continue
            self._spawn(
                self._deliver(
                    ref, content, username, author.avatar_url,
                    reply, reply_source_id, source_message_id,
                ),
                f"relay to channel {ref.channel_id}",
            )
            dispatched += 1
        return dispatched

    def _content_for(
        self,
        ref: ChannelRef,
        body: str,
        reply: ReplyContext | None,
        reply_source_id: int | None,
    ) -> str:
        if reply is None:
            return body
        target_msg: int | None = None
        if reply_source_id is not None:
            target_msg = self.mapping.copy_in(reply_source_id, ref.channel_id)
            if target_msg is None and self.mapping.source_channel(reply_source_id) == ref.channel_id:
                target_msg = reply_source_id
        link = jump_link(ref.tenant_id, ref.channel_id, target_msg) if target_msg else None
        return build_reply_quote(
            body,
            reply_author=reply.author,
            reply_content=reply.content,
            link=link,
            preview_length=self.reply_preview_length,
        )

    async def _deliver(
        self,
        ref: ChannelRef,
        body: str,
        username: str,
        avatar_url: str | None,
        reply: ReplyContext | None,
        reply_source_id: int | None,
        source_message_id: int | None,
    ) -> None:
        identity = await self.presenter.get_or_create(ref)
        if identity is None:
            return
        content = self._content_for(ref, body, reply, reply_source_id)
        try:
            relayed_id = await self.platform.send_as(
                identity, ref, content, username=username, avatar_url=avatar_url,
            )
        except Exception as exc:
            logger.warning("Failed to relay message to %d: %s", ref.channel_id, exc)
            # Stale webhook; the next message recreates it.
            self.presenter.invalidate(ref.channel_id)
            return
        if source_message_id is not None:
            self.mapping.record(source_message_id, ref.channel_id, relayed_id)

    # -----------------------------------------------------------------------
    # Deletes
    # -----------------------------------------------------------------------
    def handle_delete(self, message_id: int, channel_id: int) -> int:
        """Gateway delete hook: ignores our own deletes and untracked ids."""
        if message_id in self._pending_deletes:
            return 0
        if not self.mapping.is_tracked(message_id):
            return 0
        return self.cascade_delete(message_id, channel_id)

    def cascade_delete(self, deleted_message_id: int, deleted_in_channel_id: int) -> int:
        """Delete every other copy of a relayed message, and its source.

        Returns the number of delete attempts started.
        """
        resolved = self.mapping.resolve(deleted_message_id)
        if resolved is None:
            return 0
        source_id, deleted_was_source = resolved
        targets = self.mapping.targets(source_id)
        source_channel_id = self.mapping.source_channel(source_id)

        gc = self.registry.channel_for(deleted_in_channel_id)
        if gc is None:
            return 0

        doomed = {mid for ch, mid in targets.items() if ch != deleted_in_channel_id}
        delete_source = (
            not deleted_was_source
            and source_channel_id is not None
            and source_channel_id != deleted_in_channel_id
        )
        if delete_source:
            doomed.add(source_id)
        self._pending_deletes.update(doomed)

        attempts = 0
        for channel_id, relayed_id in targets.items():
            if channel_id == deleted_in_channel_id:
                continue
            ref = self._linked_ref(gc, channel_id)
            if ref is None:
                self._pending_deletes.discard(relayed_id)
                continue
            self._spawn(
                self._delete_copy(ref, relayed_id),
                f"delete of relayed message {relayed_id}",
            )
            attempts += 1

        if delete_source:
            ref = self._linked_ref(gc, source_channel_id)
            if ref is None:
                self._pending_deletes.discard(source_id)
            else:
                self._spawn(
                    self._delete_source(ref, source_id),
                    f"delete of source message {source_id}",
                )
                attempts += 1

        self.mapping.purge(source_id)
        return attempts

    async def _delete_copy(self, ref: ChannelRef, relayed_id: int) -> None:
        try:
            # Webhooks delete their own messages; no Manage Messages needed.
            identity = await self.presenter.get_or_create(ref)
            if identity is None:
                return
            await self.platform.delete_message_as(identity, ref, relayed_id)
            logger.debug("Deleted relayed message %d in channel %d", relayed_id, ref.channel_id)
        except Exception as exc:
            logger.warning(
                "Failed to delete relayed message %d in %d: %s",
                relayed_id, ref.channel_id, exc,
            )
        finally:
            self._pending_deletes.discard(relayed_id)

    async def _delete_source(self, ref: ChannelRef, source_id: int) -> None:
        try:
            await self.platform.delete_message(ref, source_id)
            logger.debug("Deleted source message %d in channel %d", source_id, ref.channel_id)
        except Exception as exc:
            logger.warning("Failed to delete source message %d: %s", source_id, exc)
        finally:
            self._pending_deletes.discard(source_id)

    # -----------------------------------------------------------------------
    # Reactions
    # -----------------------------------------------------------------------
    def relay_reaction(self, message_id: int, channel_id: int, emoji: str) -> int:
        """Mirror a reaction onto the source and every other copy.

        Best-effort; returns the number of reaction attempts started.
        """
        resolved = self.mapping.resolve(message_id)
        if resolved is None:
            return 0
        source_id, _ = resolved
        targets = self.mapping.targets(source_id)

        gc = self.registry.channel_for(channel_id)
        if gc is None:
            return 0

        attempts = 0
        source_channel_id = self.mapping.source_channel(source_id)
        if source_channel_id is not None and source_channel_id != channel_id:
            ref = self._linked_ref(gc, source_channel_id)
            if ref is not None:
                self._spawn(
                    self._react_source(ref, source_id, emoji),
                    f"reaction on source message {source_id}",
                )
                attempts += 1

        for target_channel_id, relayed_id in targets.items():
            if target_channel_id == channel_id:
                continue
            ref = self._linked_ref(gc, target_channel_id)
            if ref is None:
                continue
            self._spawn(
                self._react_copy(ref, relayed_id, emoji),
                f"reaction on relayed message {relayed_id}",
            )
            attempts += 1
        return attempts

    async def _react_source(self, ref: ChannelRef, message_id: int, emoji: str) -> None:
        try:
            await self.platform.add_reaction(ref, message_id, emoji)
        except Exception as exc:
            logger.debug("Reaction on %d in %d failed: %s", message_id, ref.channel_id, exc)

    async def _react_copy(self, ref: ChannelRef, message_id: int, emoji: str) -> None:
        try:
            identity = await self.presenter.get_or_create(ref)
            if identity is None:
                return
            await self.platform.add_reaction_as(identity, ref, message_id, emoji)
        except Exception as exc:
            logger.debug("Reaction on %d in %d failed: %s", message_id, ref.channel_id, exc)

"""
crosstalk.engine.presenter — Presentation Identity (Webhook) Cache
===================================================================

The relay posts into each tenant channel through a webhook so messages
show the original author's name and avatar.  This module owns the
``channel id → webhook`` cache.

Cache states per channel:

* absent          — not yet created; the next request preflights and creates.
* ``DENIED``      — the last preflight failed.  Requests re-run the
  (local, cheap) permission check, so granting permissions recovers on
  the next message without a restart.
* a handle        — ready to use.

Missing permissions never reach the platform call.  Instead one warning
per channel per cooldown window is posted in-channel (when the bot can at
least send there) or DM'd to the tenant's administrator.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Final

from crosstalk import constants
from crosstalk.engine.channels import ChannelRef
from crosstalk.engine.errors import WebhookFailure
from crosstalk.engine.platform import Capability, ChatPlatform, Identity

logger = logging.getLogger(__name__)

REQUIRED_CAPABILITIES: Final = (Capability.MANAGE_IDENTITIES, Capability.VIEW_CHANNEL)

_WARNING_TITLE = "Global Chat — Missing Permissions"


class _Denied:
    """Sentinel: permission preflight failed for this channel."""

    def __repr__(self) -> str:
        return "DENIED"


DENIED: Final = _Denied()


class IdentityPresenter:
    """Get-or-create webhooks per tenant channel with permission preflight."""

    def __init__(
        self,
        platform: ChatPlatform,
        *,
        webhook_name: str = constants.WEBHOOK_NAME,
        warning_cooldown: float = constants.PERMISSION_WARNING_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._platform = platform
        self._webhook_name = webhook_name
        self._warning_cooldown = warning_cooldown
        self._clock = clock
        self._cache: dict[int, Identity | _Denied] = {}
        self._inflight: dict[int, asyncio.Task] = {}
        self._warned_at: dict[int, float] = {}

    def state(self, channel_id: int) -> str:
        """``"missing"``, ``"denied"`` or ``"ready"`` — for diagnostics."""
        entry = self._cache.get(channel_id)
        if entry is None:
            return "missing"
        return "denied" if entry is DENIED else "ready"

    def invalidate(self, channel_id: int) -> None:
        """Forget the cached webhook so the next request rebuilds it.

        A creation still in flight for *channel_id* finishes for its current
        callers but does not cache its result.
        """
        self._cache.pop(channel_id, None)
        self._inflight.pop(channel_id, None)
        self._warned_at.pop(channel_id, None)

    async def get_or_create(self, ref: ChannelRef) -> Identity | None:
        """Return a usable identity for *ref*, or ``None`` to drop silently."""
        cached = self._cache.get(ref.channel_id)
        if cached is not None and cached is not DENIED:
            return cached

        missing = [
            cap for cap in REQUIRED_CAPABILITIES
            if not self._platform.has_capability(ref, cap)
        ]
        if missing:
            self._cache[ref.channel_id] = DENIED
            await self._warn_missing(ref, missing)
            return None

        task = self._inflight.get(ref.channel_id)
        if task is None:
            task = asyncio.ensure_future(self._create(ref))
            self._inflight[ref.channel_id] = task
            task.add_done_callback(
                lambda t, channel_id=ref.channel_id: self._forget_inflight(channel_id, t)
            )
        try:
            return await asyncio.shield(task)
        except WebhookFailure as exc:
            logger.error("%s", exc)
            return None

    def _forget_inflight(self, channel_id: int, task: asyncio.Task) -> None:
        if self._inflight.get(channel_id) is task:
            del self._inflight[channel_id]

    async def _create(self, ref: ChannelRef) -> Identity:
        task = asyncio.current_task()
        try:
            identity = await self._platform.get_or_create_identity(ref, self._webhook_name)
        except Exception as exc:
            self._cache.pop(ref.channel_id, None)
            raise WebhookFailure(
                f"Failed to get/create webhook for channel {ref.channel_id}: {exc}"
            ) from exc
        if self._inflight.get(ref.channel_id) is task:
            self._cache[ref.channel_id] = identity
        else:
            logger.debug("Channel %d was invalidated during webhook creation", ref.channel_id)
        return identity

    # -----------------------------------------------------------------------
    # Rate-limited permission warning
    # -----------------------------------------------------------------------
    async def _warn_missing(self, ref: ChannelRef, missing: list[Capability]) -> None:
        names = ", ".join(str(cap) for cap in missing)
        logger.warning(
            "Missing permissions [%s] in channel %d (tenant %d)",
            names, ref.channel_id, ref.tenant_id,
        )
        now = self._clock()
        last = self._warned_at.get(ref.channel_id)
        if last is not None and now - last < self._warning_cooldown:
            return
        self._warned_at = {
            channel_id: at for channel_id, at in self._warned_at.items()
            if now - at < self._warning_cooldown
        }
        self._warned_at[ref.channel_id] = now

        message = (
            "I can't relay messages to this channel because I'm missing the "
            f"following permission(s):\n\n**{names}**\n\n"
            "Please grant these permissions to resume global chat."
        )
        try:
            if self._platform.has_capability(ref, Capability.SEND_MESSAGES):
                await self._platform.send_notice(ref, _WARNING_TITLE, message, error=True)
            else:
                await self._platform.notify_tenant_admin(ref.tenant_id, _WARNING_TITLE, message)
        except Exception:
            logger.warning(
                "Could not deliver permission warning for channel %d", ref.channel_id,
            )

"""
crosstalk.engine.moderation — Tenant Moderation With Notices
=============================================================

Wraps the registry's moderation mutators and tells the affected tenant
what happened by posting a notice into its linked channel.  Kick and ban
notify *before* unlinking, since afterwards there is no channel to post in.

Registry writes persist the snapshot synchronously, so they are shipped
to a worker thread with :func:`~crosstalk.database.engine.run_db`.
Notices are best-effort: a tenant that can't be reached is logged, the
moderation action still stands.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from crosstalk import constants
from crosstalk.database.engine import run_db
from crosstalk.engine.channels import ChannelRef
from crosstalk.engine.errors import NotFound
from crosstalk.engine.formatting import format_duration, format_rules, parse_duration
from crosstalk.engine.platform import ChatPlatform
from crosstalk.engine.registry import ChannelRegistry

logger = logging.getLogger(__name__)


class ModerationController:
    """Owner/moderator actions against tenants of one registry."""

    def __init__(self, registry: ChannelRegistry, platform: ChatPlatform) -> None:
        self.registry = registry
        self.platform = platform

    async def _notify(self, ref: ChannelRef | None, title: str, message: str) -> None:
        if ref is None:
            return
        try:
            await self.platform.send_notice(ref, title, message)
        except Exception as exc:
            logger.warning(
                "Could not post moderation notice to channel %d: %s", ref.channel_id, exc,
            )

    def _require_linked(self, global_id: str, tenant_id: int) -> ChannelRef:
        ref = self.registry.linked_ref(global_id, tenant_id)
        if ref is None:
            raise NotFound("That server is not linked to this channel.")
        return ref

    # -----------------------------------------------------------------------
    # Removal
    # -----------------------------------------------------------------------
    async def kick(self, global_id: str, tenant_id: int, reason: str | None = None) -> None:
        ref = self._require_linked(global_id, tenant_id)
        gc = self.registry.require(global_id)
        await self._notify(
            ref,
            "Kicked from Global Chat",
            f"This server has been **kicked** from the global chat channel "
            f"**{gc.name}**.\nReason: {reason or constants.NO_REASON}",
        )
        await run_db(self.registry.kick, global_id, tenant_id)
        logger.info("Tenant %d kicked from %s", tenant_id, global_id)

    async def ban(self, global_id: str, tenant_id: int, reason: str | None = None) -> None:
        """Ban *tenant_id*; linked or not, it can no longer link."""
        ref = self.registry.linked_ref(global_id, tenant_id)
        gc = self.registry.require(global_id)
        await self._notify(
            ref,
            "Banned from Global Chat",
            f"This server has been **banned** from the global chat channel "
            f"**{gc.name}**.\nReason: {reason or constants.NO_REASON}",
        )
        await run_db(self.registry.ban, global_id, tenant_id)
        logger.info("Tenant %d banned from %s", tenant_id, global_id)

    async def unban(self, global_id: str, tenant_id: int) -> None:
        await run_db(self.registry.unban, global_id, tenant_id)
        logger.info("Tenant %d unbanned from %s", tenant_id, global_id)

    # -----------------------------------------------------------------------
    # Warnings
    # -----------------------------------------------------------------------
    async def warn(self, global_id: str, tenant_id: int, reason: str | None = None) -> int:
        """Record a warning; returns the tenant's warning count."""
        reasons = await run_db(self.registry.warn, global_id, tenant_id, reason)
        gc = self.registry.require(global_id)
        await self._notify(
            self.registry.linked_ref(global_id, tenant_id),
            "Global Chat Warning",
            f"This server has received a **warning** in the global chat channel "
            f"**{gc.name}**.\nReason: {reason or constants.NO_REASON}",
        )
        return len(reasons)

    async def unwarn(self, global_id: str, tenant_id: int) -> None:
        await run_db(self.registry.unwarn, global_id, tenant_id)

    # -----------------------------------------------------------------------
    # Mutes
    # -----------------------------------------------------------------------
    async def mute(
        self,
        global_id: str,
        tenant_id: int,
        duration: str | int | None = None,
        reason: str | None = None,
    ) -> float:
        """Mute for *duration* (``"30m"``, seconds, or empty for permanent).

        Returns the stored expiry, ``0`` meaning permanent.

        Raises
        ------
        ValueError
            If *duration* is text that isn't a recognizable duration.
        """
        seconds = duration if isinstance(duration, int) else parse_duration(duration)
        until = await run_db(self.registry.mute, global_id, tenant_id, seconds)
        gc = self.registry.require(global_id)
        span = "permanently" if seconds <= 0 else f"for {format_duration(seconds)}"
        await self._notify(
            self.registry.linked_ref(global_id, tenant_id),
            "Muted in Global Chat",
            f"This server has been **muted** {span} in the global chat channel "
            f"**{gc.name}**.\nReason: {reason or constants.NO_REASON}",
        )
        logger.info("Tenant %d muted in %s (%s)", tenant_id, global_id, span)
        return until

    async def unmute(self, global_id: str, tenant_id: int) -> None:
        await run_db(self.registry.unmute, global_id, tenant_id)
        gc = self.registry.require(global_id)
        await self._notify(
            self.registry.linked_ref(global_id, tenant_id),
            "Unmuted in Global Chat",
            f"This server has been **unmuted** in the global chat channel **{gc.name}**.",
        )

    # -----------------------------------------------------------------------
    # Rules
    # -----------------------------------------------------------------------
    async def set_rules(self, global_id: str, rules: Iterable[str]) -> None:
        """Replace the rules and announce them in every linked channel."""
        gc = await run_db(self.registry.set_rules, global_id, list(rules))
        text = format_rules(gc.rules)
        for ref in self.registry.refs(gc):
            await self._notify(
                ref,
                "Global Chat Rules Updated",
                f"The rules for global chat channel **{gc.name}** have been updated:\n{text}",
            )

    async def send_rules(self, global_id: str, tenant_id: int) -> bool:
        """Post the rules to one tenant.  False when there is nothing to send."""
        gc = self.registry.require(global_id)
        ref = self.registry.linked_ref(global_id, tenant_id)
        if ref is None or not gc.rules:
            return False
        await self._notify(
            ref,
            "Global Chat Rules",
            f"**Rules for global chat channel {gc.name}:**\n{format_rules(gc.rules)}",
        )
        return True

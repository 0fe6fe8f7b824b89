"""
crosstalk.services.admin_service — Admin Command Boundary
==========================================================

Every administrative operation the command layer can invoke lives here.
Each one:

  1. Checks the acting user's access to the global channel.
  2. Runs the registry / moderation operation (DB writes off-loop).
  3. Returns ``None`` on success, or the user-facing error text.

Engine code raises :class:`~crosstalk.engine.errors.GlobalChatError`;
this module is where those become strings.  Nothing expected is raised
past it.

Access levels:

* owner     — delete the room, manage co-owners.
* manage    — owner or co-owner: edit, rules, moderators, remove tenants.
* moderate  — manage plus moderators: kick, ban, mute, warn.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Awaitable, Iterable

from crosstalk.database.engine import run_db
from crosstalk.engine.channels import GlobalChannel, Visibility
from crosstalk.engine.errors import GlobalChatError, PermissionDenied
from crosstalk.engine.moderation import ModerationController
from crosstalk.engine.registry import ChannelRegistry

logger = logging.getLogger(__name__)


class Access(enum.StrEnum):
    OWNER = "owner"
    MANAGE = "manage"
    MODERATE = "moderate"


_DENIED_TEXT = {
    Access.OWNER: "Only the owner of this global chat channel can do that.",
    Access.MANAGE: "You need to be an owner or co-owner of this global chat channel.",
    Access.MODERATE: "You need moderator access to this global chat channel.",
}


class AdminService:
    """``str | None`` facade over the registry and moderation controller."""

    def __init__(self, registry: ChannelRegistry, moderation: ModerationController) -> None:
        self.registry = registry
        self.moderation = moderation

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------
    def _check(self, actor_id: int, global_id: str, level: Access) -> GlobalChannel:
        gc = self.registry.require(global_id)
        allowed = {
            Access.OWNER: gc.is_owner,
            Access.MANAGE: gc.has_manage_access,
            Access.MODERATE: gc.has_moderate_access,
        }[level](actor_id)
        if not allowed:
            raise PermissionDenied(_DENIED_TEXT[level])
        return gc

    @staticmethod
    async def _attempt(op: Awaitable[object]) -> str | None:
        try:
            await op
        except GlobalChatError as exc:
            logger.debug("Admin operation refused (%s): %s", exc.kind, exc.message)
            return exc.message
        return None

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------
    async def create_channel(
        self,
        owner_id: int,
        name: str,
        description: str = "",
        visibility: str = Visibility.PUBLIC,
        key_required: bool = False,
        key: str | None = None,
        message_prefix: str | None = None,
        message_suffix: str | None = None,
    ) -> tuple[GlobalChannel | None, str | None]:
        """Create a room.  Returns ``(channel, None)`` or ``(None, error)``."""
        try:
            parsed = Visibility.parse(visibility)
        except ValueError:
            return None, "Visibility must be `public` or `unlisted`."
        try:
            gc = await run_db(
                self.registry.create,
                name.strip(),
                description.strip(),
                parsed,
                key_required,
                key,
                owner_id,
                message_prefix=message_prefix,
                message_suffix=message_suffix,
            )
        except GlobalChatError as exc:
            return None, exc.message
        return gc, None

    async def delete_channel(self, actor_id: int, global_id: str) -> str | None:
        async def op() -> None:
            self._check(actor_id, global_id, Access.OWNER)
            await run_db(self.registry.delete, global_id)
        return await self._attempt(op())

    async def edit_channel(
        self,
        actor_id: int,
        global_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
        visibility: str | None = None,
        key: str | None = None,
        message_prefix: str | None = None,
        message_suffix: str | None = None,
    ) -> str | None:
        async def op() -> None:
            self._check(actor_id, global_id, Access.MANAGE)
            await run_db(
                lambda: self.registry.edit(
                    global_id,
                    name=name,
                    description=description,
                    visibility=visibility,
                    key=key,
                    message_prefix=message_prefix,
                    message_suffix=message_suffix,
                )
            )
        try:
            return await self._attempt(op())
        except ValueError:
            return "Visibility must be `public` or `unlisted`."

    # -----------------------------------------------------------------------
    # Links
    # -----------------------------------------------------------------------
    async def link(
        self, global_id: str, tenant_id: int, channel_id: int, key: str | None = None
    ) -> str | None:
        """Link a tenant channel, then show it the room's rules."""
        async def op() -> None:
            await run_db(self.registry.link, global_id, tenant_id, channel_id, key)
            await self.moderation.send_rules(global_id, tenant_id)
        return await self._attempt(op())

    async def unlink(self, tenant_id: int, channel_id: int) -> str | None:
        return await self._attempt(run_db(self.registry.unlink, tenant_id, channel_id))

    async def remove_tenant(self, actor_id: int, global_id: str, tenant_id: int) -> str | None:
        async def op() -> None:
            self._check(actor_id, global_id, Access.MANAGE)
            await run_db(self.registry.unlink_tenant, global_id, tenant_id)
        return await self._attempt(op())

    # -----------------------------------------------------------------------
    # Moderation
    # -----------------------------------------------------------------------
    async def kick(
        self, actor_id: int, global_id: str, tenant_id: int, reason: str | None = None
    ) -> str | None:
        async def op() -> None:
            self._check(actor_id, global_id, Access.MODERATE)
            await self.moderation.kick(global_id, tenant_id, reason)
        return await self._attempt(op())

    async def ban(
        self, actor_id: int, global_id: str, tenant_id: int, reason: str | None = None
    ) -> str | None:
        async def op() -> None:
            self._check(actor_id, global_id, Access.MODERATE)
            await self.moderation.ban(global_id, tenant_id, reason)
        return await self._attempt(op())

    async def unban(self, actor_id: int, global_id: str, tenant_id: int) -> str | None:
        async def op() -> None:
            self._check(actor_id, global_id, Access.MODERATE)
            await self.moderation.unban(global_id, tenant_id)
        return await self._attempt(op())

    async def warn(
        self, actor_id: int, global_id: str, tenant_id: int, reason: str | None = None
    ) -> str | None:
        async def op() -> None:
            self._check(actor_id, global_id, Access.MODERATE)
            await self.moderation.warn(global_id, tenant_id, reason)
        return await self._attempt(op())

    async def unwarn(self, actor_id: int, global_id: str, tenant_id: int) -> str | None:
        async def op() -> None:
            self._check(actor_id, global_id, Access.MODERATE)
            await self.moderation.unwarn(global_id, tenant_id)
        return await self._attempt(op())

    async def mute(
        self,
        actor_id: int,
        global_id: str,
        tenant_id: int,
        duration: str | None = None,
        reason: str | None = None,
    ) -> str | None:
        async def op() -> None:
            self._check(actor_id, global_id, Access.MODERATE)
            await self.moderation.mute(global_id, tenant_id, duration, reason)
        try:
            return await self._attempt(op())
        except ValueError:
            return "Invalid duration. Use something like `30m`, `12h` or `7d`."

    async def unmute(self, actor_id: int, global_id: str, tenant_id: int) -> str | None:
        async def op() -> None:
            self._check(actor_id, global_id, Access.MODERATE)
            await self.moderation.unmute(global_id, tenant_id)
        return await self._attempt(op())

    # -----------------------------------------------------------------------
    # Rules and staff
    # -----------------------------------------------------------------------
    async def set_rules(self, actor_id: int, global_id: str, rules: Iterable[str]) -> str | None:
        async def op() -> None:
            self._check(actor_id, global_id, Access.MANAGE)
            await self.moderation.set_rules(global_id, rules)
        return await self._attempt(op())

    async def add_co_owner(self, actor_id: int, global_id: str, user_id: int) -> str | None:
        async def op() -> None:
            self._check(actor_id, global_id, Access.OWNER)
            await run_db(self.registry.add_co_owner, global_id, user_id)
        return await self._attempt(op())

    async def remove_co_owner(self, actor_id: int, global_id: str, user_id: int) -> str | None:
        async def op() -> None:
            self._check(actor_id, global_id, Access.OWNER)
            await run_db(self.registry.remove_co_owner, global_id, user_id)
        return await self._attempt(op())

    async def add_moderator(self, actor_id: int, global_id: str, user_id: int) -> str | None:
        async def op() -> None:
            self._check(actor_id, global_id, Access.MANAGE)
            await run_db(self.registry.add_moderator, global_id, user_id)
        return await self._attempt(op())

    async def remove_moderator(self, actor_id: int, global_id: str, user_id: int) -> str | None:
        async def op() -> None:
            self._check(actor_id, global_id, Access.MANAGE)
            await run_db(self.registry.remove_moderator, global_id, user_id)
        return await self._attempt(op())

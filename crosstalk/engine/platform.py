"""
crosstalk.engine.platform — What the Relay Engine Needs from the Chat Platform
===============================================================================

The engine never imports discord.py.  Everything it does on the platform
goes through this protocol, implemented for production by
:class:`crosstalk.services.discord_platform.DiscordPlatform` and by a
recording fake in the test suite.

Every coroutine may raise any exception on platform failure; callers in
the engine catch, log and isolate per target.
"""

from __future__ import annotations

import enum
from typing import Any, Protocol

from crosstalk.engine.channels import ChannelRef

# Opaque platform handle for a presentation identity (a webhook on Discord).
Identity = Any


class Capability(enum.StrEnum):
    """Channel-level permissions the engine preflights."""
    MANAGE_IDENTITIES = "manage_webhooks"
    VIEW_CHANNEL = "view_channel"
    SEND_MESSAGES = "send_messages"


class ChatPlatform(Protocol):
    """Platform collaborator consumed by the engine."""

    def channel_exists(self, ref: ChannelRef) -> bool:
        """True when the tenant channel is visible to the bot right now."""
        ...

    def has_capability(self, ref: ChannelRef, capability: Capability) -> bool:
        ...

    def resolve_tenant_display_name(self, tenant_id: int) -> str | None:
        ...

    async def get_or_create_identity(self, ref: ChannelRef, reserved_name: str) -> Identity:
        ...

    async def send_as(
        self,
        identity: Identity,
        ref: ChannelRef,
        content: str,
        *,
        username: str,
        avatar_url: str | None = None,
    ) -> int:
        """Post *content* under the borrowed identity; return the message id."""
        ...

    async def delete_message_as(self, identity: Identity, ref: ChannelRef, message_id: int) -> None:
        ...

    async def delete_message(self, ref: ChannelRef, message_id: int) -> None:
        """Delete as the bot itself (used for source messages)."""
        ...

    async def add_reaction_as(
        self, identity: Identity, ref: ChannelRef, message_id: int, emoji: str
    ) -> None:
        ...

    async def add_reaction(self, ref: ChannelRef, message_id: int, emoji: str) -> None:
        ...

    async def send_notice(self, ref: ChannelRef, title: str, message: str, *, error: bool = False) -> None:
        """Post a plain (non-webhook) notice embed into a tenant channel."""
        ...

    async def notify_tenant_admin(self, tenant_id: int, title: str, message: str) -> None:
        """Direct-message the tenant's administrator."""
        ...

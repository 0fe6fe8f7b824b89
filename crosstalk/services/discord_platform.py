"""
crosstalk.services.discord_platform — discord.py Implementation of ChatPlatform
================================================================================

Maps the engine's platform protocol onto discord.py:

* tenant          → :class:`discord.Guild`
* tenant channel  → :class:`discord.TextChannel`
* identity        → a channel :class:`discord.Webhook` owned by the bot

Lookups read the gateway cache (no HTTP).  Webhooks cannot add
reactions on Discord, so ``add_reaction_as`` reacts as the bot.
"""

from __future__ import annotations

import logging

import discord
from discord.ext import commands

from crosstalk.engine.channels import ChannelRef
from crosstalk.engine.errors import NotFound
from crosstalk.engine.platform import Capability
from crosstalk.services.embeds import build_error_embed, build_notice_embed

logger = logging.getLogger(__name__)

# Relayed text must never ping a whole foreign server.
_NO_MENTIONS = discord.AllowedMentions.none()


class DiscordPlatform:
    """:class:`~crosstalk.engine.platform.ChatPlatform` over a running bot."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    # -----------------------------------------------------------------------
    # Cache lookups
    # -----------------------------------------------------------------------
    def _text_channel(self, ref: ChannelRef) -> discord.TextChannel | None:
        guild = self.bot.get_guild(ref.tenant_id)
        if guild is None:
            return None
        channel = guild.get_channel(ref.channel_id)
        return channel if isinstance(channel, discord.TextChannel) else None

    def _require_channel(self, ref: ChannelRef) -> discord.TextChannel:
        channel = self._text_channel(ref)
        if channel is None:
            raise NotFound(f"Channel {ref.channel_id} is not available.")
        return channel

    def channel_exists(self, ref: ChannelRef) -> bool:
        return self._text_channel(ref) is not None

    def has_capability(self, ref: ChannelRef, capability: Capability) -> bool:
        channel = self._text_channel(ref)
        if channel is None or channel.guild.me is None:
            return False
        perms = channel.permissions_for(channel.guild.me)
        return bool(getattr(perms, str(capability)))

    def resolve_tenant_display_name(self, tenant_id: int) -> str | None:
        guild = self.bot.get_guild(tenant_id)
        return guild.name if guild else None

    # -----------------------------------------------------------------------
    # Webhooks
    # -----------------------------------------------------------------------
    async def get_or_create_identity(self, ref: ChannelRef, reserved_name: str) -> discord.Webhook:
        channel = self._require_channel(ref)
        for webhook in await channel.webhooks():
            if webhook.name == reserved_name and webhook.token is not None:
                return webhook
        webhook = await channel.create_webhook(
            name=reserved_name, reason="Crosstalk: global chat relay",
        )
        logger.info("Created relay webhook in #%s (%d)", channel.name, channel.id)
        return webhook

    async def send_as(
        self,
        identity: discord.Webhook,
        ref: ChannelRef,
        content: str,
        *,
        username: str,
        avatar_url: str | None = None,
    ) -> int:
        message = await identity.send(
            content,
            username=username,
            avatar_url=avatar_url or discord.utils.MISSING,
            allowed_mentions=_NO_MENTIONS,
            wait=True,
        )
        return message.id

    async def delete_message_as(
        self, identity: discord.Webhook, ref: ChannelRef, message_id: int
    ) -> None:
        await identity.delete_message(message_id)

    async def delete_message(self, ref: ChannelRef, message_id: int) -> None:
        channel = self._require_channel(ref)
        await channel.get_partial_message(message_id).delete()

    # -----------------------------------------------------------------------
    # Reactions
    # -----------------------------------------------------------------------
    async def add_reaction_as(
        self, identity: discord.Webhook, ref: ChannelRef, message_id: int, emoji: str
    ) -> None:
        await self.add_reaction(ref, message_id, emoji)

    async def add_reaction(self, ref: ChannelRef, message_id: int, emoji: str) -> None:
        channel = self._require_channel(ref)
        await channel.get_partial_message(message_id).add_reaction(emoji)

    # -----------------------------------------------------------------------
    # Notices
    # -----------------------------------------------------------------------
    async def send_notice(
        self, ref: ChannelRef, title: str, message: str, *, error: bool = False
    ) -> None:
        channel = self._require_channel(ref)
        build = build_error_embed if error else build_notice_embed
        await channel.send(embed=build(title, message))

    async def notify_tenant_admin(self, tenant_id: int, title: str, message: str) -> None:
        guild = self.bot.get_guild(tenant_id)
        if guild is None:
            raise NotFound(f"Guild {tenant_id} is not available.")
        owner = guild.owner or await self.bot.fetch_user(guild.owner_id)
        await owner.send(embed=build_error_embed(title, f"**{guild.name}**: {message}"))

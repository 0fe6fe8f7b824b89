"""
crosstalk.bot.cogs.relay — Gateway Listeners for the Relay
===========================================================

Turns raw gateway events into calls on the bot's :class:`RelayService`:

- on_message              → relay (after inbound gating)
- on_raw_message_delete   → cascade delete
- on_raw_bulk_message_delete → cascade delete, per message
- on_raw_reaction_add     → reaction mirror

Raw events are used for deletes and reactions so messages missing from
the client cache still resolve through the mapping store.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from crosstalk.engine.formatting import prepare_content, pronouns_from_roles
from crosstalk.engine.relay import RelayAuthor, ReplyContext

if TYPE_CHECKING:
    from crosstalk.bot.core import CrosstalkBot

logger = logging.getLogger(__name__)

ATTACHMENT_PLACEHOLDER = "[attachment]"


class Relay(commands.Cog, name="Relay"):
    """Relays messages, deletions and reactions between linked channels."""

    def __init__(self, bot: CrosstalkBot) -> None:
        self.bot = bot

    # -------------------------------------------------------------------
    # Messages
    # -------------------------------------------------------------------
    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        try:
            await self._handle_message(message)
        except Exception:
            logger.exception(
                "Error relaying message %s in channel %s",
                message.id, message.channel.id,
            )

    async def _handle_message(self, message: discord.Message) -> None:
        # DMs, bots and webhooks (including our own relayed copies) are ignored.
        if message.guild is None or message.author.bot or message.webhook_id is not None:
            return
        if self.bot.registry.channel_for(message.channel.id) is None:
            return
        if not message.content and not message.attachments:
            return
        if not self.bot.cooldown.is_allowed(message.author.id):
            logger.debug("Relay cooldown: dropped message from user %d", message.author.id)
            return

        cfg = self.bot.cfg
        content = prepare_content(
            message.content,
            [a.url for a in message.attachments],
            max_length=cfg.max_content_length,
            max_attachments=cfg.max_attachments,
        )
        author = self._relay_author(message.author)
        reply = await self._reply_context(message)

        self.bot.relay.relay(
            message.channel.id,
            author,
            content,
            reply=reply,
            source_message_id=message.id,
        )

    @staticmethod
    def _relay_author(user: discord.Member | discord.User) -> RelayAuthor:
        roles = getattr(user, "roles", [])
        return RelayAuthor(
            name=user.display_name,
            username=user.name,
            display_name=user.global_name,
            pronouns=pronouns_from_roles(role.name for role in roles) or None,
            avatar_url=user.display_avatar.url,
        )

    async def _reply_context(self, message: discord.Message) -> ReplyContext | None:
        ref = message.reference
        if ref is None or ref.message_id is None:
            return None
        replied = ref.resolved
        if not isinstance(replied, discord.Message):
            try:
                replied = await message.channel.fetch_message(ref.message_id)
            except discord.HTTPException:
                logger.debug("Replied-to message %d is unavailable", ref.message_id)
                return None

        # A relayed copy's author is the webhook; its name is the presented name.
        quoted = replied.content or (ATTACHMENT_PLACEHOLDER if replied.attachments else "")
        return ReplyContext(
            author=replied.author.display_name,
            content=quoted,
            message_id=replied.id,
        )

    # -------------------------------------------------------------------
    # Deletes
    # -------------------------------------------------------------------
    @commands.Cog.listener()
    async def on_raw_message_delete(self, payload: discord.RawMessageDeleteEvent) -> None:
        logger.debug(
            "Gateway event: MESSAGE_DELETE %s in channel %s",
            payload.message_id, payload.channel_id,
        )
        try:
            self.bot.relay.handle_delete(payload.message_id, payload.channel_id)
        except Exception:
            logger.exception("Error cascading delete of message %s", payload.message_id)

    @commands.Cog.listener()
    async def on_raw_bulk_message_delete(
        self, payload: discord.RawBulkMessageDeleteEvent
    ) -> None:
        try:
            for message_id in payload.message_ids:
                self.bot.relay.handle_delete(message_id, payload.channel_id)
        except Exception:
            logger.exception("Error cascading bulk delete in channel %s", payload.channel_id)

    # -------------------------------------------------------------------
    # Reactions
    # -------------------------------------------------------------------
    @commands.Cog.listener()
    async def on_raw_reaction_add(self, payload: discord.RawReactionActionEvent) -> None:
        logger.debug(
            "Gateway event: REACTION_ADD from user %s on message %s in channel %s",
            payload.user_id, payload.message_id, payload.channel_id,
        )
        try:
            if payload.guild_id is None:
                return
            # Our own mirrored reactions come back as events too.
            if self.bot.user is not None and payload.user_id == self.bot.user.id:
                return
            if payload.member is not None and payload.member.bot:
                return
            self.bot.relay.relay_reaction(
                payload.message_id, payload.channel_id, str(payload.emoji),
            )
        except Exception:
            logger.exception(
                "Error mirroring reaction on message %s from user %s",
                payload.message_id, payload.user_id,
            )


async def setup(bot: CrosstalkBot) -> None:
    await bot.add_cog(Relay(bot))

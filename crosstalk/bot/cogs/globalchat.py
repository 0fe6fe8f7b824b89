"""
crosstalk.bot.cogs.globalchat — Global Chat Slash Commands
===========================================================

``/globalchat …`` commands for room owners, moderators and server admins.
Every command delegates to :class:`~crosstalk.services.admin_service.AdminService`
and renders its ``str | None`` result as an ephemeral reply.

Linking and unlinking act on the channel the command is used in and
require Manage Server in that guild.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from crosstalk.engine.formatting import format_rules

if TYPE_CHECKING:
    from crosstalk.bot.core import CrosstalkBot

logger = logging.getLogger(__name__)

_VISIBILITY_CHOICES = [
    app_commands.Choice(name="Public", value="public"),
    app_commands.Choice(name="Unlisted", value="unlisted"),
]


async def _respond(interaction: discord.Interaction, error: str | None, success: str) -> None:
    text = f"❌ {error}" if error else f"✅ {success}"
    await interaction.response.send_message(text, ephemeral=True)


def _parse_snowflake(raw: str) -> int | None:
    raw = raw.strip()
    return int(raw) if raw.isdigit() else None


class GlobalChat(commands.Cog, name="GlobalChat"):
    """Create, link and moderate global chat channels."""

    group = app_commands.Group(name="globalchat", description="Cross-server global chat")

    def __init__(self, bot: CrosstalkBot) -> None:
        self.bot = bot

    # -------------------------------------------------------------------
    # Rooms
    # -------------------------------------------------------------------
    @group.command(name="create", description="Create a new global chat channel.")
    @app_commands.describe(
        name="Channel name",
        description="Short description shown in listings",
        visibility="Listed publicly or unlisted",
        key_required="Require a join key (one is generated if left blank)",
        key="Join key",
    )
    @app_commands.choices(visibility=_VISIBILITY_CHOICES)
    async def create(
        self,
        interaction: discord.Interaction,
        name: str,
        description: str = "",
        visibility: str = "public",
        key_required: bool = False,
        key: str | None = None,
    ) -> None:
        gc, error = await self.bot.admin.create_channel(
            interaction.user.id, name, description, visibility, key_required, key,
        )
        if gc is None:
            await _respond(interaction, error, "")
            return
        summary = f"Created **{gc.name}** with ID `{gc.id}`."
        if gc.key_required:
            summary += f"\nJoin key: `{gc.key}`"
        await _respond(interaction, None, summary)

    @group.command(name="delete", description="Delete a global chat channel you own.")
    async def delete(self, interaction: discord.Interaction, channel_id: str) -> None:
        error = await self.bot.admin.delete_channel(interaction.user.id, channel_id)
        await _respond(interaction, error, f"Deleted `{channel_id}`.")

    @group.command(name="edit", description="Edit a global chat channel.")
    @app_commands.describe(
        prefix="Name prefix template; `reset` for default, `{}` for blank",
        suffix="Name suffix template; `reset` for default, `{}` for blank",
    )
    @app_commands.choices(visibility=_VISIBILITY_CHOICES)
    async def edit(
        self,
        interaction: discord.Interaction,
        channel_id: str,
        name: str | None = None,
        description: str | None = None,
        visibility: str | None = None,
        key: str | None = None,
        prefix: str | None = None,
        suffix: str | None = None,
    ) -> None:
        error = await self.bot.admin.edit_channel(
            interaction.user.id,
            channel_id,
            name=name,
            description=description,
            visibility=visibility,
            key=key,
            message_prefix=prefix,
            message_suffix=suffix,
        )
        await _respond(interaction, error, f"Updated `{channel_id}`.")

    @group.command(name="list", description="List public global chat channels and your own.")
    async def list_channels(self, interaction: discord.Interaction) -> None:
        registry = self.bot.registry
        mine = registry.channels_for_user(interaction.user.id)
        public = [gc for gc in registry.public_channels() if gc not in mine]
        lines = [f"`{gc.id}` **{gc.name}** (yours)" for gc in mine]
        lines += [
            f"`{gc.id}` **{gc.name}** — {gc.description or 'No description.'}"
            + (" 🔑" if gc.key_required else "")
            for gc in public
        ]
        await interaction.response.send_message(
            "\n".join(lines) or "No global chat channels yet.", ephemeral=True,
        )

    # -------------------------------------------------------------------
    # Links
    # -------------------------------------------------------------------
    @group.command(name="link", description="Link this channel into a global chat channel.")
    @app_commands.default_permissions(manage_guild=True)
    @app_commands.guild_only()
    async def link(
        self, interaction: discord.Interaction, channel_id: str, key: str | None = None
    ) -> None:
        assert interaction.guild_id is not None and interaction.channel_id is not None
        error = await self.bot.admin.link(
            channel_id, interaction.guild_id, interaction.channel_id, key,
        )
        await _respond(interaction, error, f"This channel is now linked to `{channel_id}`.")

    @group.command(name="unlink", description="Unlink this channel from its global chat.")
    @app_commands.default_permissions(manage_guild=True)
    @app_commands.guild_only()
    async def unlink(self, interaction: discord.Interaction) -> None:
        assert interaction.guild_id is not None and interaction.channel_id is not None
        error = await self.bot.admin.unlink(interaction.guild_id, interaction.channel_id)
        await _respond(interaction, error, "This channel has been unlinked.")

    # -------------------------------------------------------------------
    # Rules
    # -------------------------------------------------------------------
    @group.command(name="rules", description="Show the rules of a global chat channel.")
    async def rules(self, interaction: discord.Interaction, channel_id: str) -> None:
        gc = self.bot.registry.get(channel_id)
        if gc is None:
            await _respond(interaction, "Global chat channel not found.", "")
            return
        await interaction.response.send_message(
            f"**Rules for {gc.name}:**\n{format_rules(gc.rules)}", ephemeral=True,
        )

    @group.command(name="setrules", description="Replace the rules (separate rules with |).")
    async def setrules(self, interaction: discord.Interaction, channel_id: str, rules: str) -> None:
        error = await self.bot.admin.set_rules(
            interaction.user.id, channel_id, rules.split("|"),
        )
        await _respond(interaction, error, "Rules updated and announced.")

    # -------------------------------------------------------------------
    # Moderation
    # -------------------------------------------------------------------
    @group.command(name="moderate", description="Kick, ban, warn, mute or remove a server.")
    @app_commands.describe(
        server_id="ID of the target server",
        duration="Mute length such as 30m, 12h or 7d (blank = permanent)",
    )
    @app_commands.choices(action=[
        app_commands.Choice(name=name.title(), value=name)
        for name in ("kick", "ban", "unban", "warn", "unwarn", "mute", "unmute", "remove")
    ])
    async def moderate(
        self,
        interaction: discord.Interaction,
        channel_id: str,
        action: str,
        server_id: str,
        reason: str | None = None,
        duration: str | None = None,
    ) -> None:
        tenant_id = _parse_snowflake(server_id)
        if tenant_id is None:
            await _respond(interaction, "Server ID must be numeric.", "")
            return
        admin = self.bot.admin
        actor = interaction.user.id
        match action:
            case "kick":
                error = await admin.kick(actor, channel_id, tenant_id, reason)
            case "ban":
                error = await admin.ban(actor, channel_id, tenant_id, reason)
            case "unban":
                error = await admin.unban(actor, channel_id, tenant_id)
            case "warn":
                error = await admin.warn(actor, channel_id, tenant_id, reason)
            case "unwarn":
                error = await admin.unwarn(actor, channel_id, tenant_id)
            case "mute":
                error = await admin.mute(actor, channel_id, tenant_id, duration, reason)
            case "unmute":
                error = await admin.unmute(actor, channel_id, tenant_id)
            case "remove":
                error = await admin.remove_tenant(actor, channel_id, tenant_id)
            case _:
                error = "Unknown action."
        await _respond(interaction, error, f"Server `{server_id}`: {action} applied.")

    @group.command(name="staff", description="Add or remove co-owners and moderators.")
    @app_commands.choices(
        role=[
            app_commands.Choice(name="Co-owner", value="co_owner"),
            app_commands.Choice(name="Moderator", value="moderator"),
        ],
        operation=[
            app_commands.Choice(name="Add", value="add"),
            app_commands.Choice(name="Remove", value="remove"),
        ],
    )
    async def staff(
        self,
        interaction: discord.Interaction,
        channel_id: str,
        role: str,
        operation: str,
        member: discord.User,
    ) -> None:
        method = getattr(self.bot.admin, f"{operation}_{role}")
        error = await method(interaction.user.id, channel_id, member.id)
        await _respond(interaction, error, f"{member.display_name}: {operation} {role.replace('_', '-')}.")


async def setup(bot: CrosstalkBot) -> None:
    await bot.add_cog(GlobalChat(bot))

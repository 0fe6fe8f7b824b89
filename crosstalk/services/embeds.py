"""
crosstalk.services.embeds — Discord embed builders for notices
===============================================================

Moderation notices, rule broadcasts and permission warnings are posted
as embeds.  Callers supply text only; colors and layout live here.
"""

from __future__ import annotations

import discord

FOOTER_TEXT = "Global Chat"


def build_notice_embed(title: str, message: str) -> discord.Embed:
    """Informational notice (moderation actions, rules)."""
    embed = discord.Embed(
        title=title,
        description=message,
        color=discord.Color.blurple(),
    )
    embed.set_footer(text=FOOTER_TEXT)
    return embed


def build_error_embed(title: str, message: str) -> discord.Embed:
    """Something the tenant's admins need to fix (e.g. missing permissions)."""
    embed = discord.Embed(
        title=f"⚠️ {title}",
        description=message,
        color=discord.Color.red(),
    )
    embed.set_footer(text=FOOTER_TEXT)
    return embed

"""
crosstalk.bot.core — Bot Instance & Cog Loader
===============================================

**Why this file exists:**
Defines :class:`CrosstalkBot`, the ``commands.Bot`` subclass that builds
and owns the relay state:

1. ``bot.registry``   — global channels, loaded from the database.
2. ``bot.relay``      — the single :class:`RelayService` (mapping store,
   webhook cache, delete-suppression set).
3. ``bot.admin``      — the ``str | None`` admin boundary for commands.
4. ``bot.cooldown``   — per-user relay cooldown.

Cogs reach all of it through ``self.bot``.  On shutdown the bot waits
for in-flight relay tasks before closing the gateway connection.
"""

from __future__ import annotations

import logging
import os

import discord
from discord.ext import commands
from sqlalchemy import Engine

from crosstalk.config import CrosstalkConfig
from crosstalk.engine.moderation import ModerationController
from crosstalk.engine.registry import ChannelRegistry
from crosstalk.engine.relay import RelayService
from crosstalk.services.admin_service import AdminService
from crosstalk.services.discord_platform import DiscordPlatform
from crosstalk.services.snapshot_store import SqlSnapshotStore
from crosstalk.services.throttle import RelayCooldown

logger = logging.getLogger(__name__)

# Cog modules to load on startup.
EXTENSIONS: list[str] = [
    "crosstalk.bot.cogs.relay",
    "crosstalk.bot.cogs.globalchat",
]


class CrosstalkBot(commands.Bot):
    """Bot subclass carrying the relay engine.

    Parameters
    ----------
    cfg:
        The parsed :class:`CrosstalkConfig` from ``config.yaml``.
    engine:
        SQLAlchemy engine holding the ``global_channels`` table.
    """

    def __init__(self, cfg: CrosstalkConfig, engine: Engine) -> None:
        # MESSAGE_CONTENT is privileged: enable it in the Developer Portal.
        intents = discord.Intents.default()
        intents.message_content = True
        intents.presences = False

        super().__init__(
            command_prefix=cfg.bot_prefix,
            intents=intents,
            description="Crosstalk — cross-server global chat",
        )

        self.cfg = cfg
        self.engine = engine

        self.platform = DiscordPlatform(self)
        self.registry = ChannelRegistry(SqlSnapshotStore(engine))
        self.relay = RelayService.from_config(self.registry, self.platform, cfg)
        self.moderation = ModerationController(self.registry, self.platform)
        self.admin = AdminService(self.registry, self.moderation)
        self.cooldown = RelayCooldown(cfg.user_cooldown_seconds)

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Load cogs before connecting; one broken cog doesn't stop the rest."""
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

    async def on_ready(self) -> None:
        assert self.user is not None  # guaranteed after on_ready
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)
        logger.info(
            "Serving %d global channels across %d linked tenant channels",
            len(self.registry), len(self.registry.reverse_index()),
        )

        dev_guild_id = os.getenv("DEV_GUILD_ID")
        if dev_guild_id:
            guild = discord.Object(id=int(dev_guild_id))
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            logger.info("Synced %d commands to dev guild %s", len(synced), dev_guild_id)
        else:
            synced = await self.tree.sync()
            logger.info("Synced %d commands globally", len(synced))

    async def close(self) -> None:
        """Drain in-flight relay tasks, then disconnect."""
        logger.info("Bot shutting down…")
        await self.relay.wait_idle()
        await super().close()

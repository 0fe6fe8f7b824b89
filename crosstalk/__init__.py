"""
Crosstalk — Cross-Server Global Chat for Discord
=================================================
Links independently administered Discord channels into shared "global
channels".  A message posted in any linked channel is relayed, through a
per-channel webhook, into every other linked channel; replies, reactions
and deletions stay consistent across all copies.

Package layout::

    crosstalk/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Defaults shared by engine, services and bot
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # global_channels snapshot table
    ├── engine/
    │   ├── channels.py    # GlobalChannel record + ChannelRef
    │   ├── errors.py      # ErrorKind + GlobalChatError hierarchy
    │   ├── platform.py    # ChatPlatform protocol (what the engine needs)
    │   ├── registry.py    # Channel registry + reverse index
    │   ├── mapping.py     # Bounded source ↔ relayed message map
    │   ├── presenter.py   # Webhook cache + permission preflight
    │   ├── formatting.py  # Display names, reply quotes, rules text
    │   ├── relay.py       # Fan-out, cascade delete, reaction mirror
    │   └── moderation.py  # Kick / ban / mute / warn with notices
    ├── services/
    │   ├── snapshot_store.py   # Registry persistence
    │   ├── admin_service.py    # str-or-None boundary for commands
    │   ├── discord_platform.py # discord.py implementation of ChatPlatform
    │   ├── embeds.py           # Notice embeds
    │   └── throttle.py         # Per-user relay cooldown
    └── bot/
        ├── core.py        # Bot subclass, wiring, cog loader
        └── cogs/
            ├── relay.py       # on_message / delete / reaction listeners
            └── globalchat.py  # /globalchat admin slash commands
"""

__version__ = "0.1.0"

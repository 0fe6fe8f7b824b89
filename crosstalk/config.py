"""
crosstalk.config — YAML Configuration Loader
=============================================

**Why this file exists:**
This module reads ``config.yaml`` for the bot's soft settings (command
prefix, webhook name, relay limits).  Secrets such as ``DISCORD_TOKEN`` and
``DATABASE_URL`` stay in ``.env`` and are never read here.

Usage::

    from crosstalk.config import load_config

    cfg = load_config()              # reads ./config.yaml by default
    print(cfg.bot_prefix)            # "!"
    print(cfg.mapping_capacity)      # 5000
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

from crosstalk import constants


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class CrosstalkConfig:
    """Immutable configuration loaded from ``config.yaml``.

    Only ``bot_prefix`` is required; every relay tunable falls back to the
    value in :mod:`crosstalk.constants`.
    """

    # Discord
    bot_prefix: str

    # Presentation identity (webhook) reserved name
    webhook_name: str = constants.WEBHOOK_NAME

    # Relay engine
    mapping_capacity: int = constants.MAPPING_CAPACITY
    permission_warning_cooldown_seconds: int = constants.PERMISSION_WARNING_COOLDOWN_SECONDS
    display_name_limit: int = constants.DISPLAY_NAME_LIMIT
    reply_preview_length: int = constants.REPLY_PREVIEW_LENGTH

    # Inbound gating
    max_content_length: int = constants.MAX_CONTENT_LENGTH
    max_attachments: int = constants.MAX_ATTACHMENTS
    user_cooldown_seconds: int = constants.USER_COOLDOWN_SECONDS


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
_INT_KEYS: tuple[str, ...] = (
    "mapping_capacity",
    "permission_warning_cooldown_seconds",
    "display_name_limit",
    "reply_preview_length",
    "max_content_length",
    "max_attachments",
    "user_cooldown_seconds",
)


def load_config(path: str | Path = "config.yaml") -> CrosstalkConfig:
    """Read *path* and return a :class:`CrosstalkConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If ``bot_prefix`` is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    overrides = {key: int(raw[key]) for key in _INT_KEYS if raw.get(key) is not None}
    if raw.get("webhook_name"):
        overrides["webhook_name"] = str(raw["webhook_name"])

    return CrosstalkConfig(bot_prefix=str(raw["bot_prefix"]), **overrides)

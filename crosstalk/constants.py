"""
crosstalk.constants — Shared Constants
=======================================

Single source of truth for relay defaults.  Runtime-tunable values are
also exposed through :class:`crosstalk.config.CrosstalkConfig`; these are
the fallbacks used when a key is absent from ``config.yaml``.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Display-name templates
# ---------------------------------------------------------------------------
# ``None`` on a GlobalChannel means "use these"; ``""`` means blank.
DEFAULT_PREFIX = "[GC]"
DEFAULT_SUFFIX = "• {tenant}"
UNKNOWN_TENANT = "Unknown"

# Literal values accepted by the edit operation for prefix/suffix.
TEMPLATE_RESET = "reset"
TEMPLATE_BLANK = "{}"

# ---------------------------------------------------------------------------
# Platform limits
# ---------------------------------------------------------------------------
DISPLAY_NAME_LIMIT = 80          # Discord webhook username max length
MAX_CONTENT_LENGTH = 2000        # Discord message content limit
MAX_ATTACHMENTS = 5
REPLY_PREVIEW_LENGTH = 100
JUMP_LINK_BASE = "https://discord.com/channels"

# ---------------------------------------------------------------------------
# Relay engine tuning
# ---------------------------------------------------------------------------
WEBHOOK_NAME = "Crosstalk Relay"
MAPPING_CAPACITY = 5000
PERMISSION_WARNING_COOLDOWN_SECONDS = 300
USER_COOLDOWN_SECONDS = 3

# ---------------------------------------------------------------------------
# Identifier generation
# ---------------------------------------------------------------------------
GLOBAL_ID_PREFIX = "gc-"
GLOBAL_ID_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"
GLOBAL_ID_LENGTH = 8
JOIN_KEY_ALPHABET = (
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"
)
JOIN_KEY_LENGTH = 6

NO_REASON = "No reason provided."

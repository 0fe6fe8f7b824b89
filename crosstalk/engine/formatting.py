"""
crosstalk.engine.formatting — Text Building for Relayed Messages
=================================================================

Pure functions: webhook display names from templates, reply quotes with
jump links, inbound content normalization, and the text of rule and
moderation notices.  Nothing here touches the platform.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from crosstalk import constants


def _fill(template: str, values: dict[str, str]) -> str:
    for placeholder, value in values.items():
        template = template.replace(placeholder, value)
    return template


def resolve_display_name(
    *,
    author: str,
    tenant_name: str | None,
    username: str | None = None,
    display_name: str | None = None,
    pronouns: str | None = None,
    prefix_template: str | None = None,
    suffix_template: str | None = None,
    limit: int = constants.DISPLAY_NAME_LIMIT,
) -> str:
    """Build ``prefix + " " + author + " " + suffix`` for the webhook.

    ``None`` templates fall back to the defaults; ``""`` is left blank and
    its separating space is dropped.  Placeholders: ``{user}``,
    ``{tenant}`` (alias ``{server}``), ``{username}``, ``{displayname}``
    and ``{pronouns}``.
    """
    prefix = constants.DEFAULT_PREFIX if prefix_template is None else prefix_template
    suffix = constants.DEFAULT_SUFFIX if suffix_template is None else suffix_template

    safe_username = username or author
    tenant = tenant_name or constants.UNKNOWN_TENANT
    values = {
        "{user}": author,
        "{tenant}": tenant,
        "{server}": tenant,
        "{username}": safe_username,
        "{displayname}": display_name or safe_username,
        "{pronouns}": pronouns or "",
    }
    left = _fill(prefix, values).strip()
    right = _fill(suffix, values).strip()

    name = " ".join(part for part in (left, author, right) if part)
    return name[:limit]


def jump_link(tenant_id: int, channel_id: int, message_id: int) -> str:
    return f"{constants.JUMP_LINK_BASE}/{tenant_id}/{channel_id}/{message_id}"


def build_reply_quote(
    body: str,
    *,
    reply_author: str,
    reply_content: str,
    link: str | None = None,
    preview_length: int = constants.REPLY_PREVIEW_LENGTH,
) -> str:
    """Prefix *body* with a one-line quote of the message being replied to."""
    preview = reply_content
    if len(preview) > preview_length:
        preview = preview[:preview_length] + "…"
    if link:
        header = f"> [**↩ {reply_author}:**]({link}) {preview}"
    else:
        header = f"> **↩ {reply_author}:** {preview}"
    return f"{header}\n{body}"


def prepare_content(
    content: str,
    attachment_urls: Sequence[str] = (),
    *,
    max_length: int = constants.MAX_CONTENT_LENGTH,
    max_attachments: int = constants.MAX_ATTACHMENTS,
) -> str:
    """Trim inbound content and append attachment URLs, one per line."""
    parts = [content[:max_length]] if content else []
    parts.extend(attachment_urls[:max_attachments])
    return "\n".join(parts)


def pronouns_from_roles(role_names: Iterable[str]) -> str:
    """Pronoun-looking role names (``they/them``), comma separated."""
    return ", ".join(name for name in role_names if "/" in name)


def format_rules(rules: Sequence[str]) -> str:
    if not rules:
        return "No rules set."
    return "\n".join(f"{i}. {rule}" for i, rule in enumerate(rules, start=1))


def format_duration(seconds: float) -> str:
    """Compact ``45s`` / ``30m`` / ``12h`` / ``7d`` rendering."""
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes}m"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h"
    return f"{hours // 24}d"


def parse_duration(raw: str | None) -> int:
    """Parse ``30m``/``1h``/``7d``/``45s`` (or bare seconds) into seconds.

    Empty or ``0`` means permanent and returns ``0``.

    Raises
    ------
    ValueError
        If *raw* isn't a recognizable duration.
    """
    text = (raw or "").strip().lower()
    if not text or text == "0":
        return 0
    units = {"s": 1, "m": 60, "h": 3600, "d": 86400}
    if text[-1] in units:
        return int(text[:-1]) * units[text[-1]]
    return int(text)

"""
crosstalk.engine.channels — GlobalChannel Record
=================================================

A global channel is a virtual room.  Each participating guild ("tenant")
links at most one of its text channels into it.  The record also carries
the room's moderation state and its display-name templates.

Records are plain dataclasses mutated only by
:class:`crosstalk.engine.registry.ChannelRegistry`, which persists the full
snapshot after every change.
"""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Any


class Visibility(enum.StrEnum):
    """Whether the room is listed in the public directory."""
    PUBLIC = "public"
    UNLISTED = "unlisted"

    @classmethod
    def parse(cls, raw: str | None) -> Visibility:
        """Accept ``public``/``unlisted`` and the legacy ``private`` spelling."""
        value = (raw or cls.PUBLIC).strip().lower()
        if value == "private":
            return cls.UNLISTED
        return cls(value)


@dataclass(frozen=True, slots=True)
class ChannelRef:
    """Address of a tenant text channel: (guild snowflake, channel snowflake)."""

    tenant_id: int
    channel_id: int


@dataclass(slots=True)
class GlobalChannel:
    """One virtual room and everything persisted about it."""

    id: str
    name: str
    description: str
    owner_id: int
    visibility: Visibility = Visibility.PUBLIC
    key_required: bool = False
    key: str | None = None
    co_owner_ids: set[int] = field(default_factory=set)
    moderator_ids: set[int] = field(default_factory=set)
    rules: list[str] = field(default_factory=list)

    # tenant_id -> tenant channel id (one link per tenant)
    linked_channels: dict[int, int] = field(default_factory=dict)

    banned_tenants: set[int] = field(default_factory=set)
    kicked_tenants: set[int] = field(default_factory=set)
    # tenant_id -> unmute epoch seconds, 0 = permanent
    muted_tenants: dict[int, float] = field(default_factory=dict)
    warnings: dict[int, list[str]] = field(default_factory=dict)

    # None = default template, "" = intentionally blank
    message_prefix: str | None = None
    message_suffix: str | None = None

    created_at: float = field(default_factory=time.time)

    # -- access ------------------------------------------------------------
    def is_owner(self, user_id: int) -> bool:
        return self.owner_id == user_id

    def has_manage_access(self, user_id: int) -> bool:
        return self.is_owner(user_id) or user_id in self.co_owner_ids

    def has_moderate_access(self, user_id: int) -> bool:
        return self.has_manage_access(user_id) or user_id in self.moderator_ids

    # -- links -------------------------------------------------------------
    def is_linked(self, tenant_id: int) -> bool:
        return tenant_id in self.linked_channels

    def tenant_for_channel(self, channel_id: int) -> int | None:
        """Reverse lookup of the tenant that linked *channel_id*."""
        for tenant_id, linked_id in self.linked_channels.items():
            if linked_id == channel_id:
                return tenant_id
        return None

    def refs(self) -> list[ChannelRef]:
        return [ChannelRef(t, c) for t, c in self.linked_channels.items()]

    # -- serialization -----------------------------------------------------
    def to_dict(self) -> dict[str, Any]:
        """JSON-safe dict; integer map keys become strings."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "owner_id": self.owner_id,
            "visibility": str(self.visibility),
            "key_required": self.key_required,
            "key": self.key,
            "co_owner_ids": sorted(self.co_owner_ids),
            "moderator_ids": sorted(self.moderator_ids),
            "rules": list(self.rules),
            "linked_channels": {str(t): c for t, c in self.linked_channels.items()},
            "banned_tenants": sorted(self.banned_tenants),
            "kicked_tenants": sorted(self.kicked_tenants),
            "muted_tenants": {str(t): u for t, u in self.muted_tenants.items()},
            "warnings": {str(t): list(r) for t, r in self.warnings.items()},
            "message_prefix": self.message_prefix,
            "message_suffix": self.message_suffix,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GlobalChannel:
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description") or "",
            owner_id=int(data["owner_id"]),
            visibility=Visibility.parse(data.get("visibility")),
            key_required=bool(data.get("key_required", False)),
            key=data.get("key"),
            co_owner_ids={int(u) for u in data.get("co_owner_ids", [])},
            moderator_ids={int(u) for u in data.get("moderator_ids", [])},
            rules=list(data.get("rules", [])),
            linked_channels={
                int(t): int(c) for t, c in data.get("linked_channels", {}).items()
            },
            banned_tenants={int(t) for t in data.get("banned_tenants", [])},
            kicked_tenants={int(t) for t in data.get("kicked_tenants", [])},
            muted_tenants={
                int(t): float(u) for t, u in data.get("muted_tenants", {}).items()
            },
            warnings={
                int(t): list(r) for t, r in data.get("warnings", {}).items()
            },
            message_prefix=data.get("message_prefix"),
            message_suffix=data.get("message_suffix"),
            created_at=float(data.get("created_at") or time.time()),
        )

"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import pytest
from sqlalchemy import Engine, create_engine

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.pool import StaticPool

from crosstalk.database.models import Base
from crosstalk.engine.channels import ChannelRef
from crosstalk.engine.mapping import MessageMappingStore
from crosstalk.engine.platform import Capability
from crosstalk.engine.presenter import IdentityPresenter
from crosstalk.engine.registry import ChannelRegistry
from crosstalk.engine.relay import RelayService
from crosstalk.services.snapshot_store import MemorySnapshotStore


@compiles(PG_JSONB, "sqlite")
def _compile_jsonb_as_text(type_, compiler, **kw):
    return "TEXT"


def run_async(coro):
    """Run an async coroutine in a new event loop."""
    return asyncio.get_event_loop_policy().new_event_loop().run_until_complete(coro)


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------
class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Recording platform
# ---------------------------------------------------------------------------
@dataclass
class Sent:
    channel_id: int
    message_id: int
    content: str
    username: str
    avatar_url: str | None


class FakePlatform:
    """In-memory ChatPlatform that records every call.

    ``on_delete`` lets a test feed deletions back in, the way the gateway
    reports the bot's own deletes.
    """

    def __init__(self) -> None:
        self.tenant_names: dict[int, str] = {}
        self.channels: set[ChannelRef] = set()
        self.denied: dict[int, set[Capability]] = {}
        self.fail_send: set[int] = set()
        self.fail_identity: set[int] = set()
        self.fail_delete: set[int] = set()

        self.identity_calls: list[int] = []
        self.sent: list[Sent] = []
        self.deleted: list[tuple[int, int, str]] = []       # (channel, message, via)
        self.reactions: list[tuple[int, int, str, str]] = []  # (channel, message, emoji, via)
        self.notices: list[tuple[int, str, str, bool]] = []   # (channel, title, message, error)
        self.admin_dms: list[tuple[int, str, str]] = []
        self.on_delete = None
        self._next_id = 10_000

    def add_channel(self, tenant_id: int, channel_id: int, tenant_name: str | None = None) -> ChannelRef:
        ref = ChannelRef(tenant_id, channel_id)
        self.channels.add(ref)
        if tenant_name is not None:
            self.tenant_names[tenant_id] = tenant_name
        return ref

    def sent_to(self, channel_id: int) -> list[Sent]:
        return [s for s in self.sent if s.channel_id == channel_id]

    # -- ChatPlatform --------------------------------------------------------
    def channel_exists(self, ref):
        return ref in self.channels

    def has_capability(self, ref, capability):
        return capability not in self.denied.get(ref.channel_id, set())

    def resolve_tenant_display_name(self, tenant_id):
        return self.tenant_names.get(tenant_id)

    async def get_or_create_identity(self, ref, reserved_name):
        await asyncio.sleep(0)
        self.identity_calls.append(ref.channel_id)
        if ref.channel_id in self.fail_identity:
            raise RuntimeError("webhook creation failed")
        return ("webhook", ref.channel_id, reserved_name)

    async def send_as(self, identity, ref, content, *, username, avatar_url=None):
        await asyncio.sleep(0)
        if ref.channel_id in self.fail_send:
            raise RuntimeError("send failed")
        self._next_id += 1
        self.sent.append(Sent(ref.channel_id, self._next_id, content, username, avatar_url))
        return self._next_id

    async def _delete(self, ref, message_id, via):
        await asyncio.sleep(0)
        self.deleted.append((ref.channel_id, message_id, via))
        if ref.channel_id in self.fail_delete:
            raise RuntimeError("delete failed")
        if self.on_delete is not None:
            self.on_delete(message_id, ref.channel_id)

    async def delete_message_as(self, identity, ref, message_id):
        await self._delete(ref, message_id, "webhook")

    async def delete_message(self, ref, message_id):
        await self._delete(ref, message_id, "bot")

    async def add_reaction_as(self, identity, ref, message_id, emoji):
        await asyncio.sleep(0)
        self.reactions.append((ref.channel_id, message_id, emoji, "webhook"))

    async def add_reaction(self, ref, message_id, emoji):
        await asyncio.sleep(0)
        self.reactions.append((ref.channel_id, message_id, emoji, "bot"))

    async def send_notice(self, ref, title, message, *, error=False):
        self.notices.append((ref.channel_id, title, message, error))

    async def notify_tenant_admin(self, tenant_id, title, message):
        self.admin_dms.append((tenant_id, title, message))


# ---------------------------------------------------------------------------
# Store whose saves can be made to fail
# ---------------------------------------------------------------------------
class FlakyStore(MemorySnapshotStore):
    """Memory store that raises from ``save`` while ``fail`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.fail = False

    def save(self, channels):
        if self.fail:
            raise OSError("disk full")
        super().save(channels)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all Crosstalk tables.

    StaticPool keeps one shared connection so ``asyncio.to_thread`` workers
    see the same database.
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemorySnapshotStore:
    return MemorySnapshotStore()


@pytest.fixture
def registry(store, clock) -> ChannelRegistry:
    return ChannelRegistry(store, clock=clock)


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def service(registry, platform, clock) -> RelayService:
    return RelayService(
        registry,
        platform,
        mapping=MessageMappingStore(100),
        presenter=IdentityPresenter(platform, clock=clock),
    )


@pytest.fixture
def two_tenants(registry, platform):
    """``gc-1``-style room linking tenant A (#general 11) and B (#general 21)."""
    gc = registry.create("general", "", "public", False, None, owner_id=1)
    platform.add_channel(100, 11, "A")
    platform.add_channel(200, 21, "B")
    registry.link(gc.id, 100, 11)
    registry.link(gc.id, 200, 21)
    return gc

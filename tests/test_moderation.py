"""
tests/test_moderation.py — Moderation Controller Tests
=======================================================
Each action updates the registry and posts a notice to the affected
tenant.  Kick and ban notify before the link is removed.
"""

from __future__ import annotations

import pytest
from conftest import run_async

from crosstalk.engine.errors import NotFound
from crosstalk.engine.moderation import ModerationController


@pytest.fixture
def moderation(registry, platform) -> ModerationController:
    return ModerationController(registry, platform)


class TestRemoval:

    def test_kick_notifies_then_unlinks(self, moderation, registry, platform, two_tenants):
        run_async(moderation.kick(two_tenants.id, 200, "flooding"))
        assert registry.channel_for(21) is None
        assert 200 in two_tenants.kicked_tenants
        channel_id, _title, message, _error = platform.notices[0]
        assert channel_id == 21
        assert "**kicked**" in message and "flooding" in message

    def test_kick_unlinked_tenant(self, moderation, two_tenants):
        with pytest.raises(NotFound):
            run_async(moderation.kick(two_tenants.id, 999))

    def test_ban_linked_tenant(self, moderation, registry, platform, two_tenants):
        run_async(moderation.ban(two_tenants.id, 200))
        assert 200 in two_tenants.banned_tenants
        assert registry.channel_for(21) is None
        assert "No reason provided." in platform.notices[0][2]

    def test_ban_unlinked_tenant_posts_nothing(self, moderation, platform, two_tenants):
        run_async(moderation.ban(two_tenants.id, 999))
        assert 999 in two_tenants.banned_tenants
        assert platform.notices == []

    def test_unban(self, moderation, two_tenants):
        run_async(moderation.ban(two_tenants.id, 999))
        run_async(moderation.unban(two_tenants.id, 999))
        assert 999 not in two_tenants.banned_tenants

    def test_notice_failure_does_not_block_action(self, moderation, registry, platform, two_tenants):
        async def broken(*args, **kwargs):
            raise RuntimeError("missing access")
        platform.send_notice = broken
        run_async(moderation.kick(two_tenants.id, 200))
        assert registry.channel_for(21) is None


class TestWarnAndMute:

    def test_warn_counts(self, moderation, platform, two_tenants):
        assert run_async(moderation.warn(two_tenants.id, 200, "rude")) == 1
        assert run_async(moderation.warn(two_tenants.id, 200)) == 2
        assert len(platform.notices) == 2
        run_async(moderation.unwarn(two_tenants.id, 200))
        assert 200 not in two_tenants.warnings

    def test_timed_mute_notice(self, moderation, registry, platform, clock, two_tenants):
        until = run_async(moderation.mute(two_tenants.id, 200, "30m", "spam"))
        assert until == clock.now + 1800
        assert registry.is_muted(two_tenants, 200)
        assert "**muted** for 30m" in platform.notices[0][2]

    def test_permanent_mute_notice(self, moderation, platform, two_tenants):
        assert run_async(moderation.mute(two_tenants.id, 200)) == 0
        assert "**muted** permanently" in platform.notices[0][2]

    def test_bad_duration(self, moderation, two_tenants):
        with pytest.raises(ValueError):
            run_async(moderation.mute(two_tenants.id, 200, "forever"))

    def test_unmute(self, moderation, registry, platform, two_tenants):
        run_async(moderation.mute(two_tenants.id, 200, 60))
        run_async(moderation.unmute(two_tenants.id, 200))
        assert not registry.is_muted(two_tenants, 200)
        assert "**unmuted**" in platform.notices[-1][2]


class TestRules:

    def test_set_rules_broadcasts_to_every_link(self, moderation, platform, two_tenants):
        run_async(moderation.set_rules(two_tenants.id, ["be kind", "no spam"]))
        assert sorted(n[0] for n in platform.notices) == [11, 21]
        assert all("1. be kind\n2. no spam" in n[2] for n in platform.notices)

    def test_send_rules_to_one_tenant(self, moderation, platform, two_tenants):
        assert run_async(moderation.send_rules(two_tenants.id, 100)) is False
        run_async(moderation.set_rules(two_tenants.id, ["be kind"]))
        platform.notices.clear()
        assert run_async(moderation.send_rules(two_tenants.id, 100)) is True
        assert [n[0] for n in platform.notices] == [11]

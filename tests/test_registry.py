"""
tests/test_registry.py — Channel Registry Tests
================================================
Link contracts, reverse index consistency, moderation state and
persistence-on-every-mutation.
"""

from __future__ import annotations

import re
import threading

import pytest
from conftest import FlakyStore

from crosstalk.engine.channels import Visibility
from crosstalk.engine.errors import (
    AlreadyLinked,
    Banned,
    ChannelInUse,
    ErrorKind,
    GlobalChatError,
    KeyMismatch,
    NotFound,
    PersistenceFailure,
)
from crosstalk.engine.registry import ChannelRegistry


def _make(registry, **kwargs):
    params = dict(name="room", description="", visibility="public",
                  key_required=False, key=None, owner_id=1)
    params.update(kwargs)
    return registry.create(**params)


class TestCreateAndDelete:

    def test_ids_are_prefixed_and_unique(self, registry):
        ids = {_make(registry).id for _ in range(20)}
        assert len(ids) == 20
        assert all(re.fullmatch(r"gc-[a-z0-9]{8}", gid) for gid in ids)

    def test_key_required_without_key_generates_one(self, registry):
        gc = _make(registry, key_required=True)
        assert gc.key is not None and len(gc.key) == 6

    def test_key_ignored_when_not_required(self, registry):
        assert _make(registry, key="abc").key is None

    def test_legacy_private_visibility(self, registry):
        assert _make(registry, visibility="private").visibility is Visibility.UNLISTED

    def test_delete_clears_reverse_index(self, registry):
        gc = _make(registry)
        registry.link(gc.id, 100, 11)
        registry.delete(gc.id)
        assert registry.channel_for(11) is None
        assert registry.reverse_index() == {}
        assert registry.get(gc.id) is None

    def test_delete_unknown(self, registry):
        with pytest.raises(NotFound):
            registry.delete("gc-missing0")

    def test_delete_notifies_invalidation_listeners(self, registry):
        gc = _make(registry)
        registry.link(gc.id, 100, 11)
        registry.link(gc.id, 200, 21)
        dropped = []
        registry.add_invalidation_listener(dropped.append)
        registry.delete(gc.id)
        assert sorted(dropped) == [11, 21]


class TestLink:

    def test_link_updates_both_indexes(self, registry):
        gc = _make(registry)
        registry.link(gc.id, 100, 11)
        assert gc.linked_channels == {100: 11}
        assert registry.channel_for(11) is gc
        assert registry.tenant_for(gc, 11) == 100

    def test_unknown_channel(self, registry):
        with pytest.raises(NotFound):
            registry.link("gc-nothere0", 100, 11)

    def test_tenant_already_linked(self, registry):
        gc = _make(registry)
        registry.link(gc.id, 100, 11)
        with pytest.raises(AlreadyLinked) as exc:
            registry.link(gc.id, 100, 12)
        assert exc.value.kind is ErrorKind.ALREADY_LINKED

    def test_channel_linked_elsewhere_is_already_linked(self, registry):
        first, second = _make(registry), _make(registry)
        registry.link(first.id, 100, 11)
        with pytest.raises(AlreadyLinked) as exc:
            registry.link(second.id, 100, 11)
        assert isinstance(exc.value, ChannelInUse)
        assert exc.value.kind is ErrorKind.CHANNEL_IN_USE
        assert registry.channel_for(11) is first

    def test_key_mismatch(self, registry):
        gc = _make(registry, key_required=True, key="s3cret")
        for wrong in (None, "", "S3CRET", "s3cret "):
            with pytest.raises(KeyMismatch):
                registry.link(gc.id, 100, 11, wrong)
        registry.link(gc.id, 100, 11, "s3cret")
        assert gc.is_linked(100)

    def test_banned_tenant(self, registry):
        gc = _make(registry)
        registry.ban(gc.id, 100)
        with pytest.raises(Banned):
            registry.link(gc.id, 100, 11)

    def test_relink_clears_kick(self, registry):
        gc = _make(registry)
        registry.link(gc.id, 100, 11)
        registry.kick(gc.id, 100)
        assert 100 in gc.kicked_tenants
        registry.link(gc.id, 100, 11)
        assert 100 not in gc.kicked_tenants

    def test_unlink(self, registry):
        gc = _make(registry)
        registry.link(gc.id, 100, 11)
        registry.unlink(100, 11)
        assert not gc.is_linked(100)
        assert registry.channel_for(11) is None

    def test_unlink_not_linked(self, registry):
        with pytest.raises(NotFound):
            registry.unlink(100, 11)

    def test_unlink_wrong_tenant(self, registry):
        gc = _make(registry)
        registry.link(gc.id, 100, 11)
        with pytest.raises(NotFound):
            registry.unlink(200, 11)
        assert gc.is_linked(100)

    def test_unlink_tenant(self, registry):
        gc = _make(registry)
        registry.link(gc.id, 100, 11)
        registry.unlink_tenant(gc.id, 100)
        assert registry.channel_for(11) is None
        with pytest.raises(NotFound):
            registry.unlink_tenant(gc.id, 100)


class TestModerationState:

    def test_ban_unlinks_and_reports_channel(self, registry):
        gc = _make(registry)
        registry.link(gc.id, 100, 11)
        assert registry.ban(gc.id, 100) == 11
        assert registry.channel_for(11) is None
        registry.unban(gc.id, 100)
        registry.link(gc.id, 100, 11)

    def test_unban_not_banned(self, registry):
        gc = _make(registry)
        with pytest.raises(NotFound):
            registry.unban(gc.id, 100)

    def test_kick_requires_link(self, registry):
        gc = _make(registry)
        with pytest.raises(NotFound):
            registry.kick(gc.id, 100)

    def test_timed_mute_expires_lazily(self, registry, clock):
        gc = _make(registry)
        registry.link(gc.id, 100, 11)
        until = registry.mute(gc.id, 100, 30)
        assert until == clock.now + 30
        assert registry.is_muted(gc, 100)
        clock.advance(30)
        assert not registry.is_muted(gc, 100)
        assert 100 not in gc.muted_tenants

    def test_permanent_mute(self, registry, clock):
        gc = _make(registry)
        registry.link(gc.id, 100, 11)
        assert registry.mute(gc.id, 100, 0) == 0
        clock.advance(10**9)
        assert registry.is_muted(gc, 100)
        registry.unmute(gc.id, 100)
        assert not registry.is_muted(gc, 100)

    def test_warn_accumulates(self, registry):
        gc = _make(registry)
        registry.link(gc.id, 100, 11)
        registry.warn(gc.id, 100, "spam")
        assert registry.warn(gc.id, 100, None) == ["spam", "No reason provided."]
        registry.unwarn(gc.id, 100)
        assert 100 not in gc.warnings


class TestEditAndStaff:

    def test_template_reset_and_blank(self, registry):
        gc = _make(registry, message_prefix="<<", message_suffix="{}")
        assert gc.message_prefix == "<<"
        assert gc.message_suffix == ""
        registry.edit(gc.id, message_prefix="reset")
        assert gc.message_prefix is None
        assert gc.message_suffix == ""

    def test_edit_key_turns_on_key_requirement(self, registry):
        gc = _make(registry)
        registry.edit(gc.id, key="joinme")
        assert gc.key_required and gc.key == "joinme"

    def test_bad_visibility_leaves_record_untouched(self, registry):
        gc = _make(registry)
        with pytest.raises(ValueError):
            registry.edit(gc.id, name="renamed", visibility="secret")
        assert gc.name == "room"

    def test_staff_and_listings(self, registry):
        owned = _make(registry, owner_id=1)
        hidden = _make(registry, owner_id=2, visibility="unlisted")
        registry.add_co_owner(hidden.id, 1)
        registry.add_moderator(owned.id, 3)
        assert {gc.id for gc in registry.channels_for_user(1)} == {owned.id, hidden.id}
        assert [gc.id for gc in registry.public_channels()] == [owned.id]
        assert owned.has_moderate_access(3) and not owned.has_manage_access(3)
        registry.remove_co_owner(hidden.id, 1)
        registry.remove_moderator(owned.id, 3)
        assert registry.channels_for_user(1) == [owned]

    def test_set_rules_drops_blanks(self, registry):
        gc = _make(registry)
        registry.set_rules(gc.id, [" be kind ", "", "   ", "no spam"])
        assert gc.rules == ["be kind", "no spam"]


class TestPersistence:

    def test_every_mutation_saves(self, registry, store):
        before = store.saves
        gc = _make(registry)
        registry.link(gc.id, 100, 11)
        registry.mute(gc.id, 100, 60)
        registry.set_rules(gc.id, ["r"])
        assert store.saves == before + 4

    def test_reload_restores_reverse_index(self, registry, store, clock):
        gc = _make(registry)
        registry.link(gc.id, 100, 11)
        registry.mute(gc.id, 100, 0)
        again = ChannelRegistry(store, clock=clock)
        restored = again.channel_for(11)
        assert restored is not None and restored.id == gc.id
        assert again.is_muted(restored, 100)

    def test_failed_link_does_not_save(self, registry, store):
        gc = _make(registry, key_required=True, key="k")
        before = store.saves
        with pytest.raises(KeyMismatch):
            registry.link(gc.id, 100, 11, "nope")
        assert store.saves == before


class TestSaveFailure:

    @pytest.fixture
    def flaky(self) -> FlakyStore:
        return FlakyStore()

    @pytest.fixture
    def reg(self, flaky, clock) -> ChannelRegistry:
        return ChannelRegistry(flaky, clock=clock)

    def test_failed_link_rolls_back(self, reg, flaky):
        gc = _make(reg)
        flaky.fail = True
        with pytest.raises(PersistenceFailure) as exc:
            reg.link(gc.id, 100, 11)
        assert exc.value.kind is ErrorKind.PERSISTENCE_FAILURE
        assert isinstance(exc.value, GlobalChatError)
        assert gc.linked_channels == {}
        assert reg.channel_for(11) is None
        assert reg.reverse_index() == {}
        assert flaky.data[gc.id]["linked_channels"] == {}

    def test_failed_delete_keeps_channel_and_links(self, reg, flaky):
        gc = _make(reg)
        reg.link(gc.id, 100, 11)
        flaky.fail = True
        with pytest.raises(PersistenceFailure):
            reg.delete(gc.id)
        assert reg.get(gc.id) is gc
        assert reg.channel_for(11) is gc
        assert gc.linked_channels == {100: 11}
        assert list(flaky.data) == [gc.id]

    def test_failed_create_adds_nothing(self, reg, flaky):
        flaky.fail = True
        with pytest.raises(PersistenceFailure):
            _make(reg)
        assert len(reg) == 0

    def test_failed_moderation_changes_roll_back(self, reg, flaky):
        gc = _make(reg)
        reg.link(gc.id, 100, 11)
        reg.set_rules(gc.id, ["be kind"])
        flaky.fail = True
        with pytest.raises(PersistenceFailure):
            reg.mute(gc.id, 100, 0)
        with pytest.raises(PersistenceFailure):
            reg.kick(gc.id, 100)
        with pytest.raises(PersistenceFailure):
            reg.set_rules(gc.id, ["no spam"])
        assert not reg.is_muted(gc, 100)
        assert 100 not in gc.kicked_tenants
        assert reg.channel_for(11) is gc
        assert gc.rules == ["be kind"]

    def test_next_save_after_recovery_succeeds(self, reg, flaky):
        gc = _make(reg)
        flaky.fail = True
        with pytest.raises(PersistenceFailure):
            reg.link(gc.id, 100, 11)
        flaky.fail = False
        reg.link(gc.id, 100, 11)
        assert flaky.data[gc.id]["linked_channels"] == {"100": 11}


class TestConcurrentAccess:

    def test_readers_stay_consistent_while_a_worker_mutates(self, registry):
        gc = _make(registry)
        registry.link(gc.id, 200, 21)
        stop = threading.Event()
        errors = []

        def writer():
            try:
                while not stop.is_set():
                    registry.link(gc.id, 100, 11)
                    registry.mute(gc.id, 100, 60)
                    registry.unlink_tenant(gc.id, 100)
            except Exception as exc:
                errors.append(exc)

        worker = threading.Thread(target=writer)
        worker.start()
        try:
            for _ in range(2000):
                refs = registry.refs(gc)
                assert any(ref.channel_id == 21 for ref in refs)
                assert registry.tenant_for(gc, 21) == 200
                registry.is_muted(gc, 100)
                registry.channels_for_user(1)
                registry.reverse_index()
        finally:
            stop.set()
            worker.join()
        assert errors == []

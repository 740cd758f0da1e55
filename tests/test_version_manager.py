# ============================================================
# Tests : tests/test_version_manager.py
# Objet  : Versions immuables des chatbots (sqlite mémoire).
# ============================================================
"""Tests du gestionnaire de versions des chatbots."""

from __future__ import annotations

import pytest

from backend.core.errors import (
    AuthorizationError,
    ConflictError,
    InvariantViolation,
    NotFoundError,
    ValidationError,
)
from backend.domain.chatbot_version import VersionOverrides
from backend.infra.repo.conversation_repo import ConversationRepo
from backend.services.version_manager import VersionManager
from tests.fakes import seed_creator, seed_legacy_chatbot, seed_user


@pytest.fixture
def owner(session):
    return seed_user(session, "ext_owner")


@pytest.fixture
def creator(session, owner):
    return seed_creator(session, owner)


@pytest.fixture
def vm(session):
    return VersionManager(session)


def test_create_chatbot_creates_version_one(vm, creator, owner):
    chatbot, version = vm.create_chatbot(creator.id, owner.id, "Art of War")
    assert version.version_number == 1
    assert chatbot.current_version_id == version.id
    assert version.notes == "Initial version"
    assert version.system_prompt == "You are a helpful assistant."
    assert version.model_provider == "openai"
    assert version.model_name == "gpt-4o"
    assert version.vector_namespace == f"chatbot-{chatbot.id}"
    assert version.activated_at is not None


def test_create_chatbot_leaves_caller_overrides_untouched(vm, creator, owner):
    overrides = VersionOverrides(system_prompt="p1")
    _, version = vm.create_chatbot(creator.id, owner.id, "Bot", overrides=overrides)
    assert version.notes == "Initial version"
    assert version.system_prompt == "p1"
    assert overrides.notes is None


def test_create_chatbot_requires_membership(vm, session, creator):
    outsider = seed_user(session, "ext_outsider")
    with pytest.raises(AuthorizationError):
        vm.create_chatbot(creator.id, outsider.id, "Nope")


def test_create_chatbot_unknown_creator(vm, owner):
    with pytest.raises(NotFoundError):
        vm.create_chatbot("missing", owner.id, "Nope")


def test_create_chatbot_requires_title(vm, creator, owner):
    with pytest.raises(ValidationError):
        vm.create_chatbot(creator.id, owner.id, "   ")


def test_versions_are_monotonic_and_copy_forward(vm, creator, owner):
    chatbot, v1 = vm.create_chatbot(
        creator.id,
        owner.id,
        "Bot",
        overrides=VersionOverrides(
            system_prompt="p1", rag_settings_json={"topK": 3}, config_json={"tone": "calm"}
        ),
    )
    v2 = vm.create_version(chatbot.id, owner.id, VersionOverrides(system_prompt="p2"))
    v3 = vm.create_version(chatbot.id, owner.id, VersionOverrides(model_name="gpt-4o-mini"))
    v4 = vm.create_version(chatbot.id, owner.id)

    numbers = [v.version_number for v in vm.list_versions(chatbot.id)]
    assert numbers == [1, 2, 3, 4]

    assert v2.system_prompt == "p2"
    assert v2.rag_settings_json == {"topK": 3}
    assert v2.config_json == {"tone": "calm"}
    assert v3.system_prompt == "p2"
    assert v3.model_name == "gpt-4o-mini"
    assert v4.model_name == v3.model_name
    assert v4.vector_namespace == v1.vector_namespace


def test_create_version_moves_pointer_and_deactivates_previous(vm, creator, owner):
    chatbot, v1 = vm.create_chatbot(creator.id, owner.id, "Bot")
    v2 = vm.create_version(chatbot.id, owner.id, VersionOverrides(system_prompt="new"))
    assert vm.get_chatbot(chatbot.id).current_version_id == v2.id
    assert vm.get_version(v1.id).deactivated_at is not None
    assert vm.get_version(v2.id).deactivated_at is None
    assert vm.resolve_active_version(chatbot.id).id == v2.id


def test_create_version_unknown_chatbot(vm, owner):
    with pytest.raises(NotFoundError):
        vm.create_version("missing", owner.id, VersionOverrides(system_prompt="x"))


def test_conversation_binding_survives_new_versions(vm, session, creator, owner):
    chatbot, v1 = vm.create_chatbot(creator.id, owner.id, "Bot")
    conv = ConversationRepo(session).create(chatbot.id, v1.id, owner.id)
    for i in range(3):
        vm.create_version(chatbot.id, owner.id, VersionOverrides(system_prompt=f"p{i}"))
    session.expire_all()
    assert ConversationRepo(session).get(conv.id).chatbot_version_id == v1.id


def test_update_details_does_not_version(vm, creator, owner):
    chatbot, _ = vm.create_chatbot(creator.id, owner.id, "Bot")
    vm.update_details(chatbot.id, {"title": "Renamed", "is_public": True})
    assert [v.version_number for v in vm.list_versions(chatbot.id)] == [1]
    assert vm.get_chatbot(chatbot.id).title == "Renamed"


def test_update_details_rejects_versioned_fields(vm, creator, owner):
    chatbot, _ = vm.create_chatbot(creator.id, owner.id, "Bot")
    with pytest.raises(ValidationError):
        vm.update_details(chatbot.id, {"system_prompt": "sneaky"})


def test_resolve_repairs_missing_pointer(vm, session, creator, owner):
    chatbot, v1 = vm.create_chatbot(creator.id, owner.id, "Bot")
    chatbot.current_version_id = None
    session.flush()
    assert vm.resolve_active_version(chatbot.id).id == v1.id
    assert vm.get_chatbot(chatbot.id).current_version_id == v1.id


def test_resolve_without_version_fails_fast(vm, session, creator):
    legacy = seed_legacy_chatbot(session, creator)
    with pytest.raises(InvariantViolation):
        vm.resolve_active_version(legacy.id)
    assert vm.list_versions(legacy.id) == []


def test_resolve_auto_migrates_when_enabled(vm, session, creator, owner, monkeypatch):
    monkeypatch.setenv("FF_VERSION_AUTO_MIGRATE", "on")
    legacy = seed_legacy_chatbot(
        session, creator, system_prompt="legacy prompt", rag_settings_json={"topK": 7}
    )
    first = vm.resolve_active_version(legacy.id)
    again = vm.resolve_active_version(legacy.id)
    assert first.id == again.id
    assert first.version_number == 1
    assert first.system_prompt == "legacy prompt"
    assert first.rag_settings_json == {"topK": 7}
    assert first.created_by_user_id == owner.id
    assert first.notes == "Auto-created version 1 for existing chatbot"
    assert len(vm.list_versions(legacy.id)) == 1


def test_resolve_unknown_chatbot(vm):
    with pytest.raises(NotFoundError):
        vm.resolve_active_version("missing")


def test_duplicate_version_number_is_conflict(vm, session, creator, owner, monkeypatch):
    chatbot, _ = vm.create_chatbot(creator.id, owner.id, "Bot")
    # simule une requête concurrente ayant lu le même maximum
    monkeypatch.setattr(vm._chatbots, "max_version_number", lambda _cid: 0)
    with pytest.raises(ConflictError):
        vm.create_version(chatbot.id, owner.id, VersionOverrides(system_prompt="race"))


def test_auto_migrate_race_is_absorbed(vm, session, creator, owner, monkeypatch):
    monkeypatch.setenv("FF_VERSION_AUTO_MIGRATE", "true")
    legacy = seed_legacy_chatbot(session, creator)
    legacy_id = legacy.id
    winner = vm.create_initial_version(legacy, owner.id, "winner", "backfill")
    session.commit()

    # le perdant a lu l'état antérieur à la création de la version gagnante
    legacy = vm.get_chatbot(legacy_id)
    legacy.current_version_id = None
    session.flush()
    real_lowest = vm._chatbots.lowest_version
    calls = []

    def stale_lowest(chatbot_id):
        calls.append(chatbot_id)
        return None if len(calls) == 1 else real_lowest(chatbot_id)

    monkeypatch.setattr(vm._chatbots, "lowest_version", stale_lowest)
    monkeypatch.setattr(vm._chatbots, "max_version_number", lambda _cid: 0)

    resolved = vm.resolve_active_version(legacy_id)
    assert resolved.id == winner.id
    assert len(calls) == 2

# ============================================================
# Tests : tests/test_conversations_service.py
# Objet  : Orchestrateur de conversations (sqlite mémoire + fakes RAG).
# ============================================================

from __future__ import annotations

import pytest

from backend.core.errors import (
    AuthorizationError,
    InvariantViolation,
    NotFoundError,
    ValidationError,
)
from backend.domain.chatbot_version import VersionOverrides
from backend.domain.retrieval_types import VectorMatch
from backend.infra.vecstores.base import VectorIndexError
from backend.services.conversations import ConversationOrchestrator
from backend.services.intake import IntakeService
from backend.services.retrieval import RetrievalPipeline
from tests.fakes import FakeEmbeddings, FakeIndex, seed_creator, seed_legacy_chatbot, seed_user


@pytest.fixture
def owner(session):
    return seed_user(session, "ext_owner")


@pytest.fixture
def creator(session, owner):
    return seed_creator(session, owner)


@pytest.fixture
def index():
    return FakeIndex([VectorMatch(id="p1", score=0.7, metadata={"text": "passage"})])


@pytest.fixture
def orch(session, index):
    return ConversationOrchestrator(session, retrieval=RetrievalPipeline(FakeEmbeddings(), index))


@pytest.fixture
def bot(orch, creator, owner):
    chatbot, _ = orch.versions.create_chatbot(
        creator.id,
        owner.id,
        "Bot",
        overrides=VersionOverrides(rag_settings_json={"topK": 3, "filter": {"sourceId": "d1"}}),
    )
    return chatbot


def test_start_conversation_binds_active_version(orch, bot, owner):
    conv = orch.start_conversation(bot.id, owner.id)
    assert conv.chatbot_version_id == bot.current_version_id
    assert conv.user_id == owner.id
    assert conv.message_count == 0
    assert conv.status == "active"


def test_start_conversation_errors(orch, session, creator, owner):
    with pytest.raises(ValidationError):
        orch.start_conversation("", owner.id)
    with pytest.raises(NotFoundError):
        orch.start_conversation("missing", owner.id)
    legacy = seed_legacy_chatbot(session, creator)
    with pytest.raises(InvariantViolation):
        orch.start_conversation(legacy.id, owner.id)


def test_start_conversation_auto_migrates_when_enabled(orch, session, creator, owner, monkeypatch):
    monkeypatch.setenv("FF_VERSION_AUTO_MIGRATE", "1")
    legacy = seed_legacy_chatbot(session, creator)
    conv = orch.start_conversation(legacy.id, owner.id)
    assert conv.chatbot_version_id == orch.versions.get_chatbot(legacy.id).current_version_id


def test_new_version_does_not_rebind_existing_conversation(orch, bot, owner):
    old = orch.start_conversation(bot.id, owner.id)
    v2 = orch.versions.create_version(bot.id, owner.id, VersionOverrides(system_prompt="v2"))
    new = orch.start_conversation(bot.id, owner.id)
    assert old.chatbot_version_id != v2.id
    assert new.chatbot_version_id == v2.id


def test_conversation_access_is_owner_only(orch, session, bot, owner):
    conv = orch.start_conversation(bot.id, owner.id)
    stranger = seed_user(session, "ext_stranger")
    with pytest.raises(AuthorizationError):
        orch.get_conversation(conv.id, stranger.id)
    with pytest.raises(NotFoundError):
        orch.get_conversation("missing", owner.id)


def test_messages_increment_count_and_keep_order(orch, bot, owner):
    conv = orch.start_conversation(bot.id, owner.id)
    orch.append_message(conv.id, "user", "hello", owner.id)
    orch.append_message(conv.id, "assistant", "hi there", owner.id, source_ids=["p1"])
    messages = orch.list_messages(conv.id, owner.id)
    assert [m.role for m in messages] == ["user", "assistant"]
    assert messages[1].source_ids == ["p1"]
    assert orch.get_conversation(conv.id, owner.id).message_count == 2


@pytest.mark.parametrize("role,content", [("system", "x"), ("user", "  ")])
def test_append_message_validation(orch, bot, owner, role, content):
    conv = orch.start_conversation(bot.id, owner.id)
    with pytest.raises(ValidationError):
        orch.append_message(conv.id, role, content, owner.id)


def test_gate_flow(orch, session, bot, owner):
    intake = IntakeService(session)
    assoc = intake.create_question(owner.id, bot.id, "goal", "Goal?", "TEXT", display_order=1)

    assert orch.decide(bot.id, owner.id) == "intake"
    conv = orch.start_conversation(bot.id, owner.id)
    assert orch.decide(bot.id, owner.id, conv.id) == "intake"

    orch.mark_intake_completed(conv.id, owner.id)
    assert orch.decide(bot.id, owner.id, conv.id) == "chat"

    other = orch.start_conversation(bot.id, owner.id)
    orch.append_message(other.id, "user", "hello", owner.id)
    assert orch.decide(bot.id, owner.id, other.id) == "chat"

    intake.submit_response(owner.id, assoc.intake_question_id, bot.id, "win")
    assert orch.decide(bot.id, owner.id) == "chat"


def test_gate_input_ignores_foreign_conversation(orch, session, creator, bot, owner):
    other_bot, _ = orch.versions.create_chatbot(creator.id, owner.id, "Other")
    conv = orch.start_conversation(other_bot.id, owner.id)
    orch.append_message(conv.id, "user", "hi", owner.id)
    gate = orch.gate_input(bot.id, owner.id, conv.id)
    assert gate.conversation_id is None
    assert gate.has_messages is False


def test_gate_without_questions_is_chat(orch, bot):
    assert orch.decide(bot.id, None) == "chat"


def test_welcome_payload(orch, session, bot, owner):
    IntakeService(session).create_question(owner.id, bot.id, "goal", "Goal?", "TEXT", 1)
    data = orch.welcome(bot.id, owner.id)
    assert data["chatbot"].id == bot.id
    assert data["has_questions"] is True
    assert data["intake_completed"] is False
    assert data["existing_responses"] == {}
    assert data["gate"] == "intake"
    anonymous = orch.welcome(bot.id, None)
    assert anonymous["intake_completed"] is False


def test_retrieve_context_uses_bound_version(orch, index, bot, owner):
    conv = orch.start_conversation(bot.id, owner.id)
    passages = orch.retrieve_context(conv.id, "strategy", owner.id)
    assert [p.id for p in passages] == ["p1"]
    query = index.queries[0]
    assert query["namespace"] == f"chatbot-{bot.id}"
    assert query["top_k"] == 3
    assert query["filter"] == {"sourceId": "d1"}


def test_retrieve_context_degrades_on_index_failure(orch, index, bot, owner):
    conv = orch.start_conversation(bot.id, owner.id)
    index.error = VectorIndexError("boom", 503)
    assert orch.retrieve_context(conv.id, "strategy", owner.id) == []


def test_retrieve_context_propagates_embedding_errors(session, bot, owner):
    boom = RuntimeError("provider down")
    orch = ConversationOrchestrator(
        session, retrieval=RetrievalPipeline(FakeEmbeddings(error=boom), FakeIndex())
    )
    conv = orch.start_conversation(bot.id, owner.id)
    with pytest.raises(RuntimeError):
        orch.retrieve_context(conv.id, "strategy", owner.id)


def test_retrieve_context_rejects_empty_query(orch, bot, owner):
    conv = orch.start_conversation(bot.id, owner.id)
    with pytest.raises(ValidationError):
        orch.retrieve_context(conv.id, "  ", owner.id)

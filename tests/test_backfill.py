"""Tests du backfill de la version 1 des chatbots historiques."""

from __future__ import annotations

import json

from backend.infra.repo.chatbot_repo import ChatbotRepo
from backend.infra.repo.models import ConversationORM, CreatorORM
from backend.services.version_manager import VersionManager
from scripts.backfill_chatbot_versions import backfill, main
from tests.fakes import seed_creator, seed_legacy_chatbot, seed_user


def _seed(session_factory):
    s = session_factory()
    owner = seed_user(s, "ext_owner")
    creator = seed_creator(s, owner)
    legacy = seed_legacy_chatbot(s, creator, system_prompt="old prompt", model_name="gpt-4")
    s.add_all(
        [
            ConversationORM(chatbot_id=legacy.id, chatbot_version_id=None, user_id=owner.id),
            ConversationORM(chatbot_id=legacy.id, chatbot_version_id=None, user_id=None),
        ]
    )
    modern, _ = VersionManager(s).create_chatbot(creator.id, owner.id, "Modern")
    orphan_creator = CreatorORM(slug="no-owner", name="No Owner")
    s.add(orphan_creator)
    s.flush()
    s.commit()
    ids = {"owner": owner.id, "legacy": legacy.id, "modern": modern.id}
    s.close()
    return ids, orphan_creator


def test_backfill_creates_version_and_binds_conversations(session_factory):
    ids, _ = _seed(session_factory)
    report = backfill(session_factory)
    assert report.ok
    assert report.candidates == 1
    assert report.migrated == [ids["legacy"]]
    assert report.conversations_bound == 2

    s = session_factory()
    repo = ChatbotRepo(s)
    (version,) = repo.list_versions(ids["legacy"])
    assert version.version_number == 1
    assert version.system_prompt == "old prompt"
    assert version.model_name == "gpt-4"
    assert version.created_by_user_id == ids["owner"]
    assert repo.get(ids["legacy"]).current_version_id == version.id
    convs = s.query(ConversationORM).filter_by(chatbot_id=ids["legacy"]).all()
    assert {c.chatbot_version_id for c in convs} == {version.id}
    s.close()


def test_backfill_is_idempotent(session_factory):
    _seed(session_factory)
    backfill(session_factory)
    second = backfill(session_factory)
    assert second.candidates == 0
    assert second.migrated == []


def test_dry_run_writes_nothing(session_factory):
    ids, _ = _seed(session_factory)
    report = backfill(session_factory, dry_run=True)
    assert report.migrated == [ids["legacy"]]
    assert report.conversations_bound == 2
    s = session_factory()
    assert ChatbotRepo(s).list_versions(ids["legacy"]) == []
    s.close()


def test_creator_without_owner_is_reported(session_factory):
    _, orphan = _seed(session_factory)
    s = session_factory()
    stranded = seed_legacy_chatbot(s, orphan, title="Stranded")
    s.commit()
    stranded_id = stranded.id
    s.close()
    report = backfill(session_factory)
    assert not report.ok
    assert stranded_id in report.failed


def test_main_requires_database_url(monkeypatch, capsys):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    assert main([]) == 2


def test_main_prints_report(tmp_path, capsys):
    url = f"sqlite+pysqlite:///{tmp_path / 'backfill.db'}"
    from backend.infra.repo.db import create_schema, get_engine

    create_schema(get_engine(url))
    assert main(["--database-url", url, "--dry-run"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["dry_run"] is True
    assert out["candidates"] == 0

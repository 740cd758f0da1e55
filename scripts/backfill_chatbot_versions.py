"""
Backfill ponctuel de la version 1 des chatbots antérieurs au versioning.

Pour chaque chatbot sans aucune version: crée la version 1 à partir de ses colonnes héritées
(attribuée au premier OWNER du créateur) et lie à cette version les conversations du chatbot qui
n'en ont pas. Idempotent: un second passage ne trouve plus rien à migrer.

Usage:
  python -m scripts.backfill_chatbot_versions --dry-run
  python -m scripts.backfill_chatbot_versions --database-url postgresql+psycopg://...

Code de sortie non nul si au moins un chatbot n'a pas pu être migré (aucun OWNER).
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict, dataclass, field

import structlog
from sqlalchemy.orm import sessionmaker

from backend.core.errors import ConflictError
from backend.core.logging import setup_logging
from backend.core.settings import get_settings
from backend.infra.repo.chatbot_repo import ChatbotRepo
from backend.infra.repo.conversation_repo import ConversationRepo
from backend.infra.repo.db import get_engine, get_session_factory, session_scope
from backend.infra.repo.user_repo import UserRepo
from backend.services.version_manager import VersionManager

BACKFILL_NOTES = "Auto-created version 1 for existing chatbot"

log = structlog.get_logger("backfill_chatbot_versions")


@dataclass
class BackfillReport:
    """Résumé d'exécution."""

    dry_run: bool
    candidates: int = 0
    migrated: list[str] = field(default_factory=list)
    conversations_bound: int = 0
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


def backfill(factory: sessionmaker, dry_run: bool = False) -> BackfillReport:
    """Crée la version 1 manquante de chaque chatbot, une transaction par chatbot."""
    with session_scope(factory) as session:
        pending = [(c.id, c.creator_id) for c in ChatbotRepo(session).list_without_versions()]
    report = BackfillReport(dry_run=dry_run, candidates=len(pending))
    for chatbot_id, creator_id in pending:
        with session_scope(factory) as session:
            owner_id = UserRepo(session).owner_of(creator_id)
            if owner_id is None:
                report.failed[chatbot_id] = "no OWNER user for creator"
                log.error("backfill_no_owner", chatbot_id=chatbot_id, creator_id=creator_id)
                continue
            conversations = ConversationRepo(session)
            if dry_run:
                report.migrated.append(chatbot_id)
                report.conversations_bound += conversations.count_unbound(chatbot_id)
                continue
            chatbot = ChatbotRepo(session).get(chatbot_id)
            try:
                version = VersionManager(session).create_initial_version(
                    chatbot, owner_id, BACKFILL_NOTES, path="backfill"
                )
            except ConflictError:
                # Version créée entre-temps (requête concurrente): rien à faire.
                log.info("backfill_already_versioned", chatbot_id=chatbot_id)
                continue
            bound = conversations.bind_unbound(chatbot_id, version.id)
            report.migrated.append(chatbot_id)
            report.conversations_bound += bound
            log.info(
                "backfill_chatbot_migrated",
                chatbot_id=chatbot_id,
                version_id=version.id,
                conversations_bound=bound,
            )
    return report


def main(argv: list[str] | None = None) -> int:
    """Exécute le backfill et affiche le rapport JSON."""
    parser = argparse.ArgumentParser(description="Create version 1 for unversioned chatbots")
    parser.add_argument("--database-url", type=str, default=None)
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args(argv)

    setup_logging()
    url = args.database_url or get_settings().DATABASE_URL
    if not url:
        print("DATABASE_URL is required", file=sys.stderr)
        return 2
    factory = get_session_factory(get_engine(url))
    report = backfill(factory, dry_run=args.dry_run)
    print(json.dumps(asdict(report), indent=2))
    return 0 if report.ok else 1


if __name__ == "__main__":  # pragma: no cover - script entry
    sys.exit(main())

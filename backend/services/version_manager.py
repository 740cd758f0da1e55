# ============================================================
# Module : backend/services/version_manager.py
# Objet  : Gestion des versions immuables de configuration des chatbots.
# Notes  : chaque modification de comportement crée la version N+1 (copie complète).
# ============================================================
"""Gestionnaire de versions des chatbots.

Règles
- La version 1 est créée en même temps que le chatbot.
- `create_version` copie intégralement la version courante puis applique les surcharges; les
  conversations existantes gardent leur version.
- `resolve_active_version` ne crée la version 1 d'un chatbot historique que si le flag
  `ff_version_auto_migrate` est actif; sinon l'invariant est signalé (`InvariantViolation`) et le
  backfill (`scripts/backfill_chatbot_versions.py`) doit être lancé.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.app.metrics import VERSION_CREATIONS, VERSION_RESOLUTION_REPAIRS
from backend.config.flags import ff_version_auto_migrate
from backend.core.constants import FIRST_VERSION_NUMBER, NAMESPACE_PREFIX
from backend.core.errors import (
    AuthorizationError,
    ConflictError,
    InvariantViolation,
    NotFoundError,
    ValidationError,
)
from backend.core.settings import Settings, get_settings
from backend.domain.chatbot_version import (
    NON_VERSIONED_FIELDS,
    VERSIONED_FIELDS,
    ChatbotVersion,
    VersionOverrides,
)
from backend.infra.repo.chatbot_repo import ChatbotRepo, to_domain
from backend.infra.repo.models import ChatbotORM, ChatbotVersionORM
from backend.infra.repo.user_repo import UserRepo

INITIAL_NOTES = "Initial version"
AUTO_MIGRATE_NOTES = "Auto-created version 1 for existing chatbot"

log = structlog.get_logger(__name__)


def default_namespace(chatbot_id: str) -> str:
    """Namespace vectoriel par défaut d'un chatbot."""
    return f"{NAMESPACE_PREFIX}{chatbot_id}"


class VersionManager:
    """Crée et résout les versions d'un chatbot dans la session fournie."""

    def __init__(self, session: Session, settings: Settings | None = None) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._chatbots = ChatbotRepo(session)
        self._users = UserRepo(session)

    # ------------------------------------------------------------------
    # Lecture
    # ------------------------------------------------------------------
    def _require_chatbot(self, chatbot_id: str) -> ChatbotORM:
        chatbot = self._chatbots.get(chatbot_id) if chatbot_id else None
        if chatbot is None:
            raise NotFoundError("Chatbot not found")
        return chatbot

    def get_chatbot(self, chatbot_id: str) -> ChatbotORM:
        """Retourne le chatbot ou lève NotFoundError."""
        return self._require_chatbot(chatbot_id)

    def ensure_can_edit(self, chatbot: ChatbotORM, user_id: str) -> None:
        """Seuls les membres du créateur propriétaire modifient un chatbot."""
        if not self._users.is_member(chatbot.creator_id, user_id):
            raise AuthorizationError(
                "You are not a member of the Creator that owns this chatbot"
            )

    def list_versions(self, chatbot_id: str) -> list[ChatbotVersion]:
        """Liste les versions du chatbot par numéro croissant."""
        self._require_chatbot(chatbot_id)
        return self._chatbots.list_versions(chatbot_id)

    def get_version(self, version_id: str) -> ChatbotVersion:
        version = self._chatbots.get_version(version_id)
        if version is None:
            raise NotFoundError("Chatbot version not found")
        return version

    # ------------------------------------------------------------------
    # Écriture
    # ------------------------------------------------------------------
    def _legacy_snapshot(self, chatbot: ChatbotORM) -> dict[str, Any]:
        """Champs de comportement d'un chatbot sans version (colonnes héritées + défauts)."""
        s = self._settings
        return {
            "system_prompt": chatbot.system_prompt or s.DEFAULT_SYSTEM_PROMPT,
            "model_provider": chatbot.model_provider or s.DEFAULT_MODEL_PROVIDER,
            "model_name": chatbot.model_name or s.DEFAULT_MODEL_NAME,
            "vector_namespace": chatbot.vector_namespace or default_namespace(chatbot.id),
            "config_json": chatbot.config_json,
            "rag_settings_json": chatbot.rag_settings_json,
        }

    def _insert_next(
        self,
        chatbot: ChatbotORM,
        actor_user_id: str,
        overrides: VersionOverrides,
        path: str,
    ) -> ChatbotVersion:
        previous = (
            self._chatbots.get_version_row(chatbot.current_version_id)
            if chatbot.current_version_id
            else None
        )
        if previous is not None:
            snapshot = {name: getattr(previous, name) for name in VERSIONED_FIELDS}
        else:
            snapshot = self._legacy_snapshot(chatbot)
        snapshot.update(
            {k: v for k, v in overrides.as_dict().items() if k in VERSIONED_FIELDS}
        )
        number = self._chatbots.max_version_number(chatbot.id) + 1
        now = datetime.now(UTC)
        row = ChatbotVersionORM(
            chatbot_id=chatbot.id,
            version_number=number,
            title=chatbot.title,
            description=chatbot.description,
            notes=overrides.notes,
            changelog=overrides.changelog,
            created_by_user_id=actor_user_id,
            activated_at=now,
            **snapshot,
        )
        chatbot_id = chatbot.id
        try:
            self._chatbots.insert_version(row)
        except IntegrityError as err:
            raise ConflictError(
                f"Version {number} already exists for chatbot {chatbot_id}"
            ) from err
        if previous is not None:
            self._chatbots.deactivate(previous.id, now)
        self._chatbots.set_current_version(chatbot, row.id)
        VERSION_CREATIONS.labels(path=path).inc()
        log.info(
            "chatbot_version_created",
            chatbot_id=chatbot.id,
            version_id=row.id,
            version_number=number,
            path=path,
        )
        return to_domain(row)

    def create_chatbot(
        self,
        creator_id: str,
        actor_user_id: str,
        title: str,
        description: str | None = None,
        short_description: str | None = None,
        is_public: bool = False,
        is_active: bool = True,
        overrides: VersionOverrides | None = None,
    ) -> tuple[ChatbotORM, ChatbotVersion]:
        """Crée un chatbot et sa version 1 dans la même transaction.

        Raises:
            ValidationError: titre vide.
            NotFoundError: créateur inconnu.
            AuthorizationError: l'acteur n'est pas membre du créateur.
        """
        if not title or not title.strip():
            raise ValidationError("title is required")
        if self._users.get_creator(creator_id) is None:
            raise NotFoundError("Creator not found")
        if not self._users.is_member(creator_id, actor_user_id):
            raise AuthorizationError("You are not a member of this creator")
        chatbot = self._chatbots.add(
            ChatbotORM(
                creator_id=creator_id,
                title=title.strip(),
                description=description,
                short_description=short_description,
                is_public=is_public,
                is_active=is_active,
            )
        )
        first = overrides or VersionOverrides()
        if first.notes is None:
            first = replace(first, notes=INITIAL_NOTES)
        version = self._insert_next(chatbot, actor_user_id, first, path="initial")
        return chatbot, version

    def create_version(
        self,
        chatbot_id: str,
        actor_user_id: str,
        overrides: VersionOverrides | None = None,
    ) -> ChatbotVersion:
        """Crée la version N+1 à partir de la version courante et des surcharges.

        Raises:
            NotFoundError: chatbot inconnu.
            ConflictError: course sur le numéro de version (l'appelant peut re-résoudre).
        """
        chatbot = self._require_chatbot(chatbot_id)
        return self._insert_next(chatbot, actor_user_id, overrides or VersionOverrides(), "edit")

    def update_details(self, chatbot_id: str, values: dict[str, Any]) -> ChatbotORM:
        """Met à jour les champs non versionnés, sans créer de version."""
        chatbot = self._require_chatbot(chatbot_id)
        unknown = sorted(set(values) - set(NON_VERSIONED_FIELDS))
        if unknown:
            raise ValidationError(f"Not editable without a new version: {', '.join(unknown)}")
        if "title" in values and not (values["title"] or "").strip():
            raise ValidationError("title must not be empty")
        return self._chatbots.update_fields(chatbot, values)

    def create_initial_version(
        self, chatbot: ChatbotORM, actor_user_id: str, notes: str, path: str
    ) -> ChatbotVersion:
        """Crée la version 1 d'un chatbot qui n'en a aucune (auto-migration ou backfill)."""
        return self._insert_next(chatbot, actor_user_id, VersionOverrides(notes=notes), path)

    # ------------------------------------------------------------------
    # Résolution
    # ------------------------------------------------------------------
    def resolve_active_version(self, chatbot_id: str) -> ChatbotVersion:
        """Retourne la version active du chatbot.

        Ordre: pointeur `current_version_id`, puis version de plus petit numéro
        (pointeur réparé), puis création de la version 1 si l'auto-migration est active.

        Raises:
            NotFoundError: chatbot inconnu.
            InvariantViolation: aucune version et auto-migration désactivée (ou aucun OWNER).
        """
        chatbot = self._require_chatbot(chatbot_id)
        if chatbot.current_version_id:
            version = self._chatbots.get_version(chatbot.current_version_id)
            if version is not None:
                return version
        lowest = self._chatbots.lowest_version(chatbot.id)
        if lowest is not None:
            self._chatbots.set_current_version(chatbot, lowest.id)
            VERSION_RESOLUTION_REPAIRS.inc()
            log.warning(
                "chatbot_version_pointer_repaired", chatbot_id=chatbot.id, version_id=lowest.id
            )
            return to_domain(lowest)
        if not ff_version_auto_migrate():
            log.error("chatbot_without_version", chatbot_id=chatbot.id)
            raise InvariantViolation(f"Chatbot {chatbot.id} has no version")
        owner_id = self._users.owner_of(chatbot.creator_id)
        if owner_id is None:
            raise InvariantViolation(f"Chatbot {chatbot.id} has no version and no owner")
        try:
            return self.create_initial_version(
                chatbot, owner_id, AUTO_MIGRATE_NOTES, "auto_migrate"
            )
        except ConflictError:
            # Une requête concurrente a créé la version 1: on relit son résultat.
            log.info("chatbot_version_race_absorbed", chatbot_id=chatbot_id)
            winner = self._chatbots.lowest_version(chatbot_id)
            if winner is None:
                raise
            return to_domain(winner)

# ============================================================
# Module : backend/services/conversations.py
# Objet  : Orchestration du cycle de vie des conversations.
# Invariants :
#  - Une conversation est liée à une version à sa création et ne change jamais de version.
#  - La récupération utilise le namespace et les réglages RAG de la version liée.
# ============================================================
"""Orchestrateur des conversations.

Point d'entrée du démarrage d'une conversation (résolution de version puis insertion), de
l'assemblage de l'entrée du portail d'intake et de la récupération de contexte RAG.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy.orm import Session

from backend.app.metrics import CONVERSATIONS_CREATED, GATE_DECISIONS, labelize_chatbot
from backend.core.errors import (
    AuthorizationError,
    InvariantViolation,
    NotFoundError,
    RetrievalError,
    ValidationError,
)
from backend.core.settings import Settings, get_settings
from backend.domain.intake_gate import GateDecision, GateInput, decide_gate
from backend.domain.retrieval_types import RetrievedPassage
from backend.infra.repo.conversation_repo import ConversationRepo
from backend.infra.repo.models import ConversationORM, MessageORM
from backend.services.intake import IntakeService
from backend.services.retrieval import RetrievalPipeline
from backend.services.version_manager import VersionManager

MESSAGE_ROLES = ("user", "assistant")

log = structlog.get_logger(__name__)


class ConversationOrchestrator:
    """Cycle de vie serveur d'une conversation."""

    def __init__(
        self,
        session: Session,
        retrieval: RetrievalPipeline | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._repo = ConversationRepo(session)
        self.versions = VersionManager(session, self._settings)
        self.intake = IntakeService(session)
        self.retrieval = retrieval

    # -- création / lecture -----------------------------------------------
    def start_conversation(self, chatbot_id: str, user_id: str) -> ConversationORM:
        """Résout la version active puis persiste une conversation liée à celle-ci.

        Raises:
            ValidationError: `chatbot_id` manquant.
            NotFoundError: chatbot inconnu.
            InvariantViolation: chatbot sans version (auto-migration désactivée).
        """
        if not chatbot_id:
            raise ValidationError("chatbotId is required")
        version = self.versions.resolve_active_version(chatbot_id)
        conv = self._repo.create(chatbot_id, version.id, user_id)
        CONVERSATIONS_CREATED.labels(
            chatbot=labelize_chatbot(chatbot_id, self._settings.ALLOWED_CHATBOTS)
        ).inc()
        log.info(
            "conversation_created",
            conversation_id=conv.id,
            chatbot_id=chatbot_id,
            chatbot_version_id=version.id,
        )
        return conv

    def get_conversation(self, conversation_id: str, user_id: str | None = None) -> ConversationORM:
        """Retourne la conversation; seul son propriétaire y accède (sauf conversation anonyme)."""
        conv = self._repo.get(conversation_id)
        if conv is None:
            raise NotFoundError("Conversation not found")
        if conv.user_id is not None and conv.user_id != user_id:
            raise AuthorizationError("You do not have access to this conversation")
        return conv

    def list_messages(self, conversation_id: str, user_id: str | None = None) -> list[MessageORM]:
        """Messages de la conversation (hydratation de l'état `loading`)."""
        self.get_conversation(conversation_id, user_id)
        return self._repo.list_messages(conversation_id)

    def append_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        user_id: str | None = None,
        source_ids: list[str] | None = None,
    ) -> MessageORM:
        if role not in MESSAGE_ROLES:
            raise ValidationError(f"role must be one of: {', '.join(MESSAGE_ROLES)}")
        if not content or not content.strip():
            raise ValidationError("content must not be empty")
        conv = self.get_conversation(conversation_id, user_id)
        return self._repo.add_message(
            conv,
            MessageORM(role=role, content=content, user_id=user_id, source_ids=source_ids or []),
        )

    def mark_intake_completed(
        self, conversation_id: str, user_id: str | None, completed: bool = True
    ) -> ConversationORM:
        conv = self.get_conversation(conversation_id, user_id)
        conv.intake_completed = completed
        conv.intake_completed_at = datetime.now(UTC) if completed else None
        self._session.flush()
        return conv

    # -- portail d'intake -------------------------------------------------
    def gate_input(
        self, chatbot_id: str, user_id: str | None, conversation_id: str | None = None
    ) -> GateInput:
        """Assemble l'entrée du portail à partir de l'état persistant."""
        has_messages = False
        intake_done = False
        if conversation_id:
            conv = self._repo.get(conversation_id)
            if conv is not None and conv.chatbot_id == chatbot_id:
                has_messages = (conv.message_count or 0) > 0
                intake_done = bool(conv.intake_completed)
            else:
                conversation_id = None
        return GateInput(
            conversation_id=conversation_id,
            has_messages=has_messages,
            intake_completed_for_conversation=intake_done,
            chatbot_has_questions=self.intake.has_questions(chatbot_id),
            user_answered_all_questions=bool(user_id)
            and self.intake.has_answered_all(user_id, chatbot_id),
        )

    def decide(
        self, chatbot_id: str, user_id: str | None, conversation_id: str | None = None
    ) -> GateDecision:
        decision = decide_gate(self.gate_input(chatbot_id, user_id, conversation_id))
        GATE_DECISIONS.labels(result=decision).inc()
        return decision

    def welcome(
        self, chatbot_id: str, user_id: str | None, conversation_id: str | None = None
    ) -> dict[str, Any]:
        """Données d'accueil: questions, réponses existantes et décision du portail."""
        if not chatbot_id:
            raise ValidationError("Chatbot ID is required")
        chatbot = self.versions.get_chatbot(chatbot_id)
        associations = self.intake.list_questions(chatbot_id)
        has_questions = bool(associations)
        if user_id:
            intake_completed = (not has_questions) or self.intake.has_answered_all(
                user_id, chatbot_id
            )
        else:
            intake_completed = False
        return {
            "chatbot": chatbot,
            "associations": associations,
            "has_questions": has_questions,
            "intake_completed": intake_completed,
            "existing_responses": self.intake.existing_responses(user_id, chatbot_id),
            "gate": self.decide(chatbot_id, user_id, conversation_id),
        }

    # -- récupération -----------------------------------------------------
    def retrieve_context(self, conversation_id: str, text: str, user_id: str | None = None):
        """Passages pertinents pour `text` selon la version liée à la conversation.

        Les échecs de l'index dégradent vers une liste vide; les erreurs du fournisseur
        d'embeddings et les erreurs de validation sont propagées.
        """
        if self.retrieval is None:
            raise RuntimeError("retrieval pipeline not configured")
        conv = self.get_conversation(conversation_id, user_id)
        if not conv.chatbot_version_id:
            raise InvariantViolation(f"Conversation {conv.id} is not bound to a version")
        version = self.versions.get_version(conv.chatbot_version_id)
        try:
            passages: list[RetrievedPassage] = self.retrieval.query(
                text,
                namespace=version.vector_namespace,
                top_k=min(
                    version.rag_top_k(self.retrieval.default_top_k), self.retrieval.max_top_k
                ),
                filter=version.rag_filter(),
            )
        except RetrievalError as exc:
            log.warning("retrieval_degraded", conversation_id=conv.id, error=exc.message)
            return []
        return passages

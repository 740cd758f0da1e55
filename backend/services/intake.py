"""Service du questionnaire d'intake.

Questions réutilisables, associations par chatbot (ordre d'affichage, caractère obligatoire) et
réponses des utilisateurs. La complétude renvoyée par `completion` ne considère que les questions
obligatoires; le portail d'intake, lui, exige une réponse à toutes les questions associées.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from backend.infra.repo.chatbot_repo import ChatbotRepo
from backend.infra.repo.intake_repo import IntakeRepo
from backend.infra.repo.models import (
    ChatbotIntakeQuestionORM,
    ChatbotORM,
    IntakeQuestionORM,
    IntakeResponseORM,
)
from backend.infra.repo.user_repo import OWNER, UserRepo

RESPONSE_TYPES = ("TEXT", "NUMBER", "SELECT", "MULTI_SELECT", "FILE", "DATE", "BOOLEAN")

log = structlog.get_logger(__name__)


@dataclass
class AssociationSpec:
    """Association demandée entre une question et un chatbot."""

    chatbot_id: str
    display_order: int
    is_required: bool = False


class IntakeService:
    """Opérations du questionnaire d'intake dans la session fournie."""

    def __init__(self, session: Session) -> None:
        self._session = session
        self._repo = IntakeRepo(session)
        self._chatbots = ChatbotRepo(session)
        self._users = UserRepo(session)

    # -- helpers ----------------------------------------------------------
    def _require_chatbot(self, chatbot_id: str) -> ChatbotORM:
        chatbot = self._chatbots.get(chatbot_id) if chatbot_id else None
        if chatbot is None:
            raise NotFoundError("Chatbot not found")
        return chatbot

    def _require_question(self, question_id: str) -> IntakeQuestionORM:
        question = self._repo.get_question(question_id)
        if question is None:
            raise NotFoundError("Question not found")
        return question

    def _require_member(self, chatbot: ChatbotORM, user_id: str) -> None:
        if not self._users.is_member(chatbot.creator_id, user_id):
            raise AuthorizationError(
                f"You are not a member of the Creator that owns chatbot {chatbot.id}"
            )

    # -- questions --------------------------------------------------------
    def create_question(
        self,
        actor_user_id: str,
        chatbot_id: str,
        slug: str,
        question_text: str,
        response_type: str,
        display_order: int,
        helper_text: str | None = None,
        is_required: bool = False,
        options: list[str] | None = None,
    ) -> ChatbotIntakeQuestionORM:
        """Crée une question et l'associe au chatbot (réservé au OWNER du créateur)."""
        if not slug or not question_text:
            raise ValidationError("Missing required fields: slug, questionText")
        if response_type not in RESPONSE_TYPES:
            raise ValidationError(
                f"Invalid responseType. Must be one of: {', '.join(RESPONSE_TYPES)}"
            )
        chatbot = self._require_chatbot(chatbot_id)
        if self._users.role_in(chatbot.creator_id, actor_user_id) != OWNER:
            raise AuthorizationError("Unauthorized: You must be the chatbot creator")
        try:
            question = self._repo.add_question(
                IntakeQuestionORM(
                    slug=slug,
                    question_text=question_text,
                    helper_text=helper_text or None,
                    response_type=response_type,
                    options=options,
                    created_by_user_id=actor_user_id,
                )
            )
        except IntegrityError as err:
            raise ConflictError("A question with this slug already exists") from err
        (association,) = self._repo.add_associations(
            [
                ChatbotIntakeQuestionORM(
                    chatbot_id=chatbot.id,
                    intake_question_id=question.id,
                    display_order=display_order,
                    is_required=is_required,
                )
            ]
        )
        log.info("intake_question_created", question_id=question.id, chatbot_id=chatbot.id)
        return association

    def list_questions(self, chatbot_id: str) -> list[ChatbotIntakeQuestionORM]:
        """Questions du chatbot par ordre d'affichage (l'association porte `is_required`)."""
        self._require_chatbot(chatbot_id)
        return self._repo.associations_for(chatbot_id)

    # -- associations -----------------------------------------------------
    def associate(
        self, actor_user_id: str, question_id: str, specs: list[AssociationSpec]
    ) -> list[ChatbotIntakeQuestionORM]:
        """Associe une question à un ou plusieurs chatbots."""
        self._require_question(question_id)
        if not specs:
            raise ValidationError("chatbotAssociations array is required and must not be empty")
        chatbots = {s.chatbot_id: self._chatbots.get(s.chatbot_id) for s in specs}
        missing = [cid for cid, row in chatbots.items() if row is None]
        if missing:
            raise NotFoundError(f"Chatbots not found: {', '.join(missing)}")
        for chatbot in chatbots.values():
            self._require_member(chatbot, actor_user_id)
        rows = [
            ChatbotIntakeQuestionORM(
                chatbot_id=s.chatbot_id,
                intake_question_id=question_id,
                display_order=s.display_order,
                is_required=s.is_required,
            )
            for s in specs
        ]
        try:
            return self._repo.add_associations(rows)
        except IntegrityError as err:
            raise ConflictError("Association already exists") from err

    def _require_association(
        self, actor_user_id: str, question_id: str, chatbot_id: str
    ) -> ChatbotIntakeQuestionORM:
        self._require_question(question_id)
        if not chatbot_id:
            raise ValidationError("chatbotId is required")
        self._require_member(self._require_chatbot(chatbot_id), actor_user_id)
        association = self._repo.get_association(question_id, chatbot_id)
        if association is None:
            raise NotFoundError("Association not found")
        return association

    def update_association(
        self,
        actor_user_id: str,
        question_id: str,
        chatbot_id: str,
        display_order: int | None = None,
        is_required: bool | None = None,
    ) -> ChatbotIntakeQuestionORM:
        if display_order is None and is_required is None:
            raise ValidationError("At least one of displayOrder or isRequired must be provided")
        association = self._require_association(actor_user_id, question_id, chatbot_id)
        values: dict[str, Any] = {}
        if display_order is not None:
            values["display_order"] = display_order
        if is_required is not None:
            values["is_required"] = is_required
        self._repo.update_association(association, values)
        return association

    def remove_association(self, actor_user_id: str, question_id: str, chatbot_id: str) -> None:
        association = self._require_association(actor_user_id, question_id, chatbot_id)
        self._repo.delete_association(association)

    # -- responses --------------------------------------------------------
    def submit_response(
        self,
        user_id: str,
        question_id: str,
        chatbot_id: str,
        value: Any,
        reusable_across_frameworks: bool = False,
    ) -> IntakeResponseORM:
        """Enregistre (ou remplace) la réponse de l'utilisateur à une question du chatbot."""
        if not question_id or value is None:
            raise ValidationError("Missing required fields: intakeQuestionId, value")
        if not chatbot_id:
            raise ValidationError("chatbotId is required")
        self._require_question(question_id)
        self._require_chatbot(chatbot_id)
        if self._repo.get_association(question_id, chatbot_id) is None:
            raise ValidationError("Question is not associated with this chatbot")
        try:
            return self._repo.upsert_response(
                user_id, question_id, chatbot_id, value, reusable_across_frameworks
            )
        except IntegrityError as err:
            raise ConflictError("A response for this question already exists") from err

    def answered_question_ids(self, user_id: str | None, chatbot_id: str) -> set[str]:
        """Questions auxquelles l'utilisateur a répondu pour ce chatbot (vide si anonyme)."""
        if not user_id:
            return set()
        return {r.intake_question_id for r in self._repo.responses_for(user_id, chatbot_id)}

    def existing_responses(self, user_id: str | None, chatbot_id: str) -> dict[str, Any]:
        if not user_id:
            return {}
        rows = self._repo.responses_for(user_id, chatbot_id)
        return {r.intake_question_id: r.value for r in rows}

    def has_answered_all(self, user_id: str | None, chatbot_id: str) -> bool:
        """Vrai si chaque question associée (obligatoire ou non) a une réponse."""
        answered = self.answered_question_ids(user_id, chatbot_id)
        associations = self._repo.associations_for(chatbot_id)
        return all(a.intake_question_id in answered for a in associations)

    def has_questions(self, chatbot_id: str) -> bool:
        return bool(self._repo.associations_for(chatbot_id))

    def completion(self, user_id: str, chatbot_id: str) -> dict[str, Any]:
        """Résumé de complétude basé sur les questions obligatoires."""
        if not chatbot_id:
            raise ValidationError("chatbotId query parameter is required")
        associations = self._repo.associations_for(chatbot_id)
        if not associations:
            return {"completed": True, "hasQuestions": False}
        answered = self.answered_question_ids(user_id, chatbot_id)
        required = [a for a in associations if a.is_required]
        answered_required = [a for a in required if a.intake_question_id in answered]
        return {
            "completed": len(answered_required) == len(required),
            "hasQuestions": True,
            "answeredCount": len(answered),
            "totalCount": len(associations),
            "requiredCount": len(required),
            "answeredRequiredCount": len(answered_required),
        }

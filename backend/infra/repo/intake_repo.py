"""Accès SQL aux questions d'intake, associations chatbot et réponses."""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .models import ChatbotIntakeQuestionORM, IntakeQuestionORM, IntakeResponseORM


class IntakeRepo:
    """CRUD pour le questionnaire d'intake."""

    def __init__(self, session: Session) -> None:
        """Construit le repo avec une session (SQLAlchemy)."""
        self._session = session

    def _flush_or_rollback(self) -> None:
        try:
            self._session.flush()
        except IntegrityError:
            self._session.rollback()
            raise

    # -- questions --------------------------------------------------------
    def get_question(self, question_id: str) -> IntakeQuestionORM | None:
        return self._session.get(IntakeQuestionORM, question_id)

    def add_question(self, row: IntakeQuestionORM) -> IntakeQuestionORM:
        """Insère une question. Lève IntegrityError si le slug existe déjà."""
        self._session.add(row)
        self._flush_or_rollback()
        return row

    # -- associations -----------------------------------------------------
    def associations_for(self, chatbot_id: str) -> list[ChatbotIntakeQuestionORM]:
        """Associations du chatbot, par `display_order` croissant."""
        stmt = (
            select(ChatbotIntakeQuestionORM)
            .where(ChatbotIntakeQuestionORM.chatbot_id == chatbot_id)
            .order_by(
                ChatbotIntakeQuestionORM.display_order.asc(), ChatbotIntakeQuestionORM.id.asc()
            )
        )
        return list(self._session.execute(stmt).scalars().all())

    def get_association(self, question_id: str, chatbot_id: str) -> ChatbotIntakeQuestionORM | None:
        stmt = select(ChatbotIntakeQuestionORM).where(
            ChatbotIntakeQuestionORM.intake_question_id == question_id,
            ChatbotIntakeQuestionORM.chatbot_id == chatbot_id,
        )
        return self._session.execute(stmt).scalars().first()

    def add_associations(
        self, rows: list[ChatbotIntakeQuestionORM]
    ) -> list[ChatbotIntakeQuestionORM]:
        """Insère des associations. Lève IntegrityError sur doublon (question, chatbot)."""
        self._session.add_all(rows)
        self._flush_or_rollback()
        return rows

    def delete_association(self, row: ChatbotIntakeQuestionORM) -> None:
        self._session.delete(row)
        self._session.flush()

    def update_association(self, row: ChatbotIntakeQuestionORM, values: dict[str, Any]) -> None:
        for key, value in values.items():
            setattr(row, key, value)
        self._session.flush()

    # -- responses --------------------------------------------------------
    def responses_for(self, user_id: str, chatbot_id: str) -> list[IntakeResponseORM]:
        """Réponses de l'utilisateur limitées au chatbot."""
        stmt = select(IntakeResponseORM).where(
            IntakeResponseORM.user_id == user_id, IntakeResponseORM.chatbot_id == chatbot_id
        )
        return list(self._session.execute(stmt).scalars().all())

    def get_response(
        self, user_id: str, question_id: str, chatbot_id: str
    ) -> IntakeResponseORM | None:
        stmt = select(IntakeResponseORM).where(
            IntakeResponseORM.user_id == user_id,
            IntakeResponseORM.intake_question_id == question_id,
            IntakeResponseORM.chatbot_id == chatbot_id,
        )
        return self._session.execute(stmt).scalars().first()

    def upsert_response(
        self,
        user_id: str,
        question_id: str,
        chatbot_id: str,
        value: Any,
        reusable_across_frameworks: bool = False,
    ) -> IntakeResponseORM:
        """Crée la réponse ou met à jour la réponse existante pour ce triplet."""
        row = self.get_response(user_id, question_id, chatbot_id)
        if row is None:
            row = IntakeResponseORM(
                user_id=user_id,
                intake_question_id=question_id,
                chatbot_id=chatbot_id,
                value=value,
                reusable_across_frameworks=reusable_across_frameworks,
            )
            self._session.add(row)
        else:
            row.value = value
            row.reusable_across_frameworks = reusable_across_frameworks
        self._flush_or_rollback()
        return row

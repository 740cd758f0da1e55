"""Accès SQL aux conversations et à leurs messages."""

from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from .models import ConversationORM, MessageORM


class ConversationRepo:
    """CRUD minimal pour les conversations."""

    def __init__(self, session: Session) -> None:
        """Construit le repo avec une session (SQLAlchemy)."""
        self._session = session

    def create(self, chatbot_id: str, version_id: str, user_id: str | None) -> ConversationORM:
        """Insère une conversation active liée à `version_id`."""
        row = ConversationORM(
            chatbot_id=chatbot_id,
            chatbot_version_id=version_id,
            user_id=user_id,
            status="active",
            message_count=0,
        )
        self._session.add(row)
        self._session.flush()
        return row

    def get(self, conversation_id: str) -> ConversationORM | None:
        return self._session.get(ConversationORM, conversation_id)

    def list_messages(self, conversation_id: str) -> list[MessageORM]:
        """Messages d'une conversation dans leur ordre d'ajout (`seq`)."""
        stmt = (
            select(MessageORM)
            .where(MessageORM.conversation_id == conversation_id)
            .order_by(MessageORM.seq.asc())
        )
        return list(self._session.execute(stmt).scalars().all())

    def add_message(self, conv: ConversationORM, message: MessageORM) -> MessageORM:
        """Ajoute un message en fin de conversation (`seq` = compteur + 1)."""
        seq = (conv.message_count or 0) + 1
        message.conversation_id = conv.id
        message.seq = seq
        self._session.add(message)
        conv.message_count = seq
        self._session.flush()
        return message

    def bind_unbound(self, chatbot_id: str, version_id: str) -> int:
        """Lie à `version_id` les conversations du chatbot sans version. Retourne le nombre."""
        stmt = (
            update(ConversationORM)
            .where(
                ConversationORM.chatbot_id == chatbot_id,
                ConversationORM.chatbot_version_id.is_(None),
            )
            .values(chatbot_version_id=version_id)
        )
        result = self._session.execute(stmt)
        return int(result.rowcount or 0)

    def count_unbound(self, chatbot_id: str) -> int:
        stmt = select(ConversationORM.id).where(
            ConversationORM.chatbot_id == chatbot_id,
            ConversationORM.chatbot_version_id.is_(None),
        )
        return len(self._session.execute(stmt).scalars().all())

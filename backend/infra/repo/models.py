"""SQLAlchemy models for the persistence layer.

Chatbots carry their mutable catalog fields directly; behavior fields live in immutable
`chatbot_versions` rows reached through `current_version_id`. Conversations are bound to one
version for their whole lifetime.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship


def _uuid() -> str:
    return uuid.uuid4().hex


def _now() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Classe de base pour tous les modèles SQLAlchemy."""

    metadata = MetaData()


class UserORM(Base):
    """Utilisateur (identité provisionnée par le fournisseur externe)."""

    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=_uuid)
    external_id = Column(String(128), nullable=False, unique=True)
    email = Column(String(255), nullable=True)
    created_at = Column(DateTime, nullable=False, default=_now)


class CreatorORM(Base):
    """Créateur propriétaire d'un corpus et de ses chatbots."""

    __tablename__ = "creators"

    id = Column(String(32), primary_key=True, default=_uuid)
    slug = Column(String(128), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, nullable=False, default=_now)

    members = relationship("CreatorUserORM", back_populates="creator")


class CreatorUserORM(Base):
    """Appartenance d'un utilisateur à un créateur (rôle OWNER ou MEMBER)."""

    __tablename__ = "creator_users"

    id = Column(String(32), primary_key=True, default=_uuid)
    creator_id = Column(String(32), ForeignKey("creators.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(16), nullable=False, default="MEMBER")

    creator = relationship("CreatorORM", back_populates="members")

    __table_args__ = (UniqueConstraint("creator_id", "user_id", name="uq_creator_user"),)


class ChatbotORM(Base):
    """Chatbot: champs catalogue mutables + pointeur vers la version courante.

    Les colonnes de comportement (`system_prompt`, ...) sont l'héritage pré-versioning; elles ne
    servent qu'à amorcer la version 1 des chatbots qui n'en ont pas.
    """

    __tablename__ = "chatbots"

    id = Column(String(32), primary_key=True, default=_uuid)
    creator_id = Column(String(32), ForeignKey("creators.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    short_description = Column(String(512), nullable=True)
    is_public = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    system_prompt = Column(Text, nullable=True)
    model_provider = Column(String(64), nullable=True)
    model_name = Column(String(128), nullable=True)
    vector_namespace = Column(String(255), nullable=True)
    config_json = Column(JSON, nullable=True)
    rag_settings_json = Column(JSON, nullable=True)

    current_version_id = Column(
        String(32),
        ForeignKey(
            "chatbot_versions.id",
            ondelete="SET NULL",
            use_alter=True,
            name="fk_chatbots_current_version",
        ),
        nullable=True,
        unique=True,
    )
    created_at = Column(DateTime, nullable=False, default=_now)
    updated_at = Column(DateTime, nullable=False, default=_now, onupdate=_now)

    creator = relationship("CreatorORM")


class ChatbotVersionORM(Base):
    """Instantané immuable de la configuration de comportement d'un chatbot."""

    __tablename__ = "chatbot_versions"

    id = Column(String(32), primary_key=True, default=_uuid)
    chatbot_id = Column(String(32), ForeignKey("chatbots.id", ondelete="CASCADE"), nullable=False)
    version_number = Column(Integer, nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    system_prompt = Column(Text, nullable=False)
    model_provider = Column(String(64), nullable=False)
    model_name = Column(String(128), nullable=False)
    vector_namespace = Column(String(255), nullable=False)
    config_json = Column(JSON, nullable=True)
    rag_settings_json = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)
    changelog = Column(Text, nullable=True)
    created_by_user_id = Column(String(32), ForeignKey("users.id"), nullable=False)
    activated_at = Column(DateTime, nullable=True)
    deactivated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=_now)

    __table_args__ = (
        UniqueConstraint("chatbot_id", "version_number", name="uq_chatbot_version_number"),
    )


class ConversationORM(Base):
    """Session de chat d'un utilisateur, liée à une version à la création."""

    __tablename__ = "conversations"

    id = Column(String(32), primary_key=True, default=_uuid)
    chatbot_id = Column(String(32), ForeignKey("chatbots.id", ondelete="CASCADE"), nullable=False)
    chatbot_version_id = Column(
        String(32), ForeignKey("chatbot_versions.id", ondelete="CASCADE"), nullable=True
    )
    user_id = Column(String(32), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(16), nullable=False, default="active")
    message_count = Column(Integer, nullable=False, default=0)
    intake_completed = Column(Boolean, nullable=False, default=False)
    intake_completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=_now)
    updated_at = Column(DateTime, nullable=False, default=_now, onupdate=_now)


class MessageORM(Base):
    """Message d'une conversation."""

    __tablename__ = "messages"

    id = Column(String(32), primary_key=True, default=_uuid)
    conversation_id = Column(
        String(32), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(String(32), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    role = Column(String(16), nullable=False)
    content = Column(Text, nullable=False)
    seq = Column(Integer, nullable=False)
    source_ids = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, default=_now)

    __table_args__ = (UniqueConstraint("conversation_id", "seq", name="uq_message_seq"),)


class IntakeQuestionORM(Base):
    """Question d'intake réutilisable entre chatbots."""

    __tablename__ = "intake_questions"

    id = Column(String(32), primary_key=True, default=_uuid)
    slug = Column(String(128), nullable=False, unique=True)
    question_text = Column(Text, nullable=False)
    helper_text = Column(Text, nullable=True)
    response_type = Column(String(16), nullable=False)
    options = Column(JSON, nullable=True)
    created_by_user_id = Column(String(32), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=_now)


class ChatbotIntakeQuestionORM(Base):
    """Association question/chatbot portant l'ordre et le caractère obligatoire."""

    __tablename__ = "chatbot_intake_questions"

    id = Column(String(32), primary_key=True, default=_uuid)
    chatbot_id = Column(String(32), ForeignKey("chatbots.id", ondelete="CASCADE"), nullable=False)
    intake_question_id = Column(
        String(32), ForeignKey("intake_questions.id", ondelete="CASCADE"), nullable=False
    )
    display_order = Column(Integer, nullable=False)
    is_required = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=_now)

    question = relationship("IntakeQuestionORM")

    __table_args__ = (
        UniqueConstraint("intake_question_id", "chatbot_id", name="uq_question_chatbot"),
    )


class IntakeResponseORM(Base):
    """Réponse d'un utilisateur à une question (portée chatbot ou globale)."""

    __tablename__ = "intake_responses"

    id = Column(String(32), primary_key=True, default=_uuid)
    intake_question_id = Column(
        String(32), ForeignKey("intake_questions.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    chatbot_id = Column(String(32), ForeignKey("chatbots.id", ondelete="SET NULL"), nullable=True)
    value = Column(JSON, nullable=False)
    reusable_across_frameworks = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=_now)
    updated_at = Column(DateTime, nullable=False, default=_now, onupdate=_now)

    __table_args__ = (
        UniqueConstraint(
            "user_id", "intake_question_id", "chatbot_id", name="uq_intake_response_scope"
        ),
    )

# Schémas Pydantic exposés par l'API (requêtes et réponses, champs camelCase).

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from backend.domain.chatbot_version import ChatbotVersion, VersionOverrides
from backend.infra.repo.models import (
    ChatbotIntakeQuestionORM,
    ChatbotORM,
    ConversationORM,
    IntakeResponseORM,
    MessageORM,
)


class CamelModel(BaseModel):
    """Base: noms camelCase côté JSON, snake_case côté Python."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, protected_namespaces=()
    )


# -- conversations ----------------------------------------------------------
class CreateConversationRequest(CamelModel):
    """Création d'une conversation (`chatbotId` requis, vérifié par le service)."""

    chatbot_id: str | None = None


class ConversationOut(CamelModel):
    """Conversation telle que renvoyée au client."""

    id: str
    chatbot_id: str
    chatbot_version_id: str | None
    user_id: str | None
    status: str
    message_count: int
    intake_completed: bool = False
    created_at: datetime

    @classmethod
    def from_row(cls, row: ConversationORM) -> "ConversationOut":
        return cls(
            id=row.id,
            chatbot_id=row.chatbot_id,
            chatbot_version_id=row.chatbot_version_id,
            user_id=row.user_id,
            status=row.status,
            message_count=row.message_count or 0,
            intake_completed=bool(row.intake_completed),
            created_at=row.created_at,
        )


class MessageOut(CamelModel):
    id: str
    role: str
    content: str
    source_ids: list[str] = Field(default_factory=list)
    created_at: datetime

    @classmethod
    def from_row(cls, row: MessageORM) -> "MessageOut":
        return cls(
            id=row.id,
            role=row.role,
            content=row.content,
            source_ids=list(row.source_ids or []),
            created_at=row.created_at,
        )


class ConversationDetailOut(CamelModel):
    conversation: ConversationOut
    messages: list[MessageOut]


class UpdateConversationRequest(CamelModel):
    intake_completed: bool


class AppendMessageRequest(CamelModel):
    role: Literal["user", "assistant"]
    content: str
    source_ids: list[str] = Field(default_factory=list)


class ContextRequest(CamelModel):
    """Texte pour lequel récupérer du contexte RAG."""

    query: str = ""


# -- chatbots ---------------------------------------------------------------
class VersionFields(CamelModel):
    """Champs de comportement (une modification crée une nouvelle version)."""

    system_prompt: str | None = None
    model_provider: str | None = None
    model_name: str | None = None
    vector_namespace: str | None = None
    config_json: dict[str, Any] | None = None
    rag_settings_json: dict[str, Any] | None = None
    notes: str | None = None
    changelog: str | None = None

    def overrides(self) -> VersionOverrides:
        return VersionOverrides(
            system_prompt=self.system_prompt,
            model_provider=self.model_provider,
            model_name=self.model_name,
            vector_namespace=self.vector_namespace,
            config_json=self.config_json,
            rag_settings_json=self.rag_settings_json,
            notes=self.notes,
            changelog=self.changelog,
        )


class CreateChatbotRequest(VersionFields):
    creator_id: str
    title: str
    description: str | None = None
    short_description: str | None = None
    is_public: bool = False
    is_active: bool = True


class UpdateChatbotRequest(VersionFields):
    """Champs non versionnés et surcharges de comportement.

    `notes`/`changelog` décrivent la nouvelle version: seuls, sans champ de comportement, ils
    sont refusés (400).
    """

    title: str | None = None
    description: str | None = None
    short_description: str | None = None
    is_public: bool | None = None
    is_active: bool | None = None

    def details(self) -> dict[str, Any]:
        """Champs non versionnés effectivement fournis."""
        names = ("title", "description", "short_description", "is_public", "is_active")
        return {n: getattr(self, n) for n in names if n in self.model_fields_set}


class VersionOut(CamelModel):
    id: str
    chatbot_id: str
    version_number: int
    title: str
    description: str | None = None
    system_prompt: str
    model_provider: str
    model_name: str
    vector_namespace: str
    config_json: dict[str, Any] | None = None
    rag_settings_json: dict[str, Any] | None = None
    notes: str | None = None
    changelog: str | None = None
    created_by_user_id: str
    activated_at: datetime | None = None
    deactivated_at: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def from_domain(cls, v: ChatbotVersion) -> "VersionOut":
        return cls(**{name: getattr(v, name) for name in cls.model_fields})


class ChatbotOut(CamelModel):
    id: str
    creator_id: str
    title: str
    description: str | None = None
    short_description: str | None = None
    is_public: bool
    is_active: bool
    current_version_id: str | None = None

    @classmethod
    def from_row(cls, row: ChatbotORM) -> "ChatbotOut":
        return cls(**{name: getattr(row, name) for name in cls.model_fields})


class ChatbotWithVersionOut(CamelModel):
    chatbot: ChatbotOut
    version: VersionOut | None = None


# -- intake -----------------------------------------------------------------
class QuestionOut(CamelModel):
    """Question vue depuis un chatbot (ordre et obligation portés par l'association)."""

    id: str
    chatbot_id: str
    slug: str
    question_text: str
    helper_text: str | None = None
    response_type: str
    options: list[str] | None = None
    display_order: int
    is_required: bool

    @classmethod
    def from_association(cls, a: ChatbotIntakeQuestionORM) -> "QuestionOut":
        q = a.question
        return cls(
            id=q.id,
            chatbot_id=a.chatbot_id,
            slug=q.slug,
            question_text=q.question_text,
            helper_text=q.helper_text,
            response_type=q.response_type,
            options=q.options,
            display_order=a.display_order,
            is_required=a.is_required,
        )


class CreateQuestionRequest(CamelModel):
    chatbot_id: str
    slug: str
    question_text: str
    response_type: str
    display_order: int
    helper_text: str | None = None
    is_required: bool = False
    options: list[str] | None = None


class AssociationItem(CamelModel):
    chatbot_id: str
    display_order: int
    is_required: bool = False


class AssociateRequest(CamelModel):
    chatbot_associations: list[AssociationItem] = Field(default_factory=list)


class AssociationOut(CamelModel):
    id: str
    chatbot_id: str
    intake_question_id: str
    display_order: int
    is_required: bool

    @classmethod
    def from_row(cls, row: ChatbotIntakeQuestionORM) -> "AssociationOut":
        return cls(**{name: getattr(row, name) for name in cls.model_fields})


class UpdateAssociationRequest(CamelModel):
    chatbot_id: str | None = None
    display_order: int | None = None
    is_required: bool | None = None


class RemoveAssociationRequest(CamelModel):
    chatbot_id: str | None = None


class SubmitResponseRequest(CamelModel):
    intake_question_id: str | None = None
    chatbot_id: str | None = None
    value: Any = None
    reusable_across_frameworks: bool = False


class IntakeResponseOut(CamelModel):
    id: str
    intake_question_id: str
    chatbot_id: str | None
    value: Any
    reusable_across_frameworks: bool

    @classmethod
    def from_row(cls, row: IntakeResponseORM) -> "IntakeResponseOut":
        return cls(**{name: getattr(row, name) for name in cls.model_fields})


class WelcomeOut(CamelModel):
    chatbot_name: str
    intake_completed: bool
    has_questions: bool
    existing_responses: dict[str, Any] | None = None
    questions: list[QuestionOut] | None = None
    gate: Literal["intake", "chat"]


# -- retrieval --------------------------------------------------------------
class SearchRequest(CamelModel):
    """Payload pour la recherche sémantique interne."""

    query: str = ""
    namespace: str = ""
    top_k: int | None = None
    filter: dict[str, Any] | None = None

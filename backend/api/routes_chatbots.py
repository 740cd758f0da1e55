"""Routes des chatbots: création, édition versionnée, versions et écran d'accueil."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response

from backend.api.deps import (
    get_current_user,
    get_optional_user,
    get_orchestrator,
    get_version_manager,
)
from backend.api.schemas import (
    ChatbotOut,
    ChatbotWithVersionOut,
    CreateChatbotRequest,
    QuestionOut,
    UpdateChatbotRequest,
    VersionOut,
    WelcomeOut,
)
from backend.core.errors import ValidationError
from backend.infra.repo.models import UserORM
from backend.services.conversations import ConversationOrchestrator
from backend.services.version_manager import VersionManager

router = APIRouter(prefix="/chatbots", tags=["chatbots"])

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


@router.post("", response_model=ChatbotWithVersionOut)
def create_chatbot(
    payload: CreateChatbotRequest,
    user: UserORM = Depends(get_current_user),
    versions: VersionManager = Depends(get_version_manager),
):
    """Crée un chatbot et sa version 1."""
    chatbot, version = versions.create_chatbot(
        creator_id=payload.creator_id,
        actor_user_id=user.id,
        title=payload.title,
        description=payload.description,
        short_description=payload.short_description,
        is_public=payload.is_public,
        is_active=payload.is_active,
        overrides=payload.overrides(),
    )
    return ChatbotWithVersionOut(
        chatbot=ChatbotOut.from_row(chatbot), version=VersionOut.from_domain(version)
    )


@router.patch("/{chatbot_id}", response_model=ChatbotWithVersionOut)
def update_chatbot(
    chatbot_id: str,
    payload: UpdateChatbotRequest,
    user: UserORM = Depends(get_current_user),
    versions: VersionManager = Depends(get_version_manager),
):
    """Champs non versionnés mis à jour directement; champs de comportement -> nouvelle version."""
    chatbot = versions.get_chatbot(chatbot_id)
    versions.ensure_can_edit(chatbot, user.id)
    overrides = payload.overrides()
    if not overrides.has_versioned_changes() and (
        overrides.notes is not None or overrides.changelog is not None
    ):
        raise ValidationError("notes and changelog require a behaviour change")
    details = payload.details()
    if details:
        chatbot = versions.update_details(chatbot_id, details)
    version = None
    if overrides.has_versioned_changes():
        version = versions.create_version(chatbot_id, user.id, overrides)
        chatbot = versions.get_chatbot(chatbot_id)
    return ChatbotWithVersionOut(
        chatbot=ChatbotOut.from_row(chatbot),
        version=VersionOut.from_domain(version) if version else None,
    )


@router.get("/{chatbot_id}/versions", response_model=list[VersionOut])
def list_versions(
    chatbot_id: str,
    user: UserORM = Depends(get_current_user),
    versions: VersionManager = Depends(get_version_manager),
):
    """Historique des versions, par numéro croissant."""
    return [VersionOut.from_domain(v) for v in versions.list_versions(chatbot_id)]


@router.get("/{chatbot_id}/welcome", response_model=WelcomeOut, response_model_exclude_none=True)
def welcome(
    chatbot_id: str,
    response: Response,
    conversation_id: str | None = Query(None, alias="conversationId"),
    user: UserORM | None = Depends(get_optional_user),
    orch: ConversationOrchestrator = Depends(get_orchestrator),
):
    """Écran d'accueil: questions d'intake, réponses existantes et décision du portail."""
    data = orch.welcome(chatbot_id, user.id if user else None, conversation_id)
    response.headers.update(NO_CACHE_HEADERS)
    questions = [QuestionOut.from_association(a) for a in data["associations"]]
    return WelcomeOut(
        chatbot_name=data["chatbot"].title,
        intake_completed=data["intake_completed"],
        has_questions=data["has_questions"],
        existing_responses=data["existing_responses"] or None,
        questions=questions or None,
        gate=data["gate"],
    )

"""Routes des conversations.

`POST /conversations/create` résout la version active du chatbot puis crée la conversation liée à
cette version; le client ne passe à l'état `active` qu'après cette réponse.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from backend.api.deps import get_current_user, get_orchestrator, get_rag_orchestrator
from backend.api.schemas import (
    AppendMessageRequest,
    ContextRequest,
    ConversationDetailOut,
    ConversationOut,
    CreateConversationRequest,
    MessageOut,
    UpdateConversationRequest,
)
from backend.infra.repo.models import UserORM
from backend.services.conversations import ConversationOrchestrator

router = APIRouter(prefix="/conversations", tags=["conversations"])


@router.post("/create", response_model=ConversationOut)
def create_conversation(
    payload: CreateConversationRequest,
    user: UserORM = Depends(get_current_user),
    orch: ConversationOrchestrator = Depends(get_orchestrator),
):
    """Crée une conversation liée à la version active du chatbot."""
    conv = orch.start_conversation(payload.chatbot_id or "", user.id)
    return ConversationOut.from_row(conv)


@router.get("/{conversation_id}", response_model=ConversationDetailOut)
def get_conversation(
    conversation_id: str,
    user: UserORM = Depends(get_current_user),
    orch: ConversationOrchestrator = Depends(get_orchestrator),
):
    """Conversation et messages (hydratation côté client)."""
    conv = orch.get_conversation(conversation_id, user.id)
    messages = orch.list_messages(conversation_id, user.id)
    return ConversationDetailOut(
        conversation=ConversationOut.from_row(conv),
        messages=[MessageOut.from_row(m) for m in messages],
    )


@router.patch("/{conversation_id}", response_model=ConversationOut)
def update_conversation(
    conversation_id: str,
    payload: UpdateConversationRequest,
    user: UserORM = Depends(get_current_user),
    orch: ConversationOrchestrator = Depends(get_orchestrator),
):
    """Marque l'intake de la conversation comme terminé (ou non)."""
    conv = orch.mark_intake_completed(conversation_id, user.id, payload.intake_completed)
    return ConversationOut.from_row(conv)


@router.post("/{conversation_id}/messages", response_model=MessageOut)
def append_message(
    conversation_id: str,
    payload: AppendMessageRequest,
    user: UserORM = Depends(get_current_user),
    orch: ConversationOrchestrator = Depends(get_orchestrator),
):
    message = orch.append_message(
        conversation_id,
        payload.role,
        payload.content,
        user_id=user.id,
        source_ids=payload.source_ids,
    )
    return MessageOut.from_row(message)


@router.post("/{conversation_id}/context")
def retrieve_context(
    conversation_id: str,
    payload: ContextRequest,
    user: UserORM = Depends(get_current_user),
    orch: ConversationOrchestrator = Depends(get_rag_orchestrator),
) -> dict:
    """Passages RAG selon la version liée à la conversation.

    Returns:
        dict: {"passages": [{"id", "sourceId", "text", "relevanceScore", "page"?, "section"?}]}
    """
    passages = orch.retrieve_context(conversation_id, payload.query, user.id)
    return {"passages": [p.to_payload() for p in passages]}

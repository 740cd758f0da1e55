"""Routes du questionnaire d'intake (questions, associations, réponses, complétude)."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from backend.api.deps import get_current_user, get_intake_service, get_optional_user
from backend.api.schemas import (
    AssociateRequest,
    AssociationOut,
    CreateQuestionRequest,
    IntakeResponseOut,
    QuestionOut,
    RemoveAssociationRequest,
    SubmitResponseRequest,
    UpdateAssociationRequest,
)
from backend.core.errors import ValidationError
from backend.infra.repo.models import UserORM
from backend.services.intake import AssociationSpec, IntakeService

router = APIRouter(prefix="/intake", tags=["intake"])


@router.get("/questions")
def list_questions(
    chatbot_id: str | None = Query(None, alias="chatbotId"),
    intake: IntakeService = Depends(get_intake_service),
) -> dict:
    """Questions d'un chatbot par ordre d'affichage (métadonnées publiques)."""
    if not chatbot_id:
        raise ValidationError("chatbotId query parameter is required")
    rows = intake.list_questions(chatbot_id)
    return {
        "questions": [
            QuestionOut.from_association(a).model_dump(by_alias=True) for a in rows
        ]
    }


@router.post("/questions")
def create_question(
    payload: CreateQuestionRequest,
    user: UserORM = Depends(get_current_user),
    intake: IntakeService = Depends(get_intake_service),
) -> dict:
    """Crée une question et l'associe au chatbot (OWNER du créateur)."""
    association = intake.create_question(
        actor_user_id=user.id,
        chatbot_id=payload.chatbot_id,
        slug=payload.slug,
        question_text=payload.question_text,
        response_type=payload.response_type,
        display_order=payload.display_order,
        helper_text=payload.helper_text,
        is_required=payload.is_required,
        options=payload.options,
    )
    return {"question": QuestionOut.from_association(association).model_dump(by_alias=True)}


@router.post("/questions/{question_id}/chatbots")
def associate_question(
    question_id: str,
    payload: AssociateRequest,
    user: UserORM = Depends(get_current_user),
    intake: IntakeService = Depends(get_intake_service),
) -> dict:
    specs = [
        AssociationSpec(
            chatbot_id=a.chatbot_id, display_order=a.display_order, is_required=a.is_required
        )
        for a in payload.chatbot_associations
    ]
    rows = intake.associate(user.id, question_id, specs)
    return {"associations": [AssociationOut.from_row(r).model_dump(by_alias=True) for r in rows]}


@router.patch("/questions/{question_id}/chatbots")
def update_association(
    question_id: str,
    payload: UpdateAssociationRequest,
    user: UserORM = Depends(get_current_user),
    intake: IntakeService = Depends(get_intake_service),
) -> dict:
    row = intake.update_association(
        user.id,
        question_id,
        payload.chatbot_id or "",
        display_order=payload.display_order,
        is_required=payload.is_required,
    )
    return {"association": AssociationOut.from_row(row).model_dump(by_alias=True)}


@router.delete("/questions/{question_id}/chatbots")
def remove_association(
    question_id: str,
    payload: RemoveAssociationRequest,
    user: UserORM = Depends(get_current_user),
    intake: IntakeService = Depends(get_intake_service),
) -> dict:
    intake.remove_association(user.id, question_id, payload.chatbot_id or "")
    return {"message": "Association removed successfully"}


@router.post("/responses")
def submit_response(
    payload: SubmitResponseRequest,
    user: UserORM = Depends(get_current_user),
    intake: IntakeService = Depends(get_intake_service),
) -> dict:
    """Enregistre la réponse de l'utilisateur (mise à jour si elle existe déjà)."""
    row = intake.submit_response(
        user.id,
        payload.intake_question_id or "",
        payload.chatbot_id or "",
        payload.value,
        payload.reusable_across_frameworks,
    )
    return {"response": IntakeResponseOut.from_row(row).model_dump(by_alias=True)}


@router.get("/completion")
def completion(
    chatbot_id: str | None = Query(None, alias="chatbotId"),
    user: UserORM | None = Depends(get_optional_user),
    intake: IntakeService = Depends(get_intake_service),
) -> dict:
    """Résumé de complétude (questions obligatoires uniquement)."""
    if user is None:
        return {"completed": False, "hasQuestions": False, "reason": "not_authenticated"}
    return intake.completion(user.id, chatbot_id or "")

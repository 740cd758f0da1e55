"""Décision du portail d'intake: formulaire ou chat.

Fonction pure, sans I/O, totale sur son entrée typée. Les règles sont évaluées dans l'ordre et la
première qui s'applique l'emporte:

1. conversation déjà marquée `intake_completed_for_conversation` -> chat
2. conversation existante avec au moins un message (reprise) -> chat
3. aucun question configurée pour le chatbot -> chat
4. l'utilisateur n'a pas répondu à toutes les questions -> intake
5. défaut -> chat

La règle 4 porte sur toutes les questions associées, obligatoires ou non.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

GateDecision = Literal["intake", "chat"]

INTAKE: GateDecision = "intake"
CHAT: GateDecision = "chat"


class GateInput(BaseModel):
    """Entrée précalculée du portail (accepte aussi les noms camelCase)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    conversation_id: str | None = Field(default=None, alias="conversationId")
    has_messages: bool = Field(default=False, alias="hasMessages")
    intake_completed_for_conversation: bool = Field(
        default=False, alias="intakeCompletedForConversation"
    )
    chatbot_has_questions: bool = Field(default=False, alias="chatbotHasQuestions")
    user_answered_all_questions: bool = Field(default=False, alias="userAnsweredAllQuestions")


def decide_gate(gate: GateInput) -> GateDecision:
    """Retourne `"intake"` ou `"chat"` selon les règles ordonnées du module."""
    if gate.intake_completed_for_conversation:
        return CHAT
    if gate.conversation_id and gate.has_messages:
        return CHAT
    if not gate.chatbot_has_questions:
        return CHAT
    if not gate.user_answered_all_questions:
        return INTAKE
    return CHAT

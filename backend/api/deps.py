"""Dépendances partagées pour les routes de l'API.

But du module
-------------
- Ouvrir une session SQLAlchemy par requête (commit en sortie, rollback sur erreur).
- Extraire l'utilisateur courant du jeton `Authorization: Bearer <JWT>` (le `sub` est
  l'identifiant externe provisionné par le fournisseur d'identité).
- Construire les services à partir du conteneur.
"""

from collections.abc import Iterator

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from backend.core.constants import HTTP_UNAUTHORIZED
from backend.core.container import container
from backend.core.errors import NotFoundError
from backend.domain.auth import bearer_token, decode_token
from backend.infra.repo.db import session_scope
from backend.infra.repo.models import UserORM
from backend.infra.repo.user_repo import UserRepo
from backend.services.conversations import ConversationOrchestrator
from backend.services.intake import IntakeService
from backend.services.retrieval import RetrievalPipeline
from backend.services.version_manager import VersionManager


def get_session() -> Iterator[Session]:
    """Session de la requête courante."""
    with session_scope(container.session_factory) as session:
        yield session


def _external_id(authorization: str | None) -> str | None:
    token = bearer_token(authorization)
    if token is None:
        return None
    data = decode_token(token, container.settings.JWT_SECRET, container.settings.JWT_ALG)
    return data.sub if data else None


def get_current_user(
    authorization: str | None = Header(None),
    session: Session = Depends(get_session),
) -> UserORM:
    """Utilisateur authentifié; 401 sans jeton valide, 404 si l'identité n'est pas provisionnée."""
    if bearer_token(authorization) is None:
        raise HTTPException(status_code=HTTP_UNAUTHORIZED, detail="Authentication required")
    external_id = _external_id(authorization)
    if not external_id:
        raise HTTPException(status_code=HTTP_UNAUTHORIZED, detail="Invalid token")
    user = UserRepo(session).get_by_external_id(external_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def get_optional_user(
    authorization: str | None = Header(None),
    session: Session = Depends(get_session),
) -> UserORM | None:
    """Utilisateur si un jeton valide et une identité connue sont présents, sinon None."""
    external_id = _external_id(authorization)
    if not external_id:
        return None
    return UserRepo(session).get_by_external_id(external_id)


def get_retrieval() -> RetrievalPipeline:
    """Pipeline RAG du conteneur (construit à la première utilisation)."""
    return container.retrieval


def get_orchestrator(session: Session = Depends(get_session)) -> ConversationOrchestrator:
    return ConversationOrchestrator(session, settings=container.settings)


def get_rag_orchestrator(
    session: Session = Depends(get_session),
    retrieval: RetrievalPipeline = Depends(get_retrieval),
) -> ConversationOrchestrator:
    return ConversationOrchestrator(session, retrieval=retrieval, settings=container.settings)


def get_version_manager(session: Session = Depends(get_session)) -> VersionManager:
    return VersionManager(session, container.settings)


def get_intake_service(session: Session = Depends(get_session)) -> IntakeService:
    return IntakeService(session)

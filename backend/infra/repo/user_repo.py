"""Accès SQL aux utilisateurs et aux appartenances créateur."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import CreatorORM, CreatorUserORM, UserORM

OWNER = "OWNER"
MEMBER = "MEMBER"


class UserRepo:
    """Lecture des utilisateurs/créateurs (le provisioning est externe)."""

    def __init__(self, session: Session) -> None:
        """Construit le repo avec une session (SQLAlchemy)."""
        self._session = session

    def get(self, user_id: str) -> UserORM | None:
        return self._session.get(UserORM, user_id)

    def get_by_external_id(self, external_id: str) -> UserORM | None:
        """Retourne l'utilisateur lié à l'identité externe (`sub` du JWT)."""
        stmt = select(UserORM).where(UserORM.external_id == external_id)
        return self._session.execute(stmt).scalars().first()

    def get_creator(self, creator_id: str) -> CreatorORM | None:
        return self._session.get(CreatorORM, creator_id)

    def role_in(self, creator_id: str, user_id: str) -> str | None:
        """Rôle de l'utilisateur chez ce créateur, ou None s'il n'en est pas membre."""
        stmt = select(CreatorUserORM.role).where(
            CreatorUserORM.creator_id == creator_id, CreatorUserORM.user_id == user_id
        )
        return self._session.execute(stmt).scalars().first()

    def is_member(self, creator_id: str, user_id: str) -> bool:
        return self.role_in(creator_id, user_id) is not None

    def owner_of(self, creator_id: str) -> str | None:
        """Identifiant du premier utilisateur OWNER du créateur (ordre d'id stable)."""
        stmt = (
            select(CreatorUserORM.user_id)
            .where(CreatorUserORM.creator_id == creator_id, CreatorUserORM.role == OWNER)
            .order_by(CreatorUserORM.id)
            .limit(1)
        )
        return self._session.execute(stmt).scalars().first()

"""
Module de validation des jetons d'identité.

Les identités sont provisionnées par un fournisseur externe; ce module se limite à la création
(outillage/tests) et à la validation des tokens JWT dont `sub` est l'identifiant externe.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from jwt import InvalidTokenError
from pydantic import BaseModel, ValidationError

BEARER_PREFIX = "bearer "


class TokenData(BaseModel):
    """Claims utiles d'un token d'identité."""

    sub: str
    email: str | None = None


def create_access_token(
    secret: str, alg: str, expires_min: int, payload: dict[str, Any]
) -> str:
    """Crée un token JWT signé, expirant après `expires_min` minutes."""
    claims = payload.copy()
    claims["exp"] = datetime.now(UTC) + timedelta(minutes=expires_min)
    return jwt.encode(claims, secret, algorithm=alg)


def bearer_token(authorization: str | None) -> str | None:
    """Extrait le jeton d'un en-tête `Authorization: Bearer <token>` (None sinon)."""
    if not authorization or not authorization.lower().startswith(BEARER_PREFIX):
        return None
    token = authorization.split(" ", 1)[1].strip()
    return token or None


def decode_token(token: str, secret: str, alg: str) -> TokenData | None:
    """Décode et valide un token JWT; None si signature, expiration ou claims invalides."""
    try:
        claims = jwt.decode(token, secret, algorithms=[alg])
    except InvalidTokenError:
        return None
    try:
        return TokenData.model_validate(claims)
    except ValidationError:
        return None

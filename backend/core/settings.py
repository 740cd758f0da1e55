"""Définition et chargement des paramètres de configuration applicative.

Objectif du module
------------------
- Centraliser les paramètres (env/.env) via Pydantic Settings
- Résoudre le fichier `.env` à utiliser selon la stratégie: ENV_FILE > .env.{APP_ENV} > .env
"""

import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Détermination du fichier .env à utiliser avec priorité:
# 1) ENV_FILE (chemin explicite)
# 2) .env.{APP_ENV} si présent
# 3) .env (défaut)
_cwd = Path.cwd()
_env_file_from_env = os.getenv("ENV_FILE")
if _env_file_from_env:
    _ENV_FILE_PATH = _env_file_from_env
else:
    _app_env = os.getenv("APP_ENV", "dev")
    _candidate_specific = _cwd / f".env.{_app_env}"
    _candidate_default = _cwd / ".env"
    if _candidate_specific.exists():
        _ENV_FILE_PATH = _candidate_specific
    else:
        _ENV_FILE_PATH = _candidate_default


class Settings(BaseSettings):
    """Modèle de configuration chargé depuis l'environnement et .env."""

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE_PATH,
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
    )
    APP_NAME: str = "persona-chat-backend"
    APP_ENV: str = "dev"  # "dev" | "test" | "production"
    APP_DEBUG: bool = True
    APP_HOST: str = "0.0.0.0"
    APP_PORT: int = 8000

    DATABASE_URL: str | None = None
    # JWT/Auth (identités provisionnées par un fournisseur externe)
    JWT_SECRET: str = "dev-secret-change-me"
    JWT_ALG: str = "HS256"

    # Embeddings
    OPENAI_API_KEY: str | None = None
    EMBEDDINGS_MODEL: str = "text-embedding-3-small"

    # Index vectoriel
    VECTOR_BACKEND: str = "pinecone"  # "pinecone" | "memory"
    PINECONE_API_KEY: str | None = None
    PINECONE_INDEX_HOST: str | None = None
    PINECONE_USE_NAMESPACES: bool = True
    PINECONE_TIMEOUT_S: float = 10.0

    # RAG
    RAG_DEFAULT_TOP_K: int = 5
    RAG_MAX_TOP_K: int = 50

    # Valeurs par défaut des versions de chatbot
    DEFAULT_SYSTEM_PROMPT: str = "You are a helpful assistant."
    DEFAULT_MODEL_PROVIDER: str = "openai"
    DEFAULT_MODEL_NAME: str = "gpt-4o"
    # Création paresseuse de la version 1 (chatbots antérieurs au versioning)
    VERSION_AUTO_MIGRATE: bool = False

    # Limitation de cardinalité des labels métriques (CSV via .env, peut être vide)
    ALLOWED_CHATBOTS: list[str] = []

    @property
    def is_production(self) -> bool:
        """Indique si l'application tourne en production."""
        return self.APP_ENV.strip().lower() in {"prod", "production"}


def get_settings() -> Settings:
    """Construit et retourne la configuration de l'application."""
    return Settings()

"""
Tests pour la résolution des variables d'environnement.

Ce module teste le chargement des settings depuis un fichier .env personnalisé et la détection
de l'environnement de production.
"""

from __future__ import annotations

import importlib
from pathlib import Path

from backend.core.settings import Settings


def test_settings_reads_env_file(tmp_path: Path, monkeypatch) -> None:
    """
    Teste que les settings lisent correctement les fichiers d'environnement.

    Vérifie que les variables définies dans un fichier .env personnalisé (ENV_FILE) sont
    et appliquées aux settings.
    """
    env = tmp_path / ".env.custom"
    env.write_text("RAG_DEFAULT_TOP_K=7\nALLOWED_CHATBOTS=[\"a\",\"b\"]\n", encoding="utf-8")
    monkeypatch.setenv("ENV_FILE", str(env))

    settings_mod = importlib.import_module("backend.core.settings")
    try:
        importlib.reload(settings_mod)
        s = settings_mod.get_settings()
        assert s.RAG_DEFAULT_TOP_K == 7
        assert s.ALLOWED_CHATBOTS == ["a", "b"]
    finally:
        monkeypatch.delenv("ENV_FILE")
        importlib.reload(settings_mod)


def test_env_overrides_defaults(monkeypatch):
    monkeypatch.setenv("VECTOR_BACKEND", "memory")
    monkeypatch.setenv("RAG_MAX_TOP_K", "20")
    s = Settings()
    assert s.VECTOR_BACKEND == "memory"
    assert s.RAG_MAX_TOP_K == 20
    assert s.DEFAULT_MODEL_NAME == "gpt-4o"


def test_is_production(monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    assert Settings().is_production is True
    monkeypatch.setenv("APP_ENV", "prod")
    assert Settings().is_production is True
    monkeypatch.setenv("APP_ENV", "test")
    assert Settings().is_production is False

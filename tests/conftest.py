"""Configuration de test pour pytest.

Ce module ajoute la racine du projet au sys.path, isole l'environnement (flags, secrets) et fournit
une base SQLite en mémoire par test ainsi qu'un client HTTP branché dessus.
"""

import os
import sys

import pytest
import structlog

# Ensure project root is on sys.path so that
# imports like `from backend...` resolve.
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("VECTOR_BACKEND", "memory")

from fastapi.testclient import TestClient  # noqa: E402

from backend.infra.repo.db import create_schema, get_engine, get_session_factory  # noqa: E402
from tests.fakes import FakeEmbeddings, FakeIndex, seed_creator, seed_user  # noqa: E402

_FLAG_ENV = (
    "FF_PINECONE_USE_NAMESPACES",
    "PINECONE_USE_NAMESPACES",
    "FF_VERSION_AUTO_MIGRATE",
    "VERSION_AUTO_MIGRATE",
)


@pytest.fixture(autouse=True)
def restore_structlog_config():
    """Restaure la configuration structlog globale après chaque test (isolation des flux capturés)."""
    saved = structlog.get_config()
    yield
    structlog.configure(**saved)


@pytest.fixture(autouse=True)
def clean_flags(monkeypatch):
    """Chaque test part des valeurs par défaut des flags."""
    for key in _FLAG_ENV:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("JWT_SECRET", "test-secret")
    monkeypatch.setenv("APP_ENV", "test")


@pytest.fixture
def session_factory():
    """Factory de sessions sur une base SQLite en mémoire neuve."""
    engine = get_engine("sqlite+pysqlite:///:memory:")
    create_schema(engine)
    yield get_session_factory(engine)
    engine.dispose()


@pytest.fixture
def session(session_factory):
    s = session_factory()
    yield s
    s.rollback()
    s.close()


@pytest.fixture
def fake_index():
    return FakeIndex()


@pytest.fixture
def fake_embeddings():
    return FakeEmbeddings()


@pytest.fixture
def client(session_factory, fake_embeddings, fake_index, monkeypatch):
    """TestClient dont la session et le pipeline RAG pointent sur les fakes du test."""
    from backend.api.deps import get_retrieval
    from backend.app.main import app
    from backend.core.container import container
    from backend.services.retrieval import RetrievalPipeline

    monkeypatch.setattr(container, "session_factory", session_factory)
    monkeypatch.setattr(container.settings, "JWT_SECRET", "test-secret")
    pipeline = RetrievalPipeline(embedder=fake_embeddings, index=fake_index)
    app.dependency_overrides[get_retrieval] = lambda: pipeline
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def seeded(session_factory):
    """Owner, membre et visiteur persistés, plus un créateur (commit effectué)."""
    s = session_factory()
    owner = seed_user(s, "ext_owner")
    member = seed_user(s, "ext_member")
    visitor = seed_user(s, "ext_visitor")
    creator = seed_creator(s, owner, members=[member])
    s.commit()
    s.close()
    return {"owner": owner, "member": member, "visitor": visitor, "creator": creator}

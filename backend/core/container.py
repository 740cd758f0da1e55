"""
Conteneur d'injection de dépendances et configuration application.

Instancie les composants centraux (settings, moteur SQLAlchemy, client d'embeddings, index
vectoriel, pipeline RAG) et expose un singleton `container` utilisé par le reste de l'application.
Les clients externes sont construits à la première utilisation.
"""

import os

import structlog
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from backend.core.settings import Settings, get_settings
from backend.infra.embeddings.base import Embeddings
from backend.infra.embeddings.openai_embedder import OpenAIEmbedder
from backend.infra.repo.db import create_schema, get_engine, get_session_factory
from backend.infra.vecstores.base import VectorIndex
from backend.infra.vecstores.memory_index import MemoryVectorIndex
from backend.infra.vecstores.pinecone_index import PineconeIndex
from backend.services.retrieval import RetrievalPipeline

log = structlog.get_logger(__name__)


class Container:
    def __init__(self, settings: Settings | None = None, engine: Engine | None = None):
        self.settings = settings or get_settings()
        self.engine = engine or get_engine(self.settings.DATABASE_URL)
        if self.engine.dialect.name == "sqlite":
            # dev/tests: pas d'Alembic, schéma créé à la volée
            create_schema(self.engine)
        self.session_factory: sessionmaker = get_session_factory(self.engine)
        self._embedder: Embeddings | None = None
        self._index: VectorIndex | None = None
        self._retrieval: RetrievalPipeline | None = None

    def resolve_secret(self, key: str) -> str:
        """Résolution de secret: env -> settings.

        Ne journalise jamais la valeur du secret.
        """
        env_val = os.getenv(key)
        if env_val:
            return env_val
        return getattr(self.settings, key, "") or ""

    @property
    def embedder(self) -> Embeddings:
        if self._embedder is None:
            self._embedder = OpenAIEmbedder(
                api_key=self.resolve_secret("OPENAI_API_KEY") or None,
                model=self.settings.EMBEDDINGS_MODEL,
            )
        return self._embedder

    @embedder.setter
    def embedder(self, value: Embeddings) -> None:
        self._embedder = value
        self._retrieval = None

    @property
    def vector_index(self) -> VectorIndex:
        if self._index is None:
            backend = (self.settings.VECTOR_BACKEND or "pinecone").strip().lower()
            if backend == "memory":
                self._index = MemoryVectorIndex()
            else:
                self._index = PineconeIndex(
                    host=self.settings.PINECONE_INDEX_HOST or "",
                    api_key=self.resolve_secret("PINECONE_API_KEY"),
                    timeout_s=self.settings.PINECONE_TIMEOUT_S,
                )
            log.info("vector_index_ready", backend=self._index.backend)
        return self._index

    @vector_index.setter
    def vector_index(self, value: VectorIndex) -> None:
        self._index = value
        self._retrieval = None

    @property
    def retrieval(self) -> RetrievalPipeline:
        if self._retrieval is None:
            self._retrieval = RetrievalPipeline(
                embedder=self.embedder,
                index=self.vector_index,
                default_top_k=self.settings.RAG_DEFAULT_TOP_K,
                max_top_k=self.settings.RAG_MAX_TOP_K,
            )
        return self._retrieval


container = Container()

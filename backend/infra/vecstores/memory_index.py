"""
In-memory namespaced vector index.

Implements `VectorIndex` for development and tests: one partition per namespace, cosine
similarity computed with numpy, equality filters on metadata (plus `$eq`/`$in`).
"""

from __future__ import annotations

import time
from typing import Any

import numpy as np

from backend.app.metrics import VECTOR_INDEX_LATENCY, VECTOR_INDEX_OPS
from backend.config.flags import ff_pinecone_use_namespaces
from backend.domain.retrieval_types import VectorMatch, VectorRecord
from backend.infra.vecstores.base import VectorIndex

DEFAULT_PARTITION = ""


def _matches_filter(metadata: dict[str, Any], flt: dict[str, Any] | None) -> bool:
    if not flt:
        return True
    for key, cond in flt.items():
        value = metadata.get(key)
        if isinstance(cond, dict):
            if "$eq" in cond and value != cond["$eq"]:
                return False
            if "$in" in cond and value not in cond["$in"]:
                return False
        elif value != cond:
            return False
    return True


class MemoryVectorIndex(VectorIndex):
    """In-memory index with per-namespace isolation."""

    backend = "memory"

    def __init__(self) -> None:
        """Initialize empty partitions."""
        self._records: dict[str, dict[str, VectorRecord]] = {}

    def _partition(self, namespace: str) -> str:
        return namespace if ff_pinecone_use_namespaces() else DEFAULT_PARTITION

    def upsert(self, namespace: str, records: list[VectorRecord]) -> int:
        """
        Insère ou remplace des vecteurs dans une partition.

        Args:
            namespace: Partition cible.
            records: Vecteurs à écrire.

        Returns:
            int: Nombre de vecteurs écrits.
        """
        start = time.perf_counter()
        part = self._records.setdefault(self._partition(namespace), {})
        for r in records:
            part[r.id] = r
        VECTOR_INDEX_OPS.labels(op="upsert", backend=self.backend, outcome="ok").inc()
        VECTOR_INDEX_LATENCY.labels(op="upsert", backend=self.backend).observe(
            time.perf_counter() - start
        )
        return len(records)

    def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int,
        include_metadata: bool = True,
        filter: dict[str, Any] | None = None,
    ) -> list[VectorMatch]:
        """
        Recherche les plus proches voisins par similarité cosinus.

        Args:
            namespace: Partition interrogée.
            vector: Vecteur de requête.
            top_k: Nombre maximum de correspondances.
            include_metadata: Renvoie les métadonnées si True.
            filter: Filtre d'égalité sur les métadonnées.

        Returns:
            list[VectorMatch]: Correspondances par score décroissant.
        """
        start = time.perf_counter()
        candidates = [
            r
            for r in self._records.get(self._partition(namespace), {}).values()
            if _matches_filter(r.metadata, filter)
        ]
        matches: list[VectorMatch] = []
        if candidates and top_k > 0:
            q = np.asarray(vector, dtype="float32")
            m = np.asarray([r.values for r in candidates], dtype="float32")
            denom = np.linalg.norm(m, axis=1) * (np.linalg.norm(q) or 1.0)
            denom[denom == 0] = 1.0
            scores = (m @ q) / denom
            order = np.argsort(-scores, kind="stable")[:top_k]
            for idx in order:
                rec = candidates[int(idx)]
                matches.append(
                    VectorMatch(
                        id=rec.id,
                        score=float(scores[idx]),
                        metadata=dict(rec.metadata) if include_metadata else {},
                    )
                )
        VECTOR_INDEX_OPS.labels(op="query", backend=self.backend, outcome="ok").inc()
        VECTOR_INDEX_LATENCY.labels(op="query", backend=self.backend).observe(
            time.perf_counter() - start
        )
        return matches

    def purge(self, namespace: str) -> None:
        """Supprime toutes les données d'une partition."""
        self._records.pop(self._partition(namespace), None)

"""Gestion des feature flags.

Flags globaux lus depuis l'environnement puis depuis les settings.

Env vars (truthy if in {"1","true","yes","on"}, case-insensitive):
- FF_PINECONE_USE_NAMESPACES | PINECONE_USE_NAMESPACES (défaut ON)
- FF_VERSION_AUTO_MIGRATE | VERSION_AUTO_MIGRATE (défaut OFF)
"""

from __future__ import annotations

import os

from backend.core.settings import get_settings

_TRUE = {"1", "true", "yes", "on"}


def _get_bool(*env_keys: str, fallback_setting: str | None = None, default: bool = False) -> bool:
    """Read a boolean from env or settings.

    Args:
        env_keys: Environment variable names to try in order.
        fallback_setting: Optional attribute name on settings.
        default: Default value if not found.
    Returns:
        bool: Effective flag value.
    """
    for k in env_keys:
        v = os.getenv(k)
        if v is not None:
            return str(v).strip().lower() in _TRUE
    if fallback_setting:
        val = getattr(get_settings(), fallback_setting, None)
        if isinstance(val, bool):
            return val
        if val is not None:
            return str(val).strip().lower() in _TRUE
    return default


def ff_pinecone_use_namespaces() -> bool:
    """Return whether queries are scoped to a real namespace (default ON).

    When OFF, every namespace collapses onto the index's default partition.
    """
    return _get_bool(
        "FF_PINECONE_USE_NAMESPACES",
        "PINECONE_USE_NAMESPACES",
        fallback_setting="PINECONE_USE_NAMESPACES",
        default=True,
    )


def ff_version_auto_migrate() -> bool:
    """Return whether a missing version 1 may be created lazily at runtime (default OFF)."""
    return _get_bool(
        "FF_VERSION_AUTO_MIGRATE",
        "VERSION_AUTO_MIGRATE",
        fallback_setting="VERSION_AUTO_MIGRATE",
        default=False,
    )

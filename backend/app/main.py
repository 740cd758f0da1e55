"""
Application principale FastAPI.

Ce module assemble tous les composants de l'application : middlewares, routes, gestion des
erreurs et métriques du backend de chat.

Responsabilités du module:
- Initialiser le logging structuré
- Construire l'application FastAPI avec son titre/debug
- Ajouter les middlewares (request id, métriques)
- Enregistrer les handlers d'erreurs et monter les routers
"""

from __future__ import annotations

from fastapi import FastAPI

from backend.api.errors import register_error_handlers
from backend.api.routes_chatbots import router as chatbots_router
from backend.api.routes_conversations import router as conversations_router
from backend.api.routes_health import router as health_router
from backend.api.routes_intake import router as intake_router
from backend.api.routes_retrieval import router as retrieval_router
from backend.app.metrics import PrometheusMiddleware, metrics_router
from backend.core.container import container
from backend.core.logging import setup_logging
from backend.middlewares.request_id import RequestIDMiddleware


def create_app() -> FastAPI:
    """
    Construit et retourne l'application FastAPI prête à l'usage.

    Étapes:
    - Configure le logging structuré (structlog), JSON en production
    - Ajoute les middlewares de traçabilité et de métriques
    - Publie les routes métier, de santé et de métriques
    """
    settings = container.settings
    setup_logging(json_logs=settings.is_production)
    app = FastAPI(title=settings.APP_NAME, debug=settings.APP_DEBUG)
    app.add_middleware(PrometheusMiddleware)
    # ajouté en dernier: exécuté en premier, le trace id est disponible partout
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)
    app.include_router(health_router)
    app.include_router(conversations_router)
    app.include_router(chatbots_router)
    app.include_router(intake_router)
    app.include_router(retrieval_router)
    app.include_router(metrics_router)
    return app


app = create_app()

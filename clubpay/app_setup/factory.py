"""
Factory d'application pour les entrypoints (clubpay.asgi, python -m clubpay).
Ordonne les étapes d'initialisation de manière lisible et testable.
"""
from typing import Optional
from fastapi import FastAPI
from .lifespan import lifespan
from .middlewares import register_basic_middlewares, register_no_cache_middleware
from .exceptions import register_exception_handlers
from .routers import register_routers
from clubpay.payments.registry import DraftRegistry

def create_app(registry: Optional[DraftRegistry] = None) -> FastAPI:
    """
    Construit l'app FastAPI avec le lifespan et enregistre:
      - middlewares (CORS, no-cache)
      - gestionnaires d'exceptions
      - routers (payments, health)
    `registry` permet d'injecter un registre (moteurs factices en tests).
    """
    app = FastAPI(title="Club Pay", lifespan=lifespan)
    if registry is not None:
        app.state.draft_registry = registry
    register_basic_middlewares(app)
    register_no_cache_middleware(app)
    register_exception_handlers(app)
    register_routers(app)
    return app

"""
Middlewares transverses de l'application.
- register_basic_middlewares: CORS pour le front du club (web/mobile).
- register_no_cache_middleware: les brouillons sont des états vivants, jamais mis en cache.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from clubpay.config import CORS_ORIGINS

def register_basic_middlewares(app: FastAPI) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        # Les credentials sont interdits avec l'origine joker
        allow_credentials="*" not in CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

def register_no_cache_middleware(app: FastAPI) -> None:
    @app.middleware("http")
    async def no_cache_for_drafts(request: Request, call_next):
        response = await call_next(request)
        if request.url.path.startswith("/api/v1/payments/"):
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
            response.headers["Pragma"] = "no-cache"
            response.headers["Expires"] = "0"
        return response

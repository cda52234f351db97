"""
Gestionnaires d'exceptions de l'API.
- HTTPException: corps JSON standard {"detail": ...}.
- ValidationError (transition illégale non interceptée par une vue): 400 avec le code.
- ClubApiError remontée hors du moteur: 502, le backend du club a échoué.
"""
import logging
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from clubpay.errors import ClubApiError, ValidationError

logger = logging.getLogger(__name__)

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def http_exception_json(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=getattr(exc, "headers", None))

    @app.exception_handler(ValidationError)
    async def validation_error_json(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"detail": exc.message, "code": exc.code})

    @app.exception_handler(ClubApiError)
    async def club_api_error_json(request: Request, exc: ClubApiError):
        logger.warning("club api error on %s: %s", request.url.path, exc.message)
        return JSONResponse(status_code=502, content={"detail": exc.message, "upstream_status": exc.status_code})

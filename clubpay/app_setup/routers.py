"""
Registre central des routers.
- API v1: payments (brouillons, règlement, statut des réservations)
- Health: health_router
"""
from fastapi import FastAPI
from clubpay.payments import views as payments_views
from clubpay.health.router import router as health_router

def register_routers(app: FastAPI) -> None:
    app.include_router(payments_views.router)
    # Health & monitoring
    app.include_router(health_router)

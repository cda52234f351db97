"""
Garde des mois déjà payés, par activité.
"""
from typing import Set
import logging

import httpx

from clubpay.catalog.service import ErrorSink
from clubpay.errors import ClubApiError
from clubpay.infra.club_api import get_json

logger = logging.getLogger(__name__)

# module clubpay.payments.guard
async def fetch_paid_months(client: httpx.AsyncClient, activity_id: int) -> Set[str]:
    """Mois réglés pour une activité (GET /konnect/paid-months?activiteId=)."""
    data = await get_json(client, "/konnect/paid-months", params={"activiteId": activity_id})
    if not isinstance(data, list):
        raise ClubApiError("La réponse attendue est une liste de mois")
    return {str(m).strip() for m in data if m}

async def load_paid_months(client: httpx.AsyncClient, activity_id: int, on_error: ErrorSink = None) -> Set[str]:
    try:
        return await fetch_paid_months(client, activity_id)
    except Exception as e:
        logger.exception("payments.guard.load_paid_months failed activity_id=%s", activity_id)
        if on_error is not None:
            on_error("paid_months", getattr(e, "message", None) or str(e))
        return set()

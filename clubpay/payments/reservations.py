"""
Réservations payées sur place (espèces) et suivi de leur statut.
"""
from typing import Any, Dict, Optional
import logging

import httpx

from clubpay.config import CLUB_API_TIMEOUT
from clubpay.infra.club_api import get_json, post_json
from clubpay.payments.payloads import MonthlyReservation, SessionReservation

logger = logging.getLogger(__name__)

IDEMPOTENCY_HEADER = "Idempotency-Key"

# module clubpay.payments.reservations
async def submit_reservation(
    client: httpx.AsyncClient,
    request: "SessionReservation | MonthlyReservation",
    idempotency_key: str,
) -> Dict[str, Any]:
    """
    POST /reservations/by-parent/{adherentId} avec la clé d'idempotence (cartCode).
    Retourne le corps de réponse (dict, éventuellement vide).
    """
    data = await post_json(
        client,
        f"/reservations/by-parent/{request.adherent_id}",
        request.to_wire(),
        headers={IDEMPOTENCY_HEADER: idempotency_key},
        timeout=CLUB_API_TIMEOUT,
    )
    return data if isinstance(data, dict) else {}

def reservation_id_of(response: Dict[str, Any]) -> Optional[str]:
    value = response.get("reservationId") or response.get("id")
    return str(value) if value is not None else None

async def fetch_reservation_status(client: httpx.AsyncClient, reservation_id: str) -> str:
    """
    Statut d'une réservation: "paid" | "failed" | "pending", ou "unknown" si la vérification échoue.
    """
    if not reservation_id:
        return "unknown"
    try:
        data = await get_json(client, f"/reservations/{reservation_id}")
    except Exception:
        logger.exception("payments.reservations.fetch_reservation_status failed reservation_id=%s", reservation_id)
        return "unknown"
    status = str((data or {}).get("status") or "").upper() if isinstance(data, dict) else ""
    if status == "PAID":
        return "paid"
    if status == "FAILED":
        return "failed"
    return "pending"

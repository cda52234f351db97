from datetime import date
from typing import Any, Dict, List, Optional
import logging

import httpx
from pydantic import ValidationError as PydanticValidationError

from clubpay.errors import ClubApiError
from clubpay.infra.club_api import get_json
from clubpay.models import Session

logger = logging.getLogger(__name__)

# module clubpay.calendar.repository
async def fetch_sessions(
    client: httpx.AsyncClient,
    activity_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> List[Session]:
    """
    Séances d'une activité (GET /sessions/activite/{id}) ou du calendrier complet (GET /sessions/calendar),
    éventuellement bornées par from/to (ISO). L'ordre du backend est conservé.
    """
    params: Dict[str, Any] = {}
    if date_from:
        params["from"] = date_from.isoformat()
    if date_to:
        params["to"] = date_to.isoformat()
    path = f"/sessions/activite/{activity_id}" if activity_id is not None else "/sessions/calendar"
    data = await get_json(client, path, params=params or None)
    if not isinstance(data, list):
        raise ClubApiError("La réponse attendue est un tableau de séances")
    sessions: List[Session] = []
    for row in data:
        try:
            sessions.append(Session.model_validate(row))
        except PydanticValidationError:
            logger.warning("calendar.repository skipped invalid session id=%s", (row or {}).get("id") if isinstance(row, dict) else None)
    return sessions

async def fetch_next_session(client: httpx.AsyncClient, activity_id: int) -> Optional[Session]:
    """Prochaine séance à venir d'une activité (GET /sessions/next-session?activityId=)."""
    data = await get_json(client, "/sessions/next-session", params={"activityId": activity_id})
    if not isinstance(data, dict) or not data.get("id"):
        return None
    return Session.model_validate(data)

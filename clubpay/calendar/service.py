from datetime import date
from typing import Dict, List, Optional
import logging

import httpx

from clubpay.calendar import repository
from clubpay.calendar.index import build_index
from clubpay.catalog.service import ErrorSink
from clubpay.models import Session

logger = logging.getLogger(__name__)

async def load_sessions(
    client: httpx.AsyncClient,
    activity_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    on_error: ErrorSink = None,
) -> Dict[date, List[Session]]:
    """Charge les séances et construit l'index jour -> séances ({} en cas d'échec)."""
    try:
        sessions = await repository.fetch_sessions(client, activity_id, date_from, date_to)
    except Exception as e:
        logger.exception("calendar.service.load_sessions failed activity_id=%s", activity_id)
        if on_error is not None:
            on_error("sessions", getattr(e, "message", None) or str(e))
        return {}
    return build_index(sessions)

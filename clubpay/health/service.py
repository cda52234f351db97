"""
Diagnostic de l'API du club (utilisé par /health/club-api).
Ne lève jamais: toute erreur est rapportée dans le dictionnaire retourné.
"""
from typing import Any, Dict, Optional
from urllib.parse import urlparse
import logging
import time

import httpx

from clubpay.config import CLUB_API_URL

logger = logging.getLogger(__name__)

HEALTH_TIMEOUT = 3.0


async def health_club_api_info(transport: Optional[httpx.AsyncBaseTransport] = None) -> Dict[str, Any]:
    parsed = urlparse(CLUB_API_URL)
    info: Dict[str, Any] = {
        "url_present": bool(CLUB_API_URL),
        "scheme": parsed.scheme or None,
        "host": parsed.hostname,
        "connect_ok": False,
        "status_code": None,
        "latency_ms": None,
        "error": None,
    }
    started = time.perf_counter()
    try:
        async with httpx.AsyncClient(base_url=CLUB_API_URL, timeout=HEALTH_TIMEOUT, transport=transport) as client:
            resp = await client.get("/activites")
        info["status_code"] = resp.status_code
        # 401/403: le serveur répond, seul le jeton manque
        info["connect_ok"] = resp.status_code < 500
    except httpx.HTTPError as e:
        logger.warning("health.club_api unreachable: %s", e)
        info["error"] = str(e) or e.__class__.__name__
    info["latency_ms"] = round((time.perf_counter() - started) * 1000, 1)
    return info

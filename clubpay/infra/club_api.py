"""
Client HTTP de l'API du club (httpx, asynchrone).
- Un client par jeton porteur (le jeton du parent connecté), jamais partagé entre utilisateurs.
- Toute réponse non 2xx devient ClubApiError avec le message serveur tel quel.
- Un conflit "déjà payé" (409 ou message explicite) devient AlreadyPaidError.
"""
from typing import Any, Dict, Optional
import logging
import re

import httpx

from clubpay.config import CLUB_API_URL, CLUB_API_TIMEOUT
from clubpay.errors import ClubApiError, AlreadyPaidError

logger = logging.getLogger(__name__)

_ALREADY_PAID_RE = re.compile(r"d[ée]j[àa]\s+pay[ée]|already\s+paid", re.IGNORECASE)

def create_club_client(
    token: str,
    *,
    base_url: Optional[str] = None,
    timeout: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """
    Client 'utilisateur' authentifié par Bearer.
    transport: injectable (httpx.MockTransport en tests).
    """
    if not token:
        raise ValueError("token is required")
    return httpx.AsyncClient(
        base_url=base_url or CLUB_API_URL,
        headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
        timeout=timeout if timeout is not None else CLUB_API_TIMEOUT,
        transport=transport,
    )

def _server_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("message", "detail", "error"):
            if body.get(key):
                return str(body[key])
    text = (response.text or "").strip()
    return text or f"Erreur serveur ({response.status_code})"

def _raise_for_status(response: httpx.Response) -> None:
    if response.is_success:
        return
    message = _server_message(response)
    if response.status_code == 409 or _ALREADY_PAID_RE.search(message):
        raise AlreadyPaidError(message, response.status_code)
    raise ClubApiError(message, response.status_code)

async def request_json(
    client: httpx.AsyncClient,
    method: str,
    path: str,
    *,
    params: Optional[Dict[str, Any]] = None,
    json: Any = None,
    headers: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
) -> Any:
    """
    Exécute une requête et retourne le JSON décodé (None si corps vide).
    Les erreurs de transport (timeout, connexion) sont converties en ClubApiError.
    """
    kwargs: Dict[str, Any] = {"params": params, "json": json, "headers": headers}
    if timeout is not None:
        kwargs["timeout"] = timeout
    try:
        response = await client.request(method, path, **kwargs)
    except httpx.TimeoutException as e:
        raise ClubApiError(f"Délai dépassé lors de l'appel {method} {path}") from e
    except httpx.HTTPError as e:
        raise ClubApiError(f"Erreur de communication API: {e}") from e
    _raise_for_status(response)
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as e:
        raise ClubApiError("Réponse JSON invalide") from e

async def get_json(client: httpx.AsyncClient, path: str, **kwargs) -> Any:
    return await request_json(client, "GET", path, **kwargs)

async def post_json(client: httpx.AsyncClient, path: str, payload: Any, **kwargs) -> Any:
    return await request_json(client, "POST", path, json=payload, **kwargs)

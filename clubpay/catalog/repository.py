"""
Accès aux données de référence via l'API du club.
Les erreurs réseau/serveur remontent en ClubApiError; le service décide quoi en faire.
"""
from typing import Any, List
import logging

import httpx
from pydantic import ValidationError as PydanticValidationError

from clubpay.errors import ClubApiError
from clubpay.infra.club_api import get_json
from clubpay.models import Activity, Adherent, GuardianContact

logger = logging.getLogger(__name__)

# module clubpay.catalog.repository
def _as_list(data: Any, what: str) -> List[dict]:
    if not isinstance(data, list):
        raise ClubApiError(f"La réponse attendue est un tableau ({what})")
    return [row for row in data if isinstance(row, dict)]

def _parse_rows(model, rows: List[dict]) -> list:
    """Ignore les lignes invalides (id manquant...) plutôt que d'échouer sur toute la liste."""
    parsed = []
    for row in rows:
        try:
            parsed.append(model.model_validate(row))
        except PydanticValidationError:
            logger.warning("catalog.repository skipped invalid %s row id=%s", model.__name__, row.get("id"))
    return parsed

async def fetch_adherents(client: httpx.AsyncClient) -> List[Adherent]:
    """Adhérents du parent connecté (GET /parents/me/adherents)."""
    data = await get_json(client, "/parents/me/adherents")
    return _parse_rows(Adherent, _as_list(data, "adhérents"))

async def fetch_all_activities(client: httpx.AsyncClient) -> List[Activity]:
    """Catalogue complet des activités (GET /activites), utilisé pour le paiement par séance."""
    data = await get_json(client, "/activites")
    return _parse_rows(Activity, _as_list(data, "activités"))

async def fetch_activities_of_adherent(client: httpx.AsyncClient, adherent_id: int) -> List[Activity]:
    """Activités auxquelles l'adhérent est inscrit (GET /activites/by-adherent/{id})."""
    data = await get_json(client, f"/activites/by-adherent/{adherent_id}")
    return _parse_rows(Activity, _as_list(data, "activités"))

async def fetch_parent_info(client: httpx.AsyncClient) -> GuardianContact:
    """Coordonnées du parent connecté (GET /parents/me)."""
    data = await get_json(client, "/parents/me")
    if not isinstance(data, dict):
        raise ClubApiError("Profil parent introuvable")
    return GuardianContact.model_validate(data)

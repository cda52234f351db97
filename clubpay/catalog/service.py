"""
Chargeur des données de référence.
- Listes triées par nom pour un ordre d'affichage stable.
- Ne lève jamais: en cas d'échec, journalise, signale via `on_error(source, message)` et
  retourne une collection vide (l'écran propose alors de réessayer).
"""
from typing import Callable, Dict, Iterable, List, Optional
import logging

import httpx

from clubpay.catalog import repository
from clubpay.models import Activity, Adherent, BillingMode, GuardianContact

logger = logging.getLogger(__name__)

ErrorSink = Optional[Callable[[str, str], None]]

def _report(on_error: ErrorSink, source: str, e: Exception) -> None:
    logger.exception("catalog.service.%s failed", source)
    if on_error is not None:
        on_error(source, getattr(e, "message", None) or str(e) or "Erreur lors du chargement des données")

async def load_adherents(client: httpx.AsyncClient, on_error: ErrorSink = None) -> List[Adherent]:
    try:
        adherents = await repository.fetch_adherents(client)
    except Exception as e:
        _report(on_error, "adherents", e)
        return []
    return sorted(adherents, key=lambda a: (a.first_name.lower(), a.last_name.lower(), a.id))

async def load_activities(
    client: httpx.AsyncClient,
    mode: BillingMode,
    adherent_ids: Iterable[int] = (),
    on_error: ErrorSink = None,
) -> List[Activity]:
    """
    perSession: tout le catalogue (achat ouvert à toute activité).
    perMonth/per3Months: uniquement les activités des adhérents sélectionnés (fusion sans doublon).
    """
    merged: Dict[int, Activity] = {}
    try:
        if mode is BillingMode.PER_SESSION:
            for activity in await repository.fetch_all_activities(client):
                merged.setdefault(activity.id, activity)
        else:
            for adherent_id in adherent_ids:
                for activity in await repository.fetch_activities_of_adherent(client, adherent_id):
                    merged.setdefault(activity.id, activity)
    except Exception as e:
        _report(on_error, "activities", e)
        return []
    return sorted(merged.values(), key=lambda a: (a.name.lower(), a.id))

async def load_guardian_contact(client: httpx.AsyncClient, on_error: ErrorSink = None) -> GuardianContact:
    try:
        return await repository.fetch_parent_info(client)
    except Exception as e:
        _report(on_error, "guardian", e)
        return GuardianContact()

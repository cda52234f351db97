import logging
from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import Response
from pydantic import BaseModel, EmailStr

from clubpay.errors import ValidationError
from clubpay.infra.club_api import create_club_client
from clubpay.models import BillingMode
from clubpay.payments import reservations
from clubpay.payments.engine import PaymentEngine
from clubpay.payments.registry import DraftRegistry
from clubpay.utils.rate_limit import optional_rate_limit
from clubpay.utils.security import require_token

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["Payments API"])


class ModeRequest(BaseModel):
    billing_mode: BillingMode


class DateRequest(BaseModel):
    date: date


class ContactRequest(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None


def get_registry(request: Request) -> DraftRegistry:
    registry = getattr(request.app.state, "draft_registry", None)
    if registry is None:
        registry = DraftRegistry()
        request.app.state.draft_registry = registry
    return registry

def _engine(registry: DraftRegistry, draft_id: str, token: str) -> PaymentEngine:
    try:
        return registry.get(draft_id, token)
    except KeyError:
        raise HTTPException(status_code=404, detail="Brouillon introuvable")

async def _snapshot(engine: PaymentEngine, wait: bool) -> Dict[str, Any]:
    if wait:
        await engine.wait_idle()
    return engine.snapshot()

def _gesture(action):
    """Exécute une transition; une transition illégale devient un 400 avec le motif."""
    try:
        return action()
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)

# module clubpay.payments.views
@router.post("/drafts", status_code=201)
async def create_draft(
    wait: bool = False,
    kind: Optional[str] = Query(None, alias="type"),
    adherent_id: Optional[int] = Query(None, alias="adherentId"),
    activity_id: Optional[int] = Query(None, alias="activityId"),
    session_id: Optional[int] = Query(None, alias="sessionId"),
    session_date: Optional[str] = Query(None, alias="sessionDate"),
    token: str = Depends(require_token),
    registry: DraftRegistry = Depends(get_registry),
):
    """
    Ouvre un brouillon (entrée sur l'écran de paiement) et lance le chargement des adhérents
    et des coordonnées du parent. `wait=true` attend la fin des chargements avant de répondre.
    Les paramètres de navigation (type=SESSION|FULL, adherentId, activityId, sessionId, sessionDate)
    pré-remplissent la sélection.
    """
    draft_id, engine = await registry.create(token)
    if any(v is not None for v in (kind, adherent_id, activity_id, session_id, session_date)):
        try:
            await engine.preselect(
                kind=kind,
                adherent_id=adherent_id,
                activity_id=activity_id,
                session_id=session_id,
                session_date=session_date,
            )
        except ValidationError as e:
            await registry.remove(draft_id, token)
            raise HTTPException(status_code=400, detail=e.message)
    return {"id": draft_id, **(await _snapshot(engine, wait))}

@router.get("/drafts/{draft_id}")
async def get_draft(draft_id: str, wait: bool = False, token: str = Depends(require_token), registry: DraftRegistry = Depends(get_registry)):
    engine = _engine(registry, draft_id, token)
    return {"id": draft_id, **(await _snapshot(engine, wait))}

@router.post("/drafts/{draft_id}/mode")
async def set_mode(draft_id: str, body: ModeRequest, wait: bool = False, token: str = Depends(require_token), registry: DraftRegistry = Depends(get_registry)):
    engine = _engine(registry, draft_id, token)
    _gesture(lambda: engine.set_billing_mode(body.billing_mode))
    return await _snapshot(engine, wait)

@router.post("/drafts/{draft_id}/adherents/{adherent_id}")
async def select_adherent(draft_id: str, adherent_id: int, wait: bool = False, token: str = Depends(require_token), registry: DraftRegistry = Depends(get_registry)):
    engine = _engine(registry, draft_id, token)
    _gesture(lambda: engine.select_adherent(adherent_id))
    return await _snapshot(engine, wait)

@router.post("/drafts/{draft_id}/activities/{activity_id}")
async def toggle_activity(draft_id: str, activity_id: int, wait: bool = False, token: str = Depends(require_token), registry: DraftRegistry = Depends(get_registry)):
    engine = _engine(registry, draft_id, token)
    _gesture(lambda: engine.toggle_activity(activity_id))
    return await _snapshot(engine, wait)

@router.post("/drafts/{draft_id}/date")
async def pick_date(draft_id: str, body: DateRequest, token: str = Depends(require_token), registry: DraftRegistry = Depends(get_registry)):
    engine = _engine(registry, draft_id, token)
    _gesture(lambda: engine.pick_date(body.date))
    return engine.snapshot()

@router.post("/drafts/{draft_id}/session/{session_id}")
async def pick_session(draft_id: str, session_id: int, token: str = Depends(require_token), registry: DraftRegistry = Depends(get_registry)):
    """Désambiguïsation quand plusieurs séances tombent le même jour."""
    engine = _engine(registry, draft_id, token)
    _gesture(lambda: engine.pick_session(session_id))
    return engine.snapshot()

@router.post("/drafts/{draft_id}/months/{month}")
async def toggle_month(draft_id: str, month: str, token: str = Depends(require_token), registry: DraftRegistry = Depends(get_registry)):
    """Un mois déjà payé laisse la sélection inchangée et renvoie une notice "already_paid"."""
    engine = _engine(registry, draft_id, token)
    _gesture(lambda: engine.toggle_month(month))
    return engine.snapshot()

@router.post("/drafts/{draft_id}/contact")
async def update_contact(draft_id: str, body: ContactRequest, token: str = Depends(require_token), registry: DraftRegistry = Depends(get_registry)):
    engine = _engine(registry, draft_id, token)
    engine.update_contact(**body.model_dump())
    return engine.snapshot()

@router.post("/drafts/{draft_id}/reload")
async def reload_draft(draft_id: str, wait: bool = False, token: str = Depends(require_token), registry: DraftRegistry = Depends(get_registry)):
    engine = _engine(registry, draft_id, token)
    engine.reload()
    return await _snapshot(engine, wait)

@router.post("/drafts/{draft_id}/notice/dismiss")
async def dismiss_notice(draft_id: str, token: str = Depends(require_token), registry: DraftRegistry = Depends(get_registry)):
    engine = _engine(registry, draft_id, token)
    engine.dismiss_notice()
    return engine.snapshot()

@router.post("/drafts/{draft_id}/checkout/cash", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
async def checkout_cash(draft_id: str, token: str = Depends(require_token), registry: DraftRegistry = Depends(get_registry)):
    """
    Réservation payée sur place. Un échec reste une réponse 200 portant submission.status="failed"
    et le motif; le brouillon est conservé pour correction.
    """
    engine = _engine(registry, draft_id, token)
    await engine.submit_cash()
    return engine.snapshot()

@router.post("/drafts/{draft_id}/checkout/gateway", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
async def checkout_gateway(draft_id: str, token: str = Depends(require_token), registry: DraftRegistry = Depends(get_registry)):
    """
    Paiement en ligne: en cas de succès, submission.redirect_url est l'URL de la passerelle à ouvrir.
    """
    engine = _engine(registry, draft_id, token)
    await engine.submit_gateway()
    return engine.snapshot()

@router.delete("/drafts/{draft_id}", status_code=204)
async def close_draft(draft_id: str, token: str = Depends(require_token), registry: DraftRegistry = Depends(get_registry)):
    """Fermeture de l'écran: les chargements en cours sont annulés et leurs résultats ignorés."""
    try:
        await registry.remove(draft_id, token)
    except KeyError:
        raise HTTPException(status_code=404, detail="Brouillon introuvable")
    return Response(status_code=204)

@router.get("/reservations/{reservation_id}/status")
async def reservation_status(reservation_id: str, token: str = Depends(require_token)):
    """Statut d'une réservation après retour de la passerelle: paid | failed | pending | unknown."""
    async with create_club_client(token) as client:
        status = await reservations.fetch_reservation_status(client, reservation_id)
    return {"reservation_id": reservation_id, "status": status}

"""
Moteur de sélection/paiement: un par brouillon (un par écran ouvert).

Relie la machine d'état aux chargeurs asynchrones. Chaque transition déclenche au besoin
les rechargements (activités, séances, mois payés) sous forme de chargements étiquetés:
le résultat n'est appliqué que si le sélecteur correspondant n'a pas changé entre-temps.
"""
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, List, Optional
import logging

import httpx

from clubpay.calendar import service as calendar_service
from clubpay.catalog import service as catalog_service
from clubpay.errors import ValidationError
from clubpay.infra.key_store import KeyProvider, get_key_provider
from clubpay.models import BillingMode, GuardianContact, Session, selectable_months
from clubpay.payments import guard
from clubpay.payments.checkout import CheckoutOrchestrator
from clubpay.payments.draft import SelectionMachine, Submission
from clubpay.payments.gateway import HostedGateway, get_gateway
from clubpay.payments.pricing import to_minor_units
from clubpay.utils.tagged import TaggedLoads

logger = logging.getLogger(__name__)

# Paramètre "type" des liens vers l'écran de paiement
PRESELECT_MODES = {"SESSION": BillingMode.PER_SESSION, "FULL": BillingMode.PER_MONTH}


@dataclass
class LoadIssue:
    source: str
    message: str


def _session_view(session: Session, today: date) -> Dict[str, Any]:
    return {
        "id": session.id,
        "activity_id": session.activity_id,
        "activity_name": session.activity_name,
        "start": session.start.isoformat(),
        "end": session.end.isoformat() if session.end else None,
        "time": session.start.strftime("%H:%M"),
        "location": session.location,
        "price": float(session.price) if session.price is not None else None,
        "coach_name": session.coach_name,
        "team_name": session.team_name,
        "is_past": session.day < today,
    }


class PaymentEngine:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        key_provider: Optional[KeyProvider] = None,
        gateway: Optional[HostedGateway] = None,
        navigate: Optional[Callable[[str], None]] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self.client = client
        self.machine = SelectionMachine(today=today)
        self.loads = TaggedLoads()
        self.issues: List[LoadIssue] = []
        self.contact = GuardianContact()
        self.checkout = CheckoutOrchestrator(
            self.machine,
            client,
            key_provider or get_key_provider(),
            gateway or get_gateway(),
            navigate=navigate,
        )

    # --- Canal latéral des erreurs de chargement ---

    def _on_error(self, source: str, message: str) -> None:
        self.issues = [i for i in self.issues if i.source != source] + [LoadIssue(source, message)]

    # --- Chargements ---

    def _load_reference(self) -> None:
        async def adherents():
            return await catalog_service.load_adherents(self.client, self._on_error)

        async def contact():
            return await catalog_service.load_guardian_contact(self.client, self._on_error)

        self.loads.spawn("adherents", "reference", adherents, self.machine.apply_adherents, lambda: "reference")
        self.loads.spawn("guardian", "reference", contact, self._apply_contact, lambda: "reference")

    def _apply_contact(self, contact: GuardianContact) -> None:
        # Ne pas écraser une saisie faite pendant le chargement
        if not any([self.contact.first_name, self.contact.last_name, self.contact.email, self.contact.phone]):
            self.contact = contact

    def _load_activities(self) -> None:
        mode = self.machine.draft.billing_mode
        tag = self.machine.activities_selector()
        adherent_ids = self.machine.adherent_ids()
        if mode is None or not adherent_ids:
            return

        async def loader():
            return await catalog_service.load_activities(self.client, mode, adherent_ids, self._on_error)

        self.loads.spawn("activities", tag, loader, self.machine.apply_activities, self.machine.activities_selector)

    def _load_period_data(self) -> None:
        sessions_tag = self.machine.sessions_selector()
        if sessions_tag is not None:
            activity_id = sessions_tag[1]

            async def sessions():
                return await calendar_service.load_sessions(self.client, activity_id, on_error=self._on_error)

            self.loads.spawn("sessions", sessions_tag, sessions, self.machine.apply_sessions, self.machine.sessions_selector)

        paid_tag = self.machine.paid_months_selector()
        if paid_tag is not None:
            activity_id = paid_tag[2]

            async def paid():
                return await guard.load_paid_months(self.client, activity_id, self._on_error)

            def apply(months):
                self.machine.apply_paid_months(activity_id, months)

            self.loads.spawn("paid_months", paid_tag, paid, apply, self.machine.paid_months_selector)

    # --- Opérations exposées à l'écran ---

    async def open(self) -> None:
        self.machine.opened = True
        self._load_reference()

    async def preselect(
        self,
        *,
        kind: Optional[str] = None,
        adherent_id: Optional[int] = None,
        activity_id: Optional[int] = None,
        session_id: Optional[int] = None,
        session_date: Optional[str] = None,
    ) -> None:
        """
        Pré-sélection depuis les paramètres de navigation (calendrier, fiche activité).
        - kind: "SESSION" -> perSession, "FULL" -> perMonth
        - chaque étape attend les chargements dont elle dépend; un identifiant introuvable
          est ignoré et la sélection s'arrête là (l'utilisateur complète à la main)
        """
        day = None
        if session_date:
            try:
                day = date.fromisoformat(str(session_date).split("T")[0])
            except ValueError:
                raise ValidationError(f"Date de séance invalide: {session_date}", code="invalid_date")
        mode = PRESELECT_MODES.get((kind or "").upper())
        if mode is not None:
            self.set_billing_mode(mode)
        await self.wait_idle()
        m = self.machine
        if adherent_id is None or m.draft.billing_mode is None:
            return
        if adherent_id not in {a.id for a in m.available_adherents}:
            logger.warning("engine.preselect unknown adherent_id=%s", adherent_id)
            return
        if adherent_id not in m.adherent_ids():
            self.select_adherent(adherent_id)
            await self.wait_idle()
        if activity_id is None:
            return
        if activity_id not in {a.id for a in m.available_activities}:
            logger.warning("engine.preselect unknown activity_id=%s", activity_id)
            return
        if activity_id not in m.activity_ids():
            self.toggle_activity(activity_id)
            await self.wait_idle()
        if m.draft.billing_mode is not BillingMode.PER_SESSION or day is None or session_id is None:
            return
        if session_id not in {s.id for s in m.sessions_by_day.get(day, [])}:
            logger.warning("engine.preselect no session id=%s on %s", session_id, day)
            return
        self.pick_date(day)
        self.pick_session(session_id)

    def set_billing_mode(self, mode) -> None:
        if self.machine.set_billing_mode(mode):
            self._load_activities()
        self._load_period_data()

    def select_adherent(self, adherent_id: int) -> None:
        if self.machine.select_adherent(adherent_id):
            self._load_activities()

    def toggle_activity(self, activity_id: int) -> None:
        self.machine.toggle_activity(activity_id)
        self._load_period_data()

    def pick_date(self, day: date) -> Optional[Session]:
        return self.machine.pick_date(day)

    def pick_session(self, session_id: int) -> Session:
        return self.machine.pick_session(session_id)

    def toggle_month(self, month: str) -> bool:
        return self.machine.toggle_month(month)

    def update_contact(self, **fields) -> GuardianContact:
        self.contact = self.contact.model_copy(update={k: v for k, v in fields.items() if v is not None})
        return self.contact

    def dismiss_notice(self) -> None:
        self.machine.dismiss_notice()

    def reload(self) -> None:
        """Réessaie tous les chargements pertinents pour la sélection courante."""
        self.issues = []
        self._load_reference()
        self._load_activities()
        self._load_period_data()

    async def submit_cash(self) -> Submission:
        return await self.checkout.submit_cash(self.contact)

    async def submit_gateway(self) -> Submission:
        return await self.checkout.submit_gateway(self.contact)

    async def wait_idle(self) -> None:
        await self.loads.wait_idle()

    async def close(self) -> None:
        """Fermeture de l'écran: annule les chargements en cours, leurs résultats sont ignorés."""
        await self.loads.close()
        await self.client.aclose()

    # --- Vue ---

    def snapshot(self, today: Optional[date] = None) -> Dict[str, Any]:
        today = today or self.machine.today()
        m = self.machine
        d = m.draft
        total = m.total()
        submission = m.submission
        return {
            "state": m.phase.value,
            "billing_mode": d.billing_mode.value if d.billing_mode else None,
            "adherents": [a.model_dump() for a in d.adherents],
            "activities": [{**a.model_dump(), "unit_price": float(a.unit_price)} for a in d.activities],
            "selected_date": d.selected_date.isoformat() if d.selected_date else None,
            "selected_session": _session_view(d.selected_session, today) if d.selected_session else None,
            "date_sessions": [_session_view(s, today) for s in d.date_sessions],
            "needs_disambiguation": len(d.date_sessions) > 1,
            "selected_months": list(d.selected_months),
            "selectable_months": selectable_months(today),
            "available_adherents": [a.model_dump() for a in m.available_adherents],
            "available_activities": [{**a.model_dump(), "unit_price": float(a.unit_price)} for a in m.available_activities],
            "session_dates": [day.isoformat() for day in m.sessions_by_day],
            "paid_months": sorted({month for a in d.activities for month in m.paid_months.get(a.id, ())}),
            "total": float(total),
            "total_minor": to_minor_units(total),
            "is_complete": m.is_complete(),
            "contact": self.contact.model_dump(),
            "notice": {"kind": m.notice.kind, "message": m.notice.message, "month": m.notice.month} if m.notice else None,
            "issues": [{"source": i.source, "message": i.message} for i in self.issues],
            "loading": self.loads.pending(),
            "submission": {
                "path": submission.path,
                "status": submission.status.value,
                "reason": submission.reason,
                "code": submission.code,
                "redirect_url": submission.redirect_url,
                "reservation_ids": submission.reservation_ids,
            } if submission else None,
        }

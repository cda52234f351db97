"""
Orchestrateur de règlement: réservation en espèces ou redirection vers une passerelle hébergée.
Rôles:
- Même garde pour les deux chemins: brouillon complet + coordonnées du parent valides.
- Une seule soumission à la fois: tant que l'état est "submitting", toute nouvelle demande est ignorée.
- Revérifie les mois payés juste avant l'envoi (un autre appareil a pu payer entre-temps).
- Convertit toute erreur en état "failed" avec un motif lisible; rien ne remonte à l'appelant.
"""
from typing import Callable, List, Optional
import logging

import httpx

from clubpay.calendar import repository as calendar_repository
from clubpay.errors import AlreadyPaidError, ClubApiError, GatewayResponseError, ValidationError
from clubpay.infra.key_store import CART_NAMESPACE, KeyProvider
from clubpay.models import BillingMode, GuardianContact
from clubpay.payments import guard, reservations
from clubpay.payments.draft import Phase, SelectionMachine, Submission
from clubpay.payments.gateway import HostedGateway, extract_payment_url
from clubpay.payments.payloads import (
    MonthlyPaymentIntent,
    MonthlyReservation,
    SessionPaymentIntent,
    SessionReservation,
)
from clubpay.payments.pricing import to_minor_units
from clubpay.utils.validators import validate_guardian_contact

logger = logging.getLogger(__name__)

CASH = "cash"
GATEWAY = "gateway"

CASH_CONFIRMATION = "Votre réservation a été enregistrée avec succès."


def reservation_key(key: str, adherent_id: int) -> str:
    return f"{key}-{adherent_id}"


class CheckoutOrchestrator:
    def __init__(
        self,
        machine: SelectionMachine,
        client: httpx.AsyncClient,
        key_provider: KeyProvider,
        gateway: HostedGateway,
        navigate: Optional[Callable[[str], None]] = None,
    ):
        self.machine = machine
        self.client = client
        self.key_provider = key_provider
        self.gateway = gateway
        self.navigate = navigate

    # --- Garde commune ---

    def _precheck(self, path: str, contact: GuardianContact) -> Optional[GuardianContact]:
        """Validation locale (aucun appel réseau). Retourne le contact normalisé ou None si échec."""
        if not self.machine.is_complete():
            self.machine.fail("Veuillez compléter toutes les informations nécessaires.", "incomplete", path=path)
            return None
        try:
            return validate_guardian_contact(contact)
        except ValidationError as e:
            self.machine.fail(e.message, e.code, path=path)
            return None

    async def _recheck_paid_months(self) -> bool:
        """
        Relit les mois payés de chaque activité sélectionnée; False si un mois choisi est désormais payé.
        Une relecture impossible lève l'erreur: rien n'est envoyé sans garde à jour.
        """
        draft = self.machine.draft
        if draft.billing_mode is None or not draft.billing_mode.is_recurring:
            return True
        dropped: List[str] = []
        for activity in list(draft.activities):
            months = await guard.fetch_paid_months(self.client, activity.id)
            dropped += self.machine.apply_paid_months(activity.id, months)
        if dropped:
            months_label = ", ".join(dict.fromkeys(dropped))
            self.machine.fail(f"Déjà payé: {months_label}", "already_paid")
            return False
        return True

    def _fail_from(self, e: Exception, fallback: str) -> Submission:
        if isinstance(e, AlreadyPaidError):
            return self.machine.fail(e.message or "Cette période est déjà payée.", "already_paid")
        if isinstance(e, GatewayResponseError):
            return self.machine.fail(str(e), "gateway_malformed")
        if isinstance(e, ValidationError):
            return self.machine.fail(e.message, e.code)
        if isinstance(e, ClubApiError):
            code = "server" if e.status_code else "network"
            return self.machine.fail(e.message or fallback, code)
        logger.exception("checkout unexpected error")
        return self.machine.fail(str(e) or fallback, "error")

    def _in_flight(self) -> Optional[Submission]:
        submission = self.machine.submission
        if submission is not None and submission.status is Phase.SUBMITTING:
            logger.info("checkout ignored: submission already in flight path=%s", submission.path)
            return submission
        return None

    # --- Réservation en espèces ---

    def _reservation_requests(self) -> list:
        draft = self.machine.draft
        activity_ids = [a.id for a in draft.activities]
        if draft.billing_mode is BillingMode.PER_SESSION:
            session = draft.selected_session
            return [SessionReservation(
                adherent_id=draft.adherents[0].id,
                activity_ids=activity_ids,
                session_id=session.id,
                session_date=draft.selected_date or session.day,
            )]
        return [
            MonthlyReservation(
                adherent_id=adherent.id,
                activity_ids=activity_ids,
                billing_mode=draft.billing_mode,
                months=list(draft.selected_months),
            )
            for adherent in draft.adherents
        ]

    async def submit_cash(self, contact: GuardianContact) -> Submission:
        in_flight = self._in_flight()
        if in_flight is not None:
            return in_flight
        if self._precheck(CASH, contact) is None:
            return self.machine.submission
        submission = self.machine.begin_submission(CASH)
        try:
            if not await self._recheck_paid_months():
                return self.machine.submission
            key = await self.key_provider.get_or_create_key(CART_NAMESPACE)
            reservation_ids: List[str] = []
            for request in self._reservation_requests():
                # Une clé par adhérent: chaque réservation est une opération distincte
                response = await reservations.submit_reservation(self.client, request, reservation_key(key, request.adherent_id))
                reservation_id = reservations.reservation_id_of(response)
                if reservation_id:
                    reservation_ids.append(reservation_id)
            logger.info("checkout.cash settled adherent_ids=%s reservations=%s", list(self.machine.adherent_ids()), reservation_ids)
            return self.machine.settle(reason=CASH_CONFIRMATION, reservation_ids=reservation_ids)
        except Exception as e:
            logger.warning("checkout.cash failed: %s", e)
            return self._fail_from(e, "Erreur lors de la confirmation du paiement local")
        finally:
            if submission.status is Phase.SUBMITTING:
                self.machine.fail("Paiement interrompu", "error")

    # --- Passerelle hébergée ---

    def describe(self) -> str:
        draft = self.machine.draft
        names = ", ".join(a.name for a in draft.activities)
        who = draft.adherents[0].first_name if draft.adherents else ""
        if draft.billing_mode is BillingMode.PER_SESSION:
            day = (draft.selected_date or draft.selected_session.day).isoformat()
            return f"Paiement de séance {names} ({day}) pour {who}"
        suffix = " - 3 mois" if draft.billing_mode is BillingMode.PER_QUARTER else ""
        return f"Paiement de {names} ({', '.join(draft.selected_months)}{suffix}) pour {who}"

    async def _payment_intent(self, contact: GuardianContact):
        draft = self.machine.draft
        if len(draft.adherents) != 1:
            raise ValidationError("Le paiement en ligne ne traite qu'un adhérent à la fois.", code="incomplete")
        amount = to_minor_units(self.machine.total())
        if amount <= 0:
            raise ValidationError("Montant à payer invalide.", code="incomplete")
        common = dict(
            adherent_id=draft.adherents[0].id,
            activity_ids=[a.id for a in draft.activities],
            amount=amount,
            description=self.describe(),
            contact=contact,
        )
        if draft.billing_mode is BillingMode.PER_SESSION:
            session = draft.selected_session
            return SessionPaymentIntent(session_id=session.id, session_date=draft.selected_date or session.day, **common)
        next_session = await calendar_repository.fetch_next_session(self.client, draft.activities[0].id)
        if next_session is None:
            raise ValidationError("Aucune session future trouvée pour l'activité sélectionnée.", code="no_session")
        return MonthlyPaymentIntent(
            billing_mode=draft.billing_mode,
            months=list(draft.selected_months),
            next_session_id=next_session.id,
            **common,
        )

    async def submit_gateway(self, contact: GuardianContact) -> Submission:
        in_flight = self._in_flight()
        if in_flight is not None:
            return in_flight
        normalized = self._precheck(GATEWAY, contact)
        if normalized is None:
            return self.machine.submission
        submission = self.machine.begin_submission(GATEWAY)
        try:
            if not await self._recheck_paid_months():
                return self.machine.submission
            intent = await self._payment_intent(normalized)
            key = await self.key_provider.get_or_create_key(CART_NAMESPACE)
            response = await self.gateway.create_payment(self.client, intent, key)
            url = extract_payment_url(response)
            logger.info("checkout.gateway redirect provider=%s amount=%s", self.gateway.name, intent.amount)
            if self.navigate is not None:
                self.navigate(url)
            return self.machine.settle(redirect_url=url)
        except Exception as e:
            logger.warning("checkout.gateway failed: %s", e)
            return self._fail_from(e, "Erreur lors de la préparation du paiement")
        finally:
            if submission.status is Phase.SUBMITTING:
                self.machine.fail("Paiement interrompu", "error")

"""
Machine d'état du brouillon de paiement.

Un seul objet porte la sélection (mode, adhérents, activités, séance ou mois) et toutes
les transitions passent par les méthodes ci-dessous, qui maintiennent les invariants:
- le mode décide lequel de `selected_session` / `selected_months` a un sens, l'autre est vide
- changer de mode vide séance et mois; le mode séance limite à un adhérent
- `selected_months` ne contient jamais un mois déjà payé pour une activité sélectionnée

Les chargements asynchrones ne touchent l'état qu'à travers les méthodes `apply_*`.
"""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from clubpay.errors import ValidationError
from clubpay.models import Activity, Adherent, BillingMode, Session, selectable_months
from clubpay.payments.pricing import compute_total


class Phase(str, Enum):
    IDLE = "idle"
    SELECTING_MODE = "selecting_mode"
    SELECTING_ADHERENT = "selecting_adherent"
    SELECTING_ACTIVITY = "selecting_activity"
    SELECTING_PERIOD = "selecting_period"
    READY = "ready"
    SUBMITTING = "submitting"
    SETTLED = "settled"
    FAILED = "failed"


@dataclass
class PaymentDraft:
    billing_mode: Optional[BillingMode] = None
    adherents: List[Adherent] = field(default_factory=list)
    activities: List[Activity] = field(default_factory=list)
    selected_date: Optional[date] = None
    selected_session: Optional[Session] = None
    date_sessions: List[Session] = field(default_factory=list)
    selected_months: List[str] = field(default_factory=list)


@dataclass
class Notice:
    kind: str
    message: str
    month: Optional[str] = None


@dataclass
class Submission:
    path: str
    status: Phase
    reason: Optional[str] = None
    code: Optional[str] = None
    redirect_url: Optional[str] = None
    reservation_ids: List[str] = field(default_factory=list)


def _family(mode: Optional[BillingMode]) -> Optional[str]:
    if mode is None:
        return None
    return "recurring" if mode.is_recurring else "session"


class SelectionMachine:
    def __init__(self, today: Optional[Callable[[], date]] = None):
        self.today = today or date.today
        self.draft = PaymentDraft()
        self.opened = False
        self.available_adherents: List[Adherent] = []
        self.available_activities: List[Activity] = []
        self.sessions_by_day: Dict[date, List[Session]] = {}
        self.paid_months: Dict[int, Set[str]] = {}
        self.notice: Optional[Notice] = None
        self.submission: Optional[Submission] = None

    # --- Sélecteurs (étiquettes des chargements asynchrones) ---

    def adherent_ids(self) -> Tuple[int, ...]:
        return tuple(a.id for a in self.draft.adherents)

    def activity_ids(self) -> Tuple[int, ...]:
        return tuple(a.id for a in self.draft.activities)

    def activities_selector(self):
        return (_family(self.draft.billing_mode), self.adherent_ids())

    def sessions_selector(self):
        """Valeur courante si une séance peut être chargée (mode séance, une seule activité), sinon None."""
        if self.draft.billing_mode is BillingMode.PER_SESSION and len(self.draft.activities) == 1:
            return (BillingMode.PER_SESSION, self.draft.activities[0].id)
        return None

    def paid_months_selector(self):
        """Valeur courante si la garde doit être interrogée (mode récurrent, une seule activité), sinon None."""
        mode = self.draft.billing_mode
        if mode is not None and mode.is_recurring and len(self.draft.activities) == 1:
            return ("recurring", self.adherent_ids(), self.draft.activities[0].id)
        return None

    # --- Transitions ---

    def _editing(self) -> None:
        if self.submission and self.submission.status is Phase.SUBMITTING:
            raise ValidationError("Paiement en cours, veuillez patienter.", code="submitting")
        # Toute modification efface l'issue de la soumission précédente
        self.submission = None

    def _clear_period(self) -> None:
        self.draft.selected_date = None
        self.draft.selected_session = None
        self.draft.date_sessions = []
        self.draft.selected_months = []

    def set_billing_mode(self, mode) -> bool:
        """
        Change le mode de facturation. Retourne True si la liste des activités doit être rechargée
        (passage séance <-> récurrent: catalogue complet vs activités de l'adhérent).
        """
        self._editing()
        new_mode = BillingMode(mode)
        old_family = _family(self.draft.billing_mode)
        self.draft.billing_mode = new_mode
        self._clear_period()
        self.sessions_by_day = {}
        if new_mode is BillingMode.PER_SESSION:
            self.draft.adherents = self.draft.adherents[:1]
        if old_family != _family(new_mode):
            self.draft.activities = []
            self.available_activities = []
            return bool(self.draft.adherents)
        return False

    def select_adherent(self, adherent_id: int) -> bool:
        """
        perSession: remplace la liste par [adhérent]; modes récurrents: bascule l'appartenance.
        Retourne True si l'ensemble des adhérents a changé (activités à recharger).
        """
        self._editing()
        if self.draft.billing_mode is None:
            raise ValidationError("Choisissez d'abord un type de paiement.", code="no_mode")
        adherent = next((a for a in self.available_adherents if a.id == adherent_id), None)
        if adherent is None:
            raise ValidationError(f"Adhérent inconnu: {adherent_id}", code="unknown_adherent")

        before = self.adherent_ids()
        if self.draft.billing_mode is BillingMode.PER_SESSION:
            self.draft.adherents = [adherent]
        elif adherent_id in before:
            self.draft.adherents = [a for a in self.draft.adherents if a.id != adherent_id]
        else:
            self.draft.adherents = self.draft.adherents + [adherent]

        if self.adherent_ids() == before:
            return False
        self.draft.activities = []
        self.available_activities = []
        self._clear_period()
        self.sessions_by_day = {}
        return True

    def toggle_activity(self, activity_id: int) -> None:
        self._editing()
        activity = next((a for a in self.available_activities if a.id == activity_id), None)
        if activity is None:
            raise ValidationError(f"Activité indisponible: {activity_id}", code="unknown_activity")
        if activity_id in self.activity_ids():
            self.draft.activities = [a for a in self.draft.activities if a.id != activity_id]
        else:
            self.draft.activities = self.draft.activities + [activity]

        if self.draft.billing_mode is BillingMode.PER_SESSION:
            self.draft.selected_date = None
            self.draft.selected_session = None
            self.draft.date_sessions = []
            self.sessions_by_day = {}
        else:
            self._drop_paid_months()

    def pick_date(self, day: date) -> Optional[Session]:
        """
        Résout la ou les séances du jour. La première séance renvoyée par le backend est retenue;
        toutes restent listées dans `date_sessions` pour désambiguïsation (pick_session).
        """
        self._editing()
        if self.draft.billing_mode is not BillingMode.PER_SESSION:
            raise ValidationError("La date ne s'applique qu'au paiement par séance.", code="wrong_mode")
        sessions = list(self.sessions_by_day.get(day, []))
        self.draft.selected_date = day
        self.draft.date_sessions = sessions
        self.draft.selected_session = sessions[0] if sessions else None
        if not sessions:
            self.notice = Notice("no_session", "Aucune séance disponible à cette date.")
        return self.draft.selected_session

    def pick_session(self, session_id: int) -> Session:
        self._editing()
        session = next((s for s in self.draft.date_sessions if s.id == session_id), None)
        if session is None:
            raise ValidationError(f"Séance inconnue pour cette date: {session_id}", code="unknown_session")
        self.draft.selected_session = session
        return session

    def is_month_paid(self, month: str) -> bool:
        return any(month in self.paid_months.get(a.id, ()) for a in self.draft.activities)

    def selectable_months(self) -> List[str]:
        return selectable_months(self.today())

    def toggle_month(self, month: str) -> bool:
        """
        Bascule un mois. Seuls le mois courant et les trois suivants sont proposés.
        Un mois déjà payé n'est jamais ajouté: l'état reste inchangé et une
        notice "already_paid" est levée. Retourne True si la sélection a changé.
        """
        self._editing()
        mode = self.draft.billing_mode
        if mode is None or not mode.is_recurring:
            raise ValidationError("Les mois ne s'appliquent qu'aux paiements mensuels.", code="wrong_mode")
        if month not in self.selectable_months() and month not in self.draft.selected_months:
            raise ValidationError(f"Mois inconnu: {month}", code="unknown_month")
        if self.is_month_paid(month):
            self.notice = Notice("already_paid", f"Le mois de {month} est déjà payé.", month=month)
            return False
        if month in self.draft.selected_months:
            self.draft.selected_months = [m for m in self.draft.selected_months if m != month]
        else:
            self.draft.selected_months = self.draft.selected_months + [month]
        return True

    def dismiss_notice(self) -> None:
        self.notice = None

    # --- Résultats des chargements ---

    def apply_adherents(self, adherents: Iterable[Adherent]) -> None:
        self.available_adherents = list(adherents)
        known = {a.id for a in self.available_adherents}
        self.draft.adherents = [a for a in self.draft.adherents if a.id in known]

    def apply_activities(self, activities: Iterable[Activity]) -> None:
        self.available_activities = list(activities)
        known = {a.id for a in self.available_activities}
        self.draft.activities = [a for a in self.draft.activities if a.id in known]

    def apply_sessions(self, sessions_by_day: Dict[date, List[Session]]) -> None:
        self.sessions_by_day = dict(sessions_by_day)
        day = self.draft.selected_date
        if day is not None and day not in self.sessions_by_day:
            self.draft.selected_date = None
            self.draft.selected_session = None
            self.draft.date_sessions = []

    def apply_paid_months(self, activity_id: int, months: Iterable[str]) -> List[str]:
        """Enregistre l'ensemble des mois payés d'une activité; retourne les mois retirés de la sélection."""
        self.paid_months[activity_id] = set(months)
        return self._drop_paid_months()

    def _drop_paid_months(self) -> List[str]:
        dropped = [m for m in self.draft.selected_months if self.is_month_paid(m)]
        if dropped:
            self.draft.selected_months = [m for m in self.draft.selected_months if m not in dropped]
            self.notice = Notice("already_paid", f"Déjà payé: {', '.join(dropped)}", month=dropped[0])
        return dropped

    # --- Prédicats ---

    def is_complete(self) -> bool:
        d = self.draft
        if d.billing_mode is BillingMode.PER_SESSION:
            return len(d.adherents) == 1 and len(d.activities) >= 1 and d.selected_session is not None
        if d.billing_mode in (BillingMode.PER_MONTH, BillingMode.PER_QUARTER):
            return bool(d.adherents) and bool(d.activities) and bool(d.selected_months)
        return False

    def total(self) -> Decimal:
        return compute_total(self.draft)

    @property
    def phase(self) -> Phase:
        if self.submission is not None:
            return self.submission.status
        if not self.opened:
            return Phase.IDLE
        d = self.draft
        if d.billing_mode is None:
            return Phase.SELECTING_MODE
        if not d.adherents:
            return Phase.SELECTING_ADHERENT
        if not d.activities:
            return Phase.SELECTING_ACTIVITY
        if not self.is_complete():
            return Phase.SELECTING_PERIOD
        return Phase.READY

    # --- Cycle de soumission (piloté par l'orchestrateur) ---

    def begin_submission(self, path: str) -> Submission:
        self.submission = Submission(path=path, status=Phase.SUBMITTING)
        return self.submission

    def settle(self, **details) -> Submission:
        submission = self.submission or Submission(path=details.pop("path", ""), status=Phase.SETTLED)
        submission.status = Phase.SETTLED
        for key, value in details.items():
            setattr(submission, key, value)
        # Le brouillon est abandonné après un règlement réussi
        self.draft = PaymentDraft(billing_mode=self.draft.billing_mode)
        self.available_activities = []
        self.sessions_by_day = {}
        self.submission = submission
        return submission

    def fail(self, reason: str, code: str, path: str = "") -> Submission:
        submission = self.submission or Submission(path=path, status=Phase.FAILED)
        submission.status = Phase.FAILED
        if path:
            submission.path = path
        submission.reason = reason
        submission.code = code
        self.submission = submission
        self.notice = Notice(code, reason)
        return submission

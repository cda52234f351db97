"""
Tarification pure (pas de réseau, pas d'état).
"""
from decimal import Decimal, ROUND_HALF_UP

from clubpay.models import BillingMode

QUARTER_MONTHS = 3

def compute_total(draft) -> Decimal:
    """
    Montant dû pour un brouillon.
    - perSession: prix de la séance choisie (à défaut, prix nominal de l'activité)
    - perMonth: somme des prix unitaires x nombre de mois
    - per3Months: idem x 3 (chaque mois sélectionné représente un bloc de 3 mois)
    Les mois doivent déjà être filtrés par la garde des mois payés.
    """
    mode = draft.billing_mode
    if mode is BillingMode.PER_SESSION:
        session = draft.selected_session
        if session is None:
            return Decimal("0")
        if session.price is not None:
            return Decimal(session.price)
        return Decimal(draft.activities[0].unit_price) if draft.activities else Decimal("0")

    if mode in (BillingMode.PER_MONTH, BillingMode.PER_QUARTER):
        count = len(draft.selected_months)
        factor = QUARTER_MONTHS if mode is BillingMode.PER_QUARTER else 1
        return sum((Decimal(a.unit_price) * count * factor for a in draft.activities), Decimal("0"))

    return Decimal("0")

def to_minor_units(amount: Decimal) -> int:
    """Montant en centimes (arrondi commercial au centime)."""
    cents = Decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP) * 100
    return int(cents)

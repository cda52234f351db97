"""
Adaptateur Stripe: centralise la configuration et la création de sessions Checkout.
"""
from typing import Any, Dict, List

import stripe

from clubpay.config import STRIPE_SECRET_KEY

# module clubpay.payments.stripe_client
def require_stripe():
    """
    Prépare et retourne le module stripe prêt à l'emploi.
    - En absence de clé, les appels Stripe échoueront côté SDK (ex: No API key provided).
    """
    if STRIPE_SECRET_KEY:
        stripe.api_key = STRIPE_SECRET_KEY
    return stripe

def create_session(
    *,
    line_items: List[Dict[str, Any]],
    success_url: str,
    cancel_url: str,
    metadata: Dict[str, Any],
    customer_email: str = "",
    idempotency_key: str = "",
) -> Dict[str, Any]:
    """
    Crée une session Stripe Checkout en mode "payment".
    Retour: dict session (ex: {"id": "cs_test_...", "url": "https://..."})
    """
    require_stripe()
    params: Dict[str, Any] = {
        "line_items": line_items,
        "mode": "payment",
        "success_url": success_url,
        "cancel_url": cancel_url,
        "metadata": metadata,
        "payment_method_types": ["card"],
    }
    if customer_email:
        params["customer_email"] = customer_email
    if idempotency_key:
        params["idempotency_key"] = idempotency_key
    session = stripe.checkout.Session.create(**params)
    return {"id": getattr(session, "id", None), "url": getattr(session, "url", None)}

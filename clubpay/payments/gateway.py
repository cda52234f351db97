"""
Passerelles de paiement hébergées.
Quel que soit le fournisseur, la réponse doit contenir une `payment_url` absolue http(s);
toute autre forme est un échec terminal (jamais suivie, jamais rejouée).
"""
from typing import Any, Dict, Optional, Protocol
from urllib.parse import urlparse
import asyncio
import hashlib
import json
import logging

import httpx

from clubpay.config import (
    CHECKOUT_CANCEL_URL,
    CHECKOUT_SUCCESS_URL,
    CURRENCY,
    GATEWAY_PROVIDER,
    PAYMENT_TIMEOUT,
)
from clubpay.errors import GatewayResponseError
from clubpay.infra.club_api import post_json
from clubpay.payments import stripe_client

logger = logging.getLogger(__name__)

def extract_payment_url(response: Any) -> str:
    url = response.get("payment_url") if isinstance(response, dict) else None
    if not isinstance(url, str):
        raise GatewayResponseError("Lien de paiement manquant")
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise GatewayResponseError(f"Lien de paiement invalide: {url}")
    return url.strip()


class HostedGateway(Protocol):
    name: str

    async def create_payment(self, client: httpx.AsyncClient, intent, idempotency_key: str) -> Dict[str, Any]: ...


class KonnectGateway:
    """Intention de paiement relayée par l'API du club vers Konnect (POST /konnect/pay)."""

    name = "konnect"

    async def create_payment(self, client: httpx.AsyncClient, intent, idempotency_key: str) -> Dict[str, Any]:
        data = await post_json(
            client,
            "/konnect/pay",
            intent.to_wire(),
            headers={"Idempotency-Key": idempotency_key},
            timeout=PAYMENT_TIMEOUT,
        )
        return data if isinstance(data, dict) else {"payment_url": data}


class StripeGateway:
    """Session Stripe Checkout avec une ligne price_data (montant en centimes)."""

    name = "stripe"

    def __init__(self, currency: str = CURRENCY, success_url: str = CHECKOUT_SUCCESS_URL, cancel_url: str = CHECKOUT_CANCEL_URL):
        self.currency = currency
        self.success_url = success_url
        self.cancel_url = cancel_url

    def line_items(self, intent) -> list:
        return [{
            "quantity": 1,
            "price_data": {
                "currency": self.currency,
                "unit_amount": intent.amount,
                "product_data": {"name": intent.description[:250] or "Paiement"},
            },
        }]

    def metadata(self, intent) -> Dict[str, str]:
        wire = intent.to_wire()
        meta = {
            "adherent_id": str(intent.adherent_id),
            "activite_ids": json.dumps(intent.activity_ids),
            "payment_period_type": str(wire.get("paymentPeriodType") or ""),
        }
        if wire.get("sessionId") is not None:
            meta["session_id"] = str(wire["sessionId"])
        if wire.get("moisPaiement"):
            meta["mois"] = str(wire["moisPaiement"])[:450]
        return meta

    async def create_payment(self, client: httpx.AsyncClient, intent, idempotency_key: str) -> Dict[str, Any]:
        session = await asyncio.to_thread(
            stripe_client.create_session,
            line_items=self.line_items(intent),
            success_url=self.success_url,
            cancel_url=self.cancel_url,
            metadata=self.metadata(intent),
            customer_email=intent.contact.email,
            idempotency_key=f"{idempotency_key}-{intent.amount}-{hashlib.sha256(intent.description.encode('utf-8')).hexdigest()[:12]}",
        )
        return {"payment_url": session.get("url"), "session_id": session.get("id")}


_GATEWAYS = {"konnect": KonnectGateway, "stripe": StripeGateway}

def get_gateway(provider: Optional[str] = None) -> HostedGateway:
    name = (provider or GATEWAY_PROVIDER or "konnect").lower()
    if name not in _GATEWAYS:
        raise ValueError(f"Passerelle inconnue: {name}")
    return _GATEWAYS[name]()

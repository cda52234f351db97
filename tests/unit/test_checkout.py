import asyncio
import json
from datetime import date

import httpx
import pytest

from clubpay.calendar.index import build_index
from clubpay.models import Adherent, BillingMode, GuardianContact
from clubpay.payments.checkout import CheckoutOrchestrator
from clubpay.payments.draft import Phase, SelectionMachine
from clubpay.payments.gateway import KonnectGateway

CONTACT = GuardianContact(first_name="Karim", last_name="Ben Ali", email="karim.benali@gmail.com", phone="20 123 456")


@pytest.fixture
def navigations():
    return []


@pytest.fixture
def orchestrator(club_api, key_provider, navigations, clock):
    machine = SelectionMachine(today=clock)
    machine.opened = True
    machine.apply_adherents([Adherent(id=1, first_name="Amira", last_name="Ben Ali"),
                             Adherent(id=2, first_name="Sami", last_name="Ben Ali")])
    return CheckoutOrchestrator(machine, club_api.client(), key_provider, KonnectGateway(), navigate=navigations.append)


def _monthly(orch, swimming, months=("Janvier", "Février"), mode=BillingMode.PER_MONTH):
    m = orch.machine
    m.set_billing_mode(mode)
    m.select_adherent(1)
    m.apply_activities([swimming])
    m.toggle_activity(swimming.id)
    for month in months:
        m.toggle_month(month)
    return m


def _session(orch, swimming, make_session):
    m = orch.machine
    m.set_billing_mode(BillingMode.PER_SESSION)
    m.select_adherent(1)
    m.apply_activities([swimming])
    m.toggle_activity(swimming.id)
    m.apply_sessions(build_index([make_session(100, "2025-05-03T09:00:00", price=20)]))
    m.pick_date(date(2025, 5, 3))
    return m


@pytest.mark.asyncio
async def test_incomplete_draft_issues_no_network_call(orchestrator, club_api):
    orchestrator.machine.set_billing_mode(BillingMode.PER_MONTH)

    cash = await orchestrator.submit_cash(CONTACT)
    gateway = await orchestrator.submit_gateway(CONTACT)

    assert cash.status is Phase.FAILED and cash.code == "incomplete"
    assert gateway.code == "incomplete"
    assert club_api.requests == []


@pytest.mark.asyncio
async def test_invalid_contact_fails_locally(orchestrator, club_api, swimming):
    _monthly(orchestrator, swimming)
    bad = CONTACT.model_copy(update={"email": "karim"})
    result = await orchestrator.submit_gateway(bad)
    assert result.code == "invalid_contact"
    assert club_api.requests == []


@pytest.mark.asyncio
async def test_cash_reservation_months(orchestrator, club_api, swimming, key_provider):
    club_api.on("POST", "/reservations/by-parent/1", {"reservationId": 555}, status=201)
    _monthly(orchestrator, swimming)

    result = await orchestrator.submit_cash(CONTACT)

    assert result.status is Phase.SETTLED
    assert result.reservation_ids == ["555"]
    (request,) = club_api.calls("POST", "/reservations/by-parent/1")
    body = json.loads(request.content)
    assert body == {
        "activiteIds": [10],
        "payInCash": True,
        "paymentPeriodType": "perMonth",
        "months": ["Janvier", "Février"],
        "moisPaiement": "Janvier,Février",
    }
    assert request.headers["Idempotency-Key"] == await key_provider.get_or_create_key("cart") + "-1"
    # Brouillon abandonné, mode conservé
    assert orchestrator.machine.draft.selected_months == []
    assert orchestrator.machine.draft.billing_mode is BillingMode.PER_MONTH


@pytest.mark.asyncio
async def test_cash_reservation_session(orchestrator, club_api, swimming, make_session):
    club_api.on("POST", "/reservations/by-parent/1", {"id": 9}, status=201)
    _session(orchestrator, swimming, make_session)

    result = await orchestrator.submit_cash(CONTACT)

    assert result.status is Phase.SETTLED
    body = json.loads(club_api.calls("POST", "/reservations/by-parent/1")[0].content)
    assert body == {"activiteIds": [10], "payInCash": True, "sessionId": 100, "sessionDate": "2025-05-03"}


@pytest.mark.asyncio
async def test_cash_sends_one_reservation_per_adherent(orchestrator, club_api, swimming):
    club_api.on("POST", "/reservations/by-parent/1", {"reservationId": 1}, status=201)
    club_api.on("POST", "/reservations/by-parent/2", {"reservationId": 2}, status=201)
    m = _monthly(orchestrator, swimming, months=())
    m.select_adherent(2)
    m.apply_activities([swimming])
    m.toggle_activity(swimming.id)
    m.toggle_month("Mars")

    result = await orchestrator.submit_cash(CONTACT)

    assert result.reservation_ids == ["1", "2"]
    key_1 = club_api.calls("POST", "/reservations/by-parent/1")[0].headers["Idempotency-Key"]
    key_2 = club_api.calls("POST", "/reservations/by-parent/2")[0].headers["Idempotency-Key"]
    assert key_1 != key_2
    assert key_1 == "cart-1714000000000-ab12c-1"
    assert key_2 == "cart-1714000000000-ab12c-2"


@pytest.mark.asyncio
async def test_double_submit_sends_a_single_request(orchestrator, club_api, swimming, make_session):
    club_api.on("POST", "/reservations/by-parent/1", {"reservationId": 7}, status=201)
    gate = asyncio.Event()
    club_api.gates["/reservations/by-parent/1"] = gate
    _session(orchestrator, swimming, make_session)

    first = asyncio.create_task(orchestrator.submit_cash(CONTACT))
    await asyncio.sleep(0.01)
    second = await orchestrator.submit_cash(CONTACT)
    assert second.status is Phase.SUBMITTING

    gate.set()
    result = await first
    assert result.status is Phase.SETTLED
    assert len(club_api.calls("POST", "/reservations/by-parent/1")) == 1


@pytest.mark.asyncio
async def test_already_paid_conflict_keeps_draft(orchestrator, club_api, swimming):
    club_api.on("POST", "/reservations/by-parent/1", {"message": "Ce mois est déjà payé"}, status=409)
    _monthly(orchestrator, swimming)

    result = await orchestrator.submit_cash(CONTACT)

    assert result.status is Phase.FAILED
    assert result.code == "already_paid"
    assert result.reason == "Ce mois est déjà payé"
    assert orchestrator.machine.draft.selected_months == ["Janvier", "Février"]


@pytest.mark.asyncio
async def test_months_paid_elsewhere_are_caught_before_sending(orchestrator, club_api, swimming):
    club_api.on("GET", "/konnect/paid-months", ["Février"])
    _monthly(orchestrator, swimming)

    result = await orchestrator.submit_cash(CONTACT)

    assert result.code == "already_paid"
    assert orchestrator.machine.draft.selected_months == ["Janvier"]
    assert club_api.calls("POST", "/reservations/by-parent/1") == []


@pytest.mark.asyncio
async def test_unreadable_paid_months_block_the_submission(orchestrator, club_api, swimming):
    club_api.on("GET", "/konnect/paid-months", {"message": "Erreur interne"}, status=500)
    _monthly(orchestrator, swimming)

    cash = await orchestrator.submit_cash(CONTACT)
    assert cash.status is Phase.FAILED
    assert (cash.code, cash.reason) == ("server", "Erreur interne")

    gateway = await orchestrator.submit_gateway(CONTACT)
    assert gateway.code == "server"

    assert club_api.calls("POST", "/reservations/by-parent/1") == []
    assert club_api.calls("POST", "/konnect/pay") == []
    assert orchestrator.machine.draft.selected_months == ["Janvier", "Février"]


@pytest.mark.asyncio
async def test_server_and_network_errors_map_to_codes(orchestrator, club_api, swimming):
    club_api.on("POST", "/reservations/by-parent/1", {"message": "Erreur interne"}, status=500)
    _monthly(orchestrator, swimming)
    result = await orchestrator.submit_cash(CONTACT)
    assert (result.code, result.reason) == ("server", "Erreur interne")

    def down(request):
        raise httpx.ConnectError("down", request=request)

    club_api.routes[("POST", "/reservations/by-parent/1")] = down
    result = await orchestrator.submit_cash(CONTACT)
    assert result.code == "network"


@pytest.mark.asyncio
async def test_gateway_redirects_to_payment_url(orchestrator, club_api, swimming, navigations):
    club_api.on("POST", "/konnect/pay", {"payment_url": "https://gateway.konnect.network/pay/abc"})
    _monthly(orchestrator, swimming)

    result = await orchestrator.submit_gateway(CONTACT)

    assert result.status is Phase.SETTLED
    assert result.redirect_url == "https://gateway.konnect.network/pay/abc"
    assert navigations == ["https://gateway.konnect.network/pay/abc"]
    body = json.loads(club_api.calls("POST", "/konnect/pay")[0].content)
    assert body["total"] == 10000
    assert body["adherentId"] == 1
    assert body["activiteId"] == 10
    assert body["paymentPeriodType"] == "perMonth"
    assert body["moisPaiement"] == "Janvier,Février"
    assert body["sessionId"] == 101
    assert body["phoneNumber"] == "+21620123456"
    assert body["email"] == "karim.benali@gmail.com"


@pytest.mark.asyncio
async def test_malformed_payment_url_fails_without_navigation(orchestrator, club_api, swimming, navigations):
    club_api.on("POST", "/konnect/pay", {"payment_url": "not-a-url"})
    _monthly(orchestrator, swimming)

    result = await orchestrator.submit_gateway(CONTACT)

    assert result.status is Phase.FAILED
    assert result.code == "gateway_malformed"
    assert navigations == []
    assert orchestrator.machine.draft.selected_months == ["Janvier", "Février"]


@pytest.mark.asyncio
async def test_gateway_session_payment(orchestrator, club_api, swimming, make_session, navigations):
    club_api.on("POST", "/konnect/pay", {"payment_url": "https://gateway.konnect.network/pay/s1"})
    _session(orchestrator, swimming, make_session)

    result = await orchestrator.submit_gateway(CONTACT)

    assert result.status is Phase.SETTLED
    body = json.loads(club_api.calls("POST", "/konnect/pay")[0].content)
    assert body["total"] == 2000
    assert body["sessionId"] == 100
    assert body["sessionDate"] == "2025-05-03"
    assert body["paymentPeriodType"] == "perSession"
    assert club_api.calls("GET", "/sessions/next-session") == []


@pytest.mark.asyncio
async def test_gateway_needs_a_future_session_for_recurring(orchestrator, club_api, swimming, navigations):
    club_api.on("GET", "/sessions/next-session", None, status=204)
    _monthly(orchestrator, swimming)

    result = await orchestrator.submit_gateway(CONTACT)

    assert result.code == "no_session"
    assert club_api.calls("POST", "/konnect/pay") == []


@pytest.mark.asyncio
async def test_gateway_handles_one_adherent_at_a_time(orchestrator, club_api, swimming):
    m = _monthly(orchestrator, swimming, months=())
    m.select_adherent(2)
    m.apply_activities([swimming])
    m.toggle_activity(swimming.id)
    m.toggle_month("Mars")

    result = await orchestrator.submit_gateway(CONTACT)

    assert result.code == "incomplete"
    assert club_api.calls("POST", "/konnect/pay") == []

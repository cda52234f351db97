import os

# Désactive l'init fastapi-limiter (évite toute connexion Redis pendant les tests)
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")

import pytest
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Tuple, Union

import httpx

from clubpay.infra.club_api import create_club_client
from clubpay.infra.key_store import InMemoryKeyProvider
from clubpay.models import Activity, Adherent, Session

BASE_URL = "http://club.test/api"

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)


Route = Union[Tuple[int, Any], Callable[[httpx.Request], httpx.Response]]


class FakeClubApi:
    """
    Faux backend du club branché sur httpx.MockTransport.
    - `routes[(méthode, chemin)]`: (status, corps JSON) ou callable(request) -> Response
    - `gates[chemin]`: asyncio.Event à attendre avant de répondre (ordonnancement des courses)
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Route] = {}
        self.requests: List[httpx.Request] = []
        self.gates: Dict[str, Any] = {}

    def on(self, method: str, path: str, body: Any = None, status: int = 200) -> "FakeClubApi":
        self.routes[(method.upper(), path)] = (status, body)
        return self

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method.upper() and self._path(r) == path]

    @staticmethod
    def _path(request: httpx.Request) -> str:
        path = request.url.path
        return path[len("/api"):] if path.startswith("/api/") else path

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = self._path(request)
        gate = self.gates.get(path)
        if gate is not None:
            await gate.wait()
        route = self.routes.get((request.method, path))
        if route is None:
            return httpx.Response(404, json={"message": f"Not found: {path}"})
        if callable(route):
            return route(request)
        status, body = route
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    def client(self, token: str = "parent-token") -> httpx.AsyncClient:
        return create_club_client(token, base_url=BASE_URL, transport=httpx.MockTransport(self.handler))


@pytest.fixture
def club_api() -> FakeClubApi:
    """Backend du club pré-rempli: deux adhérents, deux activités, des séances en mai 2025."""
    api = FakeClubApi()
    api.on("GET", "/parents/me/adherents", [
        {"id": 2, "prenom": "Sami", "nom": "Ben Ali"},
        {"id": 1, "prenom": "Amira", "nom": "Ben Ali"},
    ])
    api.on("GET", "/parents/me", {
        "prenom": "Karim", "nom": "Ben Ali", "email": "karim.benali@gmail.com", "telephone": "20 123 456",
    })
    api.on("GET", "/activites", [
        {"id": 10, "nom": "Natation", "prix": 50},
        {"id": 11, "nom": "Judo", "prix": 40},
        {"id": 12, "nom": "Danse", "prix": 30},
    ])
    api.on("GET", "/activites/by-adherent/1", [{"id": 10, "nom": "Natation", "prix": 50}])
    api.on("GET", "/activites/by-adherent/2", [
        {"id": 10, "nom": "Natation", "prix": 50},
        {"id": 11, "nom": "Judo", "prix": 40},
    ])
    api.on("GET", "/sessions/activite/10", [
        {"id": 100, "dateTime": "2025-05-03T09:00:00", "heureFin": "10:00", "prix": 20,
         "activite": {"id": 10, "nom": "Natation"}, "lieu": {"nom": "Piscine municipale"}},
        {"id": 101, "dateTime": "2025-05-10T09:00:00", "heureFin": "10:00", "prix": 20,
         "activite": {"id": 10, "nom": "Natation"}},
        {"id": 102, "dateTime": "2025-05-10T17:00:00", "heureFin": "18:00", "prix": 25,
         "activite": {"id": 10, "nom": "Natation"}},
    ])
    api.on("GET", "/konnect/paid-months", [])
    api.on("GET", "/sessions/next-session", {"id": 101, "dateTime": "2025-05-10T09:00:00"})
    return api


@pytest.fixture
def key_provider() -> InMemoryKeyProvider:
    return InMemoryKeyProvider({"cart": "cart-1714000000000-ab12c"})


@pytest.fixture
def clock() -> Callable[[], date]:
    """Date du jour figée: les mois proposés sont Janvier, Février, Mars et Avril."""
    return lambda: date(2025, 1, 10)


@pytest.fixture
def adherent() -> Adherent:
    return Adherent(id=1, first_name="Amira", last_name="Ben Ali")


@pytest.fixture
def swimming() -> Activity:
    return Activity(id=10, name="Natation", unit_price=Decimal("50"))


@pytest.fixture
def make_session() -> Callable[..., Session]:
    def _make(session_id: int, start: str, price=None, activity_id: int = 10) -> Session:
        return Session(id=session_id, activity_id=activity_id, start=datetime.fromisoformat(start), price=price)
    return _make

"""
Registre en mémoire des brouillons ouverts (un moteur par écran).
- Chaque brouillon appartient au jeton qui l'a créé (empreinte), un autre jeton obtient 404.
- Les brouillons inactifs au-delà du TTL sont fermés puis évincés.
"""
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional
import logging
import time
import uuid

from clubpay.config import DRAFT_TTL_SECONDS
from clubpay.infra.club_api import create_club_client
from clubpay.infra.key_store import ScopedKeyProvider, get_key_provider
from clubpay.payments.engine import PaymentEngine
from clubpay.utils.security import token_fingerprint

logger = logging.getLogger(__name__)

EngineFactory = Callable[[str], PaymentEngine]

def default_engine_factory(token: str) -> PaymentEngine:
    # Clés d'idempotence propres à chaque parent (empreinte du jeton)
    key_provider = ScopedKeyProvider(get_key_provider(), token_fingerprint(token))
    return PaymentEngine(create_club_client(token), key_provider=key_provider)


@dataclass
class _Entry:
    engine: PaymentEngine
    owner: str
    last_used: float = field(default_factory=time.monotonic)


class DraftRegistry:
    def __init__(self, engine_factory: Optional[EngineFactory] = None, ttl: float = DRAFT_TTL_SECONDS):
        self.engine_factory = engine_factory or default_engine_factory
        self.ttl = ttl
        self._entries: Dict[str, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def create(self, token: str) -> "tuple[str, PaymentEngine]":
        await self.evict_expired()
        draft_id = uuid.uuid4().hex
        engine = self.engine_factory(token)
        self._entries[draft_id] = _Entry(engine=engine, owner=token_fingerprint(token))
        await engine.open()
        logger.info("registry.create draft_id=%s drafts=%s", draft_id, len(self._entries))
        return draft_id, engine

    def get(self, draft_id: str, token: str) -> PaymentEngine:
        entry = self._entries.get(draft_id)
        if entry is None or entry.owner != token_fingerprint(token):
            raise KeyError(draft_id)
        entry.last_used = time.monotonic()
        return entry.engine

    async def remove(self, draft_id: str, token: str) -> None:
        self.get(draft_id, token)
        entry = self._entries.pop(draft_id)
        await entry.engine.close()
        logger.info("registry.remove draft_id=%s", draft_id)

    async def evict_expired(self) -> int:
        now = time.monotonic()
        expired = [k for k, e in self._entries.items() if now - e.last_used > self.ttl]
        for draft_id in expired:
            entry = self._entries.pop(draft_id)
            await entry.engine.close()
        if expired:
            logger.info("registry.evict expired=%s", len(expired))
        return len(expired)

    async def close_all(self) -> None:
        entries = list(self._entries.values())
        self._entries.clear()
        for entry in entries:
            await entry.engine.close()

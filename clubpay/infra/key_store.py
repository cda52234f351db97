"""
Clés d'idempotence persistées localement (cartCode, wishlistCode).
- Format: "<prefixe>-<timestamp ms>-<5 caractères base36>", créées à la première demande.
- Réutilisées pendant toute la vie de l'installation; ce ne sont pas des secrets.
- Implémentations: fichier JSON (défaut), Redis, mémoire (tests).
"""
from typing import Dict, Optional, Protocol
from pathlib import Path
import asyncio
import json
import logging
import secrets
import string
import time

import redis.asyncio as aioredis

from clubpay.config import KEY_STORE_PATH, KEY_STORE_REDIS_URL

logger = logging.getLogger(__name__)

CART_NAMESPACE = "cart"
WISHLIST_NAMESPACE = "wishlist"

_ALPHABET = string.digits + string.ascii_lowercase

def generate_key(prefix: str) -> str:
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(5))
    return f"{prefix}-{int(time.time() * 1000)}-{suffix}"

def key_prefix(namespace: str) -> str:
    """Préfixe de la clé générée: la portée ("cart:3f2a..." -> "cart") n'y figure pas."""
    return namespace.split(":", 1)[0]


class KeyProvider(Protocol):
    async def get_or_create_key(self, namespace: str) -> str: ...


class InMemoryKeyProvider:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._keys: Dict[str, str] = dict(initial or {})

    async def get_or_create_key(self, namespace: str) -> str:
        if namespace not in self._keys:
            self._keys[namespace] = generate_key(key_prefix(namespace))
        return self._keys[namespace]


class FileKeyProvider:
    """
    Stockage durable dans un petit fichier JSON {namespace: clé}.
    Un fichier illisible est traité comme vide (les clés sont régénérées puis réécrites).
    """

    def __init__(self, path: Path = KEY_STORE_PATH):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _read(self) -> Dict[str, str]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError):
            logger.exception("key_store.read failed path=%s", self.path)
            return {}
        return {str(k): str(v) for k, v in data.items()} if isinstance(data, dict) else {}

    def _write(self, keys: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(keys, indent=2), encoding="utf-8")
        tmp.replace(self.path)

    async def get_or_create_key(self, namespace: str) -> str:
        async with self._lock:
            keys = self._read()
            key = keys.get(namespace)
            if not key:
                key = generate_key(key_prefix(namespace))
                keys[namespace] = key
                self._write(keys)
            return key


class RedisKeyProvider:
    """SET NX: la première clé écrite gagne, même entre plusieurs workers."""

    def __init__(self, client: aioredis.Redis, prefix: str = "clubpay:key:"):
        self.client = client
        self.prefix = prefix

    async def get_or_create_key(self, namespace: str) -> str:
        name = f"{self.prefix}{namespace}"
        await self.client.set(name, generate_key(key_prefix(namespace)), nx=True)
        value = await self.client.get(name)
        return value.decode("utf-8") if isinstance(value, bytes) else str(value)


class ScopedKeyProvider:
    """
    Restreint un fournisseur partagé à une portée (un parent): "cart" devient "cart:<portée>".
    Deux parents servis par le même processus n'envoient jamais la même clé.
    """

    def __init__(self, inner: KeyProvider, scope: str):
        self.inner = inner
        self.scope = scope

    async def get_or_create_key(self, namespace: str) -> str:
        return await self.inner.get_or_create_key(f"{namespace}:{self.scope}")


_provider: Optional[KeyProvider] = None

def get_key_provider() -> KeyProvider:
    global _provider
    if _provider is None:
        if KEY_STORE_REDIS_URL:
            _provider = RedisKeyProvider(aioredis.from_url(KEY_STORE_REDIS_URL, decode_responses=True))
        else:
            _provider = FileKeyProvider(KEY_STORE_PATH)
    return _provider

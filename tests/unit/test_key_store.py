import json
import re

import pytest
from fakeredis import aioredis as fake_aioredis

from clubpay.infra.key_store import (
    CART_NAMESPACE,
    WISHLIST_NAMESPACE,
    FileKeyProvider,
    InMemoryKeyProvider,
    RedisKeyProvider,
    ScopedKeyProvider,
    generate_key,
)

KEY_RE = re.compile(r"^cart-\d{13}-[0-9a-z]{5}$")


def test_generate_key_format():
    assert KEY_RE.match(generate_key("cart"))


@pytest.mark.asyncio
async def test_in_memory_provider_is_stable_per_namespace():
    provider = InMemoryKeyProvider()
    cart = await provider.get_or_create_key(CART_NAMESPACE)
    assert cart == await provider.get_or_create_key(CART_NAMESPACE)
    assert cart != await provider.get_or_create_key(WISHLIST_NAMESPACE)


@pytest.mark.asyncio
async def test_file_provider_persists_across_instances(tmp_path):
    path = tmp_path / "keys.json"
    first = await FileKeyProvider(path).get_or_create_key(CART_NAMESPACE)
    second = await FileKeyProvider(path).get_or_create_key(CART_NAMESPACE)
    assert first == second
    assert KEY_RE.match(first)
    assert json.loads(path.read_text(encoding="utf-8")) == {"cart": first}


@pytest.mark.asyncio
async def test_file_provider_recovers_from_corrupt_file(tmp_path):
    path = tmp_path / "keys.json"
    path.write_text("{not json", encoding="utf-8")
    key = await FileKeyProvider(path).get_or_create_key(CART_NAMESPACE)
    assert KEY_RE.match(key)
    assert json.loads(path.read_text(encoding="utf-8"))["cart"] == key


@pytest.mark.asyncio
async def test_redis_provider_first_writer_wins():
    client = fake_aioredis.FakeRedis()
    a = RedisKeyProvider(client)
    b = RedisKeyProvider(client)
    key = await a.get_or_create_key(CART_NAMESPACE)
    assert await b.get_or_create_key(CART_NAMESPACE) == key
    assert KEY_RE.match(key)


@pytest.mark.asyncio
async def test_scoped_provider_keeps_one_key_per_scope(tmp_path):
    shared = FileKeyProvider(tmp_path / "keys.json")
    parent_a = ScopedKeyProvider(shared, "a1b2")
    parent_b = ScopedKeyProvider(shared, "c3d4")
    key_a = await parent_a.get_or_create_key(CART_NAMESPACE)
    key_b = await parent_b.get_or_create_key(CART_NAMESPACE)
    assert key_a != key_b
    assert KEY_RE.match(key_a) and KEY_RE.match(key_b)
    assert await ScopedKeyProvider(shared, "a1b2").get_or_create_key(CART_NAMESPACE) == key_a
    assert set(json.loads((tmp_path / "keys.json").read_text(encoding="utf-8"))) == {"cart:a1b2", "cart:c3d4"}

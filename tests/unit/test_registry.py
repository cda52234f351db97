import pytest

from clubpay.payments.registry import DraftRegistry


class _FakeEngine:
    def __init__(self, token):
        self.token = token
        self.opened = False
        self.closed = False

    async def open(self):
        self.opened = True

    async def close(self):
        self.closed = True


@pytest.mark.asyncio
async def test_drafts_belong_to_their_token():
    registry = DraftRegistry(engine_factory=_FakeEngine)
    draft_id, engine = await registry.create("token-a")
    assert engine.opened
    assert registry.get(draft_id, "token-a") is engine
    with pytest.raises(KeyError):
        registry.get(draft_id, "token-b")
    with pytest.raises(KeyError):
        await registry.remove(draft_id, "token-b")
    await registry.remove(draft_id, "token-a")
    assert engine.closed
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_idle_drafts_are_evicted():
    registry = DraftRegistry(engine_factory=_FakeEngine, ttl=0)
    _, engine = await registry.create("token-a")
    assert await registry.evict_expired() == 1
    assert engine.closed


@pytest.mark.asyncio
async def test_close_all():
    registry = DraftRegistry(engine_factory=_FakeEngine)
    engines = [(await registry.create("t"))[1] for _ in range(3)]
    await registry.close_all()
    assert all(e.closed for e in engines)
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_default_factory_gives_each_guardian_its_own_key(monkeypatch, tmp_path):
    from clubpay.infra.key_store import CART_NAMESPACE, FileKeyProvider
    from clubpay.payments import registry as registry_module

    shared = FileKeyProvider(tmp_path / "keys.json")
    monkeypatch.setattr(registry_module, "get_key_provider", lambda: shared)
    engine_a = registry_module.default_engine_factory("token-parent-A")
    engine_b = registry_module.default_engine_factory("token-parent-B")
    try:
        key_a = await engine_a.checkout.key_provider.get_or_create_key(CART_NAMESPACE)
        key_b = await engine_b.checkout.key_provider.get_or_create_key(CART_NAMESPACE)
        assert key_a != key_b
        again = registry_module.default_engine_factory("token-parent-A")
        assert await again.checkout.key_provider.get_or_create_key(CART_NAMESPACE) == key_a
        await again.close()
    finally:
        await engine_a.close()
        await engine_b.close()

import asyncio

import pytest

from clubpay.utils.tagged import TaggedLoads


@pytest.mark.asyncio
async def test_result_applied_when_selector_unchanged():
    loads = TaggedLoads()
    applied = []

    async def loader():
        return ["Natation"]

    assert await loads.run("activities", ("recurring", (1,)), loader, applied.append, lambda: ("recurring", (1,)))
    assert applied == [["Natation"]]


@pytest.mark.asyncio
async def test_stale_result_is_discarded():
    loads = TaggedLoads()
    current = {"adherent": 1}
    release = asyncio.Event()
    applied = []

    async def loader():
        await release.wait()
        return "activities of 1"

    task = loads.spawn("activities", 1, loader, applied.append, lambda: current["adherent"])
    await asyncio.sleep(0)
    assert loads.pending("activities")
    # L'adhérent change pendant le chargement
    current["adherent"] = 2
    release.set()
    assert await task is False
    assert applied == []
    assert not loads.pending()


@pytest.mark.asyncio
async def test_later_load_wins_even_if_earlier_resolves_last():
    loads = TaggedLoads()
    current = {"tag": "A"}
    gates = {"A": asyncio.Event(), "B": asyncio.Event()}
    applied = []

    def loader_for(tag):
        async def loader():
            await gates[tag].wait()
            return tag
        return loader

    loads.spawn("x", "A", loader_for("A"), applied.append, lambda: current["tag"])
    current["tag"] = "B"
    loads.spawn("x", "B", loader_for("B"), applied.append, lambda: current["tag"])
    gates["B"].set()
    await asyncio.sleep(0.01)
    gates["A"].set()
    await loads.wait_idle()
    assert applied == ["B"]


@pytest.mark.asyncio
async def test_close_cancels_and_discards():
    loads = TaggedLoads()
    release = asyncio.Event()
    applied = []

    async def loader():
        await release.wait()
        return "late"

    loads.spawn("sessions", "t", loader, applied.append, lambda: "t")
    await asyncio.sleep(0)
    await loads.close()
    release.set()
    await asyncio.sleep(0)
    assert applied == []
    assert loads.spawn("sessions", "t", loader, applied.append, lambda: "t") is None

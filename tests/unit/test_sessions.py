import anyio
import pytest

from mcp_bridge.sessions import InMemorySessionStore


def test_get_set_invalidate() -> None:
    store = InMemorySessionStore()
    assert store.get("default") is None

    store.set("default", "abc")
    assert store.get("default") == "abc"

    store.set("default", "def")
    assert store.get("default") == "def"

    store.invalidate("default")
    assert store.get("default") is None


def test_invalidate_missing_key_is_noop() -> None:
    store = InMemorySessionStore()
    store.invalidate("nothing")
    assert store.get("nothing") is None


def test_keys_are_independent() -> None:
    store = InMemorySessionStore()
    store.set("a", "1")
    store.set("b", "2")
    store.invalidate("a")
    assert store.get("a") is None
    assert store.get("b") == "2"


def test_lock_is_stable_per_key() -> None:
    store = InMemorySessionStore()
    assert store.lock("a") is store.lock("a")
    assert store.lock("a") is not store.lock("b")


@pytest.mark.anyio
async def test_lock_serialises_holders() -> None:
    store = InMemorySessionStore()
    order = []

    async def hold(name: str) -> None:
        async with store.lock("default"):
            order.append(f"{name}-in")
            await anyio.sleep(0.01)
            order.append(f"{name}-out")

    async with anyio.create_task_group() as tg:
        tg.start_soon(hold, "first")
        tg.start_soon(hold, "second")

    assert order[0].endswith("-in") and order[1].endswith("-out")
    assert order[2].endswith("-in") and order[3].endswith("-out")

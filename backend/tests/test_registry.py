import asyncio

from fakes import FakeMarketClient
from marketdesk.cache import SearchCache
from marketdesk.registry import SessionRegistry
from marketdesk.session import DashboardSession


class FakeClock:
    def __init__(self) -> None:
        self.now = 0

    def __call__(self) -> float:
        return self.now


def build_registry(clock: FakeClock, idle_timeout: float = 60):
    clients: list[FakeMarketClient] = []

    def factory() -> DashboardSession:
        client = FakeMarketClient()
        clients.append(client)
        return DashboardSession(
            client=client, cache=SearchCache(redis_url=""), stream_enabled=False, debounce_seconds=0
        )

    registry = SessionRegistry(factory=factory, idle_timeout_seconds=idle_timeout, clock=clock)
    return registry, clients


def test_acquire_reuses_known_id_and_mints_unknown_ones() -> None:
    registry, clients = build_registry(FakeClock())

    async def scenario():
        first_id, first = await registry.acquire(None)
        again_id, again = await registry.acquire(first_id)
        stranger_id, stranger = await registry.acquire("not-a-session")
        await registry.close_all()
        return first_id, first, again_id, again, stranger_id, stranger

    first_id, first, again_id, again, stranger_id, stranger = asyncio.run(scenario())

    assert again_id == first_id
    assert again is first
    assert stranger_id not in (first_id, "not-a-session")
    assert stranger is not first
    assert len(clients) == 2


def test_idle_sessions_are_disposed_on_next_lookup() -> None:
    clock = FakeClock()
    registry, clients = build_registry(clock, idle_timeout=60)

    async def scenario():
        idle_id, idle = await registry.acquire(None)
        clock.now = 30
        active_id, active = await registry.acquire(None)
        clock.now = 80
        await registry.acquire(active_id)
        return idle_id, idle, active_id, active

    idle_id, idle, active_id, active = asyncio.run(scenario())

    assert idle_id not in registry
    assert active_id in registry
    assert idle.state.disposed is True
    assert active.state.disposed is False
    assert clients[0].closed is True
    assert clients[1].closed is False


def test_close_unknown_session_is_a_no_op() -> None:
    registry, _ = build_registry(FakeClock())

    assert asyncio.run(registry.close("missing")) is False


def test_close_all_disposes_every_session() -> None:
    registry, clients = build_registry(FakeClock())

    async def scenario():
        for _ in range(3):
            await registry.acquire(None)
        await registry.close_all()

    asyncio.run(scenario())

    assert len(registry) == 0
    assert [client.closed for client in clients] == [True, True, True]

import pytest

from lobby.directory.manager import DiscoveryDirectory
from relay.messaging.router import MessageRouter
from relay.messaging.types import ServerInfoData
from relay.session.dispatcher import RelayDispatcher
from relay.session.manager import SessionManager
from relay.session.store import SessionStore
from relay.tests.helpers.clock import TEST_SEED, FakeClock
from relay.tests.mocks.connection import MockConnection


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return SessionStore()


@pytest.fixture
def directory(clock):
    return DiscoveryDirectory(clock=clock)


@pytest.fixture
def dispatcher():
    return RelayDispatcher()


@pytest.fixture
def server_info():
    return ServerInfoData(name="Test Relay", location="🖥️ Local (Dev)", region="local")


@pytest.fixture
def manager(store, directory, dispatcher, server_info):
    return SessionManager(store, directory, dispatcher, server_info=server_info, seed_factory=lambda: TEST_SEED)


@pytest.fixture
def router(manager):
    return MessageRouter(manager)


@pytest.fixture
def connect(router):
    """Connect a MockConnection through the router and clear its greeting."""

    async def _connect(connection_id: str | None = None) -> MockConnection:
        conn = MockConnection(connection_id)
        await router.handle_connect(conn)
        conn._outbox.clear()
        return conn

    return _connect

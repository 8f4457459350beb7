import pytest

from lobby.directory.models import RoomStatus
from relay.messaging.types import ServerEventType, SessionErrorCode
from relay.session.manager import SessionManager
from relay.session.models import MAX_MEMBERS
from relay.session.store import SessionStore
from relay.tests.helpers.clock import TEST_SEED
from relay.tests.mocks.connection import MockConnection


async def _connect(manager: SessionManager, connection_id: str) -> MockConnection:
    conn = MockConnection(connection_id)
    await manager.handle_connect(conn)
    conn._outbox.clear()
    return conn


async def _create(manager: SessionManager, connection_id: str = "host", name: str = "Alice"):
    conn = await _connect(manager, connection_id)
    await manager.create_room(conn, name)
    session_id = conn.events(ServerEventType.ROOM_CREATED)[-1]["data"]["sessionId"]
    conn._outbox.clear()
    return conn, session_id


async def _join(manager: SessionManager, session_id: str, connection_id: str, name: str) -> MockConnection:
    conn = await _connect(manager, connection_id)
    await manager.join_room(conn, session_id, name)
    return conn


async def _announce(manager: SessionManager, conn: MockConnection, session_id: str, **kwargs) -> None:
    await manager.announce_room(conn, session_id, "Alice", **kwargs)


def _clear(*conns: MockConnection) -> None:
    for conn in conns:
        conn._outbox.clear()


def _roster(message: dict) -> list[tuple[str, str, str]]:
    return [(m["connectionId"], m["displayName"], m["role"]) for m in message["data"]["members"]]


class TestConnect:
    async def test_greets_with_server_info(self, manager):
        conn = MockConnection("c1")
        await manager.handle_connect(conn)

        assert conn.sent_messages == [
            {
                "event": "serverInfo",
                "data": {"name": "Test Relay", "location": "🖥️ Local (Dev)", "region": "local"},
            },
        ]
        assert manager.connection_count == 1

    async def test_no_greeting_without_server_info(self):
        manager = SessionManager()
        conn = MockConnection("c1")
        await manager.handle_connect(conn)
        assert conn.sent_messages == []


class TestCreateRoom:
    async def test_creator_receives_room_created(self, manager):
        conn = await _connect(manager, "host")
        await manager.create_room(conn, "Alice")

        [message] = conn.sent_messages
        assert message["event"] == "roomCreated"
        session_id = message["data"]["sessionId"]
        assert _roster(message) == [("host", "Alice", "host")]
        assert manager.get_session(session_id).host_connection_id == "host"

    async def test_server_full(self, server_info):
        manager = SessionManager(SessionStore(max_sessions=1), server_info=server_info)
        await _create(manager, "a")
        conn = await _connect(manager, "b")

        await manager.create_room(conn, "Bob")

        [message] = conn.sent_messages
        assert message == {
            "event": "errorMsg",
            "data": {"code": "server_full", "reason": "Server is full, try again later!"},
        }
        assert manager.session_count == 1

    async def test_creating_again_leaves_previous_session(self, manager):
        host, first_id = await _create(manager)
        guest = await _join(manager, first_id, "guest", "Bob")
        _clear(guest)

        await manager.create_room(host, "Alice")

        assert manager.get_session(first_id) is None
        assert guest.event_names() == ["hostLeft"]
        assert manager.session_count == 1


class TestJoinRoom:
    async def test_join_broadcasts_roster_then_confirms(self, manager):
        host, session_id = await _create(manager)
        guest = await _join(manager, session_id, "guest", "Bob")

        assert host.event_names() == ["playerJoined"]
        assert _roster(host.sent_messages[0]) == [("host", "Alice", "host"), ("guest", "Bob", "joiner")]
        assert guest.event_names() == ["playerJoined", "roomJoined"]
        assert guest.sent_messages[1]["data"]["sessionId"] == session_id

    async def test_join_unknown_session(self, manager):
        guest = await _join(manager, "ZZZZ", "guest", "Bob")

        assert guest.sent_messages == [
            {"event": "errorMsg", "data": {"code": "not_found", "reason": "Room not found!"}},
        ]

    async def test_capacity_never_exceeded(self, manager):
        host, session_id = await _create(manager)
        for i in range(MAX_MEMBERS - 1):
            await _join(manager, session_id, f"p{i}", f"P{i}")
        _clear(host)

        late = await _join(manager, session_id, "late", "Late")

        assert late.sent_messages == [
            {"event": "errorMsg", "data": {"code": "unjoinable", "reason": "Room is full!"}},
        ]
        assert manager.get_session(session_id).member_count == MAX_MEMBERS
        assert host.sent_messages == []

    async def test_join_started_session(self, manager):
        host, session_id = await _create(manager)
        await manager.request_start(host, session_id, {})

        late = await _join(manager, session_id, "late", "Late")

        assert late.sent_messages[0]["data"] == {"code": "unjoinable", "reason": "Game already started!"}

    async def test_join_own_session_again(self, manager):
        host, session_id = await _create(manager)

        await manager.join_room(host, session_id, "Alice")

        assert host.sent_messages == [
            {"event": "errorMsg", "data": {"code": "unjoinable", "reason": "You are already in this room!"}},
        ]
        assert manager.get_session(session_id).member_count == 1

    async def test_switching_sessions_leaves_the_old_one(self, manager):
        host_a, room_a = await _create(manager, "ha", "Alice")
        host_b, room_b = await _create(manager, "hb", "Bea")
        guest = await _join(manager, room_a, "guest", "Bob")
        _clear(host_a, host_b, guest)

        await manager.join_room(guest, room_b, "Bob")

        assert host_a.event_names() == ["playerLeft", "playerJoined"]
        assert _roster(host_a.sent_messages[1]) == [("ha", "Alice", "host")]
        assert manager.get_session(room_a).connection_ids == ["ha"]
        assert manager.get_session(room_b).connection_ids == ["hb", "guest"]

    async def test_failed_join_keeps_current_membership(self, manager):
        _host, session_id = await _create(manager)
        guest = await _join(manager, session_id, "guest", "Bob")

        await manager.join_room(guest, "ZZZZ", "Bob")

        assert manager.get_session(session_id).has_member("guest")


class TestRequestStart:
    async def test_host_start_broadcasts_config_and_seed_to_all(self, manager):
        host, session_id = await _create(manager)
        guest = await _join(manager, session_id, "guest", "Bob")
        _clear(host, guest)

        await manager.request_start(host, session_id, {"difficulty": "hard", "map": 3})

        expected = {"event": "gameStart", "data": {"difficulty": "hard", "map": 3, "seed": TEST_SEED}}
        assert host.sent_messages == [expected]
        assert guest.sent_messages == [expected]
        assert manager.get_session(session_id).started is True

    async def test_client_supplied_seed_is_kept(self, manager):
        host, session_id = await _create(manager)

        await manager.request_start(host, session_id, {}, seed=7)

        assert host.sent_messages[0]["data"] == {"seed": 7}

    async def test_non_host_start_is_silently_ignored(self, manager):
        host, session_id = await _create(manager)
        guest = await _join(manager, session_id, "guest", "Bob")
        _clear(host, guest)

        await manager.request_start(guest, session_id, {})

        assert host.sent_messages == []
        assert guest.sent_messages == []
        assert manager.get_session(session_id).started is False

    async def test_start_for_unknown_session_is_ignored(self, manager):
        host, _session_id = await _create(manager)
        await manager.request_start(host, "ZZZZ", {})
        assert host.sent_messages == []


class TestHostControls:
    @pytest.fixture
    async def room(self, manager):
        host, session_id = await _create(manager)
        guest = await _join(manager, session_id, "guest", "Bob")
        _clear(host, guest)
        return host, guest, session_id

    async def test_wave_pause_restart_broadcast_to_all(self, manager, room):
        host, guest, session_id = room

        await manager.request_wave(host, session_id)
        await manager.request_pause(host, session_id, is_paused=True)
        await manager.request_restart(host, session_id)

        expected = [
            {"event": "forceStartWave", "data": None},
            {"event": "forcePause", "data": {"isPaused": True}},
            {"event": "forceRestart", "data": None},
        ]
        assert host.sent_messages == expected
        assert guest.sent_messages == expected

    async def test_controls_from_non_host_are_dropped(self, manager, room):
        host, guest, session_id = room

        await manager.request_wave(guest, session_id)
        await manager.request_pause(guest, session_id, is_paused=False)
        await manager.request_restart(guest, session_id)

        assert host.sent_messages == []
        assert guest.sent_messages == []


class TestPeerRelay:
    async def test_action_forwarded_to_others_only(self, manager):
        host, session_id = await _create(manager)
        p2 = await _join(manager, session_id, "p2", "Bob")
        p3 = await _join(manager, session_id, "p3", "Cara")
        _clear(host, p2, p3)

        await manager.relay_peer_action(p2, session_id, ServerEventType.REMOTE_ACTION, {"kind": "jump", "x": 4})

        assert p2.sent_messages == []
        assert host.sent_messages == [{"event": "remoteAction", "data": {"kind": "jump", "x": 4}}]
        assert p3.sent_messages == host.sent_messages

    async def test_state_update_from_host(self, manager):
        host, session_id = await _create(manager)
        guest = await _join(manager, session_id, "guest", "Bob")
        _clear(host, guest)

        await manager.relay_peer_action(host, session_id, ServerEventType.FORCE_GAME_STATE, {"hp": [10, 8]})

        assert host.sent_messages == []
        assert guest.sent_messages == [{"event": "forceGameState", "data": {"hp": [10, 8]}}]

    async def test_relay_from_outsider_is_dropped(self, manager):
        host, session_id = await _create(manager)
        outsider = await _connect(manager, "outsider")

        await manager.relay_peer_action(outsider, session_id, ServerEventType.REMOTE_ACTION, {"x": 1})

        assert host.sent_messages == []


class TestDisconnect:
    async def test_host_disconnect_ends_session(self, manager):
        host, session_id = await _create(manager)
        p2 = await _join(manager, session_id, "p2", "Bob")
        p3 = await _join(manager, session_id, "p3", "Cara")
        _clear(p2, p3)

        await manager.handle_disconnect(host)

        assert p2.event_names() == ["hostLeft"]
        assert p3.event_names() == ["hostLeft"]
        assert manager.get_session(session_id) is None

        # Former members are free again and the id is gone.
        retry = await _join(manager, session_id, "p4", "Dan")
        assert retry.sent_messages[0]["data"]["code"] == SessionErrorCode.NOT_FOUND

    async def test_player_disconnect_in_lobby_refreshes_roster(self, manager):
        host, session_id = await _create(manager)
        p2 = await _join(manager, session_id, "p2", "Bob")
        p3 = await _join(manager, session_id, "p3", "Cara")
        _clear(host, p3)

        await manager.handle_disconnect(p2)

        assert host.event_names() == ["playerLeft", "playerJoined"]
        assert host.sent_messages[0]["data"] == {"connectionId": "p2"}
        assert _roster(host.sent_messages[1]) == [("host", "Alice", "host"), ("p3", "Cara", "joiner")]
        assert p3.sent_messages == host.sent_messages

    async def test_player_disconnect_in_game_sends_player_left_only(self, manager):
        host, session_id = await _create(manager)
        p2 = await _join(manager, session_id, "p2", "Bob")
        await manager.request_start(host, session_id, {})
        _clear(host)

        await manager.handle_disconnect(p2)

        assert host.sent_messages == [{"event": "playerLeft", "data": {"connectionId": "p2"}}]

    async def test_last_member_disconnect_deletes_session(self, manager):
        host, session_id = await _create(manager)

        await manager.handle_disconnect(host)

        assert manager.get_session(session_id) is None
        assert manager.session_count == 0
        assert manager.connection_count == 0

    async def test_disconnect_without_session(self, manager):
        conn = await _connect(manager, "lonely")
        await manager.handle_disconnect(conn)
        assert manager.connection_count == 0

    async def test_disconnect_retracts_announced_rooms(self, manager):
        host, session_id = await _create(manager)
        await _announce(manager, host, session_id, is_private=False, player_count=1, status=RoomStatus.WAITING)
        assert manager.listed_room_count == 1

        await manager.handle_disconnect(host)

        assert manager.listed_room_count == 0


class TestDiscovery:
    async def test_announce_then_list(self, manager):
        host, session_id = await _create(manager)
        browser = await _connect(manager, "browser")

        await _announce(manager, host, session_id, is_private=True, player_count=2, status=RoomStatus.WAITING)
        await manager.get_rooms(browser)

        assert browser.sent_messages == [
            {
                "event": "rooms",
                "data": {
                    "rooms": [
                        {
                            "sessionId": session_id,
                            "hostName": "Alice",
                            "isPrivate": True,
                            "playerCount": 2,
                            "status": "waiting",
                        },
                    ],
                },
            },
        ]

    async def test_playing_announce_hides_room_before_ttl(self, manager):
        host, session_id = await _create(manager)
        browser = await _connect(manager, "browser")
        await _announce(manager, host, session_id, is_private=False, player_count=1, status=RoomStatus.WAITING)

        await _announce(manager, host, session_id, is_private=False, player_count=2, status=RoomStatus.PLAYING)
        await manager.get_rooms(browser)

        assert browser.sent_messages[0]["data"] == {"rooms": []}

    async def test_stale_room_gone_after_sweep(self, manager, clock):
        host, session_id = await _create(manager)
        browser = await _connect(manager, "browser")
        await _announce(manager, host, session_id, is_private=False, player_count=1, status=RoomStatus.WAITING)

        clock.advance(40)
        manager.sweep_directory()
        await manager.get_rooms(browser)

        assert browser.sent_messages[0]["data"] == {"rooms": []}

    async def test_ping(self, manager):
        conn = await _connect(manager, "c1")
        await manager.ping(conn)
        assert conn.sent_messages == [{"event": "pong", "data": None}]


class TestEndToEnd:
    async def test_create_join_start_leave(self, server_info, directory, dispatcher):
        manager = SessionManager(
            SessionStore(id_factory=lambda: "AB12"),
            directory,
            dispatcher,
            server_info=server_info,
            seed_factory=lambda: TEST_SEED,
        )
        a = await _connect(manager, "A")
        b = await _connect(manager, "B")

        await manager.create_room(a, "Alice")
        assert a.sent_messages == [
            {
                "event": "roomCreated",
                "data": {
                    "sessionId": "AB12",
                    "members": [{"connectionId": "A", "displayName": "Alice", "role": "host"}],
                },
            },
        ]
        _clear(a)

        await manager.join_room(b, "AB12", "Bob")
        for conn in (a, b):
            joined = conn.events("playerJoined")[0]
            assert _roster(joined) == [("A", "Alice", "host"), ("B", "Bob", "joiner")]
        _clear(a, b)

        await manager.request_start(a, "AB12", {})
        assert a.events("gameStart")[0]["data"]["seed"] == b.events("gameStart")[0]["data"]["seed"]
        _clear(a, b)

        await manager.handle_disconnect(b)
        assert a.sent_messages == [{"event": "playerLeft", "data": {"connectionId": "B"}}]

        await manager.handle_disconnect(a)
        assert manager.get_session("AB12") is None

        c = await _connect(manager, "C")
        await manager.join_room(c, "AB12", "Cara")
        assert c.event_names() == ["errorMsg"]

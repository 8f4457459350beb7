from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import structlog

from lobby.directory.manager import DiscoveryDirectory
from relay.messaging.types import (
    ForcePauseData,
    PlayerJoinedData,
    PlayerLeftData,
    RoomsData,
    ServerEventType,
    SessionErrorCode,
    SessionRosterData,
    error_event,
    server_event,
)
from relay.session.dispatcher import RelayDispatcher
from relay.session.exceptions import ServerFullError, SessionError, SessionNotFoundError
from relay.session.identifiers import generate_seed
from relay.session.models import DepartureKind
from relay.session.store import SessionStore

if TYPE_CHECKING:
    from collections.abc import Callable

    from lobby.directory.models import RoomStatus
    from relay.messaging.protocol import ConnectionProtocol
    from relay.messaging.types import ServerInfoData
    from relay.session.models import Departure, Session

logger = structlog.get_logger()

_ERROR_CODES: dict[type[SessionError], SessionErrorCode] = {
    SessionNotFoundError: SessionErrorCode.NOT_FOUND,
    ServerFullError: SessionErrorCode.SERVER_FULL,
}


class SessionManager:
    """React to connection lifecycle and client events.

    Mutates the SessionStore and DiscoveryDirectory, then hands outbound
    events to the RelayDispatcher. ``lock`` must be held for the whole of
    each handler call (the MessageRouter does this) so the state change
    and its fan-out finish before the next event is looked at.
    """

    def __init__(
        self,
        store: SessionStore | None = None,
        directory: DiscoveryDirectory | None = None,
        dispatcher: RelayDispatcher | None = None,
        *,
        server_info: ServerInfoData | None = None,
        seed_factory: Callable[[], int] = generate_seed,
    ) -> None:
        self._store = store or SessionStore()
        self._directory = directory or DiscoveryDirectory()
        self._dispatcher = dispatcher or RelayDispatcher()
        self._server_info = server_info
        self._seed_factory = seed_factory
        self.lock = asyncio.Lock()

    @property
    def session_count(self) -> int:
        return self._store.session_count

    @property
    def connection_count(self) -> int:
        return self._dispatcher.connection_count

    @property
    def listed_room_count(self) -> int:
        return len(self._directory.list_entries())

    def get_session(self, session_id: str) -> Session | None:
        return self._store.get_session(session_id)

    def start(self) -> None:
        self._directory.start_sweeper()

    async def stop(self) -> None:
        await self._directory.stop_sweeper()

    # --- Connection lifecycle ---

    async def handle_connect(self, connection: ConnectionProtocol) -> None:
        self._dispatcher.register(connection)
        if self._server_info is not None:
            await self._dispatcher.send_to(
                connection.connection_id,
                server_event(ServerEventType.SERVER_INFO, self._server_info),
            )

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        connection_id = connection.connection_id
        await self._depart(connection_id)
        self._directory.remove_by_owner(connection_id)
        self._dispatcher.unregister(connection_id)

    # --- Session control ---

    async def create_room(self, connection: ConnectionProtocol, display_name: str) -> None:
        connection_id = connection.connection_id
        await self._depart(connection_id)
        try:
            session = self._store.create_session(connection_id, display_name)
        except SessionError as e:
            await self._send_error(connection_id, e)
            return

        await self._dispatcher.send_to(
            connection_id,
            server_event(
                ServerEventType.ROOM_CREATED,
                SessionRosterData(session_id=session.session_id, members=session.get_member_info()),
            ),
        )

    async def join_room(self, connection: ConnectionProtocol, session_id: str, display_name: str) -> None:
        connection_id = connection.connection_id
        try:
            self._store.ensure_joinable(session_id, connection_id)
        except SessionError as e:
            logger.info("join rejected", session_id=session_id, reason=e.reason)
            await self._send_error(connection_id, e)
            return

        # Leaving a previous session never affects the target, which was
        # checked above and is a different session.
        await self._depart(connection_id)
        session = self._store.join_session(session_id, connection_id, display_name)

        await self._dispatcher.broadcast(
            session,
            server_event(ServerEventType.PLAYER_JOINED, PlayerJoinedData(members=session.get_member_info())),
        )
        await self._dispatcher.send_to(
            connection_id,
            server_event(
                ServerEventType.ROOM_JOINED,
                SessionRosterData(session_id=session.session_id, members=session.get_member_info()),
            ),
        )

    async def request_start(
        self,
        connection: ConnectionProtocol,
        session_id: str,
        game_config: dict[str, Any],
        seed: int | str | None = None,
    ) -> None:
        """Start the game for every member, host included, with one shared seed."""
        session = self._store.authorize_host(session_id, connection.connection_id)
        if session is None:
            logger.debug("start ignored, not host", session_id=session_id, connection_id=connection.connection_id)
            return

        self._store.mark_started(session)
        if seed is None:
            seed = self._seed_factory()
        await self._dispatcher.broadcast(session, server_event(ServerEventType.GAME_START, {**game_config, "seed": seed}))

    async def request_wave(self, connection: ConnectionProtocol, session_id: str) -> None:
        await self.relay_host_action(connection, session_id, ServerEventType.FORCE_START_WAVE)

    async def request_pause(self, connection: ConnectionProtocol, session_id: str, *, is_paused: bool) -> None:
        await self.relay_host_action(
            connection,
            session_id,
            ServerEventType.FORCE_PAUSE,
            ForcePauseData(is_paused=is_paused).model_dump(by_alias=True),
        )

    async def request_restart(self, connection: ConnectionProtocol, session_id: str) -> None:
        await self.relay_host_action(connection, session_id, ServerEventType.FORCE_RESTART)

    async def relay_host_action(
        self,
        connection: ConnectionProtocol,
        session_id: str,
        event: ServerEventType,
        payload: dict[str, Any] | None = None,
    ) -> None:
        """Broadcast a host-only control event to all members; drop it silently for anyone else."""
        session = self._store.authorize_host(session_id, connection.connection_id)
        if session is None:
            logger.debug(
                "host action ignored, not host",
                session_id=session_id,
                connection_id=connection.connection_id,
                host_event=event,
            )
            return
        await self._dispatcher.broadcast(session, server_event(event, payload))

    async def relay_peer_action(
        self,
        connection: ConnectionProtocol,
        session_id: str,
        event: ServerEventType,
        payload: dict[str, Any],
    ) -> None:
        """Forward an opaque gameplay payload to every other member of the sender's session."""
        connection_id = connection.connection_id
        session = self._store.authorize_member(session_id, connection_id)
        if session is None:
            logger.debug("relay ignored, not a member", session_id=session_id, connection_id=connection_id)
            return
        await self._dispatcher.broadcast(session, server_event(event, payload), exclude_connection_id=connection_id)

    # --- Discovery ---

    async def announce_room(
        self,
        connection: ConnectionProtocol,
        session_id: str,
        host_name: str,
        *,
        is_private: bool,
        player_count: int,
        status: RoomStatus,
    ) -> None:
        self._directory.announce(
            session_id,
            connection.connection_id,
            host_name,
            is_private=is_private,
            player_count=player_count,
            status=status,
        )

    async def get_rooms(self, connection: ConnectionProtocol) -> None:
        await self._dispatcher.send_to(
            connection.connection_id,
            server_event(ServerEventType.ROOMS, RoomsData(rooms=self._directory.get_listings())),
        )

    async def ping(self, connection: ConnectionProtocol) -> None:
        await self._dispatcher.send_to(connection.connection_id, server_event(ServerEventType.PONG))

    def sweep_directory(self) -> list[str]:
        return self._directory.sweep_expired()

    # --- Internal helpers ---

    async def _depart(self, connection_id: str) -> Departure | None:
        """Remove the connection from its session and notify whoever is left."""
        departure = self._store.remove_member(connection_id)
        if departure is None:
            return None

        session = departure.session
        if departure.session_ended:
            self._directory.remove(session.session_id)

        if departure.kind == DepartureKind.HOST_LEFT:
            await self._dispatcher.broadcast(session, server_event(ServerEventType.HOST_LEFT))
        elif departure.kind == DepartureKind.PLAYER_LEFT:
            await self._dispatcher.broadcast(
                session,
                server_event(ServerEventType.PLAYER_LEFT, PlayerLeftData(connection_id=connection_id)),
            )
            # An in-progress game keeps its own player UI; only lobbies get the refreshed roster.
            if not session.started:
                await self._dispatcher.broadcast(
                    session,
                    server_event(ServerEventType.PLAYER_JOINED, PlayerJoinedData(members=session.get_member_info())),
                )
        return departure

    async def _send_error(self, connection_id: str, error: SessionError) -> None:
        code = _ERROR_CODES.get(type(error), SessionErrorCode.UNJOINABLE)
        await self._dispatcher.send_to(connection_id, error_event(code, error.reason))

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from relay.messaging.types import (
    AnnounceRoomMessage,
    CreateRoomMessage,
    GameActionMessage,
    GameStateUpdateMessage,
    GetRoomsMessage,
    JoinRoomMessage,
    PingMessage,
    RequestPauseMessage,
    RequestRestartMessage,
    RequestStartMessage,
    RequestWaveMessage,
    ServerEventType,
    SessionErrorCode,
    error_event,
    parse_client_message,
)

if TYPE_CHECKING:
    from relay.messaging.protocol import ConnectionProtocol
    from relay.session.manager import SessionManager

logger = logging.getLogger(__name__)

_PEER_EVENTS: dict[type, ServerEventType] = {
    GameActionMessage: ServerEventType.REMOTE_ACTION,
    GameStateUpdateMessage: ServerEventType.FORCE_GAME_STATE,
}


class MessageRouter:
    """
    Routes incoming messages to the session manager.

    Every handler runs under the session manager's lock, so events are
    applied (and their fan-out sent) one at a time in arrival order.
    """

    def __init__(self, session_manager: SessionManager) -> None:
        self._session_manager = session_manager

    async def handle_connect(self, connection: ConnectionProtocol) -> None:
        async with self._session_manager.lock:
            await self._session_manager.handle_connect(connection)

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        async with self._session_manager.lock:
            await self._session_manager.handle_disconnect(connection)

    async def handle_message(
        self,
        connection: ConnectionProtocol,
        raw_message: dict[str, Any],
    ) -> None:
        try:
            message = parse_client_message(raw_message)
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning("invalid message from %s: %s", connection.connection_id, e)
            await connection.send_message(error_event(SessionErrorCode.INVALID_MESSAGE, "Invalid message"))
            return

        async with self._session_manager.lock:
            await self._route(connection, message)

    async def _route(self, connection: ConnectionProtocol, message: Any) -> None:  # noqa: PLR0912
        manager = self._session_manager
        if isinstance(message, CreateRoomMessage):
            await manager.create_room(connection, message.data.display_name)
        elif isinstance(message, JoinRoomMessage):
            await manager.join_room(connection, message.data.session_id, message.data.display_name)
        elif isinstance(message, RequestStartMessage):
            await manager.request_start(
                connection,
                message.data.session_id,
                message.data.opaque,
                seed=message.data.seed,
            )
        elif isinstance(message, RequestWaveMessage):
            await manager.request_wave(connection, message.data.session_id)
        elif isinstance(message, RequestPauseMessage):
            await manager.request_pause(connection, message.data.session_id, is_paused=message.data.is_paused)
        elif isinstance(message, RequestRestartMessage):
            await manager.request_restart(connection, message.data.session_id)
        elif isinstance(message, (GameActionMessage, GameStateUpdateMessage)):
            await manager.relay_peer_action(
                connection,
                message.data.session_id,
                _PEER_EVENTS[type(message)],
                message.data.opaque,
            )
        elif isinstance(message, AnnounceRoomMessage):
            data = message.data
            await manager.announce_room(
                connection,
                data.session_id,
                data.host_name,
                is_private=data.is_private,
                player_count=data.player_count,
                status=data.status,
            )
        elif isinstance(message, GetRoomsMessage):
            await manager.get_rooms(connection)
        elif isinstance(message, PingMessage):
            await manager.ping(connection)

"""Fan-out of outbound events to live connections."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from relay.messaging.encoder import EncodeError

if TYPE_CHECKING:
    from relay.messaging.protocol import ConnectionProtocol
    from relay.session.models import Session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectionTarget:
    """Deliver to a single connection."""

    connection_id: str


@dataclass(frozen=True)
class SessionTarget:
    """Deliver to the members of a session, optionally skipping the sender.

    The member list is captured when the target is built, so a session that
    has just been deleted can still be notified.
    """

    session_id: str
    connection_ids: tuple[str, ...]
    exclude_connection_id: str | None = None

    @classmethod
    def of(cls, session: Session, exclude_connection_id: str | None = None) -> SessionTarget:
        return cls(
            session_id=session.session_id,
            connection_ids=tuple(session.connection_ids),
            exclude_connection_id=exclude_connection_id,
        )

    @property
    def recipients(self) -> list[str]:
        return [c for c in self.connection_ids if c != self.exclude_connection_id]


DeliveryTarget = ConnectionTarget | SessionTarget


class RelayDispatcher:
    """Resolve delivery targets to registered connections and send to each.

    No business logic lives here. Sends are fire-and-forget: a failing
    socket is skipped so the rest of the fan-out still goes out.
    """

    def __init__(self) -> None:
        self._connections: dict[str, ConnectionProtocol] = {}

    def register(self, connection: ConnectionProtocol) -> None:
        self._connections[connection.connection_id] = connection

    def unregister(self, connection_id: str) -> None:
        self._connections.pop(connection_id, None)

    def is_registered(self, connection_id: str) -> bool:
        return connection_id in self._connections

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def dispatch(self, target: DeliveryTarget, message: dict[str, Any]) -> int:
        """Deliver a message to every connection the target names. Return the number delivered."""
        if isinstance(target, ConnectionTarget):
            recipients = [target.connection_id]
        else:
            recipients = target.recipients

        delivered = 0
        for connection_id in recipients:
            if await self._send(connection_id, message):
                delivered += 1
        return delivered

    async def send_to(self, connection_id: str, message: dict[str, Any]) -> bool:
        return await self.dispatch(ConnectionTarget(connection_id), message) == 1

    async def broadcast(
        self,
        session: Session,
        message: dict[str, Any],
        exclude_connection_id: str | None = None,
    ) -> int:
        return await self.dispatch(SessionTarget.of(session, exclude_connection_id), message)

    async def _send(self, connection_id: str, message: dict[str, Any]) -> bool:
        connection = self._connections.get(connection_id)
        if connection is None:
            logger.debug("no live connection for %s, dropping %s", connection_id, message.get("event"))
            return False
        try:
            await connection.send_message(message)
        except EncodeError as e:
            logger.warning("cannot encode %s for %s: %s", message.get("event"), connection_id, e)
            return False
        except (RuntimeError, OSError):
            return False
        return True

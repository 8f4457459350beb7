"""Abstract connection protocol shared by the WebSocket transport and tests."""

from abc import ABC, abstractmethod
from typing import Any

from relay.messaging.encoder import WireFormat, decode, encode, frame_format


class ConnectionProtocol(ABC):
    """
    Abstract interface for a client connection.

    Lets the session layer deliver events without a live WebSocket.
    Outbound messages are encoded in ``wire_format``, which follows the
    format of the most recent inbound frame.
    """

    wire_format: WireFormat = WireFormat.JSON

    @property
    @abstractmethod
    def connection_id(self) -> str:
        """Opaque identifier assigned when the connection was accepted."""
        ...

    @abstractmethod
    async def send_frame(self, frame: str | bytes) -> None:
        """
        Send one encoded frame to the client.
        """
        ...

    @abstractmethod
    async def receive_frame(self) -> str | bytes:
        """
        Receive one raw frame from the client.
        """
        ...

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None:
        """
        Close the connection.
        """
        ...

    async def send_message(self, data: dict[str, Any]) -> None:
        await self.send_frame(encode(data, self.wire_format))

    async def receive_message(self) -> dict[str, Any]:
        """
        Receive and decode one frame, switching replies to its format.
        """
        frame = await self.receive_frame()
        self.wire_format = frame_format(frame)
        return decode(frame)

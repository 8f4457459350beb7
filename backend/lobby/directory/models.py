"""Directory entry models for the lobby room browser."""

from dataclasses import dataclass
from enum import StrEnum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class RoomStatus(StrEnum):
    WAITING = "waiting"
    PLAYING = "playing"


@dataclass
class DirectoryEntry:
    """Self-reported summary of a session, as last announced by its host.

    Not derived from the session store: player_count is whatever the host
    claimed on its latest announce and may lag the real roster.
    """

    session_id: str
    owner_connection_id: str
    host_name: str
    is_private: bool
    player_count: int
    status: RoomStatus
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return self.expires_at <= now


class RoomListing(BaseModel):
    """Room entry for `rooms` replies (sent over WebSocket)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    session_id: str
    host_name: str
    is_private: bool
    player_count: int
    status: RoomStatus

"""Session (room) models for the relay server."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import StrEnum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

MAX_MEMBERS = 4


class MemberRole(StrEnum):
    HOST = "host"
    JOINER = "joiner"


class MemberInfo(BaseModel):
    """Member entry for roster messages (sent over WebSocket)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    connection_id: str
    display_name: str
    role: MemberRole


@dataclass
class Member:
    connection_id: str
    display_name: str
    role: MemberRole = MemberRole.JOINER

    @property
    def is_host(self) -> bool:
        return self.role == MemberRole.HOST


@dataclass
class Session:
    """One game lobby/match, hosted by the connection that created it.

    Members are kept in join order; the host is always the first entry
    and is the only member with the host role. A session never outlives
    its host: the store deletes it as soon as the host departs or the
    roster becomes empty.
    """

    session_id: str
    host_connection_id: str
    members: list[Member] = field(default_factory=list)
    started: bool = False
    created_at: float = field(default_factory=time.time)

    @property
    def member_count(self) -> int:
        return len(self.members)

    @property
    def is_empty(self) -> bool:
        return not self.members

    @property
    def is_full(self) -> bool:
        return self.member_count >= MAX_MEMBERS

    @property
    def connection_ids(self) -> list[str]:
        return [m.connection_id for m in self.members]

    def find_member(self, connection_id: str) -> Member | None:
        for member in self.members:
            if member.connection_id == connection_id:
                return member
        return None

    def has_member(self, connection_id: str) -> bool:
        return self.find_member(connection_id) is not None

    def is_host(self, connection_id: str) -> bool:
        return connection_id == self.host_connection_id

    def get_member_info(self) -> list[MemberInfo]:
        """Return the roster in join order."""
        return [
            MemberInfo(connection_id=m.connection_id, display_name=m.display_name, role=m.role)
            for m in self.members
        ]


class DepartureKind(StrEnum):
    SESSION_EMPTIED = "session_emptied"
    HOST_LEFT = "host_left"
    PLAYER_LEFT = "player_left"


@dataclass(frozen=True)
class Departure:
    """Result of removing a connection from its session.

    For SESSION_EMPTIED and HOST_LEFT the session has already been deleted
    from the store; ``session.members`` still lists whoever remained so the
    caller can notify them.
    """

    session: Session
    member: Member
    kind: DepartureKind

    @property
    def session_ended(self) -> bool:
        return self.kind != DepartureKind.PLAYER_LEFT

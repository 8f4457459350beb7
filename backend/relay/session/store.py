"""Authoritative record of active sessions and their membership."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from relay.session.exceptions import ServerFullError, SessionNotFoundError, SessionUnjoinableError
from relay.session.identifiers import generate_session_id
from relay.session.models import Departure, DepartureKind, Member, MemberRole, Session

if TYPE_CHECKING:
    from collections.abc import Callable

logger = structlog.get_logger()


class SessionStore:
    """Own every active Session and the connection -> session index.

    Purely state management, no WebSocket I/O: the SessionManager calls
    these methods and delivers the resulting events. A connection belongs
    to at most one session; create/join refuse a connection that is still
    indexed elsewhere, so callers must remove it from its old session first.
    """

    def __init__(
        self,
        id_factory: Callable[[], str] = generate_session_id,
        max_sessions: int | None = None,
    ) -> None:
        self._sessions: dict[str, Session] = {}
        self._member_sessions: dict[str, str] = {}  # connection_id -> session_id
        self._id_factory = id_factory
        self._max_sessions = max_sessions

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def get_session(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def session_of(self, connection_id: str) -> Session | None:
        """Return the session the connection currently belongs to, if any."""
        session_id = self._member_sessions.get(connection_id)
        if session_id is None:
            return None
        return self._sessions.get(session_id)

    def create_session(self, host_connection_id: str, host_name: str) -> Session:
        """Create a session with the caller as its only member and host."""
        self._ensure_unassigned(host_connection_id)
        if self._max_sessions is not None and len(self._sessions) >= self._max_sessions:
            raise ServerFullError

        session_id = self._id_factory()
        if session_id in self._sessions:
            # Known risk of the short code space; the newer session wins.
            logger.warning("session id collision, replacing active session", session_id=session_id)

        session = Session(
            session_id=session_id,
            host_connection_id=host_connection_id,
            members=[Member(connection_id=host_connection_id, display_name=host_name, role=MemberRole.HOST)],
        )
        self._sessions[session_id] = session
        self._member_sessions[host_connection_id] = session_id
        logger.info("session created", session_id=session_id, host_connection_id=host_connection_id)
        return session

    def ensure_joinable(self, session_id: str, connection_id: str) -> Session:
        """Raise SessionNotFoundError / SessionUnjoinableError if a join would fail."""
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError
        if session.has_member(connection_id):
            raise SessionUnjoinableError("You are already in this room!")
        if session.started:
            raise SessionUnjoinableError("Game already started!")
        if session.is_full:
            raise SessionUnjoinableError("Room is full!")
        return session

    def join_session(self, session_id: str, connection_id: str, display_name: str) -> Session:
        """Append the connection as a joiner. Return the session with its updated roster."""
        session = self.ensure_joinable(session_id, connection_id)
        self._ensure_unassigned(connection_id)

        session.members.append(Member(connection_id=connection_id, display_name=display_name))
        self._member_sessions[connection_id] = session_id
        logger.info("player joined session", session_id=session_id, player_count=session.member_count)
        return session

    def authorize_host(self, session_id: str, connection_id: str) -> Session | None:
        """Return the session if the connection hosts it, None otherwise.

        Non-host requests are not errors: callers drop them without replying.
        """
        session = self._sessions.get(session_id)
        if session is None or not session.is_host(connection_id):
            return None
        return session

    def authorize_member(self, session_id: str, connection_id: str) -> Session | None:
        """Return the session if the connection is one of its members, None otherwise."""
        session = self._sessions.get(session_id)
        if session is None or not session.has_member(connection_id):
            return None
        return session

    def mark_started(self, session: Session) -> None:
        session.started = True
        logger.info("session started", session_id=session.session_id, player_count=session.member_count)

    def remove_member(self, connection_id: str) -> Departure | None:
        """Remove a connection from its session and settle the session's fate.

        The session is deleted in the same step if the roster becomes empty
        or the departing member was the host. Returns None if the connection
        was not in a session.
        """
        session_id = self._member_sessions.pop(connection_id, None)
        if session_id is None:
            return None
        session = self._sessions.get(session_id)
        if session is None:
            return None
        member = session.find_member(connection_id)
        if member is None:
            # Index pointed at a session that replaced ours after an id collision.
            return None

        session.members.remove(member)

        if session.is_empty:
            kind = DepartureKind.SESSION_EMPTIED
        elif member.is_host:
            kind = DepartureKind.HOST_LEFT
        else:
            kind = DepartureKind.PLAYER_LEFT

        if kind != DepartureKind.PLAYER_LEFT:
            self._delete_session(session)

        logger.info(
            "player left session",
            session_id=session_id,
            connection_id=connection_id,
            outcome=kind,
            player_count=session.member_count,
        )
        return Departure(session=session, member=member, kind=kind)

    def _delete_session(self, session: Session) -> None:
        if self._sessions.get(session.session_id) is session:
            del self._sessions[session.session_id]
        for connection_id in session.connection_ids:
            if self._member_sessions.get(connection_id) == session.session_id:
                del self._member_sessions[connection_id]
        logger.info("session ended", session_id=session.session_id)

    def _ensure_unassigned(self, connection_id: str) -> None:
        current = self._member_sessions.get(connection_id)
        if current is not None:
            raise ValueError(f"connection {connection_id} already belongs to session {current}")

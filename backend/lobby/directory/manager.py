"""Discovery directory: the TTL-expiring list of sessions open to browse."""

from __future__ import annotations

import asyncio
import contextlib
import time
from typing import TYPE_CHECKING

import structlog

from lobby.directory.models import DirectoryEntry, RoomListing, RoomStatus

if TYPE_CHECKING:
    from collections.abc import Callable

logger = structlog.get_logger()

DEFAULT_ENTRY_TTL_SECONDS = 40  # hosts re-announce every 15s, so two missed heartbeats are tolerated
DEFAULT_SWEEP_INTERVAL_SECONDS = 20


class DiscoveryDirectory:
    """Cache of host-announced session summaries keyed by session id.

    Entries live until they expire, are announced as playing, or their
    owner disconnects. The periodic sweep is the only cleanup for hosts
    that vanish without a disconnect notification.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_ENTRY_TTL_SECONDS,
        sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: dict[str, DirectoryEntry] = {}
        self._ttl_seconds = ttl_seconds
        self._sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._sweeper_task: asyncio.Task[None] | None = None

    @property
    def entry_count(self) -> int:
        return len(self._entries)

    def get_entry(self, session_id: str) -> DirectoryEntry | None:
        return self._entries.get(session_id)

    def announce(
        self,
        session_id: str,
        owner_connection_id: str,
        host_name: str,
        *,
        is_private: bool,
        player_count: int,
        status: RoomStatus,
    ) -> DirectoryEntry | None:
        """Upsert the entry for a session, or drop it once the session is playing.

        Returns the stored entry, or None when the announce removed it.
        """
        if status == RoomStatus.PLAYING:
            if self._entries.pop(session_id, None) is not None:
                logger.info("room delisted", session_id=session_id, reason="playing")
            return None

        is_new = session_id not in self._entries
        entry = DirectoryEntry(
            session_id=session_id,
            owner_connection_id=owner_connection_id,
            host_name=host_name,
            is_private=is_private,
            player_count=player_count,
            status=status,
            expires_at=self._clock() + self._ttl_seconds,
        )
        self._entries[session_id] = entry
        if is_new:
            logger.info("room listed", session_id=session_id, is_private=is_private, player_count=player_count)
        return entry

    def list_entries(self) -> list[DirectoryEntry]:
        """Return every entry that is not playing, in no particular order."""
        return [e for e in self._entries.values() if e.status != RoomStatus.PLAYING]

    def get_listings(self) -> list[RoomListing]:
        return [
            RoomListing(
                session_id=e.session_id,
                host_name=e.host_name,
                is_private=e.is_private,
                player_count=e.player_count,
                status=e.status,
            )
            for e in self.list_entries()
        ]

    def remove(self, session_id: str) -> bool:
        return self._entries.pop(session_id, None) is not None

    def remove_by_owner(self, connection_id: str) -> list[str]:
        """Retract every entry announced by a connection. Return the removed session ids."""
        removed = [sid for sid, e in self._entries.items() if e.owner_connection_id == connection_id]
        for session_id in removed:
            del self._entries[session_id]
        if removed:
            logger.info("rooms delisted", session_ids=removed, reason="owner_left")
        return removed

    def sweep_expired(self) -> list[str]:
        """Drop entries whose TTL has elapsed. Return the removed session ids."""
        now = self._clock()
        expired = [sid for sid, e in self._entries.items() if e.is_expired(now)]
        for session_id in expired:
            del self._entries[session_id]
        if expired:
            logger.info("rooms expired", session_ids=expired, remaining=len(self._entries))
        return expired

    # --- Sweeper ---

    def start_sweeper(self) -> None:
        """Start the periodic sweep task. Idempotent."""
        if self._sweeper_task is not None and not self._sweeper_task.done():
            return
        self._sweeper_task = asyncio.create_task(self._sweeper_loop())

    async def stop_sweeper(self) -> None:
        if self._sweeper_task is not None:
            self._sweeper_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper_task
            self._sweeper_task = None

    async def _sweeper_loop(self) -> None:  # pragma: no cover
        while True:
            await asyncio.sleep(self._sweep_interval_seconds)
            try:
                self.sweep_expired()
            except Exception:
                logger.exception("directory sweep failed")

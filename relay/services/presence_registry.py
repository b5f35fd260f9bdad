"""In-memory presence registry: username -> active sessions.

The registry is a plain owned object with no locking of its own. Callers
(the presence hub) serialise access so each event is fully applied before
the next one starts.

Invariants:
- a username is a key iff it has at least one session;
- connection ids are unique within one username's session list;
- ``user_count`` is the number of keys.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from relay.exceptions import RegistryInvariantError
from relay.services.validation import DEFAULT_MAX_LENGTH, validate_text

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Session:
    """One authenticated connection under a username."""

    connection_id: str
    full_name: str
    source_url: str | None = None
    client_agent: str | None = None
    login_time: datetime = field(default_factory=utc_now)
    last_seen: datetime = field(default_factory=utc_now)
    online: bool = True
    status: str | None = None


@dataclass(frozen=True)
class SessionView:
    """Read-only copy of a session for roster publishing."""

    connection_id: str
    login_time: datetime
    last_seen: datetime
    source_url: str | None
    client_agent: str | None
    online: bool
    status: str | None

    def to_dict(self) -> dict:
        return {
            "id": self.connection_id,
            "loginTime": self.login_time.isoformat(),
            "lastSeen": self.last_seen.isoformat(),
            "url": self.source_url,
            "userAgent": self.client_agent,
            "online": self.online,
            "status": self.status,
        }


@dataclass(frozen=True)
class RosterEntry:
    """One username in a registry snapshot."""

    username: str
    full_name: str
    sessions: tuple[SessionView, ...]

    def to_dict(self) -> dict:
        return {
            "id": self.username,
            "username": self.username,
            "fullName": self.full_name,
            "sessions": [session.to_dict() for session in self.sessions],
        }


class PresenceRegistry:
    """Maps usernames to the ordered list of their sessions."""

    def __init__(self, *, max_username_length: int = DEFAULT_MAX_LENGTH) -> None:
        self._sessions: dict[str, list[Session]] = {}
        self._max_username_length = max_username_length

    def __contains__(self, username: object) -> bool:
        return username in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    @property
    def user_count(self) -> int:
        """Number of usernames currently present."""
        return len(self._sessions)

    def sessions_for(self, username: str) -> list[Session]:
        """Return a shallow copy of *username*'s sessions (empty if absent)."""
        return list(self._sessions.get(username, ()))

    # -- Mutations ----------------------------------------------------------

    def register(self, username: str, session: Session) -> str:
        """Add *session* under *username*, creating the key if needed.

        Returns the trimmed username actually used as the key. A session
        whose connection id is already listed under the username replaces
        that entry in place.
        """
        username = validate_text(username, field="username", max_length=self._max_username_length)
        sessions = self._sessions.setdefault(username, [])
        for index, existing in enumerate(sessions):
            if existing.connection_id == session.connection_id:
                logger.warning(
                    "Connection %s registered twice under %s; replacing entry",
                    session.connection_id,
                    username,
                )
                sessions[index] = session
                break
        else:
            sessions.append(session)
        return username

    def mark_offline(self, connection_id: str) -> str | None:
        """Flag the session for *connection_id* offline.

        Returns the owning username, or None when no session matches.
        """
        for username, sessions in self._sessions.items():
            for session in sessions:
                if session.connection_id == connection_id:
                    session.online = False
                    session.last_seen = utc_now()
                    return username
        return None

    def touch(self, username: str, connection_id: str, *, status: str | None = None) -> bool:
        """Refresh ``last_seen`` (and optionally ``status``) of one session."""
        for session in self._sessions.get(username, ()):
            if session.connection_id == connection_id:
                session.last_seen = utc_now()
                if status is not None:
                    session.status = status or None
                return True
        return False

    def prune_offline(self, username: str) -> int:
        """Drop offline sessions of a username that still has active ones."""
        if not self.has_active_sessions(username):
            raise RegistryInvariantError(f"cannot prune {username!r}: no active sessions remain")
        sessions = self._sessions[username]
        kept = [session for session in sessions if session.online]
        removed = len(sessions) - len(kept)
        self._sessions[username] = kept
        return removed

    def evict(self, username: str) -> None:
        """Remove *username* entirely. Only valid once no session is online."""
        if self.has_active_sessions(username):
            raise RegistryInvariantError(f"cannot evict {username!r}: sessions still online")
        self._sessions.pop(username, None)

    # -- Queries ------------------------------------------------------------

    def has_active_sessions(self, username: str) -> bool:
        return any(session.online for session in self._sessions.get(username, ()))

    def online_connection_ids(self, username: str) -> list[str]:
        return [s.connection_id for s in self._sessions.get(username, ()) if s.online]

    def snapshot(self) -> tuple[RosterEntry, ...]:
        """Immutable view of every username and its sessions, in insertion order."""
        return tuple(
            RosterEntry(
                username=username,
                full_name=sessions[0].full_name,
                sessions=tuple(
                    SessionView(
                        connection_id=s.connection_id,
                        login_time=s.login_time,
                        last_seen=s.last_seen,
                        source_url=s.source_url,
                        client_agent=s.client_agent,
                        online=s.online,
                        status=s.status,
                    )
                    for s in sessions
                ),
            )
            for username, sessions in self._sessions.items()
        )

    def check_invariants(self) -> None:
        """Raise ``RegistryInvariantError`` if the mapping is inconsistent."""
        for username, sessions in self._sessions.items():
            if not sessions:
                raise RegistryInvariantError(f"username {username!r} maps to an empty session list")
            ids = [session.connection_id for session in sessions]
            if len(ids) != len(set(ids)):
                raise RegistryInvariantError(f"duplicate connection id under {username!r}")

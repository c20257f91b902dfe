"""Session records and the registry of live sessions."""
from __future__ import annotations

import dataclasses
import datetime
import logging
import random
import string
from typing import Callable

from rendezvous.exceptions import SessionFullError
from rendezvous.exceptions import SessionNotFoundError

logger = logging.getLogger(__name__)

SESSION_CODE_ALPHABET = string.digits + string.ascii_uppercase
"""Characters session codes are drawn from."""
SESSION_CODE_LENGTH = 6
"""Number of characters in a session code."""
MAX_SESSION_MEMBERS = 2
"""Maximum number of clients in one session."""


def _utc_current_time() -> datetime.datetime:
    return datetime.datetime.now(tz=datetime.timezone.utc)


def generate_session_code() -> str:
    """Generate a random human shareable session code.

    Codes are not checked for uniqueness against live sessions.
    """
    return ''.join(
        random.choices(SESSION_CODE_ALPHABET, k=SESSION_CODE_LENGTH),
    )


@dataclasses.dataclass
class Session:
    """Pairing session between a host and at most one guest.

    Attributes:
        code: Session code used as the registry key.
        host_id: Identifier of the client that created the session.
        members: Identifiers of the clients in the session. The host is
            always the first member.
        created: Time the session was created.
    """

    code: str
    host_id: str
    members: list[str] = dataclasses.field(default_factory=list)
    created: datetime.datetime = dataclasses.field(
        default_factory=_utc_current_time,
    )

    @property
    def full(self) -> bool:
        """Session has reached the maximum number of members."""
        return len(self.members) >= MAX_SESSION_MEMBERS

    def age(self, now: datetime.datetime | None = None) -> float:
        """Seconds since the session was created."""
        now = _utc_current_time() if now is None else now
        return (now - self.created).total_seconds()


class SessionManager:
    """Registry of live sessions keyed by session code.

    Warning:
        This class is intended for internal use by the
        [`SignalingServer`][rendezvous.server.SignalingServer].
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, code: object) -> bool:
        return code in self._sessions

    def create_session(self, code: str, host_id: str) -> Session:
        """Create a session with the host as the only member.

        An existing session with the same code is replaced.
        """
        if code in self._sessions:
            logger.warning(
                f'Session code {code} collided with a live session which '
                'will be replaced',
            )
        session = Session(code=code, host_id=host_id, members=[host_id])
        self._sessions[code] = session
        return session

    def join_session(self, code: str, client_id: str) -> str:
        """Add a client to an existing session.

        Returns:
            Identifier of the session host.

        Raises:
            SessionNotFoundError: If no session has the code.
            SessionFullError: If the session already has the maximum
                number of members. The session is not modified.
        """
        session = self._sessions.get(code, None)
        if session is None:
            raise SessionNotFoundError(f'Session {code} does not exist.')
        if session.full:
            raise SessionFullError()
        session.members.append(client_id)
        return session.host_id

    def get_sessions(self) -> list[Session]:
        """Get a list of all sessions."""
        return list(self._sessions.values())

    def get_session(self, code: str) -> Session | None:
        """Get a session by code."""
        return self._sessions.get(code, None)

    def remove_member(self, code: str, client_id: str) -> Session | None:
        """Remove a client from a session's members.

        Returns:
            The session after removal or `None` if no session has the code.
        """
        session = self._sessions.get(code, None)
        if session is not None:
            session.members = [m for m in session.members if m != client_id]
        return session

    def remove_session(self, code: str) -> Session | None:
        """Remove a session."""
        return self._sessions.pop(code, None)

    def sweep(self, predicate: Callable[[Session], bool]) -> list[str]:
        """Remove every session matching the predicate.

        Returns:
            Codes of the removed sessions.
        """
        evict = [
            code
            for code, session in self._sessions.items()
            if predicate(session)
        ]
        for code in evict:
            del self._sessions[code]
        return evict

"""Exception types raised by the signaling server."""
from __future__ import annotations


class SignalingServerError(Exception):
    """Base exception type for exceptions raised by the signaling server."""

    pass


class ClientNotFoundError(SignalingServerError):
    """Client identifier is not registered with the server."""

    pass


class ClientNotInSessionError(SignalingServerError):
    """Client is registered but is not a member of any session."""

    pass


class SessionNotFoundError(SignalingServerError):
    """Session code does not map to a live session."""

    pass


class SessionFullError(SignalingServerError):
    """Session already has the maximum number of members.

    This is the only error reported back to the requesting client. The
    string form of the exception is used as the error message.
    """

    def __init__(self, message: str = 'Session full') -> None:
        super().__init__(message)

"""Message types for signaling client and signaling server communication.

Every message on the wire is a JSON object with a `"type"` discriminant.
Messages sent by clients are subtypes of
[`SignalMessage`][rendezvous.messages.SignalMessage] and messages sent by
the server are subtypes of
[`ResponseMessage`][rendezvous.messages.ResponseMessage].
"""
from __future__ import annotations

import dataclasses
import enum
import json
import keyword
from typing import Any
from typing import ClassVar


class SignalMessageType(enum.Enum):
    """Types of messages sent by clients."""

    create_session = 'create-session'
    """Create a new session hosted by the sender."""
    join_session = 'join-session'
    """Join an existing session by code."""
    webrtc_offer = 'webrtc-offer'
    """WebRTC session description offer."""
    webrtc_answer = 'webrtc-answer'
    """WebRTC session description answer."""
    ice_candidate = 'ice-candidate'
    """ICE candidate."""


class ResponseMessageType(enum.Enum):
    """Types of messages sent by the server."""

    connected = 'connected'
    session_created = 'session-created'
    session_joined = 'session-joined'
    client_joined = 'client-joined'
    peer_disconnected = 'peer-disconnected'
    webrtc_offer = 'webrtc-offer'
    webrtc_answer = 'webrtc-answer'
    ice_candidate = 'ice-candidate'
    error = 'error'


@dataclasses.dataclass
class SignalMessage:
    """Base message sent by a client."""

    message_type: ClassVar[SignalMessageType]


@dataclasses.dataclass
class CreateSession(SignalMessage):
    """Request to create a new session with the sender as host."""

    message_type = SignalMessageType.create_session


@dataclasses.dataclass
class JoinSession(SignalMessage):
    """Request to join an existing session.

    Attributes:
        session_code: Code of the session to join.
    """

    session_code: str
    message_type = SignalMessageType.join_session


@dataclasses.dataclass
class WebRTCOffer(SignalMessage):
    """Session description offer to forward to the peer.

    Attributes:
        sdp: Opaque session description.
    """

    sdp: str
    message_type = SignalMessageType.webrtc_offer


@dataclasses.dataclass
class WebRTCAnswer(SignalMessage):
    """Session description answer to forward to the peer.

    Attributes:
        sdp: Opaque session description.
    """

    sdp: str
    message_type = SignalMessageType.webrtc_answer


@dataclasses.dataclass
class IceCandidate(SignalMessage):
    """ICE candidate to forward to the peer.

    Attributes:
        candidate: Opaque ICE candidate.
    """

    candidate: str
    message_type = SignalMessageType.ice_candidate


@dataclasses.dataclass
class ResponseMessage:
    """Base message sent by the server."""

    message_type: ClassVar[ResponseMessageType]


@dataclasses.dataclass
class Connected(ResponseMessage):
    """First message sent to a client after the connection opens.

    Attributes:
        client_id: Identifier assigned to the client by the server.
    """

    client_id: str
    message_type = ResponseMessageType.connected


@dataclasses.dataclass
class SessionCreated(ResponseMessage):
    """Reply to the host after a session was created.

    Attributes:
        session_code: Code peers use to join the session.
        role: Always `#!python 'host'`.
    """

    session_code: str
    role: str = 'host'
    message_type = ResponseMessageType.session_created


@dataclasses.dataclass
class SessionJoined(ResponseMessage):
    """Reply to the guest after it joined a session.

    Attributes:
        session_code: Code of the joined session.
        host_id: Client identifier of the session host.
        role: Always `#!python 'client'`.
    """

    session_code: str
    host_id: str
    role: str = 'client'
    message_type = ResponseMessageType.session_joined


@dataclasses.dataclass
class ClientJoined(ResponseMessage):
    """Notification to the host that a guest joined."""

    client_id: str
    message_type = ResponseMessageType.client_joined


@dataclasses.dataclass
class PeerDisconnected(ResponseMessage):
    """Notification to remaining members that a member disconnected."""

    client_id: str
    message_type = ResponseMessageType.peer_disconnected


@dataclasses.dataclass
class PeerOffer(ResponseMessage):
    """Offer forwarded from `from_` to the receiving peer."""

    sdp: str
    from_: str
    message_type = ResponseMessageType.webrtc_offer


@dataclasses.dataclass
class PeerAnswer(ResponseMessage):
    """Answer forwarded from `from_` to the receiving peer."""

    sdp: str
    from_: str
    message_type = ResponseMessageType.webrtc_answer


@dataclasses.dataclass
class PeerIceCandidate(ResponseMessage):
    """ICE candidate forwarded from `from_` to the receiving peer."""

    candidate: str
    from_: str
    message_type = ResponseMessageType.ice_candidate


@dataclasses.dataclass
class ErrorResponse(ResponseMessage):
    """User facing error.

    Attributes:
        message: Human readable error message.
    """

    message: str
    message_type = ResponseMessageType.error


_SIGNAL_MESSAGES: dict[str, type[SignalMessage]] = {
    cls.message_type.value: cls
    for cls in (
        CreateSession,
        JoinSession,
        WebRTCOffer,
        WebRTCAnswer,
        IceCandidate,
    )
}


class SignalMessageError(Exception):
    """Base exception type for signaling messages."""

    pass


class SignalMessageDecodeError(SignalMessageError):
    """Exception raised when a message cannot be decoded."""

    pass


class SignalMessageEncodeError(SignalMessageError):
    """Exception raised when a message cannot be encoded."""

    pass


def snake_to_camel(data: dict[str, Any]) -> dict[str, Any]:
    """Convert snake case keys to the camel case keys used on the wire.

    A trailing underscore, used to avoid shadowing Python keywords, is
    stripped (e.g., `from_` becomes `from`).

    Returns:
        Shallow copy of the input dictionary with converted keys.
    """
    converted = {}
    for key, value in data.items():
        head, *rest = key.rstrip('_').split('_')
        converted[head + ''.join(part.title() for part in rest)] = value
    return converted


def camel_to_snake(data: dict[str, Any]) -> dict[str, Any]:
    """Convert camel case wire keys to snake case attribute names.

    The inverse operation of
    [snake_to_camel()][rendezvous.messages.snake_to_camel].

    Returns:
        Shallow copy of the input dictionary with converted keys.
    """
    converted = {}
    for key, value in data.items():
        name = ''.join(f'_{c.lower()}' if c.isupper() else c for c in key)
        if keyword.iskeyword(name):
            name = f'{name}_'
        converted[name] = value
    return converted


def decode_signal_message(message: str) -> SignalMessage:
    """Decode JSON string into the correct signal message type.

    Unknown keys are ignored. Every field of the message type must be
    present and be a string.

    Args:
        message: JSON string to decode.

    Returns:
        Parsed message.

    Raises:
        SignalMessageDecodeError: If the message cannot be decoded.
    """
    try:
        data = json.loads(message)
    except json.JSONDecodeError as e:
        raise SignalMessageDecodeError('Failed to load string as JSON.') from e

    if not isinstance(data, dict):
        raise SignalMessageDecodeError(
            f'Expected a JSON object but got {type(data).__name__}.',
        )

    try:
        message_type_name = data.pop('type')
    except KeyError as e:
        raise SignalMessageDecodeError(
            'Message does not contain a type key.',
        ) from e

    try:
        message_type = _SIGNAL_MESSAGES[message_type_name]
    except (KeyError, TypeError) as e:
        raise SignalMessageDecodeError(
            f'The message is of an unknown message type: {message_type_name}.',
        ) from e

    data = camel_to_snake(data)
    kwargs = {}
    for field in dataclasses.fields(message_type):
        try:
            value = data[field.name]
        except KeyError as e:
            raise SignalMessageDecodeError(
                f'Failed to convert message to {message_type.__name__}: '
                f'missing field {field.name}.',
            ) from e
        if not isinstance(value, str):
            raise SignalMessageDecodeError(
                f'Failed to convert message to {message_type.__name__}: '
                f'field {field.name} must be a string.',
            )
        kwargs[field.name] = value

    return message_type(**kwargs)


def encode_response_message(message: ResponseMessage) -> str:
    """Encode message as JSON string.

    Args:
        message: Message to JSON encode.

    Raises:
        SignalMessageEncodeError: If the message cannot be JSON encoded.
    """
    if not isinstance(message, ResponseMessage):
        raise SignalMessageEncodeError(
            f'Message is not an instance of {ResponseMessage.__name__}. '
            f'Got {type(message).__name__}.',
        )

    data = {'type': message.message_type.value}
    data.update(snake_to_camel(dataclasses.asdict(message)))

    try:
        return json.dumps(data)
    except TypeError as e:
        raise SignalMessageEncodeError('Error encoding message.') from e

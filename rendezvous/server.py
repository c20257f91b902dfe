"""Signaling server implementation for pairing WebRTC peers.

The signaling server is a lightweight server accessible by all peers (e.g.,
has a public IP address). Two peers pair by exchanging a short session code
out of band, after which the server forwards session descriptions and ICE
candidates between exactly those two peers. Payloads are opaque to the
server and are never inspected beyond routing.
"""
from __future__ import annotations

import asyncio
import datetime
import logging
import uuid

import websockets.exceptions
from websockets.asyncio.server import ServerConnection

from rendezvous.exceptions import ClientNotFoundError
from rendezvous.exceptions import ClientNotInSessionError
from rendezvous.exceptions import SessionFullError
from rendezvous.exceptions import SessionNotFoundError
from rendezvous.exceptions import SignalingServerError
from rendezvous.manager import Client
from rendezvous.manager import ClientManager
from rendezvous.messages import ClientJoined
from rendezvous.messages import Connected
from rendezvous.messages import CreateSession
from rendezvous.messages import decode_signal_message
from rendezvous.messages import encode_response_message
from rendezvous.messages import ErrorResponse
from rendezvous.messages import IceCandidate
from rendezvous.messages import JoinSession
from rendezvous.messages import PeerAnswer
from rendezvous.messages import PeerDisconnected
from rendezvous.messages import PeerIceCandidate
from rendezvous.messages import PeerOffer
from rendezvous.messages import ResponseMessage
from rendezvous.messages import SessionCreated
from rendezvous.messages import SessionJoined
from rendezvous.messages import SignalMessage
from rendezvous.messages import SignalMessageDecodeError
from rendezvous.messages import SignalMessageEncodeError
from rendezvous.messages import WebRTCAnswer
from rendezvous.messages import WebRTCOffer
from rendezvous.sessions import generate_session_code
from rendezvous.sessions import Session
from rendezvous.sessions import SessionManager

logger = logging.getLogger(__name__)


class SignalingServer:
    """WebRTC signaling server.

    Each connection is served by two tasks: the read loop in
    [`handler()`][rendezvous.server.SignalingServer.handler] which
    dispatches inbound messages, and a delivery loop which writes the
    client's outbound messages in FIFO order. The two loops only share the
    client's outbound queue and the client and session registries.

    Registry updates and enqueues never await, so every dispatched message
    is applied atomically with respect to all other connections.

    The signaling server is built on websockets and designed to be
    served using [`serve()`][rendezvous.run.serve].

    Example:
        ```python
        from websockets.asyncio.server import serve
        from rendezvous.server import SignalingServer

        server = SignalingServer()
        async with serve(server.handler, host='localhost', port=3000):
            ...
        ```
    """

    def __init__(self) -> None:
        self._client_manager = ClientManager()
        self._session_manager = SessionManager()

    @property
    def client_manager(self) -> ClientManager:
        """Registry of connected clients."""
        return self._client_manager

    @property
    def session_manager(self) -> SessionManager:
        """Registry of live sessions."""
        return self._session_manager

    def send(self, client_id: str, message: ResponseMessage) -> None:
        """Enqueue a message for delivery to a client.

        Fire-and-forget: messages for clients that are no longer registered
        are skipped.

        Args:
            client_id: Identifier of the receiving client.
            message: Message to encode and enqueue on the client's outbound
                queue.
        """
        client = self.client_manager.get_client(client_id)
        if client is None:
            logger.debug(
                f'Skipping {type(message).__name__} message for unknown '
                f'client {client_id}',
            )
            return

        try:
            message_str = encode_response_message(message)
        except SignalMessageEncodeError as e:
            logger.error(f'Failed to encode message: {e}')
            return

        client.outbound.put_nowait(message_str)

    def create_session(self, client_id: str) -> Session:
        """Create a new session hosted by the client.

        Args:
            client_id: Identifier of the client creating the session.

        Returns:
            The new session.
        """
        code = generate_session_code()
        session = self.session_manager.create_session(code, client_id)
        self.client_manager.set_session(client_id, code)
        self.send(client_id, SessionCreated(session_code=code))
        logger.info(f'Session {code} created by {client_id}')
        return session

    def join_session(self, client_id: str, code: str) -> None:
        """Add the client to an existing session as the guest.

        The guest is sent `session-joined` and the host is sent
        `client-joined`.

        Args:
            client_id: Identifier of the joining client.
            code: Code of the session to join.

        Raises:
            SessionNotFoundError: If no session has the code.
            SessionFullError: If the session already has two members.
        """
        host_id = self.session_manager.join_session(code, client_id)
        self.client_manager.set_session(client_id, code)
        self.send(client_id, SessionJoined(session_code=code, host_id=host_id))
        self.send(host_id, ClientJoined(client_id=client_id))
        logger.info(f'Client {client_id} joined session {code}')

    def forward(self, client_id: str, message: ResponseMessage) -> None:
        """Forward a message to the other member of the client's session.

        Nothing is sent if the client is alone in its session.

        Args:
            client_id: Identifier of the sending client.
            message: Message to forward.

        Raises:
            ClientNotFoundError: If the sending client is not registered.
            ClientNotInSessionError: If the sending client is not in a
                session.
            SessionNotFoundError: If the client's session no longer exists.
        """
        client = self.client_manager.get_client(client_id)
        if client is None:
            raise ClientNotFoundError(f'Client {client_id} is not registered.')
        if client.session_code is None:
            raise ClientNotInSessionError(
                f'Client {client_id} is not in a session.',
            )
        session = self.session_manager.get_session(client.session_code)
        if session is None:
            raise SessionNotFoundError(
                f'Session {client.session_code} does not exist.',
            )

        for member_id in session.members:
            if member_id != client_id:
                logger.debug(
                    f'Transmitting {message.message_type.value} message '
                    f'from {client_id} to {member_id} in session '
                    f'{session.code}',
                )
                self.send(member_id, message)
                return

    def cleanup(self, client_id: str, expected: bool = True) -> bool:
        """Unregister a client and detach it from its session.

        Remaining session members are sent `peer-disconnected` and the
        session is deleted if it is left empty. Safe to call more than once
        for the same client.

        Args:
            client_id: Identifier of the client to unregister.
            expected: If the connection was closed intentionally or due to an
                error.

        Returns:
            `True` if the client was unregistered by this call.
        """
        client = self.client_manager.remove_client(client_id)
        if client is None:
            return False

        reason = 'ok' if expected else 'unexpected'
        logger.info(f'Unregistering client {client_id} for {reason} reason')

        code = client.session_code
        if code is None:
            return True

        session = self.session_manager.remove_member(code, client_id)
        if session is None:
            return True
        for member_id in session.members:
            self.send(member_id, PeerDisconnected(client_id=client_id))
        if not session.members:
            self.session_manager.remove_session(code)
            logger.info(f'Session {code} deleted')
        return True

    def sweep_sessions(
        self,
        max_age: float,
        now: datetime.datetime | None = None,
    ) -> list[str]:
        """Evict sessions that are empty and younger than `max_age`.

        Warning:
            Sessions that are empty but older than `max_age` are kept. This
            looks like an inverted age check but is the documented eviction
            rule and is left as is until confirmed.

        Args:
            max_age: Age threshold in seconds.
            now: Current time. Defaults to the current UTC time.

        Returns:
            Codes of the evicted sessions.
        """
        if now is None:
            now = datetime.datetime.now(datetime.timezone.utc)

        def _evict(session: Session) -> bool:
            return not session.members and session.age(now) < max_age

        evicted = self.session_manager.sweep(_evict)
        for code in evicted:
            logger.info(f'Swept session {code}')
        return evicted

    def _process_message(self, client_id: str, message: SignalMessage) -> None:
        # Dispatches the message to the correct method depending on the type
        if self.client_manager.get_client(client_id) is None:
            raise ClientNotFoundError(f'Client {client_id} is not registered.')

        if isinstance(message, CreateSession):
            self.create_session(client_id)
        elif isinstance(message, JoinSession):
            self.join_session(client_id, message.session_code)
        elif isinstance(message, WebRTCOffer):
            self.forward(
                client_id,
                PeerOffer(sdp=message.sdp, from_=client_id),
            )
        elif isinstance(message, WebRTCAnswer):
            self.forward(
                client_id,
                PeerAnswer(sdp=message.sdp, from_=client_id),
            )
        elif isinstance(message, IceCandidate):
            self.forward(
                client_id,
                PeerIceCandidate(candidate=message.candidate, from_=client_id),
            )
        else:
            raise AssertionError('Unreachable.')

    def dispatch(self, client_id: str, message_str: str) -> None:
        """Decode and process one message received from a client.

        Malformed messages are logged and dropped. A full session is
        reported to the client with an `error` message. Every other failure
        is logged without a reply.

        Args:
            client_id: Identifier of the client the message came from.
            message_str: Raw text frame.
        """
        try:
            message = decode_signal_message(message_str)
        except SignalMessageDecodeError as e:
            logger.error(
                f'Caught deserialization error on message received from '
                f'{client_id}. {e} ...skipping message',
            )
            return

        try:
            self._process_message(client_id, message)
        except SessionFullError as e:
            logger.warning(
                f'Client {client_id} attempted to join a full session',
            )
            self.send(client_id, ErrorResponse(message=str(e)))
        except SignalingServerError as e:
            logger.warning(
                f'Failed to process {message.message_type.value} message '
                f'from {client_id}. {e.__class__.__name__}: {e}',
            )

    async def _deliver(
        self,
        client: Client,
        websocket: ServerConnection,
    ) -> None:
        # Drains the outbound queue in FIFO order until the connection fails
        # or the task is cancelled by the read loop
        expected = True
        try:
            while True:
                message_str = await client.outbound.get()
                await websocket.send(message_str)
        except websockets.exceptions.ConnectionClosedOK:
            pass
        except websockets.exceptions.ConnectionClosedError as e:
            expected = False
            logger.warning(
                f'Connection to client {client.id} failed while sending: {e}',
            )
        finally:
            self.cleanup(client.id, expected=expected)

    async def handler(self, websocket: ServerConnection) -> None:
        """Websocket server connection handler.

        Registers a new client, sends it `connected`, then reads and
        dispatches text frames until the connection closes. Binary frames
        are ignored.

        Args:
            websocket: Websocket connection with the client.
        """
        client = Client(
            id=str(uuid.uuid4()),
            address=str(websocket.remote_address),
        )
        self.client_manager.add_client(client)
        logger.info(f'Client {client.id} connected from {client.address}')
        self.send(client.id, Connected(client_id=client.id))

        delivery_task = asyncio.create_task(
            self._deliver(client, websocket),
            name=f'delivery-{client.id}',
        )

        expected = True
        try:
            while True:
                try:
                    message_str = await websocket.recv()
                except websockets.exceptions.ConnectionClosedOK:
                    break
                except websockets.exceptions.ConnectionClosedError:
                    expected = False
                    break

                if isinstance(message_str, bytes):
                    logger.debug(
                        f'Ignoring binary message from client {client.id}',
                    )
                    continue

                self.dispatch(client.id, message_str)
        finally:
            self.cleanup(client.id, expected=expected)
            delivery_task.cancel()
            try:
                await delivery_task
            except asyncio.CancelledError:
                pass

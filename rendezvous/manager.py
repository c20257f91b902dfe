"""Helper classes for managing clients connected to a signaling server."""
from __future__ import annotations

import asyncio
import dataclasses
import datetime
import logging

logger = logging.getLogger(__name__)


def _utc_current_time() -> datetime.datetime:
    # dataclasses.field's default_factory requires a zero argument callable
    return datetime.datetime.now(tz=datetime.timezone.utc)


@dataclasses.dataclass(eq=False)
class Client:
    """Representation of a client connection.

    Attributes:
        id: Identifier assigned to the client when it connected.
        outbound: FIFO channel of encoded messages waiting to be written
            to the client's connection. Drained by exactly one delivery loop.
        address: Remote address of the connection, used for logging.
        session_code: Code of the session the client currently belongs to.
        created: Time the client connected.
    """

    id: str
    outbound: asyncio.Queue[str] = dataclasses.field(
        default_factory=asyncio.Queue,
    )
    address: str | None = None
    session_code: str | None = None
    created: datetime.datetime = dataclasses.field(
        default_factory=_utc_current_time,
    )

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Client):
            return self.id == other.id
        else:
            return False

    def __hash__(self) -> int:
        return hash(self.id)

    def __repr__(self) -> str:
        created = self.created.strftime('%Y-%m-%d %H:%M:%S %Z')
        return (
            f'{self.__class__.__name__}(id={self.id}, '
            f'address={self.address}, session={self.session_code}, '
            f'queued={self.outbound.qsize()}, created={created})'
        )


class ClientManager:
    """Registry of connected clients keyed by client identifier.

    The manager is the sole owner of
    [`Client`][rendezvous.manager.Client] records; everything else refers
    to clients by identifier. None of the methods await so each call is
    atomic with respect to the event loop.

    Warning:
        This class is intended for internal use by the
        [`SignalingServer`][rendezvous.server.SignalingServer].
    """

    def __init__(self) -> None:
        self._clients: dict[str, Client] = {}

    def __len__(self) -> int:
        return len(self._clients)

    def add_client(self, client: Client) -> None:
        """Register a new client.

        Identifiers are expected to be unique. Registering an identifier
        that is already present is ignored.
        """
        if client.id in self._clients:
            logger.warning(
                f'Client {client.id} is already registered, ignoring '
                'duplicate registration',
            )
            return
        self._clients[client.id] = client

    def get_clients(self) -> list[Client]:
        """Get a list of all clients."""
        return list(self._clients.values())

    def get_client(self, client_id: str) -> Client | None:
        """Get a client by identifier."""
        return self._clients.get(client_id, None)

    def set_session(self, client_id: str, session_code: str | None) -> bool:
        """Set the session a client belongs to.

        Returns:
            `False` if the client is not registered, otherwise `True`.
        """
        client = self._clients.get(client_id, None)
        if client is None:
            return False
        client.session_code = session_code
        return True

    def remove_client(self, client_id: str) -> Client | None:
        """Remove a client.

        Returns:
            The removed client, with its last known session code, or `None`
            if the client was already removed.
        """
        return self._clients.pop(client_id, None)

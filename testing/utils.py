"""Fixtures and utilities for testing."""
from __future__ import annotations

import asyncio
import json
import socket
from typing import Any
from typing import Callable

from websockets.asyncio.client import ClientConnection

WAIT_FOR = 0.5
"""Seconds to wait on a websocket operation before failing a test."""


def open_port() -> int:
    """Return open port.

    Source: https://stackoverflow.com/questions/2838244
    """
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(('', 0))
    s.listen(1)
    port = s.getsockname()[1]
    s.close()
    return port


async def send_json(websocket: ClientConnection, data: dict[str, Any]) -> None:
    """JSON encode and send a message on the websocket."""
    await asyncio.wait_for(websocket.send(json.dumps(data)), WAIT_FOR)


async def recv_json(websocket: ClientConnection) -> dict[str, Any]:
    """Receive and JSON decode the next message on the websocket."""
    message = await asyncio.wait_for(websocket.recv(), WAIT_FOR)
    assert isinstance(message, str)
    return json.loads(message)


async def assert_no_message(
    websocket: ClientConnection,
    timeout: float = 0.1,
) -> None:
    """Assert nothing is received on the websocket within the timeout."""
    try:
        message = await asyncio.wait_for(websocket.recv(), timeout)
    except asyncio.TimeoutError:
        return
    raise AssertionError(f'Unexpected message received: {message}')


async def wait_for_condition(
    condition: Callable[[], bool],
    timeout: float = WAIT_FOR,
) -> None:
    """Yield to the event loop until the condition is true.

    Raises:
        TimeoutError: If the condition is not met within the timeout.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise TimeoutError('Timeout waiting for condition.')
        await asyncio.sleep(0.005)

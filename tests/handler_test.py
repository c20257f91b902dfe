from __future__ import annotations

import asyncio
import json

import pytest
from websockets.asyncio.client import connect

from testing.signaling_server import SignalingServerInfo
from testing.utils import assert_no_message
from testing.utils import recv_json
from testing.utils import send_json
from testing.utils import wait_for_condition


@pytest.mark.asyncio()
async def test_connected_is_first_message(
    signaling_server: SignalingServerInfo,
) -> None:
    async with connect(signaling_server.address) as websocket:
        message = await recv_json(websocket)
        assert message['type'] == 'connected'
        client_id = message['clientId']

        client_manager = signaling_server.signaling_server.client_manager
        assert client_manager.get_client(client_id) is not None

    await wait_for_condition(lambda: len(client_manager) == 0)


@pytest.mark.asyncio()
async def test_pair_relay_and_disconnect(
    signaling_server: SignalingServerInfo,
) -> None:
    session_manager = signaling_server.signaling_server.session_manager

    host = await connect(signaling_server.address)
    guest = await connect(signaling_server.address)
    third = await connect(signaling_server.address)
    host_id = (await recv_json(host))['clientId']
    guest_id = (await recv_json(guest))['clientId']
    await recv_json(third)

    # Host creates the session
    await send_json(host, {'type': 'create-session'})
    created = await recv_json(host)
    assert created['type'] == 'session-created'
    assert created['role'] == 'host'
    code = created['sessionCode']

    # Guest joins and the host is notified
    await send_json(guest, {'type': 'join-session', 'sessionCode': code})
    assert await recv_json(guest) == {
        'type': 'session-joined',
        'sessionCode': code,
        'role': 'client',
        'hostId': host_id,
    }
    assert await recv_json(host) == {
        'type': 'client-joined',
        'clientId': guest_id,
    }

    # Offer goes only to the guest
    await send_json(host, {'type': 'webrtc-offer', 'sdp': 'v=0...'})
    assert await recv_json(guest) == {
        'type': 'webrtc-offer',
        'sdp': 'v=0...',
        'from': host_id,
    }
    await assert_no_message(host)

    # Answer and candidates go back to the host
    await send_json(guest, {'type': 'webrtc-answer', 'sdp': 'v=0 answer'})
    await send_json(guest, {'type': 'ice-candidate', 'candidate': 'c1'})
    assert await recv_json(host) == {
        'type': 'webrtc-answer',
        'sdp': 'v=0 answer',
        'from': guest_id,
    }
    assert await recv_json(host) == {
        'type': 'ice-candidate',
        'candidate': 'c1',
        'from': guest_id,
    }

    # A third client cannot join the full session
    await send_json(third, {'type': 'join-session', 'sessionCode': code})
    assert await recv_json(third) == {
        'type': 'error',
        'message': 'Session full',
    }
    await assert_no_message(host)
    await assert_no_message(guest)
    session = session_manager.get_session(code)
    assert session is not None
    assert session.members == [host_id, guest_id]

    # Guest leaves, host is notified exactly once and the session survives
    await guest.close()
    assert await recv_json(host) == {
        'type': 'peer-disconnected',
        'clientId': guest_id,
    }
    await assert_no_message(host)
    session = session_manager.get_session(code)
    assert session is not None
    assert session.members == [host_id]

    # Host leaves and the session is deleted without waiting for a sweep
    await host.close()
    await wait_for_condition(lambda: session_manager.get_session(code) is None)

    await third.close()


@pytest.mark.asyncio()
async def test_relay_while_hosting_alone_is_silent(
    signaling_server: SignalingServerInfo,
) -> None:
    async with connect(signaling_server.address) as host, connect(
        signaling_server.address,
    ) as bystander:
        await recv_json(host)
        await recv_json(bystander)

        await send_json(host, {'type': 'create-session'})
        await recv_json(host)

        await send_json(host, {'type': 'ice-candidate', 'candidate': 'c'})
        await assert_no_message(host)
        await assert_no_message(bystander)


@pytest.mark.asyncio()
async def test_join_unknown_session_is_silent(
    signaling_server: SignalingServerInfo,
) -> None:
    async with connect(signaling_server.address) as websocket:
        await recv_json(websocket)
        await send_json(
            websocket,
            {'type': 'join-session', 'sessionCode': 'NOPE00'},
        )
        await assert_no_message(websocket)


@pytest.mark.asyncio()
async def test_malformed_and_binary_messages_keep_connection_open(
    signaling_server: SignalingServerInfo,
) -> None:
    async with connect(signaling_server.address) as websocket:
        await recv_json(websocket)

        await asyncio.wait_for(websocket.send('{not json'), 0.5)
        await asyncio.wait_for(websocket.send(b'\x00\x01'), 0.5)
        await send_json(websocket, {'type': 'unknown'})
        await assert_no_message(websocket)

        # The connection still works after the bad messages
        await send_json(websocket, {'type': 'create-session'})
        created = await recv_json(websocket)
        assert created['type'] == 'session-created'


@pytest.mark.asyncio()
async def test_relayed_messages_arrive_in_order(
    signaling_server: SignalingServerInfo,
) -> None:
    count = 100
    async with connect(signaling_server.address) as host, connect(
        signaling_server.address,
    ) as guest:
        await recv_json(host)
        await recv_json(guest)

        await send_json(host, {'type': 'create-session'})
        code = (await recv_json(host))['sessionCode']
        await send_json(guest, {'type': 'join-session', 'sessionCode': code})
        await recv_json(guest)
        await recv_json(host)

        for i in range(count):
            await host.send(
                json.dumps({'type': 'ice-candidate', 'candidate': str(i)}),
            )

        received = [
            (await recv_json(guest))['candidate'] for _ in range(count)
        ]
        assert received == [str(i) for i in range(count)]


@pytest.mark.asyncio()
async def test_idle_connection_is_not_disconnected(
    signaling_server: SignalingServerInfo,
) -> None:
    # There is no idle timeout or heartbeat so a silent peer stays
    # registered until its connection closes.
    client_manager = signaling_server.signaling_server.client_manager
    async with connect(signaling_server.address, ping_interval=None) as ws:
        client_id = (await recv_json(ws))['clientId']
        await asyncio.sleep(0.2)
        assert client_manager.get_client(client_id) is not None

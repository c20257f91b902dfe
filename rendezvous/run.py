"""CLI and serving functions for running a signaling server."""
from __future__ import annotations

import asyncio
import datetime
import logging
import logging.handlers
import os
import signal
import ssl
import sys

import click
from websockets.asyncio.server import serve as websockets_serve

from rendezvous.config import SignalingServingConfig
from rendezvous.server import SignalingServer
from rendezvous.utils.config import dumps
from rendezvous.utils.tasks import spawn_guarded_background_task

logger = logging.getLogger(__name__)


def periodic_session_sweeper(
    server: SignalingServer,
    interval: float = 1800,
    max_age: float = 1800,
) -> asyncio.Task[None]:
    """Create an asyncio task which periodically sweeps sessions.

    See [`SignalingServer.sweep_sessions()`][rendezvous.server.SignalingServer.sweep_sessions]
    for the eviction rule.

    Args:
        server: Signaling server instance to sweep sessions of.
        interval: Seconds between sweeps.
        max_age: Age threshold in seconds passed to the sweep.

    Returns:
        Asyncio task.
    """

    async def _sweep() -> None:
        while True:
            await asyncio.sleep(interval)
            evicted = server.sweep_sessions(max_age)
            logger.debug(
                f'Session sweep evicted {len(evicted)} session(s), '
                f'{len(server.session_manager)} remaining',
            )

    return spawn_guarded_background_task(
        _sweep,
        name='signaling-server-session-sweeper',
    )


def periodic_client_logger(
    server: SignalingServer,
    interval: float = 60,
    limit: float | None = 60,
    level: int = logging.INFO,
) -> asyncio.Task[None]:
    """Create an asyncio task which logs currently connected clients.

    Args:
        server: Signaling server instance to log connected clients of.
        interval: Seconds between logging connected clients.
        limit: Only log detailed client list if the number of clients is
            less than this number. Useful for debugging or avoiding
            clobbering the logs by printing thousands of clients.
        level: Logging level.

    Returns:
        Asyncio task.
    """

    async def _log() -> None:
        while True:
            await asyncio.sleep(interval)
            clients = server.client_manager.get_clients()
            clients = sorted(clients, key=lambda client: client.created)
            message = (
                f'Connected clients: {len(clients)}, '
                f'sessions: {len(server.session_manager)}'
            )
            if limit is not None and 0 < len(clients) < limit:
                clients_repr = '\n'.join(repr(client) for client in clients)
                message = f'{message}\n{clients_repr}'
            logger.log(level, message)

    return spawn_guarded_background_task(
        _log,
        name='signaling-server-client-logger',
    )


async def serve(config: SignalingServingConfig) -> None:
    """Run the signaling server.

    Initializes a [`SignalingServer`][rendezvous.server.SignalingServer]
    and starts a websocket server listening for new connections and
    incoming messages. Runs until SIGINT or SIGTERM is received.

    Note:
        This function will not configure any logging. Configuring logging
        according to
        [`SignalingServingConfig.logging`][rendezvous.config.SignalingServingConfig]
        is the responsibility of the caller.

    Args:
        config: Serving configuration.
    """
    server = SignalingServer()

    # Set the stop condition when receiving SIGINT (ctrl-C) and SIGTERM.
    loop = asyncio.get_running_loop()
    stop = loop.create_future()
    loop.add_signal_handler(signal.SIGINT, stop.set_result, None)
    loop.add_signal_handler(signal.SIGTERM, stop.set_result, None)

    ssl_context: ssl.SSLContext | None = None
    if config.certfile is not None:
        ssl_context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        ssl_context.load_cert_chain(config.certfile, keyfile=config.keyfile)

    tasks = [
        periodic_session_sweeper(
            server,
            config.sessions.sweep_interval,
            config.sessions.max_age,
        ),
    ]
    if config.logging.current_client_interval is not None:  # pragma: no branch
        level = (
            config.logging.default_level
            if isinstance(config.logging.default_level, int)
            else logging.getLevelName(config.logging.default_level)
        )
        tasks.append(
            periodic_client_logger(
                server,
                config.logging.current_client_interval,
                config.logging.current_client_limit,
                level=level,
            ),
        )

    logger.info(f'Signaling serving configuration:\n{dumps(config)}')

    async with websockets_serve(
        server.handler,
        config.host,
        config.port,
        logger=None,
        ssl=ssl_context,
    ):
        logger.info(f'Signaling server listening on port {config.port}')
        logger.info('Use ctrl-C to stop')
        await stop

    for task in tasks:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    loop.remove_signal_handler(signal.SIGINT)
    loop.remove_signal_handler(signal.SIGTERM)

    logger.info('Signaling server shutdown')


def configure_logging(config: SignalingServingConfig) -> None:
    """Configure the root logger from the serving configuration."""
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if config.logging.log_dir is not None:
        os.makedirs(config.logging.log_dir, exist_ok=True)
        handlers.append(
            logging.handlers.TimedRotatingFileHandler(
                os.path.join(config.logging.log_dir, 'server.log'),
                # Rotate logs Sunday at midnight
                when='W6',
                atTime=datetime.time(hour=0, minute=0, second=0),
            ),
        )

    logging.basicConfig(
        format=(
            '[%(asctime)s.%(msecs)03d] %(levelname)-5s (%(name)s) :: '
            '%(message)s'
        ),
        datefmt='%Y-%m-%d %H:%M:%S',
        level=config.logging.default_level,
        handlers=handlers,
    )

    logging.getLogger('websockets').setLevel(config.logging.websockets_level)


@click.command()
@click.option('--config', '-c', 'config_path', help='Configuration file.')
@click.option('--host', metavar='ADDR', help='Interface to bind to.')
@click.option(
    '--port',
    type=int,
    envvar='PORT',
    metavar='PORT',
    help='Port to bind to. Read from $PORT if unset.',
)
@click.option('--log-dir', metavar='PATH', help='Logging directory.')
@click.option(
    '--log-level',
    type=click.Choice(
        ['CRITICAL', 'ERROR', 'WARNING', 'INFO', 'DEBUG'],
        case_sensitive=False,
    ),
    help='Minimum logging level.',
)
def cli(
    config_path: str | None,
    host: str | None,
    port: int | None,
    log_dir: str | None,
    log_level: str | None,
) -> None:
    """Run a signaling server instance.

    The signaling server pairs two clients by session code and relays the
    WebRTC session descriptions and ICE candidates between them. If no
    configuration file is provided, a default configuration will be created
    from [`SignalingServingConfig()`][rendezvous.config.SignalingServingConfig].
    The remaining CLI options will override the options provided in the
    configuration object.
    """
    config = (
        SignalingServingConfig()
        if config_path is None
        else SignalingServingConfig.from_toml(config_path)
    )

    # Override config with CLI options if given
    if host is not None:
        config.host = host
    if port is not None:
        config.port = port
    if log_dir is not None:
        config.logging.log_dir = log_dir
    if log_level is not None:
        config.logging.default_level = logging.getLevelName(
            log_level.upper(),
        )

    configure_logging(config)

    asyncio.run(serve(config))

"""Signaling server configuration file parsing."""

from __future__ import annotations

import logging
import pathlib
import sys

if sys.version_info >= (3, 11):  # pragma: >=3.11 cover
    from typing import Self
else:  # pragma: <3.11 cover
    from typing_extensions import Self

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field

from rendezvous.utils.config import load


class SignalingSessionConfig(BaseModel):
    """Session lifecycle configuration.

    Attributes:
        sweep_interval: Seconds between periodic session sweeps.
        max_age: Age threshold in seconds used by the sweep.
    """

    model_config = ConfigDict(extra='forbid')

    sweep_interval: float = 1800
    max_age: float = 1800


class SignalingLoggingConfig(BaseModel):
    """Signaling server logging configuration.

    Attributes:
        log_dir: Default logging directory.
        default_level: Default logging level for the root logger.
        websockets_level: Log level for the `websockets` logger. Websockets
            logs with much higher frequency so it is suggested to set this
            to `WARNING` or higher.
        current_client_interval: Optional seconds between logging the
            number of currently connected clients and sessions.
        current_client_limit: Max threshold for enumerating the
            detailed list of connected clients. If `None`, no detailed
            list will be logged.
    """

    model_config = ConfigDict(extra='forbid')

    log_dir: str | None = None
    default_level: int | str = logging.INFO
    websockets_level: int | str = logging.WARNING
    current_client_interval: int | None = 60
    current_client_limit: int | None = 32


class SignalingServingConfig(BaseModel):
    """Signaling server serving configuration.

    Attributes:
        host: Network interface the server binds to. All interfaces if
            `None`.
        port: Network port the server binds to.
        certfile: Certificate file (PEM format) use to enable TLS.
        keyfile: Private key file. If not specified, the key will be
            taken from the certfile.
        sessions: Session lifecycle configuration.
        logging: Logging configuration.
    """

    model_config = ConfigDict(extra='forbid')

    host: str | None = None
    port: int = 3000
    certfile: str | None = None
    keyfile: str | None = None
    sessions: SignalingSessionConfig = Field(
        default_factory=SignalingSessionConfig,
    )
    logging: SignalingLoggingConfig = Field(
        default_factory=SignalingLoggingConfig,
    )

    @classmethod
    def from_toml(cls, filepath: str | pathlib.Path) -> Self:
        """Parse a TOML config file.

        Example:
            ```toml title="signaling.toml"
            host = "0.0.0.0"
            port = 3000
            certfile = "/path/to/cert.pem"
            keyfile = "/path/to/privkey.pem"

            [sessions]
            sweep_interval = 1800
            max_age = 1800

            [logging]
            log_dir = "/path/to/log/dir"
            default_level = "INFO"
            websockets_level = "WARNING"
            current_client_interval = 60
            current_client_limit = 32
            ```

            ```python
            from rendezvous.config import SignalingServingConfig

            config = SignalingServingConfig.from_toml('signaling.toml')
            ```

        Note:
            Omitted values will be set to their defaults.
        """
        with open(filepath, 'rb') as f:
            return load(cls, f)

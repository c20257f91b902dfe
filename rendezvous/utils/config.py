"""Read and write TOML config files using Pydantic models."""

from __future__ import annotations

import sys
from typing import BinaryIO
from typing import TypeVar

import tomli_w
from pydantic import BaseModel

if sys.version_info >= (3, 11):  # pragma: >=3.11 cover
    import tomllib
else:  # pragma: <3.11 cover
    import tomli as tomllib


BaseModelT = TypeVar('BaseModelT', bound=BaseModel)


def dumps(model: BaseModel, *, exclude_none: bool = True) -> str:
    """Serialize a config model to a TOML formatted string.

    Args:
        model: Config model instance to write.
        exclude_none: Skip writing none attributes. TOML has no null type so
            optional values that are unset are omitted.

    Returns:
        TOML string of the model.
    """
    return tomli_w.dumps(model.model_dump(exclude_none=exclude_none))


def load(model: type[BaseModelT], fp: BinaryIO) -> BaseModelT:
    """Parse TOML from a binary file to a config model.

    Args:
        model: Config model type to parse TOML using.
        fp: File-like bytes stream to read in.

    Returns:
        Model initialized from TOML file.
    """
    return loads(model, fp.read().decode())


def loads(model: type[BaseModelT], data: str) -> BaseModelT:
    """Parse TOML string to a config model.

    Args:
        model: Config model type to parse TOML using.
        data: TOML string to parse.

    Returns:
        Model initialized from TOML string.
    """
    return model.model_validate(tomllib.loads(data), strict=True)

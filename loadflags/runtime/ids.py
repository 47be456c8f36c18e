from __future__ import annotations

from enum import Enum
from typing import Optional, Union

from loadflags.runtime.config import DEFAULT_LOADER_ID

# Expected to be enum members or short strings/ints.
LoaderId = Union[str, int, Enum]


def resolve_loader_id(loader_id: Optional[LoaderId] = None, default: LoaderId = DEFAULT_LOADER_ID) -> LoaderId:
    # only None falls back; "" and 0 are real ids
    return default if loader_id is None else loader_id

from __future__ import annotations
from typing import Any, Optional, Protocol

from loadflags.runtime.ids import LoaderId
from loadflags.runtime.stream import BusyStream

class LoadingStateReader(Protocol):
    def is_loading(self, owner: Any, loader_id: Optional[LoaderId] = None) -> bool: ...
    def observe(self, owner: Any, loader_id: Optional[LoaderId] = None) -> BusyStream: ...

class LoadingStateWriter(Protocol):
    def start_loading(self, owner: Any, loader_id: Optional[LoaderId] = None) -> None: ...
    def end_loading(self, owner: Any, loader_id: Optional[LoaderId] = None) -> None: ...

from __future__ import annotations

import logging
import weakref
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from loadflags.runtime.config import DEFAULT_LOADER_ID, LoadingSettings
from loadflags.runtime.ids import LoaderId, resolve_loader_id
from loadflags.runtime.stream import BusyStream
from loadflags.wrapper import LoadingScope, TrackedOperation, wrap

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoadingEntry:
    owner: str
    loader_id: LoaderId
    loading: bool


class _OwnerSlot:
    """Entries of one owner.

    `states` and `streams` are kept in sync so the same state can be read
    synchronously or observed.
    """

    __slots__ = ("ref", "strong", "states", "streams")

    def __init__(self, owner: Any, on_collect: Callable[[weakref.ref], None]) -> None:
        try:
            self.ref: Optional[weakref.ref] = weakref.ref(owner, on_collect)
            self.strong: Any = None
        except TypeError:
            # not weakly referenceable: held until release()
            self.ref = None
            self.strong = owner
        self.states: Dict[LoaderId, bool] = {}
        self.streams: Dict[LoaderId, BusyStream] = {}

    def owner(self) -> Any:
        return self.ref() if self.ref is not None else self.strong

    def close(self) -> None:
        for stream in self.streams.values():
            stream.complete()
        self.states.clear()
        self.streams.clear()


class LoadingRegistry:
    """Central registry of loading flags for components and services.

    Flags are keyed by an owner object plus an optional loader id:
    - is_loading(owner, loader_id=None) -> bool; without a loader id, whether
      any of the owner's loaders is active
    - observe(owner, loader_id=None) -> BusyStream of the flag
    - start_loading / end_loading / set_loading mutate a flag
    - wrap(operation, owner, loader_id=None) tracks an async operation
    - clear_all() drops every flag; meant for global error hooks (see
      loadflags.adapters.httpx_hooks and server.api), not the normal path

    Owners are matched by identity and held weakly: once an owner is garbage
    collected its flags go away and its streams complete. Owners that can't be
    weakly referenced are kept until release(owner).

    Overlapping operations on the same flag are not counted; the flag follows
    whichever call came last.
    """

    def __init__(self, default_loader_id: LoaderId = DEFAULT_LOADER_ID) -> None:
        self.default_loader_id = default_loader_id
        self._owners: Dict[int, _OwnerSlot] = {}

    @classmethod
    def from_settings(cls, settings: LoadingSettings) -> "LoadingRegistry":
        return cls(default_loader_id=settings.default_loader_id)

    def resolve_loader_id(self, loader_id: Optional[LoaderId] = None) -> LoaderId:
        return resolve_loader_id(loader_id, self.default_loader_id)

    # ---- reads ----

    def is_loading(self, owner: Any, loader_id: Optional[LoaderId] = None) -> bool:
        slot = self._find(owner)
        if slot is None:
            return False
        if loader_id is not None:
            return slot.states.get(self.resolve_loader_id(loader_id), False)
        return any(slot.states.values())

    def observe(self, owner: Any, loader_id: Optional[LoaderId] = None) -> BusyStream:
        resolved = self.resolve_loader_id(loader_id)
        slot = self._find(owner)
        if slot is None or resolved not in slot.streams:
            self.set_loading(owner, resolved, False)
            slot = self._find(owner)
        return slot.streams[resolved]

    def snapshot(self) -> List[LoadingEntry]:
        out: List[LoadingEntry] = []
        for slot in list(self._owners.values()):
            owner = slot.owner()
            if owner is None:
                continue
            for loader_id, state in slot.states.items():
                out.append(LoadingEntry(owner=repr(owner), loader_id=loader_id, loading=state))
        return out

    def __len__(self) -> int:
        return len(self._owners)

    # ---- writes ----

    def set_loading(self, owner: Any, loader_id: Optional[LoaderId], value: bool) -> None:
        resolved = self.resolve_loader_id(loader_id)
        state = bool(value)
        slot = self._find(owner)
        if slot is None:
            slot = _OwnerSlot(owner, self._on_collect)
            self._owners[id(owner)] = slot
        if resolved not in slot.streams:
            slot.states[resolved] = state
            slot.streams[resolved] = BusyStream(state)
            logger.debug("loading entry created owner=%s loader=%r state=%s", type(owner).__name__, resolved, state)
            return
        slot.states[resolved] = state
        slot.streams[resolved].push(state)

    def start_loading(self, owner: Any, loader_id: Optional[LoaderId] = None) -> None:
        self.set_loading(owner, loader_id, True)

    def end_loading(self, owner: Any, loader_id: Optional[LoaderId] = None) -> None:
        self.set_loading(owner, loader_id, False)

    def release(self, owner: Any) -> bool:
        slot = self._find(owner)
        if slot is None:
            return False
        del self._owners[id(owner)]
        slot.close()
        logger.debug("loading owner released owner=%s", type(owner).__name__)
        return True

    def clear_all(self) -> None:
        """Drop every owner and complete every stream handed out so far.

        Recovery of last resort for global error hooks: it clears all owners,
        not just the one whose operation went wrong.
        """
        owners, self._owners = self._owners, {}
        for slot in owners.values():
            slot.close()
        logger.warning("cleared loading flags of %d owner(s)", len(owners))

    # ---- operations ----

    def wrap(self, operation: Any, owner: Any, loader_id: Optional[LoaderId] = None) -> TrackedOperation:
        return wrap(operation, self, owner, loader_id)

    def loading(self, owner: Any, loader_id: Optional[LoaderId] = None) -> LoadingScope:
        return LoadingScope(self, owner, loader_id)

    # ---- internals ----

    def _find(self, owner: Any) -> Optional[_OwnerSlot]:
        slot = self._owners.get(id(owner))
        if slot is None or slot.owner() is not owner:
            return None
        return slot

    def _on_collect(self, ref: weakref.ref) -> None:
        for key, slot in list(self._owners.items()):
            if slot.ref is ref:
                del self._owners[key]
                slot.close()
                logger.debug("loading owner collected; %d owner(s) left", len(self._owners))
                return


_DEFAULT_REGISTRY: Optional[LoadingRegistry] = None


def default_registry() -> LoadingRegistry:
    """Process-wide registry, built from LoadingSettings.from_env() on first use."""
    global _DEFAULT_REGISTRY
    if _DEFAULT_REGISTRY is None:
        _DEFAULT_REGISTRY = LoadingRegistry.from_settings(LoadingSettings.from_env())
    return _DEFAULT_REGISTRY


def reset_default_registry() -> None:
    global _DEFAULT_REGISTRY
    if _DEFAULT_REGISTRY is not None:
        _DEFAULT_REGISTRY.clear_all()
    _DEFAULT_REGISTRY = None

from __future__ import annotations

import functools
import inspect
from typing import Any, AsyncIterator, Callable, Generator, Generic, Optional, TypeVar

from loadflags.ports.state import LoadingStateWriter
from loadflags.runtime.errors import UnsupportedOperationError, describe_operation
from loadflags.runtime.ids import LoaderId

T = TypeVar("T")


def _is_async_iterable(obj: Any) -> bool:
    return hasattr(obj, "__aiter__")


class TrackedOperation(Generic[T]):
    """An operation bracketed by start_loading/end_loading.

    Awaiting it or iterating it with `async for` is one run:
    - start_loading fires once before the operation starts (before a
      factory is called, before the first value is pulled)
    - end_loading fires once on success, error, cancellation or an
      abandoned iteration
    Nothing fires until a run begins. Factories are re-invoked per run;
    a plain coroutine can only be run once, as usual.

    Leaving an `async for` with `break` does not close the iteration right
    away: end_loading waits for asyncio's async-generator finalizer, a few
    loop ticks later. Iterate under `contextlib.aclosing` to drop the flag
    as soon as the block exits:

        async with aclosing(registry.wrap(rows(), panel).__aiter__()) as it:
            async for row in it:
                if done(row):
                    break
    """

    def __init__(self, operation: Any, writer: LoadingStateWriter, owner: Any, loader_id: Optional[LoaderId] = None) -> None:
        if not (callable(operation) or inspect.isawaitable(operation) or _is_async_iterable(operation)):
            raise UnsupportedOperationError(
                f"cannot track {describe_operation(operation)}: expected an awaitable, "
                "an async iterable or a zero-argument factory of either"
            )
        self.operation = operation
        self.writer = writer
        self.owner = owner
        self.loader_id = loader_id

    def _source(self) -> Any:
        op = self.operation
        if callable(op) and not inspect.isawaitable(op) and not _is_async_iterable(op):
            return op()
        return op

    async def _run(self) -> T:
        self.writer.start_loading(self.owner, self.loader_id)
        try:
            source = self._source()
            if not inspect.isawaitable(source):
                raise UnsupportedOperationError(
                    f"{describe_operation(source)} is not awaitable; iterate it with `async for` instead"
                )
            return await source
        finally:
            self.writer.end_loading(self.owner, self.loader_id)

    def __await__(self) -> Generator[Any, None, T]:
        return self._run().__await__()

    def __aiter__(self) -> AsyncIterator[Any]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Any]:
        self.writer.start_loading(self.owner, self.loader_id)
        try:
            source = self._source()
            if _is_async_iterable(source):
                iterator = source.__aiter__()
                try:
                    while True:
                        try:
                            item = await iterator.__anext__()
                        except StopAsyncIteration:
                            break
                        yield item
                finally:
                    # abandoned runs close the source before the flag drops
                    aclose = getattr(iterator, "aclose", None)
                    if aclose is not None:
                        await aclose()
            elif inspect.isawaitable(source):
                yield await source
            else:
                raise UnsupportedOperationError(
                    f"{describe_operation(source)} is neither awaitable nor async iterable"
                )
        finally:
            self.writer.end_loading(self.owner, self.loader_id)

    def __repr__(self) -> str:
        return f"TrackedOperation({describe_operation(self.operation)}, loader_id={self.loader_id!r})"


def wrap(operation: Any, writer: LoadingStateWriter, owner: Any, loader_id: Optional[LoaderId] = None) -> TrackedOperation:
    return TrackedOperation(operation, writer, owner, loader_id)


class LoadingScope:
    """`with` / `async with` block that keeps a flag raised while it runs."""

    def __init__(self, writer: LoadingStateWriter, owner: Any, loader_id: Optional[LoaderId] = None) -> None:
        self.writer = writer
        self.owner = owner
        self.loader_id = loader_id

    def __enter__(self) -> "LoadingScope":
        self.writer.start_loading(self.owner, self.loader_id)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.writer.end_loading(self.owner, self.loader_id)

    async def __aenter__(self) -> "LoadingScope":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.__exit__(exc_type, exc, tb)


def tracked(loader_id: Optional[LoaderId] = None, *, registry: Optional[LoadingStateWriter] = None) -> Callable:
    """Decorate an async method (or async generator method) so every call is
    tracked with the instance as owner.

        class CustomerPanel:
            @tracked("save")
            async def save(self, payload): ...

    Uses the process-wide registry unless one is given.
    """

    def _writer() -> LoadingStateWriter:
        if registry is not None:
            return registry
        from loadflags.registry import default_registry
        return default_registry()

    def deco(fn: Callable) -> Callable:
        if inspect.isasyncgenfunction(fn):
            @functools.wraps(fn)
            async def gen_inner(self, *args, **kwargs):
                op = TrackedOperation(lambda: fn(self, *args, **kwargs), _writer(), self, loader_id)
                values = op.__aiter__()
                try:
                    async for item in values:
                        yield item
                finally:
                    await values.aclose()
            return gen_inner

        if not inspect.iscoroutinefunction(fn):
            raise UnsupportedOperationError(f"@tracked needs an async function, got {fn!r}")

        @functools.wraps(fn)
        async def inner(self, *args, **kwargs):
            return await TrackedOperation(lambda: fn(self, *args, **kwargs), _writer(), self, loader_id)
        return inner

    return deco

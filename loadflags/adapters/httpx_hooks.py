from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

import httpx

from loadflags.registry import LoadingRegistry
from loadflags.runtime.config import LoadingSettings

logger = logging.getLogger(__name__)


def _threshold(min_status: Optional[int]) -> int:
    if min_status is not None:
        return int(min_status)
    return LoadingSettings.from_env().clear_on_status


def _clear_if_failed(registry: LoadingRegistry, response: httpx.Response, min_status: int) -> None:
    if response.status_code < min_status:
        return
    logger.warning(
        "%s %s answered %s; clearing loading flags",
        response.request.method, response.request.url, response.status_code,
    )
    registry.clear_all()


def recovery_event_hooks(registry: LoadingRegistry, min_status: Optional[int] = None) -> Dict[str, List[Callable[..., Any]]]:
    """`event_hooks` for httpx.Client that clear every loading flag on a failed response.

        client = httpx.Client(event_hooks=recovery_event_hooks(registry))
    """
    threshold = _threshold(min_status)

    def on_response(response: httpx.Response) -> None:
        _clear_if_failed(registry, response, threshold)

    return {"response": [on_response]}


def async_recovery_event_hooks(registry: LoadingRegistry, min_status: Optional[int] = None) -> Dict[str, List[Callable[..., Any]]]:
    """Same as recovery_event_hooks, for httpx.AsyncClient."""
    threshold = _threshold(min_status)

    async def on_response(response: httpx.Response) -> None:
        _clear_if_failed(registry, response, threshold)

    return {"response": [on_response]}

from __future__ import annotations

import logging
from typing import List, Optional, Union

from fastapi import APIRouter, FastAPI, Request
from pydantic import BaseModel

from loadflags.registry import LoadingRegistry
from loadflags.runtime.config import LoadingSettings

logger = logging.getLogger(__name__)


# -----------------------------
# Models
# -----------------------------

class LoadingEntryOut(BaseModel):
    owner: str
    loader_id: Union[str, int]
    loading: bool

class LoadingSnapshotOut(BaseModel):
    owners: int
    entries: List[LoadingEntryOut]

class ClearOut(BaseModel):
    ok: bool
    owners_cleared: int


# -----------------------------
# Recovery hook
# -----------------------------

def install_recovery_hook(app: FastAPI, registry: LoadingRegistry, min_status: Optional[int] = None) -> None:
    """Clear every loading flag when a request fails.

    A request fails when it raises or answers with a status >= min_status
    (LOADING_CLEAR_ON_STATUS by default). The response or exception goes
    through unchanged.
    """
    threshold = int(min_status) if min_status is not None else LoadingSettings.from_env().clear_on_status

    @app.middleware("http")
    async def clear_loadings_on_failure(request: Request, call_next):
        try:
            response = await call_next(request)
        except Exception:
            logger.warning("%s %s raised; clearing loading flags", request.method, request.url.path)
            registry.clear_all()
            raise
        if response.status_code >= threshold:
            logger.warning("%s %s answered %s; clearing loading flags", request.method, request.url.path, response.status_code)
            registry.clear_all()
        return response


# -----------------------------
# Diagnostics
# -----------------------------

def _loader_id_out(loader_id) -> Union[str, int]:
    value = getattr(loader_id, "value", loader_id)
    return value if isinstance(value, (str, int)) else str(value)

def build_router(registry: LoadingRegistry) -> APIRouter:
    router = APIRouter()

    @router.get("/loading", response_model=LoadingSnapshotOut)
    async def get_loading() -> LoadingSnapshotOut:
        entries = [
            LoadingEntryOut(owner=e.owner, loader_id=_loader_id_out(e.loader_id), loading=e.loading)
            for e in registry.snapshot()
        ]
        return LoadingSnapshotOut(owners=len(registry), entries=entries)

    @router.post("/loading/clear", response_model=ClearOut)
    async def clear_loading() -> ClearOut:
        n = len(registry)
        registry.clear_all()
        return ClearOut(ok=True, owners_cleared=n)

    return router

from typing import Optional

from fastapi import FastAPI

from loadflags.registry import LoadingRegistry, default_registry
from loadflags.runtime.config import LoadingSettings, configure_logging
from server.api import build_router, install_recovery_hook

def create_app(registry: Optional[LoadingRegistry] = None, settings: Optional[LoadingSettings] = None) -> FastAPI:
    settings = settings or LoadingSettings.from_env()
    configure_logging(settings)
    if registry is None:
        registry = default_registry()
    app = FastAPI(title="loadflags")
    install_recovery_hook(app, registry, min_status=settings.clear_on_status)
    app.include_router(build_router(registry))
    return app

app = create_app()

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest
from loadflags.registry import LoadingRegistry, reset_default_registry


class RecordingRegistry(LoadingRegistry):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls = []

    def set_loading(self, owner, loader_id, value):
        # ids only, the owner itself would be kept alive
        self.calls.append((id(owner), loader_id, bool(value)))
        super().set_loading(owner, loader_id, value)


class Owner:
    def __init__(self, name="owner"):
        self.name = name

    def __repr__(self):
        return f"Owner({self.name})"


@pytest.fixture
def registry():
    return RecordingRegistry()

@pytest.fixture
def owner():
    return Owner("a")

@pytest.fixture
def other_owner():
    return Owner("b")

@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("LOADING_DEFAULT_ID", "LOADING_CLEAR_ON_STATUS", "LOADING_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    reset_default_registry()
    yield
    reset_default_registry()

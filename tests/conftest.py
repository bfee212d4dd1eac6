"""Root test configuration for KeyGate.

Clears KEYGATE_* environment overrides so a developer's shell cannot leak
into config tests, and provides a store/manager pair backed by tmp_path.
"""

from pathlib import Path

import pytest

from keygate.credentials.lifecycle import CredentialLifecycleManager
from keygate.credentials.store import CredentialStore


@pytest.fixture(autouse=True)
def clean_keygate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("KEYGATE_CONFIG", "KEYGATE_PORT", "KEYGATE_MASTER_KEY", "KEYGATE_STORE_PATH"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> None:
    """Reset the in-memory rate limiter storage between tests."""
    from keygate.limiter import limiter
    limiter.reset()


@pytest.fixture
def store_path(tmp_path: Path) -> Path:
    return tmp_path / "apikeys.json"


@pytest.fixture
def store(store_path: Path) -> CredentialStore:
    s = CredentialStore(store_path)
    s.load()
    return s


@pytest.fixture
def manager(store: CredentialStore) -> CredentialLifecycleManager:
    return CredentialLifecycleManager(store)

import pytest

from flydrive.manager import reset_storage_manager
from flydrive.storage.local import LocalStorageBackend


@pytest.fixture
def storage_root(tmp_path):
    """Root directory of the local disk used by a test."""
    root = tmp_path / "storage"
    root.mkdir()
    return root


@pytest.fixture
def storage(storage_root):
    """Local storage backend rooted in a temporary directory."""
    return LocalStorageBackend(root=str(storage_root))


@pytest.fixture(autouse=True)
def reset_manager():
    """Drop the settings-based manager so every test builds its own."""
    reset_storage_manager()
    yield
    reset_storage_manager()

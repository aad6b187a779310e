"""
Root conftest.py for shared test fixtures and configuration.
This file provides common fixtures used across the test suite.
"""

import json
import shutil
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest

# Add project root to Python path for consistent imports
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from branchlet import config as branchlet_config
from branchlet.config import SyncConfig
from branchlet.Notes.note_models import Note
from branchlet.Notes.remote_store import RemoteEntry, RemoteFile, RemoteStore
from branchlet.Notes.sync_engine import NotesSyncEngine
from branchlet.Notes.sync_errors import ConflictError, NotFoundError


# ========== Path and File System Fixtures ==========

@pytest.fixture
def isolated_temp_dir():
    """Create an isolated temporary directory that's always cleaned up."""
    temp_dir = tempfile.mkdtemp(prefix="branchlet_test_")
    temp_path = Path(temp_dir)
    yield temp_path
    # Ensure cleanup even if test fails
    if temp_path.exists():
        shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def isolated_config(isolated_temp_dir, monkeypatch):
    """Point the config module at a throwaway config file and data directory."""
    config_path = isolated_temp_dir / "config" / "config.toml"
    data_dir = isolated_temp_dir / "data"
    config_path.parent.mkdir(parents=True)
    config_path.write_text(
        branchlet_config.CONFIG_TOML_CONTENT.replace(
            'data_dir = "~/.local/share/branchlet"', f'data_dir = "{data_dir.as_posix()}"'
        ),
        encoding="utf-8",
    )
    monkeypatch.setattr(branchlet_config, "DEFAULT_CONFIG_PATH", config_path)
    monkeypatch.setattr(branchlet_config, "_CONFIG_CACHE", None)
    monkeypatch.delenv("GITHUB_API_TOKEN", raising=False)
    yield config_path
    branchlet_config._CONFIG_CACHE = None


# ========== Remote Store Fixtures ==========

class InMemoryRemoteStore(RemoteStore):
    """
    RemoteStore double holding files in a dict.

    Every call is appended to ``calls`` as ``(operation, path)``. Errors can be
    queued per operation name (``"put_file"``) or per operation and path
    (``"put_file:root.json"``); each queued error is raised once.
    """

    def __init__(self, login: Optional[str] = "octocat"):
        self.login = login
        self.owner: Optional[str] = None
        self.container_exists = True
        self.files: Dict[str, Tuple[bytes, str]] = {}
        self.calls: List[Tuple[str, Optional[str]]] = []
        self.failures: Dict[str, List[BaseException]] = {}
        self._revision_counter = 0

    def fail(self, key: str, *errors: BaseException) -> None:
        self.failures.setdefault(key, []).extend(errors)

    def _check(self, operation: str, path: Optional[str] = None) -> None:
        self.calls.append((operation, path))
        for key in (f"{operation}:{path}", operation):
            queued = self.failures.get(key)
            if queued:
                raise queued.pop(0)

    def _next_revision(self) -> str:
        self._revision_counter += 1
        return f"rev-{self._revision_counter}"

    def seed_json(self, path: str, data: Any) -> str:
        revision = self._next_revision()
        self.files[path] = (json.dumps(data).encode("utf-8"), revision)
        return revision

    def read_json(self, path: str) -> Any:
        return json.loads(self.files[path][0].decode("utf-8"))

    def calls_for(self, operation: str) -> List[Optional[str]]:
        return [path for op, path in self.calls if op == operation]

    async def fetch_identity(self) -> str:
        self._check("fetch_identity")
        return self.login

    def bind_owner(self, owner: str) -> None:
        self.owner = owner

    async def ensure_container_exists(self) -> bool:
        self._check("ensure_container_exists")
        if self.container_exists:
            return False
        self.container_exists = True
        return True

    async def list_entries(self) -> List[RemoteEntry]:
        self._check("list_entries")
        return [RemoteEntry(name=name, path=name, revision=revision)
                for name, (_, revision) in sorted(self.files.items())]

    async def get_file(self, path: str) -> RemoteFile:
        self._check("get_file", path)
        if path not in self.files:
            raise NotFoundError(f"Not found: {path}", path=path)
        content, revision = self.files[path]
        return RemoteFile(path=path, content=content, revision=revision)

    async def put_file(self, path: str, content: bytes, revision: Optional[str] = None,
                       message: Optional[str] = None) -> Optional[str]:
        self._check("put_file", path)
        if revision is not None and (path not in self.files or self.files[path][1] != revision):
            raise ConflictError(f"Stale revision for {path}", path=path)
        new_revision = self._next_revision()
        self.files[path] = (content, new_revision)
        return new_revision

    async def delete_file(self, path: str, revision: str, message: Optional[str] = None) -> None:
        self._check("delete_file", path)
        if path not in self.files:
            raise NotFoundError(f"Not found: {path}", path=path)
        if self.files[path][1] != revision:
            raise ConflictError(f"Stale revision for {path}", path=path)
        del self.files[path]


@pytest.fixture
def store_factory():
    return InMemoryRemoteStore


@pytest.fixture
def memory_store():
    return InMemoryRemoteStore()


@pytest.fixture
def recorded_sleeps():
    return []


@pytest.fixture
def fake_sleep(recorded_sleeps):
    """Awaitable sleep that records the requested delay instead of waiting."""
    async def _sleep(delay: float) -> None:
        recorded_sleeps.append(delay)
    return _sleep


@pytest.fixture
def sync_config():
    return SyncConfig(token="test-token", write_delay=0.1, max_retries=3, retry_base_delay=1.0)


@pytest.fixture
def sync_engine(memory_store, sync_config, fake_sleep):
    return NotesSyncEngine(memory_store, sync_config, sleep=fake_sleep)


# ========== Tree Fixtures ==========

def make_tree(synced: bool = False) -> List[Note]:
    """root -> [a -> [a1], b]"""
    a1 = Note(id="a1", title="A1", content="grandchild", synced=synced)
    a = Note(id="a", title="A", content="child a", synced=synced, children=[a1])
    b = Note(id="b", title="B", content="child b", expanded=False, synced=synced)
    root = Note(id="root", title="My Notes", content="welcome", synced=synced, children=[a, b])
    return [root]


@pytest.fixture
def sample_tree():
    return make_tree()


@pytest.fixture
def tree_factory():
    return make_tree


# ========== Test Markers ==========

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "property: Property-based tests")

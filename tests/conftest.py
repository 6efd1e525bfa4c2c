# tests/conftest.py
"""
Shared fixtures for convohost tests.

Provides an in-memory FileProvider, a failure-injecting wrapper around it,
and pre-wired SessionStore / SessionIndex / SessionRouter instances.
"""

import threading

import pytest

from convohost.session.index import SessionIndex
from convohost.session.router import SessionRouter
from convohost.session.store import SessionStore
from convohost.storage.base import FileProvider

APP = "test-app"
INDEX_FILE = "index/sessions.json"


class MemoryFileProvider(FileProvider):
    """Dict-backed FileProvider used by the session tests."""

    def __init__(self):
        self.files: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def read(self, path: str) -> bytes:
        with self._lock:
            if path not in self.files:
                raise FileNotFoundError(path)
            return self.files[path]

    def write(self, path: str, data: bytes) -> None:
        with self._lock:
            self.files[path] = bytes(data)

    def exists(self, path: str) -> bool:
        with self._lock:
            return path in self.files

    def delete(self, path: str) -> None:
        with self._lock:
            self.files.pop(path, None)

    def list(self, prefix: str) -> list[str]:
        with self._lock:
            return sorted(p for p in self.files if p.startswith(prefix))


class FlakyFileProvider(MemoryFileProvider):
    """MemoryFileProvider whose writes (or reads) can be switched to fail."""

    def __init__(self):
        super().__init__()
        self.fail_writes = False
        self.fail_reads = False

    def read(self, path: str) -> bytes:
        if self.fail_reads:
            raise OSError("simulated read failure")
        return super().read(path)

    def write(self, path: str, data: bytes) -> None:
        if self.fail_writes:
            raise OSError("simulated write failure")
        super().write(path, data)


@pytest.fixture
def provider():
    """Fresh in-memory provider."""
    return MemoryFileProvider()


@pytest.fixture
def flaky_provider():
    """In-memory provider with switchable failures."""
    return FlakyFileProvider()


@pytest.fixture
def store(provider):
    """SessionStore over the in-memory provider."""
    return SessionStore(provider)


@pytest.fixture
def index(provider):
    """SessionIndex over the in-memory provider."""
    return SessionIndex(provider, INDEX_FILE)


@pytest.fixture
def router(store, index):
    """SessionRouter wired to the store and index fixtures."""
    return SessionRouter(store, index, APP, max_listed=3)

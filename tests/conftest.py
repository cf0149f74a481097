import asyncio
from datetime import datetime, timezone
from typing import List, Optional

import pytest

from quote_intake.config import Settings
from quote_intake.coordinator import PersistenceCoordinator
from quote_intake.exceptions import StorageError
from quote_intake.handles import FileHandleManager
from quote_intake.storage import Capability, DirectoryChooser, InMemoryKeyValueStore

FIXED_NOW = datetime(2024, 3, 5, 12, 30, 0, tzinfo=timezone.utc)


class FailingKeyValueStore(InMemoryKeyValueStore):
    """Store whose writes fail until ``fail_writes`` is cleared."""

    def __init__(self, initial=None, fail_reads: bool = False):
        super().__init__(initial)
        self.fail_writes = True
        self.fail_reads = fail_reads

    async def get(self, key: str) -> Optional[str]:
        if self.fail_reads:
            raise StorageError("store unavailable")
        return await super().get(key)

    async def set(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise StorageError("quota exceeded")
        await super().set(key, value)


class GatedKeyValueStore(InMemoryKeyValueStore):
    """Store whose first write blocks until ``release`` is set."""

    def __init__(self):
        super().__init__()
        self.entered = asyncio.Event()
        self.release = asyncio.Event()
        self.calls: List[str] = []

    async def set(self, key: str, value: str) -> None:
        self.calls.append(value)
        if len(self.calls) == 1:
            self.entered.set()
            await self.release.wait()
        await super().set(key, value)


class RecordingChooser(DirectoryChooser):
    """DirectoryChooser that counts how often it was asked."""

    def __init__(self, root, requested_name=None, cancelled=False):
        super().__init__(root, requested_name, cancelled)
        self.save_requests: List[str] = []
        self.open_requests = 0

    async def choose_save_target(self, suggested_name):
        self.save_requests.append(suggested_name)
        return await super().choose_save_target(suggested_name)

    async def choose_open_target(self):
        self.open_requests += 1
        return await super().choose_open_target()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        storage_dir=str(tmp_path / "storage"),
        workspace_dir=str(tmp_path / "intakes"),
        autosave_debounce_seconds=0.01,
        _env_file=None,
    )


@pytest.fixture
def store():
    return InMemoryKeyValueStore()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def coordinator(store, settings, clock):
    return PersistenceCoordinator(
        store=store,
        handles=FileHandleManager(Capability.SUPPORTED),
        settings=settings,
        clock=clock,
    )


@pytest.fixture
def chooser(settings):
    def make(name=None, cancelled=False):
        return RecordingChooser(settings.workspace_dir, name, cancelled=cancelled)
    return make


@pytest.fixture
def failing_store():
    return FailingKeyValueStore()


@pytest.fixture
def gated_store():
    return GatedKeyValueStore()


@pytest.fixture
def make_coordinator(settings, clock):
    def make(store, capability=Capability.SUPPORTED, snapshot_hook=None):
        return PersistenceCoordinator(
            store=store,
            handles=FileHandleManager(capability),
            settings=settings,
            snapshot_hook=snapshot_hook,
            clock=clock,
        )
    return make

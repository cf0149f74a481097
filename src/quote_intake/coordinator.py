"""
Persistence coordinator: owns the live intake and decides when it is written.

All methods run on one asyncio loop. Every write follows
snapshot -> await -> commit: the document is captured together with a write
sequence number before any await, and a commit older than the last committed
one is dropped, so the most recently initiated write is the one that survives.
"""

import asyncio
import itertools
import json
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from pydantic import BaseModel, ValidationError

from .config.settings import Settings, get_settings
from .exceptions import ChooserCancelled, InvalidDocumentError, InvalidEditError, InvalidTargetError, StorageError
from .handles import FileHandleManager
from .reconciler import ReconcileResult, reconcile_document
from .schemas.intake import IntakeModel, IntakeState, Tab, default_state, utc_timestamp
from .storage.files import FileChooser, FileHandle
from .storage.local_store import KeyValueStore
from .utils.logging import persistence_logger

_FILENAME_STRIP_RE = re.compile(r"[^\w\- ]+", re.ASCII)

SnapshotHook = Callable[[IntakeState], None]
Clock = Callable[[], datetime]


class OperationStatus(str, Enum):
    SAVED = "saved"
    OPENED = "opened"
    IMPORTED = "imported"
    NEW = "new"
    CANCELLED = "cancelled"
    NOT_SUPPORTED = "not_supported"
    FAILED = "failed"


@dataclass
class OperationResult:
    """Outcome of an operator-initiated persistence operation."""
    status: OperationStatus
    message: str
    file: Optional[str] = None
    migrations: int = 0
    newer_than_schema: bool = False

    @property
    def ok(self) -> bool:
        return self.status in (
            OperationStatus.SAVED,
            OperationStatus.OPENED,
            OperationStatus.IMPORTED,
            OperationStatus.NEW,
        )


@dataclass
class SaveStatus:
    """Background save indicator shown next to the form."""
    text: str = "Auto-saved locally"
    last_persisted_at: Optional[str] = None
    last_error: Optional[str] = None
    writes: int = 0


def suggested_filename(customer_name: str, today: Optional[date] = None) -> str:
    """``<customer name>_<YYYY-MM-DD>.json``, or ``intake_<date>.json`` without a name."""
    name = _FILENAME_STRIP_RE.sub("", (customer_name or "").strip())
    day = (today or date.today()).isoformat()
    return f"{name or 'intake'}_{day}.json"


def _dumps(document: Dict[str, Any], indent: Optional[int] = None) -> str:
    return json.dumps(document, indent=indent, ensure_ascii=False)


def _attribute_for(model: IntakeModel, key: str) -> Optional[str]:
    for name, info in type(model).model_fields.items():
        if key == info.alias or key == name:
            return name
    return None


class PersistenceCoordinator:
    """Single writer of the intake state."""

    def __init__(self,
                 store: KeyValueStore,
                 handles: Optional[FileHandleManager] = None,
                 settings: Optional[Settings] = None,
                 snapshot_hook: Optional[SnapshotHook] = None,
                 clock: Optional[Clock] = None):
        self.settings = settings or get_settings()
        self.store = store
        self.handles = handles or FileHandleManager()
        self.snapshot_hook = snapshot_hook
        self._clock: Clock = clock or (lambda: datetime.now(timezone.utc))

        self._state = default_state(self._clock())
        self.restored = False

        # Debounce
        self._timer: Optional[asyncio.TimerHandle] = None
        self._autosave_task: Optional[asyncio.Task] = None

        # Write ordering
        self._write_lock = asyncio.Lock()
        self._sequence = itertools.count(1)
        self._committed_sequence = 0

        self.status = SaveStatus()
        if not self.handles.supported:
            self.status.text = "Auto-saved locally (file save limited in this environment)"

    @property
    def state(self) -> IntakeState:
        """The live state. Edits should go through apply_edit."""
        return self._state

    @property
    def autosave_pending(self) -> bool:
        return self._timer is not None

    # ------------------------------------------------------------------
    # Snapshot and commit
    # ------------------------------------------------------------------
    def _capture(self) -> Tuple[int, Dict[str, Any]]:
        """Pull pending UI values, stamp the document and take a deep copy."""
        if self.snapshot_hook is not None:
            self.snapshot_hook(self._state)
        self._state.auto.normalize()
        self._state.meta.updated_at = utc_timestamp(self._clock())
        return next(self._sequence), self._state.to_document()

    async def _commit(self, sequence: int, document: Dict[str, Any], reason: str) -> bool:
        key = self.settings.storage_key
        payload = _dumps(document)
        async with self._write_lock:
            if sequence < self._committed_sequence:
                persistence_logger.log_store_skip(key, sequence, self._committed_sequence)
                return True
            try:
                await self.store.set(key, payload)
            except StorageError as e:
                persistence_logger.log_store_error(key, reason, str(e))
                self.status.last_error = str(e)
                return False
            self._committed_sequence = sequence
            self.status.last_persisted_at = utc_timestamp(self._clock())
            self.status.last_error = None
            self.status.writes += 1
            persistence_logger.log_store_write(key, reason, sequence, len(payload))
            return True

    async def _persist(self, reason: str) -> bool:
        sequence, document = self._capture()
        return await self._commit(sequence, document, reason)

    # ------------------------------------------------------------------
    # Autosave
    # ------------------------------------------------------------------
    def notify_edit(self, status_text: str = "Changed") -> None:
        """Restart the quiet period; one write follows the last edit of a burst."""
        loop = asyncio.get_running_loop()
        self._cancel_autosave()
        self.status.text = status_text
        self._timer = loop.call_later(self.settings.autosave_debounce_seconds, self._fire_autosave)

    def _cancel_autosave(self) -> bool:
        if self._timer is None:
            return False
        self._timer.cancel()
        self._timer = None
        return True

    def _fire_autosave(self) -> None:
        self._timer = None
        self._autosave_task = asyncio.get_running_loop().create_task(self._autosave())

    async def _autosave(self) -> None:
        if await self._persist("autosave"):
            self.status.text = "Auto-saved locally"
        else:
            self.status.text = "Auto-save failed"

    async def flush(self) -> None:
        """Write a pending autosave now and wait for any autosave in flight."""
        if self._cancel_autosave():
            await self._autosave()
        if self._autosave_task is not None and not self._autosave_task.done():
            await self._autosave_task

    async def close(self) -> None:
        await self.flush()

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------
    def _step(self, target: Any, segment: str, path: str) -> Any:
        if isinstance(target, list):
            try:
                return target[int(segment)]
            except (ValueError, IndexError):
                raise InvalidEditError(f"No entry {segment!r} in {path!r}")
        if isinstance(target, IntakeModel):
            name = _attribute_for(target, segment)
            if name is not None:
                return getattr(target, name)
        raise InvalidEditError(f"Unknown field {path!r}")

    def apply_edit(self, path: str, value: Any, status_text: str = "Changed") -> None:
        """
        Set one leaf addressed by a camelCase dotted path and schedule autosave.

        Examples: ``customer.address.city``, ``auto.drivers.0.name``,
        ``auto.counts.vehicles``, ``business.workersComp.numEmployees``.
        """
        segments = [s for s in path.split(".") if s]
        if not segments:
            raise InvalidEditError("Empty field path")
        target: Any = self._state
        for segment in segments[:-1]:
            target = self._step(target, segment, path)
        if not isinstance(target, IntakeModel):
            raise InvalidEditError(f"Unknown field {path!r}")
        name = _attribute_for(target, segments[-1])
        if name is None or segments[0] == "meta":
            raise InvalidEditError(f"Unknown field {path!r}")

        current = getattr(target, name)
        if isinstance(current, (BaseModel, list)):
            raise InvalidEditError(f"{path!r} is not a single field")
        if isinstance(current, str):
            if value is None:
                value = ""
            elif isinstance(value, (int, float)) and not isinstance(value, bool):
                value = str(value)

        try:
            setattr(target, name, value)
        except ValidationError as e:
            raise InvalidEditError(f"Invalid value for {path!r}: {e.errors()[0]['msg']}") from e

        if segments[0] == "auto":
            self._state.auto.normalize()
        self.notify_edit(status_text)

    def set_active_tab(self, tab: Any) -> Tab:
        self._state.last_active_tab = Tab.parse(tab)
        self.notify_edit("Switched tab")
        return self._state.last_active_tab

    # ------------------------------------------------------------------
    # Load / import / new
    # ------------------------------------------------------------------
    async def _read_stored(self) -> Tuple[Optional[str], str]:
        keys = [self.settings.storage_key] + [
            k for k in self.settings.legacy_storage_keys if k != self.settings.storage_key
        ]
        for key in keys:
            try:
                raw = await self.store.get(key)
            except StorageError as e:
                persistence_logger.log_store_error(key, "load", str(e))
                continue
            if raw and raw.strip():
                return raw, key
        return None, self.settings.storage_key

    async def load(self) -> IntakeState:
        """Restore the last draft from the store, or start from defaults."""
        raw, key = await self._read_stored()
        parsed: Any = None
        if raw is not None:
            try:
                parsed = json.loads(raw)
            except json.JSONDecodeError as e:
                persistence_logger.log_store_error(key, "load", f"Unparsable draft: {e}")

        self.restored = isinstance(parsed, dict)
        if self.restored:
            self._state = reconcile_document(parsed, now=self._clock()).state
        else:
            self._state = default_state(self._clock())
        persistence_logger.log_restore(key, self.restored)

        if self.restored and key != self.settings.storage_key:
            if await self._persist("migrate"):
                await self._drop_legacy(key)
        return self._state

    async def _drop_legacy(self, key: str) -> None:
        """Remove a legacy slot once its draft lives under the current key."""
        try:
            await self.store.delete(key)
        except StorageError as e:
            persistence_logger.log_store_error(key, "drop_legacy", str(e))

    def _replace(self, result: ReconcileResult) -> None:
        self._cancel_autosave()
        self._state = result.state

    async def import_document(self, document: Any) -> OperationResult:
        """Reconcile a parsed document, replace the intake and unbind any file."""
        result = reconcile_document(document, now=self._clock())
        self._replace(result)
        self.handles.unbind("import")
        if await self._persist("import"):
            self.status.text = "Imported"
        else:
            self.status.text = "Imported (local save failed)"
        return OperationResult(
            status=OperationStatus.IMPORTED,
            message="Imported",
            migrations=len(result.migrations),
            newer_than_schema=result.newer_than_schema,
        )

    async def import_text(self, raw: str) -> OperationResult:
        """Parse pasted text and import it. Rejects empty or invalid JSON."""
        text = (raw or "").strip()
        if not text:
            raise InvalidDocumentError("Paste JSON into the box first")
        try:
            document = json.loads(text)
        except json.JSONDecodeError as e:
            raise InvalidDocumentError(f"Invalid JSON: {e.msg}") from e
        return await self.import_document(document)

    async def new_intake(self) -> OperationResult:
        self._cancel_autosave()
        self._state = default_state(self._clock())
        self.handles.unbind("new_intake")
        await self._persist("new_intake")
        self.status.text = "New intake"
        return OperationResult(status=OperationStatus.NEW, message="New intake")

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------
    def export(self) -> Dict[str, Any]:
        """Deep, independent snapshot of the current intake."""
        return self._capture()[1]

    def export_text(self) -> str:
        return _dumps(self.export(), indent=2)

    def suggested_filename(self, document: Optional[Dict[str, Any]] = None) -> str:
        """Name offered to the chooser, taken from the snapshot being saved when given."""
        name = self._state.customer.name
        if document is not None:
            name = str(document.get("customer", {}).get("name", ""))
        return suggested_filename(name, self._clock().date())

    # ------------------------------------------------------------------
    # Explicit file operations
    # ------------------------------------------------------------------
    def _not_supported(self, operation: str) -> OperationResult:
        if operation == "open":
            message = "File open not supported here. Use Import JSON instead."
        else:
            message = "File save not supported here. Use Download JSON instead."
        return OperationResult(status=OperationStatus.NOT_SUPPORTED, message=message)

    async def _write_file(self,
                          operation: str,
                          handle: FileHandle,
                          sequence: int,
                          document: Dict[str, Any]) -> OperationResult:
        try:
            await handle.write_text(_dumps(document, indent=2))
        except OSError as e:
            persistence_logger.log_file_error(operation, str(handle.path), str(e))
            await self._commit(sequence, document, operation)
            return OperationResult(status=OperationStatus.FAILED, message=f"Save failed: {e}")
        self.handles.bind(handle)
        await self._commit(sequence, document, operation)
        persistence_logger.log_file_operation(operation, str(handle.path))
        self.status.text = "Saved"
        return OperationResult(status=OperationStatus.SAVED, message="Saved", file=handle.name)

    async def save_as(self, chooser: FileChooser) -> OperationResult:
        """Write to a newly chosen file, which becomes the bound handle."""
        if not self.handles.supported:
            return self._not_supported("save")
        was_pending = self._cancel_autosave()
        sequence, document = self._capture()
        try:
            handle = await chooser.choose_save_target(self.suggested_filename(document))
        except ChooserCancelled:
            if was_pending:
                await self._commit(sequence, document, "save_as")
            return OperationResult(status=OperationStatus.CANCELLED, message="Save As cancelled")
        except InvalidTargetError as e:
            if was_pending:
                await self._commit(sequence, document, "save_as")
            persistence_logger.log_file_error("save_as", None, str(e))
            return OperationResult(status=OperationStatus.FAILED, message=str(e))
        return await self._write_file("save_as", handle, sequence, document)

    async def save(self, chooser: Optional[FileChooser] = None) -> OperationResult:
        """Write to the bound file; behaves like save_as while unbound."""
        if not self.handles.supported:
            return self._not_supported("save")
        handle = self.handles.handle
        if handle is None:
            if chooser is None:
                return OperationResult(status=OperationStatus.CANCELLED, message="No file chosen")
            return await self.save_as(chooser)
        self._cancel_autosave()
        sequence, document = self._capture()
        return await self._write_file("save", handle, sequence, document)

    async def open(self, chooser: FileChooser) -> OperationResult:
        """Read a chosen file, reconcile it and bind it for later saves."""
        if not self.handles.supported:
            return self._not_supported("open")
        try:
            handle = await chooser.choose_open_target()
        except ChooserCancelled:
            return OperationResult(status=OperationStatus.CANCELLED, message="Open cancelled")
        except InvalidTargetError as e:
            persistence_logger.log_file_error("open", None, str(e))
            return OperationResult(status=OperationStatus.FAILED, message=str(e))

        try:
            text = await handle.read_text()
            document = json.loads(text)
        except (OSError, UnicodeDecodeError) as e:
            persistence_logger.log_file_error("open", str(handle.path), str(e))
            return OperationResult(status=OperationStatus.FAILED, message=f"Open failed: {e}")
        except json.JSONDecodeError as e:
            persistence_logger.log_file_error("open", str(handle.path), str(e))
            return OperationResult(status=OperationStatus.FAILED, message=f"Invalid JSON in {handle.name}")

        result = reconcile_document(document, now=self._clock())
        self._replace(result)
        self.handles.bind(handle)
        await self._persist("open")
        persistence_logger.log_file_operation("open", str(handle.path))
        self.status.text = "Opened"
        return OperationResult(
            status=OperationStatus.OPENED,
            message="Opened",
            file=handle.name,
            migrations=len(result.migrations),
            newer_than_schema=result.newer_than_schema,
        )

    def describe(self) -> Dict[str, Any]:
        return {
            "text": self.status.text,
            "autosave_pending": self.autosave_pending,
            "last_persisted_at": self.status.last_persisted_at,
            "last_error": self.status.last_error,
            "writes": self.status.writes,
            "restored": self.restored,
            "file": self.handles.describe(),
        }

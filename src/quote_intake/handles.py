"""Tracks the file bound for direct "Save"."""

from enum import Enum
from typing import Any, Dict, Optional

from .storage.files import Capability, FileHandle
from .utils.logging import persistence_logger


class HandleState(str, Enum):
    UNBOUND = "unbound"
    BOUND = "bound"


class FileHandleManager:
    """
    Zero-or-one bound file handle.

    Unbound -> Bound on a completed save-as or open. Bound -> Unbound on
    import, new intake, or when the host has no file support at all.
    A cancelled chooser never reaches this class, so it leaves state alone.
    """

    def __init__(self, capability: Capability = Capability.SUPPORTED):
        self.capability = capability
        self._handle: Optional[FileHandle] = None

    @property
    def supported(self) -> bool:
        return self.capability == Capability.SUPPORTED

    @property
    def handle(self) -> Optional[FileHandle]:
        return self._handle

    @property
    def state(self) -> HandleState:
        return HandleState.BOUND if self._handle is not None else HandleState.UNBOUND

    def bind(self, handle: FileHandle) -> None:
        if not self.supported:
            self.unbind("unsupported")
            return
        self._handle = handle
        persistence_logger.log_handle_change(HandleState.BOUND.value, "bound", str(handle.path))

    def unbind(self, reason: str) -> None:
        if self._handle is None:
            return
        self._handle = None
        persistence_logger.log_handle_change(HandleState.UNBOUND.value, reason)

    def describe(self) -> Dict[str, Any]:
        return {
            "capability": self.capability.value,
            "state": self.state.value,
            "file": self._handle.name if self._handle else None,
        }

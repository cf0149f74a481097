"""
File targets for explicit save/open.

A ``FileHandle`` is the capability to read and write one chosen file. Handles
come from a ``FileChooser``; a chooser signals an operator who backed out with
``ChooserCancelled``. Whether file access exists at all is resolved once at
start-up into a ``Capability``.
"""

import asyncio
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Protocol

from ..config.settings import Settings
from ..exceptions import ChooserCancelled, InvalidTargetError
from .local_store import atomic_write_text


class Capability(str, Enum):
    """Host support for choosing and writing files."""
    SUPPORTED = "supported"
    UNSUPPORTED = "unsupported"


def detect_capability(settings: Settings) -> Capability:
    """Resolve file support once: enabled in settings and a usable workspace."""
    if not settings.file_access_enabled:
        return Capability.UNSUPPORTED
    root = Path(settings.workspace_dir)
    try:
        root.mkdir(parents=True, exist_ok=True)
    except OSError:
        return Capability.UNSUPPORTED
    if not os.access(root, os.R_OK | os.W_OK):
        return Capability.UNSUPPORTED
    return Capability.SUPPORTED


@dataclass(frozen=True)
class FileHandle:
    path: Path

    @property
    def name(self) -> str:
        return self.path.name

    async def read_text(self) -> str:
        return await asyncio.to_thread(self.path.read_text, encoding="utf-8")

    async def write_text(self, text: str) -> None:
        await asyncio.to_thread(atomic_write_text, self.path, text)


class FileChooser(Protocol):
    async def choose_save_target(self, suggested_name: str) -> FileHandle: ...

    async def choose_open_target(self) -> FileHandle: ...


class DirectoryChooser:
    """
    Chooser answered by a file name the operator supplied with the request.

    Names are confined to the workspace directory and get a ``.json`` suffix.
    Saving without a name accepts the suggested name; opening without a name,
    or any request marked cancelled, counts as the operator backing out.
    """

    def __init__(self, root: str, requested_name: Optional[str] = None, cancelled: bool = False):
        self.root = Path(root)
        self.requested_name = requested_name
        self.cancelled = cancelled

    def _resolve(self, name: Optional[str]) -> FileHandle:
        if self.cancelled or name is None or not name.strip():
            raise ChooserCancelled("No file chosen")
        name = name.strip()
        if not name.lower().endswith(".json"):
            name = f"{name}.json"
        root = self.root.resolve()
        path = (root / name).resolve()
        if path.parent != root and root not in path.parents:
            raise InvalidTargetError(f"{name!r} is outside the intake workspace")
        return FileHandle(path=path)

    async def choose_save_target(self, suggested_name: str) -> FileHandle:
        name = self.requested_name if self.requested_name is not None else suggested_name
        return self._resolve(name)

    async def choose_open_target(self) -> FileHandle:
        return self._resolve(self.requested_name)

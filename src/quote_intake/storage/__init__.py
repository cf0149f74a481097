"""Durable store and file targets."""

from .files import Capability, DirectoryChooser, FileChooser, FileHandle, detect_capability
from .local_store import FileKeyValueStore, InMemoryKeyValueStore, KeyValueStore

__all__ = [
    "Capability",
    "DirectoryChooser",
    "FileChooser",
    "FileHandle",
    "detect_capability",
    "FileKeyValueStore",
    "InMemoryKeyValueStore",
    "KeyValueStore",
]

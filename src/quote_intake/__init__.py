"""Quote intake service: insurance intake form state, autosave and file persistence."""

__version__ = "0.1.0"

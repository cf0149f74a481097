"""Utilities and helper functions for the intake service."""

from .logging import setup_logging, persistence_logger, reconcile_logger

__all__ = ["setup_logging", "persistence_logger", "reconcile_logger"]

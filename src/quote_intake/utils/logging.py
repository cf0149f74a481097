import logging
import sys
from typing import Optional
import structlog

from ..config.settings import get_settings


def setup_logging() -> None:
    """Setup structured logging configuration."""
    settings = get_settings()

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper(), logging.INFO)
    )

    # Configure structlog
    if settings.log_format.lower() == "json":
        processors = [
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ]
    else:
        processors = [
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer()
        ]

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


class ReconcileLogger:
    """Logger for document reconciliation."""

    def __init__(self):
        self.logger = structlog.get_logger("quote_intake.reconciler")

    def log_migration(self, group: str, field: str, source: str) -> None:
        """Log a value taken from a prior path or name."""
        self.logger.info(
            "Field migrated",
            group=group,
            field=field,
            source=source
        )

    def log_reconciled(self,
                       source_version: Optional[int],
                       target_version: int,
                       migrations: int) -> None:
        """Log a completed reconciliation pass."""
        self.logger.debug(
            "Document reconciled",
            source_version=source_version,
            target_version=target_version,
            migrations=migrations
        )

    def log_newer_version(self, source_version: int, target_version: int) -> None:
        """Log a document written by a newer schema."""
        self.logger.warning(
            "Document declares a newer schema version; reconciling best-effort",
            source_version=source_version,
            target_version=target_version
        )


class PersistenceLogger:
    """Logger for store and file persistence."""

    def __init__(self):
        self.logger = structlog.get_logger("quote_intake.persistence")

    def log_store_write(self, key: str, reason: str, sequence: int, size: int) -> None:
        """Log a committed store write."""
        self.logger.debug(
            "Intake persisted",
            key=key,
            reason=reason,
            sequence=sequence,
            size=size
        )

    def log_store_skip(self, key: str, sequence: int, committed: int) -> None:
        """Log a stale write dropped in favour of a newer one."""
        self.logger.debug(
            "Stale intake write dropped",
            key=key,
            sequence=sequence,
            committed_sequence=committed
        )

    def log_store_error(self, key: str, reason: str, error: str) -> None:
        """Log a failed store read or write."""
        self.logger.warning(
            "Intake store operation failed",
            key=key,
            reason=reason,
            error=error
        )

    def log_restore(self, key: str, restored: bool) -> None:
        """Log the outcome of the start-up load."""
        self.logger.info(
            "Intake loaded",
            key=key,
            restored=restored
        )

    def log_file_operation(self, operation: str, path: str) -> None:
        """Log a completed file save or open."""
        self.logger.info(
            "Intake file operation completed",
            operation=operation,
            path=path
        )

    def log_file_error(self, operation: str, path: Optional[str], error: str) -> None:
        """Log a failed file save or open."""
        self.logger.error(
            "Intake file operation failed",
            operation=operation,
            path=path,
            error=error
        )

    def log_handle_change(self, state: str, reason: str, path: Optional[str] = None) -> None:
        """Log a file handle binding change."""
        self.logger.info(
            "File handle state changed",
            state=state,
            reason=reason,
            path=path
        )


# Global logger instances
reconcile_logger = ReconcileLogger()
persistence_logger = PersistenceLogger()

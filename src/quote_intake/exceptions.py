"""Error taxonomy for the intake service."""


class IntakeError(Exception):
    """Base class for intake errors."""


class InvalidDocumentError(IntakeError):
    """Raised when supplied text cannot be parsed as an intake document."""


class InvalidEditError(IntakeError):
    """Raised when an edit names an unknown field or carries an invalid value."""


class StorageError(IntakeError):
    """Raised when the durable store cannot be read or written."""


class ChooserCancelled(IntakeError):
    """The operator dismissed a file chooser. Not a failure."""


class InvalidTargetError(IntakeError):
    """Raised when a chosen file target lies outside the workspace."""

"""
Custom exceptions for offline notes sync.

Per-record push failures are absorbed into ``SyncState.SYNC_FAILED`` by the
reconciler; only the whole-pass failures below ever reach a caller.
"""


class NotesSyncError(Exception):
    """Base exception for all offline notes sync errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NoConnectionError(NotesSyncError):
    """Raised when a reconciliation pass is attempted while offline.

    Not an error in the retry sense: the pass is deferred until
    connectivity resumes.
    """

    def __init__(self, message: str = "No network connection"):
        super().__init__(message)


class RemoteGatewayError(NotesSyncError):
    """Base for failures reported by the remote authority."""

    def __init__(self, message: str, record_id: str | None = None, cause: Exception | None = None):
        details: dict = {}
        if record_id:
            details["record_id"] = record_id
        if cause:
            details["cause"] = str(cause)
        super().__init__(message, details)
        self.record_id = record_id
        self.cause = cause


class NetworkFailureError(RemoteGatewayError):
    """Raised when a remote call fails in transport."""


class RemoteRejectedError(RemoteGatewayError):
    """Raised when the remote authority refuses a push."""


class NotFoundRemotelyError(RemoteRejectedError):
    """Raised when an update or delete targets an id unknown to the remote."""

    def __init__(self, record_id: str):
        super().__init__(f"Record not found on server: {record_id}", record_id=record_id)


class SchedulerExhaustedError(NotesSyncError):
    """Raised when a scheduled pass used up its retry budget."""

    def __init__(self, attempts: int, cause: Exception | None = None):
        details: dict = {"attempts": attempts}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Sync pass abandoned after {attempts} attempts", details)
        self.attempts = attempts
        self.cause = cause


class LocalStoreError(NotesSyncError):
    """Raised when the local store fails. Fatal to the current pass."""

    def __init__(
        self, operation: str, record_id: str | None = None, cause: Exception | None = None
    ):
        details = {"operation": operation}
        if record_id:
            details["record_id"] = record_id
        if cause:
            details["cause"] = str(cause)
        message = f"Local store error during {operation}"
        if record_id:
            message += f": {record_id}"
        super().__init__(message, details)
        self.operation = operation
        self.record_id = record_id
        self.cause = cause


class RecordNotFoundError(NotesSyncError):
    """Raised when a local command names a record that does not exist."""

    def __init__(self, record_id: str):
        super().__init__(f"Record not found: {record_id}", {"record_id": record_id})
        self.record_id = record_id


class ValidationError(NotesSyncError):
    """Raised when note content fails validation."""

    def __init__(self, field: str, reason: str):
        super().__init__(
            f"Validation failed for {field}: {reason}", {"field": field, "reason": reason}
        )
        self.field = field
        self.reason = reason


class StorageIOError(NotesSyncError):
    """Raised when a file I/O operation fails."""

    def __init__(self, operation: str, path: str | None = None, cause: Exception | None = None):
        details = {"operation": operation}
        if path:
            details["path"] = path
        if cause:
            details["cause"] = str(cause)
        message = f"Storage I/O error during {operation}"
        if path:
            message += f": {path}"
        super().__init__(message, details)
        self.operation = operation
        self.path = path
        self.cause = cause

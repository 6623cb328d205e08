"""
errors.py - Closed error family for the update pipeline.

Every failure the pipeline expects carries an ErrorKind tag so callers can
dispatch on the tag instead of chains of isinstance checks.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    TRANSIENT_FETCH = "transient_fetch"
    FILE_NOT_FOUND = "file_not_found"
    TRANSACTION = "transaction"


class TrackerError(Exception):
    """Base class; subclasses set ``kind``."""

    kind: ErrorKind


class AddressValidationError(TrackerError, ValueError):
    """Address is not strictly alphanumeric or the local path escapes the root."""

    kind = ErrorKind.VALIDATION


class TransientFetchError(TrackerError):
    """Network failure, non-2xx status or malformed upstream payload."""

    kind = ErrorKind.TRANSIENT_FETCH


class SnapshotFileNotFoundError(TrackerError, FileNotFoundError):
    """The participant's file is absent from the local source root."""

    kind = ErrorKind.FILE_NOT_FOUND


class TransactionError(TrackerError):
    """Store-level failure; the participant's transaction was rolled back."""

    kind = ErrorKind.TRANSACTION


def classify_error(exc: BaseException) -> Optional[ErrorKind]:
    """Return the tag of a pipeline error, or None for anything unexpected."""
    if isinstance(exc, TrackerError):
        return exc.kind
    return None

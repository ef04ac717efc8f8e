"""Custom exception hierarchy for mnote."""

from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    """Why a command could not be applied."""

    UNKNOWN_ENTITY = "unknown_entity"
    DUPLICATE_ID = "duplicate_id"
    INVALID_VOICE = "invalid_voice"
    INVALID_TICK = "invalid_tick"
    INVALID_REFERENCE = "invalid_reference"
    INVALID_VALUE = "invalid_value"


class MnoteError(Exception):
    """Base exception for all mnote errors."""


class ValidationError(MnoteError, ValueError):
    """Malformed value construction (pitch, duration, signature, etc.).

    Subclasses both MnoteError and ValueError so callers can keep using
    ``except ValueError`` around constructors.
    """


class StateError(MnoteError):
    """Operation refers to something the working score does not allow."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.INVALID_REFERENCE) -> None:
        super().__init__(message)
        self.kind = kind


class SerializationError(MnoteError):
    """Error while encoding, decoding, loading or saving a document."""

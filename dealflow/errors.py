"""Error taxonomy shared by services, API and controllers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ValidationKind(str, Enum):
    MISSING_REQUIRED_FIELD = "missing_required_field"
    INVALID_TYPE = "invalid_type"
    INVALID_OPTION_MEMBERSHIP = "invalid_option_membership"
    OUT_OF_RANGE = "out_of_range"
    PATTERN_MISMATCH = "pattern_mismatch"


@dataclass(frozen=True)
class FieldError:
    kind: ValidationKind
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "message": self.message}

    @classmethod
    def from_dict(cls, data: dict) -> "FieldError":
        return cls(kind=ValidationKind(data["kind"]), message=data.get("message", ""))


class DealflowError(Exception):
    """Base exception for pipeline engine errors."""

    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ValidationError(DealflowError):
    """One or more fields failed validation. Carries the full per-field map."""

    status_code = 422

    def __init__(self, errors: dict[str, FieldError], message: str = "Validation failed"):
        self.errors = errors
        super().__init__(message)


class NotFound(DealflowError):
    status_code = 404


class ConfigurationError(DealflowError):
    """Pipeline, stage or field configuration would break an invariant."""

    status_code = 400


class TransportError(DealflowError):
    """A persistence call failed on the way to or from the server."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class MoveConflict(TransportError):
    status_code = 409


class TransitionNotAllowed(MoveConflict):
    pass


class RequestTimeout(TransportError):
    status_code = 504


class SubmissionError(DealflowError):
    """Creating or updating an opportunity failed after validation passed."""

    def __init__(self, message: str, cause: Exception | None = None):
        self.cause = cause
        super().__init__(message)

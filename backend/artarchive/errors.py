from __future__ import annotations
from typing import Any
from dataclasses import dataclass, asdict


@dataclass
class FieldError:
    field: str
    code: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


class ArchiveError(Exception):
    """
    Base for errors surfaced to API callers.
      - status_code: HTTP status the exception handler renders
      - code: stable machine-readable identifier
      - reason: short human label (used in batch reports)
    """
    status_code = 500
    code = "INTERNAL_ERROR"
    reason = "internal error"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(ArchiveError):
    status_code = 422
    code = "VALIDATION_ERROR"
    reason = "validation failed"

    def __init__(self, errors: list[FieldError], message: str | None = None):
        self.errors = list(errors)
        if message is None:
            first = self.errors[0] if self.errors else None
            message = f"{first.field}: {first.message}" if first else "Validation failed"
        super().__init__(message, {"errors": [e.to_dict() for e in self.errors]})

    @classmethod
    def single(cls, field: str, code: str, message: str) -> "ValidationError":
        return cls([FieldError(field, code, message)])


class ConflictError(ArchiveError):
    status_code = 409
    code = "CONFLICT"
    reason = "conflict"


class NotFoundError(ArchiveError):
    status_code = 404
    code = "NOT_FOUND"
    reason = "not found"

    def __init__(self, kind: str, missing_id: Any):
        super().__init__(f"{kind} not found: {missing_id}", {"kind": kind, "id": str(missing_id)})
        self.missing_id = missing_id


class ExternalResourceError(ArchiveError):
    status_code = 502
    code = "EXTERNAL_RESOURCE_ERROR"
    reason = "external resource failure"


class PermissionDeniedError(ArchiveError):
    status_code = 403
    code = "INSUFFICIENT_PERMISSIONS"
    reason = "forbidden"

    def __init__(self, message: str = "moderator capability required"):
        super().__init__(message)


class AuthenticationError(ArchiveError):
    status_code = 401
    code = "UNAUTHORIZED"
    reason = "unauthorized"

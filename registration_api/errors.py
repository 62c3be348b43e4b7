from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str

    def as_dict(self) -> dict:
        return {"field": self.field, "message": self.message}


class ValidationError(Exception):
    """One or more validation rules failed.

    Carries every failing rule, not just the first one, so callers can fix the
    whole form in a single round-trip.
    """

    def __init__(self, errors: Iterable[FieldError]):
        self.errors: List[FieldError] = list(errors)
        super().__init__("; ".join(f"{e.field}: {e.message}" for e in self.errors) or "validation failed")


class ConflictError(ValidationError):
    """The username is already registered (case-insensitively)."""

    def __init__(self, message: str = "Username is already taken."):
        super().__init__([FieldError(field="username", message=message)])


class InternalError(Exception):
    """An unexpected failure while registering (e.g. the password hasher broke).

    The message is for logs only; callers get a generic response.
    """

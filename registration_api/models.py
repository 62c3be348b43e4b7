from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class UsernameAvailabilityResponse(BaseModel):
    available: bool
    message: Optional[str] = None


class FieldErrorOut(BaseModel):
    field: str
    message: str


class RegisteredUser(BaseModel):
    # Accepted extension attributes are flattened next to the canonical fields.
    model_config = ConfigDict(extra="allow")

    id: str
    username: str
    email: str
    registered_at: str = Field(serialization_alias="registeredAt")


class RegistrationSuccess(BaseModel):
    success: bool = True
    message: str = "Registration successful!"
    user: RegisteredUser


class RegistrationFailure(BaseModel):
    success: bool = False
    errors: list[FieldErrorOut] = Field(default_factory=list)


class InternalErrorResponse(BaseModel):
    success: bool = False
    message: str = "An internal server error occurred."


def user_payload(*, record: Any) -> dict[str, Any]:
    """Public JSON view of an identity record. Never includes the password hash."""
    user = RegisteredUser(
        id=record.id,
        username=record.username,
        email=record.email,
        registered_at=record.registered_at_iso,
        **dict(record.extras),
    )
    return user.model_dump(by_alias=True)

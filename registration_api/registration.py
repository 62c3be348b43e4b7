from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Mapping, Optional

from registration_api.errors import ConflictError, FieldError, InternalError, ValidationError
from registration_api.passwords import hash_password_async
from registration_api.user_store import IdentityRecord, UserDirectory
from registration_api.validation import (
    MSG_USERNAME_REQUIRED,
    MSG_USERNAME_TAKEN,
    clean_registration_form,
)

logger = logging.getLogger("registration_service")

PasswordHasher = Callable[[str], Awaitable[str]]


def _new_identifier() -> str:
    # Creation time in epoch milliseconds; the username is the real key.
    return str(time.time_ns() // 1_000_000)


class RegistrationService:
    """Username availability and registration over a :class:`UserDirectory`.

    The "is it taken" check done during validation is advisory: the password
    hash is awaited between that check and the write, so the directory's
    atomic ``insert_if_absent`` is what actually decides who gets a name.
    """

    def __init__(
        self,
        *,
        directory: UserDirectory,
        bcrypt_rounds: int = 12,
        max_extra_fields: int = 20,
        hasher: Optional[PasswordHasher] = None,
    ):
        self.directory = directory
        self.bcrypt_rounds = bcrypt_rounds
        self.max_extra_fields = max_extra_fields
        self._hasher = hasher

    async def _hash(self, password: str) -> str:
        if self._hasher is not None:
            return await self._hasher(password)
        return await hash_password_async(password, rounds=self.bcrypt_rounds)

    def check_availability(self, username: Any) -> bool:
        if not isinstance(username, str) or not username.strip():
            raise ValidationError([FieldError("username", MSG_USERNAME_REQUIRED)])
        return not self.directory.has(username=username)

    async def register(self, form: Mapping[str, Any]) -> IdentityRecord:
        """Validate ``form`` and create the identity record.

        Raises ValidationError with every failing rule, ConflictError when a
        concurrent registration claimed the username first, or InternalError
        when hashing fails.
        """
        cleaned = clean_registration_form(form, max_extra_fields=self.max_extra_fields)

        errors = list(cleaned.errors)
        if cleaned.username and self.directory.has(username=cleaned.username):
            # Report alongside the format errors, right after the username rules.
            pos = sum(1 for e in errors if e.field == "username")
            errors.insert(pos, FieldError("username", MSG_USERNAME_TAKEN))
        if errors:
            raise ValidationError(errors)

        try:
            password_hash = await self._hash(cleaned.password)
        except Exception as e:
            raise InternalError("password hashing failed") from e

        record = IdentityRecord(
            id=_new_identifier(),
            username=cleaned.username,
            email=cleaned.email,
            password_hash=password_hash,
            registered_at=datetime.now(timezone.utc),
            extras=cleaned.extras,
        )
        if not self.directory.insert_if_absent(record):
            logger.info("Registration lost race for username=%s", cleaned.username)
            raise ConflictError(MSG_USERNAME_TAKEN)

        logger.info("New user registered: username=%s email=%s", record.username, record.email)
        return record

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from email_validator import EmailNotValidError, validate_email

from registration_api.errors import FieldError
from registration_api.passwords import MAX_PASSWORD_BYTES

USERNAME_MIN_LENGTH = 3
PASSWORD_MIN_LENGTH = 8
EXTRA_VALUE_MAX_LENGTH = 1000

MSG_USERNAME_REQUIRED = "Username is required."
MSG_USERNAME_LENGTH = "Username must be at least 3 characters long."
MSG_USERNAME_TAKEN = "Username is already taken."
MSG_EMAIL_INVALID = "Please provide a valid email address."
MSG_PASSWORD_LENGTH = "Password must be at least 8 characters long."
MSG_PASSWORD_TOO_LONG = "Password must be at most 72 bytes long."

CANONICAL_FIELDS = frozenset({"username", "email", "password"})
RESERVED_FIELDS = frozenset({"id", "registeredAt", "registered_at", "password", "passwordHash", "password_hash"})

_EXTRA_KEY_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]{0,63}$")
_GMAIL_DOMAINS = frozenset({"gmail.com", "googlemail.com"})
_ICLOUD_DOMAINS = frozenset({"icloud.com", "me.com"})
_OUTLOOK_DOMAINS = frozenset(
    {
        "hotmail.at", "hotmail.be", "hotmail.ca", "hotmail.cl", "hotmail.co.il", "hotmail.co.nz",
        "hotmail.co.th", "hotmail.co.uk", "hotmail.com", "hotmail.com.ar", "hotmail.com.mx", "hotmail.de",
        "hotmail.es", "hotmail.fr", "hotmail.it", "hotmail.se", "live.co.uk", "live.com", "live.com.ar",
        "live.com.mx", "live.de", "live.fr", "live.it", "live.nl", "msn.com", "outlook.at", "outlook.com",
        "outlook.de", "outlook.es", "outlook.fr", "outlook.it", "passport.com",
    }
)
_YAHOO_DOMAINS = frozenset(
    {"rocketmail.com", "yahoo.ca", "yahoo.co.uk", "yahoo.com", "yahoo.de", "yahoo.fr", "yahoo.in", "yahoo.it", "ymail.com"}
)
_YANDEX_DOMAINS = frozenset({"yandex.ru", "yandex.ua", "yandex.kz", "yandex.com", "yandex.by", "ya.ru"})


@dataclass
class CleanedForm:
    """Form values after trimming/normalization, plus every rule that failed."""

    username: str = ""
    email: str = ""
    password: str = ""
    extras: Dict[str, Any] = field(default_factory=dict)
    errors: List[FieldError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def _text(value: Any) -> Optional[str]:
    """Coerce a JSON value to text the way form fields usually arrive.

    Missing -> "", strings as-is, numbers stringified. Anything else is not text.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def normalize_email(address: str) -> str:
    """Canonicalize an already-valid address.

    Lowercases the whole address, then applies the usual provider rules:

    - Gmail: drop dots and ``+tag``; googlemail.com becomes gmail.com.
    - Outlook/Hotmail/Live and iCloud: drop ``+tag``.
    - Yahoo: drop ``-tag``.
    - Yandex: every Yandex domain becomes yandex.ru.

    If a rule would leave the local part empty, the lowercased address is kept.
    """
    address = address.strip().lower()
    local, _, domain = address.rpartition("@")
    if domain in _GMAIL_DOMAINS:
        local = local.split("+", 1)[0].replace(".", "")
        domain = "gmail.com"
    elif domain in _OUTLOOK_DOMAINS or domain in _ICLOUD_DOMAINS:
        local = local.split("+", 1)[0]
    elif domain in _YAHOO_DOMAINS:
        local = local.split("-", 1)[0]
    elif domain in _YANDEX_DOMAINS:
        domain = "yandex.ru"
    if not local:
        return address
    return f"{local}@{domain}"


def check_username_format(raw: Any) -> tuple[str, List[FieldError]]:
    text = _text(raw)
    if text is None:
        return "", [FieldError("username", MSG_USERNAME_LENGTH)]
    username = text.strip()
    if len(username) < USERNAME_MIN_LENGTH:
        return username, [FieldError("username", MSG_USERNAME_LENGTH)]
    return username, []


def check_email(raw: Any) -> tuple[str, List[FieldError]]:
    text = _text(raw)
    candidate = (text or "").strip()
    if not candidate:
        return "", [FieldError("email", MSG_EMAIL_INVALID)]
    try:
        info = validate_email(candidate, check_deliverability=False)
    except EmailNotValidError:
        return candidate, [FieldError("email", MSG_EMAIL_INVALID)]
    return normalize_email(info.normalized), []


def check_password(raw: Any) -> tuple[str, List[FieldError]]:
    # Passwords are never trimmed; whitespace is significant.
    if not isinstance(raw, str):
        return "", [FieldError("password", MSG_PASSWORD_LENGTH)]
    if len(raw) < PASSWORD_MIN_LENGTH:
        return raw, [FieldError("password", MSG_PASSWORD_LENGTH)]
    if len(raw.encode("utf-8")) > MAX_PASSWORD_BYTES:
        return raw, [FieldError("password", MSG_PASSWORD_TOO_LONG)]
    return raw, []


def check_extras(form: Mapping[str, Any], *, max_fields: int) -> tuple[Dict[str, Any], List[FieldError]]:
    """Allow-list policy for extension attributes.

    Keys must look like identifiers and not shadow record fields; values must
    be JSON scalars.
    """
    extras: Dict[str, Any] = {}
    errors: List[FieldError] = []

    for key, value in form.items():
        if key in CANONICAL_FIELDS:
            continue
        if key in RESERVED_FIELDS or not _EXTRA_KEY_RE.match(str(key)):
            errors.append(FieldError(str(key), "This field is not allowed."))
            continue
        if isinstance(value, str):
            if len(value) > EXTRA_VALUE_MAX_LENGTH:
                errors.append(FieldError(key, f"Must be at most {EXTRA_VALUE_MAX_LENGTH} characters long."))
                continue
        elif value is not None and not isinstance(value, (bool, int, float)):
            errors.append(FieldError(key, "Must be a string, number, boolean or null."))
            continue
        elif isinstance(value, float) and not math.isfinite(value):
            # NaN and Infinity parse from the body but cannot be rendered back as JSON.
            errors.append(FieldError(key, "Must be a finite number."))
            continue
        extras[key] = value

    if len(extras) > max_fields:
        errors.append(FieldError("extras", f"At most {max_fields} additional fields are allowed."))
        extras = {}

    return extras, errors


def clean_registration_form(form: Mapping[str, Any], *, max_extra_fields: int = 20) -> CleanedForm:
    """Run every format rule over ``form``.

    Uniqueness is not checked here; it needs the directory.
    """
    out = CleanedForm()

    out.username, errs = check_username_format(form.get("username"))
    out.errors.extend(errs)

    out.email, errs = check_email(form.get("email"))
    out.errors.extend(errs)

    out.password, errs = check_password(form.get("password"))
    out.errors.extend(errs)

    out.extras, errs = check_extras(form, max_fields=max_extra_fields)
    out.errors.extend(errs)

    return out

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Protocol


def directory_key(username: str) -> str:
    return (username or "").strip().lower()


@dataclass(frozen=True)
class IdentityRecord:
    id: str
    username: str
    email: str = ""
    password_hash: str = field(default="", repr=False)
    registered_at: Optional[datetime] = None
    extras: Dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> str:
        return directory_key(self.username)

    @property
    def registered_at_iso(self) -> str:
        ts = self.registered_at or datetime.now(timezone.utc)
        return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class UserDirectory(Protocol):
    """Storage seam for identity records.

    Implementations must make ``insert_if_absent`` atomic: of any number of
    concurrent inserts for the same lowercased username, exactly one wins.
    """

    def has(self, *, username: str) -> bool: ...

    def get(self, *, username: str) -> Optional[IdentityRecord]: ...

    def insert_if_absent(self, record: IdentityRecord) -> bool: ...

    def __len__(self) -> int: ...


class InMemoryUserDirectory:
    """Process-lifetime directory of registered identities.

    What it's for:
    - Back the availability check and the registration form.

    What it's *not*:
    - Not durable (cleared on restart).
    - Not shared across multiple API instances.

    Keyed by lowercased username; the record keeps the original casing.
    """

    def __init__(self, records: Iterable[IdentityRecord] = ()):
        self._lock = threading.Lock()
        self._users: Dict[str, IdentityRecord] = {}
        for r in records:
            self.insert_if_absent(r)

    @classmethod
    def seeded(cls, usernames: Iterable[str]) -> "InMemoryUserDirectory":
        return cls(IdentityRecord(id="seed", username=u.strip()) for u in usernames if (u or "").strip())

    def has(self, *, username: str) -> bool:
        u = directory_key(username)
        if not u:
            return False
        with self._lock:
            return u in self._users

    def get(self, *, username: str) -> Optional[IdentityRecord]:
        u = directory_key(username)
        if not u:
            return None
        with self._lock:
            return self._users.get(u)

    def insert_if_absent(self, record: IdentityRecord) -> bool:
        u = record.key
        if not u:
            raise ValueError("Username is required")
        with self._lock:
            if u in self._users:
                return False
            self._users[u] = record
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)

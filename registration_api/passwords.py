from __future__ import annotations

import bcrypt
from starlette.concurrency import run_in_threadpool

# bcrypt only looks at the first 72 bytes; newer releases reject longer input.
MAX_PASSWORD_BYTES = 72


def hash_password(password: str, *, rounds: int = 12) -> str:
    """Salted bcrypt digest of ``password``.

    At 12 rounds a hash costs tens of milliseconds, which is the point.
    """
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


async def hash_password_async(password: str, *, rounds: int = 12) -> str:
    # Hashing is CPU-bound; keep it off the event loop.
    return await run_in_threadpool(hash_password, password, rounds=rounds)

"""Tiny smoke test against a running server.

Checks availability for a random username, registers it, and prints the
security/rate-limit headers from the response.

Usage:
  python -m registration_api.main            # in another shell
  python scripts/live_smoketest.py [base_url]
"""

from __future__ import annotations

import json
import sys
import uuid

import httpx

from registration_api.settings import get_settings


def main() -> int:
    s = get_settings()
    base = sys.argv[1] if len(sys.argv) > 1 else f"http://127.0.0.1:{s.port}"
    base = base.rstrip("/") + s.api_prefix
    username = "smoke_" + uuid.uuid4().hex[:8]

    try:
        with httpx.Client(base_url=base, timeout=30.0) as c:
            r = c.post("/validate-username", json={"username": username})
            print("validate:", r.status_code, r.text)

            r = c.post(
                "/submit-form",
                json={"username": username, "email": f"{username}@example.com", "password": "longenough"},
            )
            print("submit:", r.status_code)
            print(
                "response_headers:",
                json.dumps(
                    {
                        k: r.headers.get(k)
                        for k in ["ratelimit-limit", "ratelimit-remaining", "ratelimit-reset", "x-content-type-options"]
                    },
                    indent=2,
                ),
            )
            print("body_snippet:", r.text[:500])
            return 0 if r.status_code == 201 else 1
    except httpx.HTTPError as e:
        print("request failed:", type(e).__name__, e)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())

from __future__ import annotations

import os
import sys
from pathlib import Path

# Allow running as: python scripts/registration_smoketest.py
REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from fastapi.testclient import TestClient

from registration_api.main import create_app
from registration_api.settings import get_settings


def main() -> int:
    # Fast hashes; the real cost factor is irrelevant for a smoke run.
    os.environ.setdefault("BCRYPT_ROUNDS", "4")

    s = get_settings()
    c = TestClient(create_app(s))
    prefix = s.api_prefix

    r = c.post(f"{prefix}/validate-username", json={"username": "existinguser"})
    print("/validate-username(seeded)", r.status_code, r.json())

    r = c.post(f"{prefix}/submit-form", json={"username": "ab", "email": "bad", "password": "short"})
    print("/submit-form(invalid)", r.status_code, r.json())
    if r.status_code != 400:
        return 1

    payload = {"username": "smoketest", "email": "Smoke@Example.com", "password": "longenough"}
    r = c.post(f"{prefix}/submit-form", json=payload)
    print("/submit-form", r.status_code, r.json())
    if r.status_code != 201:
        print(r.text)
        return 1

    r = c.post(f"{prefix}/submit-form", json=payload)
    print("/submit-form(duplicate)", r.status_code, r.json())

    r = c.get("/healthz")
    print("/healthz", r.status_code, r.json())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

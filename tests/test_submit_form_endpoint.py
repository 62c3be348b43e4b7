from __future__ import annotations

import asyncio
import logging

import bcrypt
import httpx
import pytest
from fastapi.testclient import TestClient

from registration_api.main import create_app
from registration_api.settings import Settings


def _app(**overrides):
    s = Settings(bcrypt_rounds=4, rate_limit_max_requests=0, **overrides)
    return create_app(s)


def _messages(resp) -> list[str]:
    return [e["message"] for e in resp.json()["errors"]]


def test_all_failing_rules_are_reported_together() -> None:
    client = TestClient(_app())
    resp = client.post("/submit-form", json={"username": "ab", "email": "bad", "password": "short"})

    assert resp.status_code == 400
    data = resp.json()
    assert data["success"] is False
    assert data["errors"] == [
        {"field": "username", "message": "Username must be at least 3 characters long."},
        {"field": "email", "message": "Please provide a valid email address."},
        {"field": "password", "message": "Password must be at least 8 characters long."},
    ]


def test_successful_registration_then_duplicate() -> None:
    client = TestClient(_app())
    payload = {"username": "newuser1", "email": "a@b.com", "password": "longenough"}

    resp = client.post("/submit-form", json=payload)
    assert resp.status_code == 201, resp.text
    data = resp.json()
    assert data["success"] is True
    assert data["message"] == "Registration successful!"

    user = data["user"]
    assert user["username"] == "newuser1"
    assert user["email"] == "a@b.com"
    assert user["id"].isdigit()
    assert user["registeredAt"].endswith("Z")
    assert "password" not in user
    assert "passwordHash" not in user
    assert "password_hash" not in user

    again = client.post("/submit-form", json=payload)
    assert again.status_code == 400
    assert "Username is already taken." in _messages(again)


def test_response_never_contains_the_password_or_hash() -> None:
    app = _app()
    client = TestClient(app)
    resp = client.post("/submit-form", json={"username": "secretive", "email": "s@example.com", "password": "hunter2hunter2"})
    assert resp.status_code == 201

    record = app.state.directory.get(username="secretive")
    assert record is not None
    assert record.password_hash and record.password_hash != "hunter2hunter2"
    assert bcrypt.checkpw(b"hunter2hunter2", record.password_hash.encode("utf-8"))
    assert "hunter2hunter2" not in resp.text
    assert record.password_hash not in resp.text


def test_taken_username_is_reported_with_other_errors() -> None:
    client = TestClient(_app())
    resp = client.post("/submit-form", json={"username": "ExistingUser", "email": "nope", "password": "longenough"})

    assert resp.status_code == 400
    assert resp.json()["errors"] == [
        {"field": "username", "message": "Username is already taken."},
        {"field": "email", "message": "Please provide a valid email address."},
    ]


def test_username_is_trimmed_and_casing_preserved() -> None:
    app = _app()
    client = TestClient(app)
    resp = client.post("/submit-form", json={"username": "  MixedCase  ", "email": "m@example.com", "password": "longenough"})

    assert resp.status_code == 201
    assert resp.json()["user"]["username"] == "MixedCase"
    assert app.state.directory.has(username="mixedcase")


def test_email_is_normalized_before_storage() -> None:
    app = _app()
    client = TestClient(app)
    resp = client.post("/submit-form", json={"username": "mailer", "email": "  Some.One@Example.COM ", "password": "longenough"})

    assert resp.status_code == 201
    assert resp.json()["user"]["email"] == "some.one@example.com"
    assert app.state.directory.get(username="mailer").email == "some.one@example.com"


def test_empty_body_reports_every_field() -> None:
    client = TestClient(_app())
    resp = client.post("/submit-form")

    assert resp.status_code == 400
    assert [e["field"] for e in resp.json()["errors"]] == ["username", "email", "password"]


def test_extra_fields_are_kept_when_allowed() -> None:
    client = TestClient(_app())
    resp = client.post(
        "/submit-form",
        json={
            "username": "extra1",
            "email": "e@example.com",
            "password": "longenough",
            "fullName": "Ex Tra",
            "newsletter": True,
        },
    )

    assert resp.status_code == 201, resp.text
    user = resp.json()["user"]
    assert user["fullName"] == "Ex Tra"
    assert user["newsletter"] is True


def test_extra_fields_cannot_override_record_fields() -> None:
    client = TestClient(_app())
    resp = client.post(
        "/submit-form",
        json={
            "username": "sneaky",
            "email": "x@example.com",
            "password": "longenough",
            "id": "1",
            "registeredAt": "yesterday",
            "profile": {"nested": True},
        },
    )

    assert resp.status_code == 400
    fields = [e["field"] for e in resp.json()["errors"]]
    assert fields == ["id", "registeredAt", "profile"]


def test_non_finite_extra_numbers_are_rejected_and_nothing_is_stored() -> None:
    app = _app()
    client = TestClient(app)

    for name, literal in (("nanuser", "NaN"), ("infuser", "Infinity"), ("neginfuser", "-Infinity")):
        body = '{"username": "%s", "email": "n@example.com", "password": "longenough", "score": %s}' % (name, literal)
        resp = client.post("/submit-form", content=body.encode("utf-8"), headers={"content-type": "application/json"})

        assert resp.status_code == 400, resp.text
        assert resp.json() == {"success": False, "errors": [{"field": "score", "message": "Must be a finite number."}]}
        assert not app.state.directory.has(username=name)

    # The username is still free for a well-formed retry.
    retry = client.post("/submit-form", json={"username": "nanuser", "email": "n@example.com", "password": "longenough", "score": 1.5})
    assert retry.status_code == 201, retry.text
    assert retry.json()["user"]["score"] == 1.5


def test_failure_rendering_the_success_body_is_a_shaped_500(monkeypatch, caplog) -> None:
    from registration_api.routers import registration as registration_routes

    def broken_payload(*, record):
        raise TypeError("cannot serialize")

    monkeypatch.setattr(registration_routes, "user_payload", broken_payload)
    caplog.set_level(logging.ERROR, logger="registration_service")

    client = TestClient(_app())
    resp = client.post("/submit-form", json={"username": "render", "email": "r@example.com", "password": "longenough"})

    assert resp.status_code == 500
    assert resp.json() == {"success": False, "message": "An internal server error occurred."}
    assert "cannot serialize" not in resp.text
    assert any("Unexpected error during registration" in r.getMessage() for r in caplog.records)


def test_internal_failure_returns_generic_500(monkeypatch, caplog) -> None:
    from registration_api import registration

    async def broken_hash(password: str, *, rounds: int = 12) -> str:
        raise RuntimeError("bcrypt backend exploded: internal detail")

    monkeypatch.setattr(registration, "hash_password_async", broken_hash)
    caplog.set_level(logging.ERROR, logger="registration_service")

    client = TestClient(_app())
    resp = client.post("/submit-form", json={"username": "unlucky", "email": "u@example.com", "password": "longenough"})

    assert resp.status_code == 500
    assert resp.json() == {"success": False, "message": "An internal server error occurred."}
    assert "internal detail" not in resp.text
    assert any("Registration failed" in r.getMessage() for r in caplog.records)
    assert not client.app.state.directory.has(username="unlucky")


def test_success_is_logged_without_password(caplog) -> None:
    caplog.set_level(logging.INFO, logger="registration_service")
    client = TestClient(_app())
    resp = client.post("/submit-form", json={"username": "logged", "email": "l@example.com", "password": "dontlogme123"})
    assert resp.status_code == 201

    text = "\n".join(r.getMessage() for r in caplog.records)
    assert "username=logged" in text
    assert "email=l@example.com" in text
    assert "dontlogme123" not in text
    assert "$2b$" not in text


@pytest.mark.asyncio
async def test_concurrent_submissions_for_same_username_yield_one_success() -> None:
    app = _app()
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        payloads = [
            {"username": "racer", "email": f"racer{i}@example.com", "password": "longenough"} for i in range(5)
        ]
        responses = await asyncio.gather(*(client.post("/submit-form", json=p) for p in payloads))

    statuses = sorted(r.status_code for r in responses)
    assert statuses == [201, 400, 400, 400, 400]
    for r in responses:
        if r.status_code == 400:
            assert r.json()["errors"] == [{"field": "username", "message": "Username is already taken."}]

    winner = next(r for r in responses if r.status_code == 201).json()["user"]
    assert app.state.directory.get(username="RACER").email == winner["email"]

from __future__ import annotations

import json
from typing import Any

from fastapi import Request

from registration_api.registration import RegistrationService


def get_registration_service(request: Request) -> RegistrationService:
    # Built once per app in create_app(); the directory must outlive requests.
    return request.app.state.registration_service


async def read_json_object(request: Request) -> dict[str, Any]:
    """Request body as a JSON object.

    Missing, malformed or non-object bodies read as an empty form so that the
    field rules report what is missing instead of a parser error.
    """
    raw = await request.body()
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        return {}
    return data if isinstance(data, dict) else {}

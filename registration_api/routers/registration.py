from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from registration_api.deps import get_registration_service, read_json_object
from registration_api.errors import InternalError, ValidationError
from registration_api.models import (
    InternalErrorResponse,
    RegistrationFailure,
    RegistrationSuccess,
    UsernameAvailabilityResponse,
    user_payload,
)
from registration_api.registration import RegistrationService

logger = logging.getLogger("registration_service")

router = APIRouter(tags=["registration"])


@router.post(
    "/validate-username",
    response_model=UsernameAvailabilityResponse,
    responses={400: {"model": UsernameAvailabilityResponse}},
)
def validate_username(
    payload: dict[str, Any] = Depends(read_json_object),
    service: RegistrationService = Depends(get_registration_service),
):
    """Report whether a username is free. Read-only.

    Accepts:
      {"username": "someone"}
    """
    try:
        available = service.check_availability(payload.get("username"))
    except ValidationError as e:
        message = e.errors[0].message if e.errors else "Username is required."
        return JSONResponse({"available": False, "message": message}, status_code=400)
    return JSONResponse({"available": available})


@router.post(
    "/submit-form",
    status_code=201,
    response_model=RegistrationSuccess,
    responses={400: {"model": RegistrationFailure}, 500: {"model": InternalErrorResponse}},
)
async def submit_form(
    payload: dict[str, Any] = Depends(read_json_object),
    service: RegistrationService = Depends(get_registration_service),
):
    """Validate and register a new user.

    Accepts:
      {"username": "...", "email": "...", "password": "...", ...extra fields}

    Every failing rule is reported in ``errors``. The password and its hash
    never appear in the response.
    """
    try:
        record = await service.register(payload)
        # JSONResponse renders eagerly, so a bad value fails here and not after we return.
        return JSONResponse(
            {"success": True, "message": "Registration successful!", "user": user_payload(record=record)},
            status_code=201,
        )
    except ValidationError as e:
        body = RegistrationFailure(errors=[err.as_dict() for err in e.errors])
        return JSONResponse(body.model_dump(), status_code=400)
    except InternalError:
        # Never echo exception details to the caller.
        logger.exception("Registration failed", extra={"username": str(payload.get("username"))[:64]})
        return JSONResponse(InternalErrorResponse().model_dump(), status_code=500)
    except Exception:
        logger.exception("Unexpected error during registration", extra={"username": str(payload.get("username"))[:64]})
        return JSONResponse(InternalErrorResponse().model_dump(), status_code=500)

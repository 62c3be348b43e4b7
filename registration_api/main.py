from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from registration_api.logging_config import configure_logging
from registration_api.rate_limit import FixedWindowRateLimiter, RateLimitMiddleware
from registration_api.registration import RegistrationService
from registration_api.routers.registration import router as registration_router
from registration_api.security_headers import SecurityHeadersMiddleware
from registration_api.settings import Settings, get_settings
from registration_api.user_store import InMemoryUserDirectory

logger = logging.getLogger("registration_service")

APP_VERSION = "1.0.0"


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the ASGI app.

    Middleware order (outermost first): security headers, CORS, rate limit.
    CORS answers preflight requests before they count against the limit, and
    the 429 response still gets CORS and security headers.
    """
    s = settings or get_settings()

    # Interactive docs are off: their CDN assets would be blocked by the CSP anyway.
    app = FastAPI(title="Registration Service", version=APP_VERSION, docs_url=None, redoc_url=None)

    directory = InMemoryUserDirectory.seeded(s.seed_username_list)
    app.state.directory = directory
    app.state.registration_service = RegistrationService(
        directory=directory,
        bcrypt_rounds=s.bcrypt_rounds,
        max_extra_fields=s.max_extra_fields,
    )
    app.state.rate_limiter = FixedWindowRateLimiter(
        max_requests=s.rate_limit_max_requests,
        window_seconds=s.rate_limit_window_seconds,
    )

    app.add_middleware(
        RateLimitMiddleware,
        limiter=app.state.rate_limiter,
        trust_forwarded=s.rate_limit_trust_forwarded,
        exempt_paths=("/healthz",),
    )
    origins = s.cors_origin_list
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware)

    app.include_router(registration_router, prefix=s.api_prefix)

    @app.get("/healthz")
    def healthz():
        return JSONResponse(
            {
                "ok": True,
                "service": "registration-service",
                "version": APP_VERSION,
                "registered_users": len(directory),
            }
        )

    return app


configure_logging(get_settings().log_level)

app = create_app()


def run() -> None:
    """Standalone-process mode. Serverless hosts import ``app`` instead."""
    import uvicorn

    s = get_settings()
    logger.info("Starting registration service on %s:%s (prefix=%r)", s.host, s.port, s.api_prefix or "/")
    uvicorn.run(app, host=s.host, port=s.port, log_config=None)


if __name__ == "__main__":
    run()

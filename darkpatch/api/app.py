"""FastAPI server for darkpatch: generation proxy plus the shared pattern store"""

from __future__ import annotations

import os

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from darkpatch.api.routes.config import router as config_router
from darkpatch.api.routes.generate import router as generate_router
from darkpatch.api.routes.health import router as health_router
from darkpatch.api.routes.patterns import router as patterns_router
from darkpatch.config import API_HOST, API_PORT, APP_VERSION, STORE_NAMESPACE
from darkpatch.infrastructure.database import get_database
from darkpatch.infrastructure.env import ensure_env_loaded
from darkpatch.infrastructure.settings import is_development
from darkpatch.learning.pattern_store import PatternStore
from darkpatch.llm.generator import GeminiGenerator, Generator
from darkpatch.observability.logging import get_logger
from darkpatch.observability.telemetry import counter
from darkpatch.runtime.policy import Policy, get_policy
from darkpatch.storage.kv import SqliteKeyValueStore

logger = get_logger(__name__)

DARKPATCH_EXTENSION_ID = os.getenv("DARKPATCH_EXTENSION_ID", "")


def _allowed_origins() -> list[str]:
    origins: list[str] = []
    if DARKPATCH_EXTENSION_ID:
        origins.append(f"chrome-extension://{DARKPATCH_EXTENSION_ID}")

    # Allow localhost in development only
    if is_development():
        origins.extend(
            [
                "http://localhost:3000",
                "http://localhost:8000",
                "http://127.0.0.1:3000",
                "http://127.0.0.1:8000",
            ]
        )
    return origins


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Return sanitized 422s: field names only, never the validation rules.

    Side Effects:
        - Logs detailed validation errors for debugging
        - Increments api.validation_errors
    """
    logger.warning("Validation error on %s: %s", request.url.path, exc.errors())
    counter("api.validation_errors")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": "Invalid request format. Please check your request and try again.",
            "error_count": len(exc.errors()),
            "invalid_fields": [str(err["loc"][-1]) for err in exc.errors()],
        },
    )


def _default_store() -> PatternStore:
    store = PatternStore(SqliteKeyValueStore(get_database(), STORE_NAMESPACE))
    if not store.reload():
        logger.warning("Pattern store starting degraded: %s", store.last_error)
    return store


def create_app(
    store: PatternStore | None = None,
    generator: Generator | None = None,
    policy: Policy | None = None,
    use_defaults: bool = True,
) -> FastAPI:
    """
    Build the API application.

    Args:
        store: Pattern store; defaults to the sqlite-backed store when use_defaults
        generator: Generation backend; defaults to Gemini when use_defaults
        policy: Threshold policy; defaults to the loaded policy file
        use_defaults: False leaves unspecified services unconfigured (503)
    """
    ensure_env_loaded()

    app = FastAPI(title="darkpatch API", version=APP_VERSION)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_allowed_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )

    if store is None and use_defaults:
        store = _default_store()
    if generator is None and use_defaults:
        generator = GeminiGenerator()

    app.state.store = store
    app.state.generator = generator
    app.state.policy = policy or get_policy()

    app.include_router(health_router)
    app.include_router(generate_router)
    app.include_router(patterns_router)
    app.include_router(config_router)

    logger.info(
        "darkpatch API ready (store=%s, generator=%s)",
        "yes" if store is not None else "no",
        type(generator).__name__ if generator is not None else "none",
    )
    return app


def main() -> None:
    ensure_env_loaded()
    uvicorn.run(
        "darkpatch.api.app:create_app",
        factory=True,
        host=API_HOST,
        port=API_PORT,
        log_level="info",
    )


if __name__ == "__main__":
    main()

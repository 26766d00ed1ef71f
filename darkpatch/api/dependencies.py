"""Request-scoped access to the services held on app.state."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from darkpatch.learning.pattern_store import PatternStore
from darkpatch.llm.generator import Generator


def get_store(request: Request) -> PatternStore:
    store: PatternStore | None = request.app.state.store
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Pattern store not configured",
        )
    return store


def get_available_store(request: Request) -> PatternStore:
    """Store that has loaded successfully (one reload attempt if not)."""
    store = get_store(request)
    if not store.available and not store.reload():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Pattern store unavailable: {store.last_error}",
        )
    return store


def get_generator(request: Request) -> Generator:
    generator: Generator | None = request.app.state.generator
    if generator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="No generator configured",
        )
    return generator

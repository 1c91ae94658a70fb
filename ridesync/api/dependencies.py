"""FastAPI dependency injection helpers."""

from fastapi import Request

from ridesync.services.context import SyncContext


def get_context(request: Request) -> SyncContext:
    """Return the sync context owned by the running app."""
    return request.app.state.context

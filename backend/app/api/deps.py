"""FastAPI dependencies for the API layer."""

import secrets

from fastapi import Depends, Header, HTTPException, Request, status

from app.services.context import ServerContext


def get_context(request: Request) -> ServerContext:
    """Return the server context created at startup."""

    context = getattr(request.app.state, "context", None)
    if context is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Server is starting up",
        )
    return context


def require_integration_secret(
    x_integration_secret: str | None = Header(default=None),
    context: ServerContext = Depends(get_context),
) -> None:
    """Guard integration hooks with the shared ``INTEGRATION_SECRET``."""

    expected = context.settings.integration_secret
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Integration hook is not configured",
        )
    if x_integration_secret is None or not secrets.compare_digest(x_integration_secret, expected):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid integration secret",
        )

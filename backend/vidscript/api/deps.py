"""FastAPI dependencies."""

from fastapi import HTTPException, Request

from vidscript.container import ServiceContainer


def get_container(request: Request) -> ServiceContainer:
    """Get the service container built at startup."""
    return request.app.state.container


def require_api_keys(container: ServiceContainer) -> None:
    """
    Reject the request when no API key is configured.

    Raises:
        400: Credential pool is empty
    """
    if not len(container.credential_pool):
        raise HTTPException(
            status_code=400,
            detail="No Gemini API keys configured. Add a key via /api/keys/add or GEMINI_API_KEYS.",
        )

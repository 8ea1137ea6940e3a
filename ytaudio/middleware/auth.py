"""API key check for the admin and mutating endpoints."""

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request


async def verify_api_key(
    request: Request,
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
) -> Optional[str]:
    """
    Verify the API key from the request header.

    The expected key comes from the Settings the app was built with. When
    API_KEY is not configured every caller is let through.

    Args:
        request: Incoming request, used to reach the app's settings
        x_api_key: API key from request header

    Returns:
        str: Validated API key, or None when no key is configured

    Raises:
        HTTPException: If a key is configured and the header does not match
    """
    expected = request.app.state.settings.API_KEY
    if not expected:
        return None
    if x_api_key != expected:
        raise HTTPException(
            status_code=401,
            detail="Invalid API key"
        )
    return x_api_key


# Dependency for use in routes
api_key_dependency = Depends(verify_api_key)

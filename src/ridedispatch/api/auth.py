from fastapi import Header, HTTPException, Request


def verify_api_key(request: Request, x_api_key: str = Header(...)) -> None:
    """Validates API key from X-API-Key header."""
    api_key = getattr(request.app.state, "api_key", None)

    if not api_key:
        raise HTTPException(status_code=500, detail="API key not configured")

    if x_api_key != api_key:
        raise HTTPException(status_code=401, detail="Invalid API key")

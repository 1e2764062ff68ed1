from fastapi import Request
from jose import jwt, JWTError, ExpiredSignatureError

from splitogram.core.config import settings
from splitogram.core.errors import Unauthorized


def get_bearer_token(request: Request) -> str:
    auth = request.headers.get("Authorization")
    if not auth or not auth.startswith("Bearer "):
        raise Unauthorized("Authentication required")
    return auth.split(" ", 1)[1]


def decode_access_token(token: str) -> int:
    """
    Validates a session token and returns the internal user id it was issued for.
    Tokens are minted by the auth service; this side only verifies them.
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGO])
    except ExpiredSignatureError:
        raise Unauthorized("Session expired")
    except JWTError:
        raise Unauthorized("Invalid or expired session")

    sub = payload.get("sub")
    try:
        return int(sub)
    except (TypeError, ValueError):
        raise Unauthorized("Invalid authentication credentials")

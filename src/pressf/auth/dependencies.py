"""FastAPI identity dependencies.

Telegram init-data verification happens in the upstream session layer, which
forwards the authenticated Telegram user id as ``X-User-Id``.
"""

from __future__ import annotations

from fastapi import Header, HTTPException, Request

USER_ID_HEADER = "X-User-Id"


async def get_current_user_id(x_user_id: str | None = Header(default=None)) -> int:
    """Return the authenticated user id. Raises 401 when absent or malformed."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        user_id = int(x_user_id)
    except ValueError as e:
        raise HTTPException(status_code=401, detail="Invalid user id") from e
    if user_id <= 0:
        raise HTTPException(status_code=401, detail="Invalid user id")
    return user_id


def request_identity(request: Request) -> str:
    """Rate-limit identity: the user id when present, else the client IP."""
    user_id = request.headers.get(USER_ID_HEADER)
    if user_id and user_id.isdigit():
        return f"user:{user_id}"
    return f"ip:{request.client.host if request.client else 'unknown'}"

from fastapi import Header, HTTPException


async def get_current_user_id(x_user_id: str = Header(default="")) -> str:
    """The authentication gateway in front of this service forwards the caller's id."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id

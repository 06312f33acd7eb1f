# finance_api/api/deps.py
import uuid
from typing import Optional

from fastapi import Header, HTTPException, status


# Authentication happens upstream; the gateway forwards the caller's id.
def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> uuid.UUID:
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
    try:
        return uuid.UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user id",
        )

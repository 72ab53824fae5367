# concisely/routers/deps.py
from typing import Iterator, Optional
import os

from fastapi import Header, HTTPException, status
from sqlmodel import Session

from ..store import get_session

# --- Shared API key gate; the frontend's session layer sits in front of this ---
def require_api_key(x_api_key: Optional[str] = Header(default=None)) -> None:
    expected = os.getenv("ADMIN_API_KEY", "")
    if not expected:
        # Fail closed if the key was never configured
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server misconfigured: ADMIN_API_KEY not set."
        )
    if x_api_key != expected:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")

def db_session() -> Iterator[Session]:
    with get_session() as s:
        yield s

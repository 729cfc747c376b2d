from fastapi import Depends, Header, HTTPException, Security
from fastapi.security import APIKeyHeader
from sqlalchemy.orm import Session

from workdesk import config
from workdesk.db import repository
from workdesk.db.database import get_db

api_key_header = APIKeyHeader(name="X-API-Key")


async def verify_api_key(api_key: str = Security(api_key_header)):
    if api_key != config.API_KEY:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return api_key


def current_user_id(
    x_user_id: int | None = Header(default=None),
    db: Session = Depends(get_db),
) -> int:
    """The acting user, taken from the X-User-Id header."""
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    user = repository.get_user(db, x_user_id)
    if not user or user.disabled:
        raise HTTPException(status_code=401, detail=f"Unknown or disabled user {x_user_id}")
    return user.id

from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel

from slotbook.core.config import settings

security = HTTPBearer(auto_error=False)


class Identity(BaseModel):
    """The identity provider's session as seen by the booking core."""
    user_id: str
    email: str
    full_name: str | None = None


def create_access_token(user_id: str, email: str, full_name: str | None = None) -> tuple[str, datetime]:
    """Create a JWT access token the way the identity provider does."""
    expires_at = datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRATION_HOURS)
    payload = {
        "sub": user_id,
        "email": email,
        "exp": expires_at,
    }
    if full_name:
        payload["full_name"] = full_name
    token = jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return token, expires_at


def decode_identity(token: str) -> Identity:
    """Decode a bearer token. Raises HTTPException(401) on any problem."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id = payload.get("sub")
    email = payload.get("email")
    if not user_id or not email:
        raise HTTPException(status_code=401, detail="Invalid token")

    return Identity(user_id=user_id, email=email, full_name=payload.get("full_name"))


async def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> Identity:
    """Dependency to get the authenticated visitor"""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return decode_identity(credentials.credentials)

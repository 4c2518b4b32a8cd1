"""Bearer-token authentication (HS256 JWT)."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, Request
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from armour.config import settings
from armour.database import get_db
from armour.errors import Unauthorized
from armour.models import Profile

logger = logging.getLogger(__name__)


@dataclass
class CurrentUser:
    id: str
    email: Optional[str] = None
    role: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def create_access_token(user_id: str, email: str = None, role: str = None, expires_minutes: int = 60) -> str:
    claims = {"sub": user_id, "exp": datetime.utcnow() + timedelta(minutes=expires_minutes)}
    if email:
        claims["email"] = email
    if role:
        claims["role"] = role
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization", "")
    if header[:7].lower() != "bearer ":
        return None
    return header[7:].strip() or None


def decode_token(token: str) -> Optional[CurrentUser]:
    """Decode a bearer token; None when it is missing, expired or forged."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        logger.info(f"[Auth] Rejected token: {e}")
        return None
    user_id = payload.get("sub")
    if not user_id:
        return None
    return CurrentUser(id=str(user_id), email=payload.get("email"), role=payload.get("role"))


async def resolve_user(db: AsyncSession, token: Optional[str]) -> Optional[CurrentUser]:
    """Decode the token and let the profile's role override the claim."""
    user = decode_token(token)
    if user is None:
        return None
    profile = await db.get(Profile, user.id)
    if profile is not None:
        if profile.role:
            user.role = profile.role
        if not user.email and profile.email:
            user.email = profile.email
    return user


async def get_current_user(request: Request, db: AsyncSession = Depends(get_db)) -> CurrentUser:
    """Dependency: the authenticated caller, or 401."""
    user = await resolve_user(db, bearer_token(request))
    if user is None:
        raise Unauthorized("Missing or invalid authorization token")
    return user

"""
Identity Gate

Password hashing (bcrypt), access tokens (PyJWT) and the FastAPI
dependencies that turn a bearer credential into the current user.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from food_ordering import crud
from food_ordering.core.config import Settings
from food_ordering.database import get_db
from food_ordering.models import User

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = 10

# bcrypt only looks at the first 72 bytes and 5.x refuses anything longer
BCRYPT_MAX_PASSWORD_BYTES = 72

bearer_scheme = HTTPBearer(auto_error=False)


class Unauthenticated(Exception):
    """The credential is missing, malformed, expired or unknown."""


# =============================================================================
# PASSWORDS
# =============================================================================

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def password_too_long(password: str) -> bool:
    return len(password.encode("utf-8")) > BCRYPT_MAX_PASSWORD_BYTES


def verify_password(password: str, password_hash: str) -> bool:
    if password_too_long(password):
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Stored hash is not a bcrypt hash
        return False


# =============================================================================
# TOKENS
# =============================================================================

def create_access_token(user: User, settings: Settings) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "iat": now,
        "exp": now + timedelta(days=settings.access_token_expire_days),
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def resolve_identity(credential: Optional[str], settings: Settings) -> int:
    """
    Return the user id carried by ``credential``.

    Raises:
        Unauthenticated: no token, bad signature, expired or malformed payload
    """
    if not credential:
        raise Unauthenticated("No token provided")

    try:
        payload = jwt.decode(credential, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Token expired")
    except jwt.InvalidTokenError:
        raise Unauthenticated("Invalid token")

    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise Unauthenticated("Invalid token subject")


# =============================================================================
# FASTAPI DEPENDENCIES
# =============================================================================

def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


async def load_user(db: AsyncSession, credential: Optional[str], settings: Settings) -> User:
    """Resolve ``credential`` and load the user it names."""
    user_id = resolve_identity(credential, settings)
    user = await crud.get_user(db, user_id)
    if user is None:
        raise Unauthenticated("User not found")
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> User:
    token = credentials.credentials if credentials else None
    try:
        return await load_user(db, token, settings)
    except Unauthenticated as e:
        logger.info(f"Rejected credential: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_current_staff(user: User = Depends(get_current_user)) -> User:
    if not user.is_staff:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Staff access required")
    return user

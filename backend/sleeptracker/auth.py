import logging
import time
from datetime import datetime
from typing import Optional
import bcrypt
import jwt
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from .config import JWT_SECRET, TOKEN_TTL_HOURS
from .database import get_db_async
from .errors import AuthError
from .models import User

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

bearer_scheme = HTTPBearer(auto_error=False)

# Hashes a raw (plain-text) password with bcrypt and returns the hash
def hash_password(raw_password: str) -> str:
    password_bytes = raw_password.encode("utf-8")
    salt = bcrypt.gensalt()
    hashed_bytes = bcrypt.hashpw(password_bytes, salt)
    return hashed_bytes.decode("utf-8")

# Verifies a raw password against a stored bcrypt hash
def verify_password(raw_password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(raw_password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash, or a password over bcrypt's 72 byte limit
        return False

# Creates a signed JWT binding the user's ID to an expiry instant (default: TOKEN_TTL_HOURS from now)
def issue_token(user_id: int, expires_at: Optional[datetime] = None) -> str:
    now = int(time.time())
    exp = int(expires_at.timestamp()) if expires_at is not None else now + TOKEN_TTL_HOURS * 3600

    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": exp,
        "typ": "access",
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=ALGORITHM)

# Returns the user ID a token was issued for, or None if the token is malformed, tampered with or expired
def resolve_token(token: str) -> Optional[int]:
    try:
        data = jwt.decode(token, JWT_SECRET, algorithms=[ALGORITHM], options={"require": ["exp", "sub"]})
        return int(data["sub"])
    except (jwt.InvalidTokenError, TypeError, ValueError):
        return None

# --- Used by HTTP endpoints ---
# Verifies the bearer JWT, returns the authenticated user
async def get_current_user_dep(creds: HTTPAuthorizationCredentials = Depends(bearer_scheme), db: AsyncSession = Depends(get_db_async)) -> User:
    if creds is None or creds.scheme.lower() != "bearer":
        raise AuthError()

    user_id = resolve_token(creds.credentials)
    if user_id is None:
        raise AuthError()

    user = await db.get(User, user_id)
    if not user:
        logger.info("Token resolved to missing user %s", user_id)
        raise AuthError()

    return user

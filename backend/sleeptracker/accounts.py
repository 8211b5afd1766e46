import logging
from typing import Optional
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from .auth import hash_password, verify_password
from .errors import ValidationError
from .models import User

logger = logging.getLogger(__name__)

# bcrypt ignores everything past this many bytes
MAX_PASSWORD_BYTES = 72

EMAIL_TAKEN = "Email has already been taken"


def normalize_email(email: str) -> str:
    return email.strip().lower()


# Reports every invalid field at once
async def signup(db: AsyncSession, name: str, email: str, password: str, password_confirmation: Optional[str] = None) -> User:
    name = name.strip()
    email = normalize_email(email)

    errors = []
    if not name:
        errors.append("Name can't be blank")
    if not email:
        errors.append("Email can't be blank")
    if not password:
        errors.append("Password can't be blank")
    elif len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        errors.append(f"Password is too long (maximum is {MAX_PASSWORD_BYTES} bytes)")
    if password_confirmation is not None and password_confirmation != password:
        errors.append("Password confirmation doesn't match Password")
    if email and await db.scalar(select(User.id).where(User.email == email)) is not None:
        errors.append(EMAIL_TAKEN)
    if errors:
        raise ValidationError(errors)

    user = User(name=name, email=email, password_hash=hash_password(password))
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        # Lost a race with a concurrent signup for the same address
        await db.rollback()
        logger.warning("Concurrent signup collided on unique email")
        raise ValidationError([EMAIL_TAKEN])

    await db.refresh(user)
    logger.info("Signed up user %s", user.id)
    return user


async def authenticate(db: AsyncSession, email: str, password: str) -> Optional[User]:
    user = await db.scalar(select(User).where(User.email == normalize_email(email)))
    if not user or not verify_password(password, user.password_hash):
        logger.info("Rejected login attempt")
        return None
    return user

"""
Authentication service handling user registration and login.
Stands in for the identity provider: it issues the user id + role that
booking requests carry.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from ticketing.models.user import User
from ticketing.schemas.user import UserCreate, UserLogin
from ticketing.core.security import Identity, hash_password, verify_password, create_access_token
from ticketing.core.logging import get_logger

logger = get_logger(__name__)


def issue_token(user: User) -> str:
    return create_access_token(data={"sub": str(user.id), "role": user.role})


async def register_user(db: AsyncSession, user_data: UserCreate) -> User:
    """
    Register a new user with hashed password.
    Raises 409 if the email already exists.
    """
    result = await db.execute(select(User).where(User.email == user_data.email))
    if result.scalar_one_or_none():
        logger.warning("registration_failed", reason="email_exists", email=user_data.email)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User already exists.",
        )

    user = User(
        email=user_data.email,
        name=user_data.name,
        role=user_data.role,
        hashed_password=hash_password(user_data.password),
        is_active=True,
    )
    db.add(user)
    await db.commit()

    logger.info("user_registered", user_id=user.id, email=user.email, role=user.role)
    return user


async def authenticate_user(db: AsyncSession, login_data: UserLogin) -> tuple[User, str]:
    """
    Authenticate user and return it with a JWT access token.
    Raises 401 if credentials are invalid.
    """
    result = await db.execute(select(User).where(User.email == login_data.email))
    user = result.scalar_one_or_none()

    if not user or not verify_password(login_data.password, user.hashed_password):
        logger.warning("login_failed", email=login_data.email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated.",
        )

    logger.info("user_logged_in", user_id=user.id)
    return user, issue_token(user)


async def get_profile(db: AsyncSession, identity: Identity) -> User:
    """
    Load the account behind a verified token.
    Raises 404 if the user was deleted after the token was issued.
    """
    user = await db.get(User, identity.user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found.",
        )
    return user

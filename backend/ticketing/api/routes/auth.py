"""
Authentication endpoints: register, login and the caller's profile.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.security import Identity, get_current_identity
from ticketing.db.session import get_db
from ticketing.schemas.common import ApiResponse
from ticketing.schemas.user import AuthResult, UserCreate, UserLogin, UserProfile, UserResponse
from ticketing.services.auth_service import (
    authenticate_user,
    get_profile,
    issue_token,
    register_user,
)

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=ApiResponse[AuthResult], status_code=status.HTTP_201_CREATED)
async def register(user_data: UserCreate, db: AsyncSession = Depends(get_db)):
    """Register a new account and receive an access token."""
    user = await register_user(db, user_data)
    result = AuthResult(token=issue_token(user), user=UserResponse.model_validate(user))
    return ApiResponse(data=result, message="User registered successfully.")


@router.post("/login", response_model=ApiResponse[AuthResult])
async def login(login_data: UserLogin, db: AsyncSession = Depends(get_db)):
    """Authenticate and receive a JWT access token."""
    user, token = await authenticate_user(db, login_data)
    result = AuthResult(token=token, user=UserResponse.model_validate(user))
    return ApiResponse(data=result, message="Login successful.")


async def _profile(identity: Identity, db: AsyncSession) -> ApiResponse[UserProfile]:
    user = await get_profile(db, identity)
    return ApiResponse(data=UserProfile(user=UserResponse.model_validate(user)))


@router.get("/verify", response_model=ApiResponse[UserProfile])
async def verify(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Check a token and return the account it belongs to."""
    return await _profile(identity, db)


@router.get("/me", response_model=ApiResponse[UserProfile])
async def me(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Current user's profile."""
    return await _profile(identity, db)

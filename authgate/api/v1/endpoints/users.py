"""User endpoints."""

from fastapi import APIRouter

from authgate.dependencies import CurrentUser
from authgate.schemas.users import UserPublic

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/me", response_model=UserPublic)
async def get_current_user_profile(current_user: CurrentUser) -> UserPublic:
    """Get the user the bearer token was issued for."""
    return UserPublic.from_record(current_user)

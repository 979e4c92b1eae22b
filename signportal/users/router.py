# signportal/users/router.py

from fastapi import APIRouter, Depends

from signportal.users.models import User
from signportal.users.schemas import UserResponse
from signportal.users.utils import get_current_user

router = APIRouter(tags=["Users"])


@router.get("/user", response_model=UserResponse)
async def get_user_me(
    current_user: User = Depends(get_current_user),
):
    """Get details of the currently authenticated user."""
    return current_user

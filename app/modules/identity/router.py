"""Identity API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.modules.identity.schemas import UserRead
from app.modules.identity.service import get_current_user

router = APIRouter(prefix="/identity", tags=["identity"])


@router.get("/me", response_model=UserRead)
async def read_me(current_user=Depends(get_current_user)) -> UserRead:
    """Return the acting staff member resolved from the bearer token."""
    return UserRead.model_validate(current_user)

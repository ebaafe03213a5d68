from fastapi import APIRouter, Depends, HTTPException
import logging

from marketplace import schemas
from marketplace.auth import get_current_user
from marketplace.storage import DatabaseStorage, get_storage

router = APIRouter(prefix="/auth")
logger = logging.getLogger(__name__)

@router.get("/user", response_model=schemas.UserOut)
async def read_current_user(
    storage: DatabaseStorage = Depends(get_storage),
    current_user: dict = Depends(get_current_user)
):
    """Returns the profile of the authenticated user."""
    try:
        user = storage.get_user(current_user["sub"])
    except Exception as e:
        logger.error(f"Error fetching user: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch user")
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user

@router.patch("/user", response_model=schemas.UserOut)
async def update_current_user(
    user_data: schemas.UserUpdate,
    storage: DatabaseStorage = Depends(get_storage),
    current_user: dict = Depends(get_current_user)
):
    """Updates only the profile fields present in the request body."""
    try:
        user = storage.update_user(current_user["sub"], user_data.model_dump(exclude_unset=True))
    except Exception as e:
        logger.error(f"Error updating user: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to update user")
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user

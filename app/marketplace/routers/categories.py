from fastapi import APIRouter, Depends, HTTPException
from typing import List
import logging

from marketplace import schemas
from marketplace.storage import DatabaseStorage, get_storage

router = APIRouter(prefix="/categories")
logger = logging.getLogger(__name__)

@router.get("", response_model=List[schemas.CategoryOut])
async def list_categories(storage: DatabaseStorage = Depends(get_storage)):
    try:
        return storage.get_categories()
    except Exception as e:
        logger.error(f"Error fetching categories: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch categories")

from fastapi import APIRouter, Depends, HTTPException, Request, status
from typing import List
import logging

from marketplace import schemas
from marketplace.auth import get_current_user, limiter
from marketplace.config import settings
from marketplace.storage import DatabaseStorage, get_storage

router = APIRouter(prefix="/cart")
logger = logging.getLogger(__name__)

@router.get("", response_model=List[schemas.CartLineOut])
async def read_cart(
    storage: DatabaseStorage = Depends(get_storage),
    current_user: dict = Depends(get_current_user)
):
    try:
        return storage.get_cart_items(current_user["sub"])
    except Exception as e:
        logger.error(f"Error fetching cart items: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch cart items")

@router.post("", response_model=schemas.CartItemOut, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.RATE_LIMIT_DEFAULT)
async def add_to_cart(
    request: Request,
    cart_item: schemas.CartItemCreate,
    storage: DatabaseStorage = Depends(get_storage),
    current_user: dict = Depends(get_current_user)
):
    """Adds a product to the cart, merging quantities with an existing line."""
    try:
        product = storage.get_product(cart_item.product_id)
        if product is not None:
            return storage.add_to_cart(current_user["sub"], cart_item.product_id, cart_item.quantity)
    except Exception as e:
        logger.error(f"Error adding to cart: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to add to cart")

    raise HTTPException(status_code=404, detail="Product not found")

@router.patch("/{item_id}", response_model=schemas.CartItemOut)
async def update_cart_item(
    item_id: str,
    cart_item: schemas.CartItemUpdate,
    storage: DatabaseStorage = Depends(get_storage),
    current_user: dict = Depends(get_current_user)
):
    try:
        db_item = storage.update_cart_item(item_id, current_user["sub"], cart_item.quantity)
    except Exception as e:
        logger.error(f"Error updating cart item {item_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to update cart item")
    if db_item is None:
        raise HTTPException(status_code=404, detail="Cart item not found")
    return db_item

@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_from_cart(
    item_id: str,
    storage: DatabaseStorage = Depends(get_storage),
    current_user: dict = Depends(get_current_user)
):
    try:
        removed = storage.remove_from_cart(item_id, current_user["sub"])
    except Exception as e:
        logger.error(f"Error removing cart item {item_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to remove from cart")
    if not removed:
        raise HTTPException(status_code=404, detail="Cart item not found")
    return None

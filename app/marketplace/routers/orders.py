from fastapi import APIRouter, Depends, HTTPException, Request, status
from typing import List
from decimal import Decimal
import logging

from marketplace import schemas
from marketplace.auth import get_current_user, limiter
from marketplace.config import settings
from marketplace.storage import DatabaseStorage, ProductUnavailableError, get_storage

router = APIRouter(prefix="/orders")
logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def order_total(subtotal: Decimal) -> Decimal:
    return (subtotal + settings.SHIPPING_FEE + settings.SERVICE_FEE).quantize(CENTS)

@router.post("", response_model=schemas.OrderOut, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.RATE_LIMIT_DEFAULT)
async def create_order(
    request: Request,
    order: schemas.OrderCreate,
    storage: DatabaseStorage = Depends(get_storage),
    current_user: dict = Depends(get_current_user)
):
    """
    Places an order for the submitted cart lines.

    Prices come from the live product rows, not from whatever the client saw
    in its cart. Every product must exist and still be active; on success the
    products are marked sold and the buyer's cart is emptied.
    """
    buyer_id = current_user["sub"]
    subtotal = Decimal("0")
    order_items = []

    try:
        for line in order.items:
            product = storage.get_product(line.product_id)
            if product is None:
                raise HTTPException(status_code=400, detail=f"Product {line.product_id} not found")
            if product.status != "active":
                raise HTTPException(status_code=409, detail=f"Product {line.product_id} is no longer available")

            subtotal += Decimal(product.price) * line.quantity
            order_items.append({
                "product_id": product.id,
                "seller_id": product.seller_id,
                "quantity": line.quantity,
                "price": product.price,
            })

        order_data = {
            "buyer_id": buyer_id,
            "total": order_total(subtotal),
            "shipping_address": order.shipping_address,
            "status": settings.ORDER_STATUS,
        }
        db_order = storage.create_order(order_data, order_items)
        storage.clear_cart(buyer_id)
    except HTTPException:
        raise
    except ProductUnavailableError as e:
        logger.warning(f"Order by {buyer_id} lost products to a concurrent order: {e.product_ids}")
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Error creating order: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to create order")

    logger.info(f"Order {db_order.id} placed by {buyer_id}: {len(order_items)} items, total {db_order.total}")
    return db_order

@router.get("", response_model=List[schemas.OrderWithItems])
async def list_orders(
    storage: DatabaseStorage = Depends(get_storage),
    current_user: dict = Depends(get_current_user)
):
    try:
        return storage.get_orders_by_user_id(current_user["sub"])
    except Exception as e:
        logger.error(f"Error fetching orders: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch orders")

@router.get("/{order_id}", response_model=schemas.OrderWithItems)
async def get_order(
    order_id: str,
    storage: DatabaseStorage = Depends(get_storage),
    current_user: dict = Depends(get_current_user)
):
    try:
        db_order = storage.get_order_by_id(order_id, buyer_id=current_user["sub"])
    except Exception as e:
        logger.error(f"Error fetching order {order_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch order")
    if db_order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return db_order

from fastapi import APIRouter, Depends, HTTPException, status
from typing import List, Optional
import logging

from marketplace import schemas, auth
from marketplace.storage import DatabaseStorage, get_storage

router = APIRouter(prefix="/products")
logger = logging.getLogger(__name__)

@router.get("", response_model=List[schemas.ProductDetail])
async def list_products(
    category: Optional[str] = None,
    search: Optional[str] = None,
    storage: DatabaseStorage = Depends(get_storage)
):
    try:
        return storage.get_products(category, search)
    except Exception as e:
        logger.error(f"Error fetching products: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch products")

@router.get("/user/{user_id}", response_model=List[schemas.ProductWithCategory])
async def list_user_products(
    user_id: str,
    storage: DatabaseStorage = Depends(get_storage),
    current_user: dict = Depends(auth.get_current_user)
):
    # Listings include drafts, so only the seller may read them
    if user_id != current_user["sub"]:
        raise HTTPException(status_code=403, detail="Unauthorized")
    try:
        return storage.get_products_by_user_id(user_id)
    except Exception as e:
        logger.error(f"Error fetching user products: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch user products")

@router.get("/{product_id}", response_model=schemas.ProductDetail)
async def get_product(product_id: str, storage: DatabaseStorage = Depends(get_storage)):
    try:
        product = storage.get_product(product_id)
        if product is not None:
            storage.increment_product_views(product_id)
    except Exception as e:
        logger.error(f"Error fetching product {product_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch product")

    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return product

@router.post("", response_model=schemas.ProductOut, status_code=status.HTTP_201_CREATED)
async def create_product(
    product: schemas.ProductCreate,
    storage: DatabaseStorage = Depends(get_storage),
    current_user: dict = Depends(auth.get_current_user)
):
    require_category(product.category_id, storage)
    product_data = product.model_dump()
    product_data["seller_id"] = current_user["sub"]
    try:
        db_product = storage.create_product(product_data)
    except Exception as e:
        logger.error(f"Error creating product: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to create product")

    logger.info(f"Product {db_product.id} listed by {db_product.seller_id} as {db_product.status}")
    return db_product

def require_category(category_id: str, storage: DatabaseStorage):
    try:
        category = storage.get_category(category_id)
    except Exception as e:
        logger.error(f"Error fetching category {category_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch category")
    if category is None:
        raise HTTPException(status_code=400, detail=f"Category {category_id} not found")

def get_owned_product(product_id: str, storage: DatabaseStorage, user_id: str):
    try:
        product = storage.get_product(product_id)
    except Exception as e:
        logger.error(f"Error fetching product {product_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch product")
    # A missing product is reported the same way as someone else's
    if product is None or product.seller_id != user_id:
        raise HTTPException(status_code=403, detail="Unauthorized")
    return product

@router.patch("/{product_id}", response_model=schemas.ProductOut)
async def update_product(
    product_id: str,
    product_data: schemas.ProductUpdate,
    storage: DatabaseStorage = Depends(get_storage),
    current_user: dict = Depends(auth.get_current_user)
):
    product = get_owned_product(product_id, storage, current_user["sub"])

    changes = product_data.model_dump(exclude_unset=True)
    if product.status == "sold" and "status" in changes:
        raise HTTPException(status_code=409, detail="Sold listings cannot change status")
    if "category_id" in changes:
        require_category(changes["category_id"], storage)

    try:
        return storage.update_product(product_id, changes)
    except Exception as e:
        logger.error(f"Error updating product {product_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to update product")

@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(
    product_id: str,
    storage: DatabaseStorage = Depends(get_storage),
    current_user: dict = Depends(auth.get_current_user)
):
    product = get_owned_product(product_id, storage, current_user["sub"])
    if product.status == "sold":
        raise HTTPException(status_code=409, detail="Sold listings cannot be deleted")

    try:
        storage.delete_product(product_id)
    except Exception as e:
        logger.error(f"Error deleting product {product_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to delete product")

    return None

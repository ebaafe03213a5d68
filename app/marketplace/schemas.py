from pydantic import BaseModel, ConfigDict, Field, EmailStr, field_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List, Literal
from datetime import datetime
from decimal import Decimal

Condition = Literal["new", "excellent", "good", "fair", "poor"]
ListingStatus = Literal["active", "draft"]


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire; both accepted on input."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

# Users

class UserOut(CamelModel):
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None
    bio: Optional[str] = None
    profile_image_url: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class UserUpdate(CamelModel):
    email: Optional[EmailStr] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None
    bio: Optional[str] = None
    profile_image_url: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None

# Categories

class CategoryCreate(CamelModel):
    name: str
    slug: str
    description: Optional[str] = None

class CategoryOut(CategoryCreate):
    id: str

# Products

class ProductCreate(CamelModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    price: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    category_id: str
    condition: Condition = "good"
    status: ListingStatus = "active"
    image_url: Optional[str] = None

class ProductUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, gt=0, max_digits=10, decimal_places=2)
    category_id: Optional[str] = None
    condition: Optional[Condition] = None
    status: Optional[ListingStatus] = None
    image_url: Optional[str] = None

    @field_validator("title", "price", "category_id", "condition", "status")
    @classmethod
    def not_null(cls, value):
        # Omit a field to leave it unchanged; these columns cannot be cleared
        if value is None:
            raise ValueError("may be omitted but not null")
        return value

class ProductOut(CamelModel):
    id: str
    title: str
    description: Optional[str] = None
    price: Decimal
    condition: str
    status: str
    image_url: Optional[str] = None
    views: int
    seller_id: str
    category_id: str
    created_at: datetime
    updated_at: Optional[datetime] = None

class ProductWithCategory(ProductOut):
    category: CategoryOut

class ProductWithSeller(ProductOut):
    seller: UserOut

class ProductDetail(ProductOut):
    seller: UserOut
    category: CategoryOut

# Cart

class CartItemCreate(CamelModel):
    product_id: str
    quantity: int = Field(default=1, ge=1)

class CartItemUpdate(CamelModel):
    quantity: int = Field(ge=1)

class CartItemOut(CamelModel):
    id: str
    user_id: str
    product_id: str
    quantity: int
    created_at: datetime

class CartLineOut(CartItemOut):
    product: ProductWithSeller

# Orders

class OrderLineIn(CamelModel):
    product_id: str
    quantity: int = Field(default=1, ge=1)

class OrderCreate(CamelModel):
    items: List[OrderLineIn] = Field(min_length=1)
    shipping_address: str = Field(min_length=1)

class OrderOut(CamelModel):
    id: str
    buyer_id: str
    total: Decimal
    shipping_address: str
    status: str
    created_at: datetime

class OrderItemOut(CamelModel):
    id: str
    order_id: str
    product_id: str
    seller_id: str
    quantity: int
    price: Decimal

class OrderItemWithProduct(OrderItemOut):
    product: ProductOut

class OrderWithItems(OrderOut):
    order_items: List[OrderItemWithProduct]

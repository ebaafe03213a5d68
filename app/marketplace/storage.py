"""
Persistence gateway.

All database access for the marketplace goes through ``DatabaseStorage``, one
instance per request session. Joined reads come back as ORM objects with their
relationships already loaded, so response schemas can nest seller, category
and product data without extra round trips.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from fastapi import Depends
from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session, joinedload, selectinload

from marketplace import models
from marketplace.database import get_db

logger = logging.getLogger(__name__)


class ProductUnavailableError(Exception):
    """Raised when an order cannot claim every product it references."""

    def __init__(self, product_ids: Iterable[str]):
        self.product_ids = sorted(product_ids)
        super().__init__(f"Products no longer available: {', '.join(self.product_ids)}")


class DatabaseStorage:
    def __init__(self, db: Session):
        self.db = db

    # User operations

    def get_user(self, user_id: str) -> Optional[models.User]:
        return self.db.get(models.User, user_id)

    def upsert_user(self, user_data: Dict[str, Any]) -> models.User:
        user = self.db.get(models.User, user_data["id"])
        if user is None:
            user = models.User(**user_data)
            self.db.add(user)
        else:
            for key, value in user_data.items():
                setattr(user, key, value)
            user.updated_at = models.utcnow()
        self.db.commit()
        self.db.refresh(user)
        return user

    def update_user(self, user_id: str, user_data: Dict[str, Any]) -> Optional[models.User]:
        user = self.db.get(models.User, user_id)
        if user is None:
            return None
        for key, value in user_data.items():
            setattr(user, key, value)
        user.updated_at = models.utcnow()
        self.db.commit()
        self.db.refresh(user)
        return user

    # Category operations

    def get_categories(self) -> List[models.Category]:
        return self.db.query(models.Category).order_by(models.Category.name).all()

    def get_category(self, category_id: str) -> Optional[models.Category]:
        return self.db.get(models.Category, category_id)

    def create_category(self, category_data: Dict[str, Any]) -> models.Category:
        category = models.Category(**category_data)
        self.db.add(category)
        self.db.commit()
        self.db.refresh(category)
        return category

    # Product operations

    def _products_with_relations(self):
        return self.db.query(models.Product).options(
            joinedload(models.Product.seller, innerjoin=True),
            joinedload(models.Product.category, innerjoin=True),
        )

    def get_products(self, category_id: Optional[str] = None, search: Optional[str] = None) -> List[models.Product]:
        query = self._products_with_relations().filter(models.Product.status == "active")

        if category_id:
            query = query.filter(models.Product.category_id == category_id)

        if search:
            query = query.filter(models.Product.title.ilike(f"%{search}%"))

        return query.order_by(models.Product.created_at.desc()).all()

    def get_product(self, product_id: str) -> Optional[models.Product]:
        return self._products_with_relations().filter(models.Product.id == product_id).first()

    def get_products_by_user_id(self, user_id: str) -> List[models.Product]:
        return (
            self.db.query(models.Product)
            .options(joinedload(models.Product.category, innerjoin=True))
            .filter(models.Product.seller_id == user_id)
            .order_by(models.Product.created_at.desc())
            .all()
        )

    def create_product(self, product_data: Dict[str, Any]) -> models.Product:
        product = models.Product(**product_data)
        self.db.add(product)
        self.db.commit()
        self.db.refresh(product)
        return product

    def update_product(self, product_id: str, product_data: Dict[str, Any]) -> Optional[models.Product]:
        product = self.db.get(models.Product, product_id)
        if product is None:
            return None
        for key, value in product_data.items():
            setattr(product, key, value)
        product.updated_at = models.utcnow()
        self.db.commit()
        self.db.refresh(product)
        return product

    def delete_product(self, product_id: str) -> None:
        self.db.execute(delete(models.CartItem).where(models.CartItem.product_id == product_id))
        self.db.execute(delete(models.Product).where(models.Product.id == product_id))
        self.db.commit()

    def increment_product_views(self, product_id: str) -> None:
        self.db.execute(
            update(models.Product)
            .where(models.Product.id == product_id)
            .values(views=models.Product.views + 1)
        )
        self.db.commit()

    # Cart operations

    def get_cart_items(self, user_id: str) -> List[models.CartItem]:
        return (
            self.db.query(models.CartItem)
            .options(
                joinedload(models.CartItem.product, innerjoin=True)
                .joinedload(models.Product.seller, innerjoin=True)
            )
            .filter(models.CartItem.user_id == user_id)
            .order_by(models.CartItem.created_at.desc())
            .all()
        )

    def get_cart_item(self, item_id: str, user_id: str) -> Optional[models.CartItem]:
        return (
            self.db.query(models.CartItem)
            .filter(models.CartItem.id == item_id, models.CartItem.user_id == user_id)
            .first()
        )

    def _insert(self):
        if self.db.get_bind().dialect.name == "postgresql":
            return pg_insert
        return sqlite_insert

    def add_to_cart(self, user_id: str, product_id: str, quantity: int) -> models.CartItem:
        # Single statement: concurrent adds of the same product merge into one row
        stmt = self._insert()(models.CartItem).values(
            id=models.new_id(),
            user_id=user_id,
            product_id=product_id,
            quantity=quantity,
            created_at=models.utcnow(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[models.CartItem.user_id, models.CartItem.product_id],
            set_={"quantity": models.CartItem.quantity + stmt.excluded.quantity},
        )
        self.db.execute(stmt)
        self.db.commit()

        return (
            self.db.query(models.CartItem)
            .filter(models.CartItem.user_id == user_id, models.CartItem.product_id == product_id)
            .populate_existing()
            .one()
        )

    def update_cart_item(self, item_id: str, user_id: str, quantity: int) -> Optional[models.CartItem]:
        item = self.get_cart_item(item_id, user_id)
        if item is None:
            return None
        item.quantity = quantity
        self.db.commit()
        self.db.refresh(item)
        return item

    def remove_from_cart(self, item_id: str, user_id: str) -> bool:
        result = self.db.execute(
            delete(models.CartItem).where(models.CartItem.id == item_id, models.CartItem.user_id == user_id)
        )
        self.db.commit()
        return result.rowcount > 0

    def clear_cart(self, user_id: str) -> None:
        self.db.execute(delete(models.CartItem).where(models.CartItem.user_id == user_id))
        self.db.commit()

    # Order operations

    def create_order(self, order_data: Dict[str, Any], items: List[Dict[str, Any]]) -> models.Order:
        """
        Insert the order, its items and mark every referenced product sold as
        one transaction.

        The status flip only touches products that are still ``active``; if any
        product was claimed by someone else in the meantime the whole order is
        rolled back and ``ProductUnavailableError`` is raised.
        """
        product_ids = {item["product_id"] for item in items}
        try:
            order = models.Order(**order_data)
            self.db.add(order)
            self.db.flush()

            for item in items:
                self.db.add(models.OrderItem(order_id=order.id, **item))

            available = set(
                self.db.execute(
                    select(models.Product.id)
                    .where(models.Product.id.in_(sorted(product_ids)), models.Product.status == "active")
                    .order_by(models.Product.id)
                    .with_for_update()
                ).scalars()
            )
            if available != product_ids:
                raise ProductUnavailableError(product_ids - available)

            result = self.db.execute(
                update(models.Product)
                .where(models.Product.id.in_(sorted(product_ids)), models.Product.status == "active")
                .values(status="sold", updated_at=models.utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != len(product_ids):
                raise ProductUnavailableError(product_ids)

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(order)
        return order

    def _orders_with_items(self):
        return self.db.query(models.Order).options(
            selectinload(models.Order.order_items).joinedload(models.OrderItem.product, innerjoin=True)
        )

    def get_orders_by_user_id(self, user_id: str) -> List[models.Order]:
        return (
            self._orders_with_items()
            .filter(models.Order.buyer_id == user_id)
            .order_by(models.Order.created_at.desc())
            .all()
        )

    def get_order_by_id(self, order_id: str, buyer_id: Optional[str] = None) -> Optional[models.Order]:
        query = self._orders_with_items().filter(models.Order.id == order_id)
        if buyer_id is not None:
            query = query.filter(models.Order.buyer_id == buyer_id)
        return query.first()


def get_storage(db: Session = Depends(get_db)) -> DatabaseStorage:
    return DatabaseStorage(db)

"""
HTTP client for the marketplace API with an explicit query cache.

Query results are cached under tuple keys made of the resource path followed
by the filter values, e.g. ``("/api/products", category, search)``. Every
mutation drops the keys whose data it changed, so the next read refetches.
"""
import logging
from typing import Any, Dict, Hashable, List, Optional, Tuple

import httpx

from marketplace.config import settings

logger = logging.getLogger(__name__)

CacheKey = Tuple[Hashable, ...]

AUTH_USER = "/api/auth/user"
CATEGORIES = "/api/categories"
PRODUCTS = "/api/products"
USER_PRODUCTS = "/api/products/user"
CART = "/api/cart"
ORDERS = "/api/orders"


class ApiError(Exception):
    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"{status_code}: {message}")


class UnauthorizedError(ApiError):
    """The session is missing or expired; the user has to log in again."""

    def __init__(self, message: str, login_url: str):
        super().__init__(401, message)
        self.login_url = login_url


class QueryCache:
    def __init__(self):
        self._entries: Dict[CacheKey, Any] = {}

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: CacheKey, default=None):
        return self._entries.get(key, default)

    def set(self, key: CacheKey, value: Any) -> None:
        self._entries[key] = value

    def keys(self) -> List[CacheKey]:
        return list(self._entries)

    def invalidate(self, *prefix: Hashable) -> int:
        """Drop every key that starts with ``prefix``; returns how many were dropped."""
        stale = [key for key in self._entries if key[:len(prefix)] == prefix]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug(f"Invalidated {len(stale)} cached queries under {prefix}")
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()


class MarketplaceClient:
    def __init__(self, base_url: str = "http://localhost:8000", token: Optional[str] = None,
                 http: Optional[httpx.Client] = None, login_url: Optional[str] = None):
        self.http = http or httpx.Client(base_url=base_url)
        self.token = token
        self.login_url = login_url or settings.LOGIN_URL
        self.cache = QueryCache()

    def close(self):
        self.http.close()

    def _headers(self) -> Dict[str, str]:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}

    def request(self, method: str, path: str, **kwargs) -> Any:
        response = self.http.request(method, path, headers=self._headers(), **kwargs)
        if response.status_code == 401:
            logger.info(f"{method} {path} unauthorized, login required at {self.login_url}")
            raise UnauthorizedError("You are logged out. Logging in again...", self.login_url)
        if response.is_error:
            try:
                message = response.json().get("detail", response.text)
            except ValueError:
                message = response.text or response.reason_phrase
            raise ApiError(response.status_code, str(message))
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def _query(self, key: CacheKey, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        if key in self.cache:
            return self.cache.get(key)
        data = self.request("GET", path, params=params)
        self.cache.set(key, data)
        return data

    # Queries

    def get_user(self):
        return self._query((AUTH_USER,), AUTH_USER)

    def get_categories(self):
        return self._query((CATEGORIES,), CATEGORIES)

    def get_products(self, category: Optional[str] = None, search: Optional[str] = None):
        params = {k: v for k, v in (("category", category), ("search", search)) if v}
        return self._query((PRODUCTS, category, search), PRODUCTS, params=params)

    def get_product(self, product_id: str):
        return self._query((PRODUCTS, product_id), f"{PRODUCTS}/{product_id}")

    def get_user_products(self, user_id: str):
        return self._query((USER_PRODUCTS, user_id), f"{USER_PRODUCTS}/{user_id}")

    def get_cart(self):
        return self._query((CART,), CART)

    def get_orders(self):
        return self._query((ORDERS,), ORDERS)

    def get_order(self, order_id: str):
        return self._query((ORDERS, order_id), f"{ORDERS}/{order_id}")

    # Mutations

    def update_profile(self, **fields):
        user = self.request("PATCH", AUTH_USER, json=fields)
        self.cache.invalidate(AUTH_USER)
        return user

    def create_product(self, **fields):
        product = self.request("POST", PRODUCTS, json=fields)
        self.cache.invalidate(PRODUCTS)
        self.cache.invalidate(USER_PRODUCTS)
        return product

    def update_product(self, product_id: str, **fields):
        product = self.request("PATCH", f"{PRODUCTS}/{product_id}", json=fields)
        self.cache.invalidate(PRODUCTS)
        self.cache.invalidate(USER_PRODUCTS)
        return product

    def delete_product(self, product_id: str):
        self.request("DELETE", f"{PRODUCTS}/{product_id}")
        self.cache.invalidate(USER_PRODUCTS)
        self.cache.invalidate(PRODUCTS)

    def add_to_cart(self, product_id: str, quantity: int = 1):
        line = self.request("POST", CART, json={"productId": product_id, "quantity": quantity})
        self.cache.invalidate(CART)
        return line

    def update_cart_item(self, item_id: str, quantity: int):
        line = self.request("PATCH", f"{CART}/{item_id}", json={"quantity": quantity})
        self.cache.invalidate(CART)
        return line

    def remove_cart_item(self, item_id: str):
        self.request("DELETE", f"{CART}/{item_id}")
        self.cache.invalidate(CART)

    def place_order(self, items: List[Dict[str, Any]], shipping_address: str):
        order = self.request("POST", ORDERS, json={"items": items, "shippingAddress": shipping_address})
        self.cache.invalidate(CART)
        self.cache.invalidate(ORDERS)
        self.cache.invalidate(PRODUCTS)
        return order

    def checkout(self, shipping_address: str):
        """Places an order for everything currently in the cart."""
        items = [
            {"productId": line["productId"], "quantity": line["quantity"]}
            for line in self.get_cart()
        ]
        return self.place_order(items, shipping_address)

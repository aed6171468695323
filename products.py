import logging
import math
import random
import re
import time
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError
from pymongo.database import Database

from cache import ProductQueryCache
from database import guarded, oid, stamp, to_str_id, utcnow
from errors import NotFoundError, PersistenceError, ValidationError, describe
from schemas import (
    PLACEHOLDER_IMAGE,
    Product,
    ProductCreate,
    ProductFilters,
    ProductUpdate,
)

logger = logging.getLogger(__name__)

COLLECTION = "product"
TOGGLE_FIELDS = ("recommended", "bestSeller")
TOGGLE_ATTEMPTS = 5
NEWEST_FIRST = [("createdAt", -1), ("_id", -1)]


def generate_product_id() -> str:
    return f"PID-{int(time.time() * 1000)}-{random.randint(1000, 9999)}"


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def to_number(value: Any) -> Optional[float]:
    """Parse a price-like value, ignoring thousands separators."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).replace(",", "").strip())
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def final_price(price: float, discount: float) -> float:
    if discount and discount > 0:
        return round(price - price * discount / 100, 2)
    return price


def product_out(doc: Dict[str, Any]) -> Dict[str, Any]:
    d = to_str_id(doc)
    d["finalPrice"] = final_price(d.get("price", 0), d.get("discount", 0))
    return d


def build_query(filters: ProductFilters) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if filters.category:
        query["category"] = {"$regex": re.escape(filters.category), "$options": "i"}
    if filters.best_seller is not None:
        query["bestSeller"] = filters.best_seller
    if filters.recommended is not None:
        query["recommended"] = filters.recommended
    if filters.min_price is not None or filters.max_price is not None:
        query["price"] = {}
        if filters.min_price is not None:
            query["price"]["$gte"] = filters.min_price
        if filters.max_price is not None:
            query["price"]["$lte"] = filters.max_price
    if filters.search:
        pattern = {"$regex": re.escape(filters.search), "$options": "i"}
        query["$or"] = [
            {"title": pattern},
            {"category": pattern},
            {"description": pattern},
        ]
    return query


class ProductStore:
    def __init__(self, db: Database, cache: ProductQueryCache):
        self.collection = db[COLLECTION]
        self.cache = cache

    @guarded("fetch products")
    def list(self, filters: ProductFilters) -> Tuple[List[Dict[str, Any]], bool]:
        """Return (products, from_cache) for the given filters, newest first."""
        key = filters.model_dump_json(by_alias=True, exclude_none=True)
        return self.cache.get_or_load(key, lambda: self._find(filters))

    def _find(self, filters: ProductFilters) -> List[Dict[str, Any]]:
        cursor = self.collection.find(build_query(filters)).sort(NEWEST_FIRST)
        return [product_out(d) for d in cursor]

    @guarded("fetch product")
    def get(self, product_id: str) -> Dict[str, Any]:
        _id = oid(product_id)
        doc = self.collection.find_one({"_id": _id}) if _id else None
        if not doc:
            raise NotFoundError("Product not found")
        return product_out(doc)

    @guarded("create product")
    def create(self, data: ProductCreate) -> Dict[str, Any]:
        title = (data.title or "").strip()
        price = to_number(data.price)
        if not title or price is None:
            raise ValidationError("Please provide valid title & price")

        stock = to_number(data.stock)
        if stock is None:
            stock = 10
        try:
            product = Product(
                product_id=generate_product_id(),
                title=title,
                price=price,
                stock=int(stock),
                category=(data.category or "").strip() or "Uncategorized",
                description=(data.description or "").strip(),
                image=(data.image or "").strip() or PLACEHOLDER_IMAGE,
                recommended=data.recommended,
                best_seller=data.best_seller,
                discount=clamp(to_number(data.discount) or 0, 0, 100),
                rating=clamp(to_number(data.rating) or 0, 0, 5),
                added_at=utcnow(),
                is_active=stock > 0,
            )
        except PydanticValidationError as e:
            raise ValidationError(describe(e.errors())) from e

        doc = stamp(product.model_dump(by_alias=True), created=True)
        self.collection.insert_one(doc)
        self.cache.invalidate()
        logger.info("Product %s created (%s)", doc["productId"], title)
        return product_out(doc)

    @guarded("update product")
    def update(self, product_id: str, data: ProductUpdate) -> Dict[str, Any]:
        _id = oid(product_id)
        if not _id:
            raise NotFoundError("Product not found")

        updates = data.model_dump(by_alias=True, exclude_unset=True, exclude_none=True)
        if "discount" in updates:
            updates["discount"] = clamp(updates["discount"], 0, 100)
        if "rating" in updates:
            updates["rating"] = clamp(updates["rating"], 0, 5)
        if "stock" in updates:
            updates["isActive"] = updates["stock"] > 0

        doc = self.collection.find_one_and_update(
            {"_id": _id}, {"$set": stamp(updates)}, return_document=True
        )
        if not doc:
            raise NotFoundError("Product not found")
        self.cache.invalidate()
        logger.info("Product %s updated: %s", product_id, sorted(updates))
        return product_out(doc)

    @guarded("delete product")
    def delete(self, product_id: str) -> None:
        _id = oid(product_id)
        res = self.collection.delete_one({"_id": _id}) if _id else None
        if res is None or res.deleted_count == 0:
            raise NotFoundError("Product not found")
        self.cache.invalidate()
        logger.info("Product %s deleted", product_id)

    @guarded("toggle product flag")
    def toggle(self, product_id: str, field: str) -> Dict[str, Any]:
        if field not in TOGGLE_FIELDS:
            raise ValidationError("Invalid field!")
        _id = oid(product_id)
        if not _id:
            raise NotFoundError("Product not found")

        for _ in range(TOGGLE_ATTEMPTS):
            cur = self.collection.find_one({"_id": _id}, {field: 1})
            if not cur:
                raise NotFoundError("Product not found")
            current = bool(cur.get(field, False))
            # flip only if nobody changed the flag since it was read
            expected = True if current else {"$ne": True}
            doc = self.collection.find_one_and_update(
                {"_id": _id, field: expected},
                {"$set": stamp({field: not current})},
                return_document=True,
            )
            if doc:
                self.cache.invalidate()
                logger.info("Product %s %s -> %s", product_id, field, doc[field])
                return product_out(doc)

        raise PersistenceError(
            "Failed to toggle product flag", detail=f"{field} kept changing concurrently"
        )

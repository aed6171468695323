import logging
import re
from typing import Any, Dict, List, Tuple

from pydantic import ValidationError as PydanticValidationError
from pymongo.database import Database

from database import guarded, oid, stamp, to_str_id, utcnow
from errors import NotFoundError, ValidationError, describe
from products import to_number
from schemas import (
    CartItemIn,
    Order,
    OrderCreate,
    OrderStatus,
    OrderStatusUpdate,
    PaymentMethod,
)

logger = logging.getLogger(__name__)

COLLECTION = "order"
NEWEST_FIRST = [("createdAt", -1), ("_id", -1)]
# the stored PDF never travels with ordinary reads
WITHOUT_RECEIPT = {"receipt.pdf": 0}


def active(query: Dict[str, Any]) -> Dict[str, Any]:
    """Scope an order query to records that have not been soft-deleted."""
    return {**query, "isDeleted": {"$ne": True}}


def receipt_title(doc: Dict[str, Any]) -> str:
    name = (doc.get("customer") or {}).get("name") or ""
    safe_name = re.sub(r"\s+", "_", name.strip()) or "Customer"
    return f"Order_{doc.get('_id')}_{safe_name}"


def order_out(doc: Dict[str, Any]) -> Dict[str, Any]:
    d = to_str_id(doc)
    receipt = d.get("receipt") or {}
    d["receipt"] = {k: v for k, v in receipt.items() if k != "pdf"}
    d["totalItems"] = sum(i.get("qty") or 0 for i in d.get("cartItems") or [])
    d["receiptTitle"] = receipt_title(doc)
    return d


def normalize_item(item: CartItemIn) -> Dict[str, Any]:
    price = to_number(item.price)
    if price is None or price < 0:
        price = 0
    qty = to_number(item.qty)
    qty = int(qty) if qty is not None and qty >= 1 else 1
    return {
        "product_id": (item.product_id or "").strip(),
        "title": (item.title or item.name or "").strip(),
        "name": (item.name or item.title or "Unnamed Product").strip(),
        "price": price,
        "qty": qty,
        "image": item.image or "",
    }


class OrderStore:
    def __init__(self, db: Database):
        self.collection = db[COLLECTION]

    def _find_one(self, order_id: str, projection=WITHOUT_RECEIPT) -> Dict[str, Any]:
        _id = oid(order_id)
        doc = self.collection.find_one(active({"_id": _id}), projection) if _id else None
        if not doc:
            raise NotFoundError("Order not found")
        return doc

    @guarded("fetch orders")
    def list(self, page: int = 1, page_size: int = 10) -> Tuple[List[Dict[str, Any]], int]:
        page = max(page, 1)
        query = active({})
        total = self.collection.count_documents(query)
        cursor = (
            self.collection.find(query, WITHOUT_RECEIPT)
            .sort(NEWEST_FIRST)
            .skip((page - 1) * page_size)
            .limit(page_size)
        )
        return [order_out(o) for o in cursor], total

    @guarded("fetch filtered orders")
    def list_by_status(self, status: str, limit: int = 10) -> List[Dict[str, Any]]:
        cursor = (
            self.collection.find(active({"orderStatus": status}), WITHOUT_RECEIPT)
            .sort(NEWEST_FIRST)
            .limit(limit)
        )
        return [order_out(o) for o in cursor]

    @guarded("fetch order")
    def get(self, order_id: str) -> Dict[str, Any]:
        return order_out(self._find_one(order_id))

    @guarded("create order")
    def create(self, data: OrderCreate) -> Dict[str, Any]:
        customer = data.customer
        items = data.cart_items or data.items
        address = customer.address if customer and customer.address else customer

        missing = []
        if not customer or not (customer.name or "").strip():
            missing.append("customer.name")
        if not customer or not (customer.phone or "").strip():
            missing.append("customer.phone")
        if not address or not (address.line1 or "").strip():
            missing.append("customer.address.line1")
        if not items:
            missing.append("cartItems")
        if missing:
            raise ValidationError(
                "Missing required customer or order details: " + ", ".join(missing)
            )

        cart = [normalize_item(i) for i in items]
        total = data.total_price
        if total is None:
            total = round(sum(i["price"] * i["qty"] for i in cart), 2)

        try:
            order = Order.model_validate({
                "customer": {
                    "name": customer.name,
                    "phone": customer.phone,
                    "email": customer.email or "",
                    "address": {
                        "line1": address.line1.strip(),
                        "city": address.city or "",
                        "state": address.state or "",
                        "pincode": address.pincode or "",
                    },
                },
                "cart_items": cart,
                "total_price": total,
                "payment_method": data.payment_method or PaymentMethod.CASH_ON_DELIVERY,
                "ordered_at": utcnow(),
            })
        except PydanticValidationError as e:
            raise ValidationError(describe(e.errors())) from e

        doc = stamp(order.model_dump(by_alias=True), created=True)
        self.collection.insert_one(doc)
        logger.info("Order %s placed by %s for %s", doc["_id"], customer.name, total)
        return order_out(doc)

    @guarded("update order")
    def update(self, order_id: str, changes: OrderStatusUpdate) -> Dict[str, Any]:
        _id = oid(order_id)
        if not _id:
            raise NotFoundError("Order not found")

        updates: Dict[str, Any] = {}
        if changes.order_status is not None:
            updates["orderStatus"] = changes.order_status
        if changes.payment_status is not None:
            updates["paymentStatus"] = changes.payment_status
        if changes.payment_method is not None:
            updates["paymentMethod"] = changes.payment_method

        doc = self.collection.find_one_and_update(
            active({"_id": _id}),
            {"$set": stamp(updates)},
            projection=WITHOUT_RECEIPT,
            return_document=True,
        )
        if not doc:
            raise NotFoundError("Order not found")

        if doc.get("orderStatus") == OrderStatus.DELIVERED.value and doc.get("deliveredAt") is None:
            # only the first writer to see a null deliveredAt may set it
            stamped = self.collection.find_one_and_update(
                active({"_id": _id, "deliveredAt": None}),
                {"$set": {"deliveredAt": utcnow()}},
                projection=WITHOUT_RECEIPT,
                return_document=True,
            )
            doc = stamped or self._find_one(order_id)

        logger.info("Order %s updated: %s", order_id, updates)
        return order_out(doc)

    @guarded("delete order")
    def soft_delete(self, order_id: str) -> None:
        _id = oid(order_id)
        res = (
            self.collection.update_one(active({"_id": _id}), {"$set": stamp({"isDeleted": True})})
            if _id else None
        )
        if res is None or res.matched_count == 0:
            raise NotFoundError("Order not found")
        logger.info("Order %s soft-deleted", order_id)

    @guarded("fetch order")
    def get_for_receipt(self, order_id: str) -> Dict[str, Any]:
        return self._find_one(order_id)

    @guarded("save receipt")
    def save_receipt(self, order_id: str, pdf: bytes) -> Dict[str, Any]:
        """Replace the attached receipt; content and timestamp land in one write."""
        now = utcnow()
        receipt = {"pdf": pdf, "createdAt": now}
        doc = self.collection.find_one_and_update(
            active({"_id": oid(order_id)}),
            {"$set": {"receipt": receipt, "updatedAt": now}},
            projection=WITHOUT_RECEIPT,
            return_document=True,
        )
        if not doc:
            raise NotFoundError("Order not found")
        return order_out(doc)

    @guarded("fetch receipt")
    def get_receipt(self, order_id: str) -> Tuple[bytes, Dict[str, Any]]:
        doc = self._find_one(order_id, {"receipt": 1, "customer.name": 1})
        pdf = (doc.get("receipt") or {}).get("pdf")
        if not pdf:
            raise NotFoundError("Receipt not generated yet")
        return bytes(pdf), doc

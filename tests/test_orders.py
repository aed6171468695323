from datetime import datetime

import pytest

from conftest import order_payload
from errors import NotFoundError, ValidationError
from schemas import OrderCreate, OrderStatusUpdate


def test_create_initial_state(make_order):
    order = make_order(orderStatus="Delivered", paymentStatus="Paid")
    assert order["orderStatus"] == "Pending"
    assert order["paymentStatus"] == "Pending"
    assert order["isDeleted"] is False
    assert order["deliveredAt"] is None
    assert order["paymentMethod"] == "UPI"
    assert order["totalPrice"] == 130
    assert order["totalItems"] == 3
    assert order["customer"]["email"] == "asha@example.com"
    assert order["receiptTitle"] == f"Order_{order['id']}_Asha_Verma"


def test_create_normalizes_items(make_order):
    order = make_order(
        cartItems=[
            {"productId": "PID-1", "title": "Soap", "price": "abc", "qty": "0"},
            {"productId": "PID-2", "name": "Oil", "price": "1,250"},
        ],
        totalPrice=None,
    )
    first, second = order["cartItems"]
    assert (first["price"], first["qty"], first["name"]) == (0, 1, "Soap")
    assert (second["price"], second["qty"], second["title"]) == (1250, 1, "Oil")
    assert order["totalPrice"] == 1250


def test_create_accepts_items_key_and_flat_address(orders):
    payload = order_payload()
    payload["items"] = payload.pop("cartItems")
    payload["customer"] = {"name": "Ravi", "phone": "09876543210", "line1": "Flat 4"}
    order = orders.create(OrderCreate.model_validate(payload))
    assert order["customer"]["phone"] == "9876543210"
    assert order["customer"]["address"]["line1"] == "Flat 4"
    assert order["paymentMethod"] == "UPI"


@pytest.mark.parametrize(
    "overrides, missing",
    [
        ({"customer": None}, "customer.name"),
        ({"customer": {"name": "Asha", "phone": "9876543210"}}, "customer.address.line1"),
        ({"customer": {"name": "Asha", "address": {"line1": "x"}}}, "customer.phone"),
        ({"cartItems": []}, "cartItems"),
    ],
)
def test_create_reports_missing_fields(make_order, overrides, missing):
    with pytest.raises(ValidationError) as exc:
        make_order(**overrides)
    assert missing in exc.value.message


def test_create_rejects_bad_phone(make_order):
    customer = order_payload()["customer"]
    with pytest.raises(ValidationError):
        make_order(customer={**customer, "phone": "12345"})


def test_create_rejects_negative_total(make_order):
    with pytest.raises(ValidationError):
        make_order(totalPrice=-1)


def test_update_allow_list(orders, make_order):
    order = make_order()
    body = {"customer": {"name": "x"}, "cartItems": [], "status": "Processing", "paymentStatus": "Paid"}
    updated = orders.update(order["id"], OrderStatusUpdate.model_validate(body))
    assert updated["customer"]["name"] == "Asha Verma"
    assert len(updated["cartItems"]) == 2
    assert updated["orderStatus"] == "Processing"
    assert updated["paymentStatus"] == "Paid"


def test_delivered_at_is_set_once(orders, make_order):
    order = make_order()
    delivered = orders.update(order["id"], OrderStatusUpdate(order_status="Delivered"))
    stamp = delivered["deliveredAt"]
    assert stamp is not None
    assert orders.get(order["id"])["deliveredAt"] == stamp

    again = orders.update(order["id"], OrderStatusUpdate(order_status="Delivered"))
    assert again["deliveredAt"] == stamp


def test_update_unknown_order(orders):
    with pytest.raises(NotFoundError):
        orders.update("64b000000000000000000000", OrderStatusUpdate(payment_status="Paid"))


def test_soft_deleted_orders_are_hidden(orders, make_order, db):
    keep = make_order()
    gone = make_order()
    orders.soft_delete(gone["id"])

    listed, total = orders.list()
    assert [o["id"] for o in listed] == [keep["id"]]
    assert total == 1
    assert [o["id"] for o in orders.list_by_status("Pending")] == [keep["id"]]
    with pytest.raises(NotFoundError):
        orders.get(gone["id"])
    with pytest.raises(NotFoundError):
        orders.update(gone["id"], OrderStatusUpdate(order_status="Shipped"))
    with pytest.raises(NotFoundError):
        orders.soft_delete(gone["id"])

    # still on disk
    assert db["order"].count_documents({}) == 2


def test_soft_delete_unknown(orders):
    with pytest.raises(NotFoundError):
        orders.soft_delete("nope")


def test_pagination_newest_first(orders, make_order):
    created = [make_order()["id"] for _ in range(12)]

    page1, total = orders.list(page=1)
    page2, _ = orders.list(page=2)
    assert total == 12
    assert [o["id"] for o in page1] == created[::-1][:10]
    assert [o["id"] for o in page2] == created[::-1][10:]


def test_list_by_status(orders, make_order):
    a = make_order()
    make_order()
    orders.update(a["id"], OrderStatusUpdate(order_status="Shipped"))
    assert [o["id"] for o in orders.list_by_status("Shipped")] == [a["id"]]
    assert len(orders.list_by_status("Pending", limit=1)) == 1


def test_defaults_are_stored_as_plain_strings(make_order, db):
    make_order()
    stored = db["order"].find_one({})
    assert type(stored["orderStatus"]) is str
    assert type(stored["paymentStatus"]) is str
    assert stored["orderStatus"] == "Pending"


def test_concurrent_delivery_keeps_first_stamp(orders, make_order, monkeypatch):
    order = make_order()
    collection = orders.collection
    real_update = collection.find_one_and_update
    first_stamp = datetime(2024, 5, 1, 10, 30)
    calls = []

    def update_then_deliver(*args, **kwargs):
        doc = real_update(*args, **kwargs)
        if not calls:
            # a parallel request marks the order delivered in between
            collection.update_one({}, {"$set": {"deliveredAt": first_stamp}})
        calls.append(args)
        return doc

    monkeypatch.setattr(collection, "find_one_and_update", update_then_deliver)
    updated = orders.update(order["id"], OrderStatusUpdate(order_status="Delivered"))

    assert updated["deliveredAt"] == first_stamp
    assert orders.get(order["id"])["deliveredAt"] == first_stamp


def test_existing_delivery_stamp_is_kept(orders, make_order, db):
    order = make_order()
    stamp = datetime(2024, 5, 1, 10, 30)
    db["order"].update_one({}, {"$set": {"deliveredAt": stamp}})

    updated = orders.update(order["id"], OrderStatusUpdate(order_status="Delivered"))
    assert updated["deliveredAt"] == stamp

from decimal import Decimal

import pytest

from grocer.models import Order, OrderItem
from grocer.services import order_service
from grocer.services.order_service import (
    OrderCodeConflictError,
    OrderNotFoundError,
    build_item_rows,
    create_order,
    get_order,
    get_order_items,
    list_orders,
)
from grocer.validation import ValidationError


def _payload(**overrides):
    payload = {
        "name": "Maria Santos",
        "contact": "09171234567",
        "address": "12 Mabini St",
        "totalPrice": 100,
        "device_id": "device-a",
        "items": [],
    }
    payload.update(overrides)
    return payload


def test_end_to_end_discount_does_not_touch_line_totals(db_session, make_product):
    product = make_product(name="Sardines", price="45.00", stock=10)

    result = create_order(_payload(
        totalPrice=100,
        discount=10,
        items=[{"product_id": product.fingerprint, "quantity": 2, "price": 45}],
    ))

    order = result.order
    assert order.net_total == Decimal("90.00")
    assert result.inserted_items == 1
    assert result.skipped == []

    items = db_session.query(OrderItem).filter_by(order_id=order.id).all()
    assert len(items) == 1
    assert items[0].product_id == product.id
    assert items[0].unit_price == Decimal("45.00")
    assert items[0].total_price == Decimal("90.00")


def test_defaults_on_create(db_session):
    order = create_order(_payload()).order
    assert order.status == "Pending"
    assert order.payment == "Cash"
    assert order.order_type == "Online"
    assert order.discount == Decimal("0.00")
    assert order.net_total == Decimal("100.00")
    assert order.order_code.startswith("ORD")
    assert len(order.order_code) == 9


def test_explicit_net_total_is_kept(db_session):
    order = create_order(_payload(discount=10, net_total=95)).order
    assert order.net_total == Decimal("95.00")


def test_partial_item_resilience(db_session, make_product):
    rice = make_product(name="Rice", price="50.00")
    eggs = make_product(name="Eggs", price="8.00")

    result = create_order(_payload(items=[
        {"product_id": rice.id, "quantity": 1},
        {"product_id": "ffffffffffffffffffffffff", "quantity": 1, "name": "Ghost"},
        {"product_id": eggs.fingerprint, "quantity": 12},
    ]))

    assert result.inserted_items == 2
    assert [s.to_dict() for s in result.skipped] == [
        {"index": 1, "product_id": "ffffffffffffffffffffffff", "reason": "product_not_found"},
    ]
    assert db_session.query(OrderItem).filter_by(order_id=result.order.id).count() == 2


def test_invalid_lines_are_skipped_with_reasons(db_session, make_product):
    product = make_product()
    rows, skipped = build_item_rows([
        "not-a-dict",
        {"quantity": 1},
        {"product_id": product.id, "quantity": 0},
        {"product_id": product.id, "quantity": 1.5},
        {"productId": product.id, "qty": "3"},
    ])

    assert [s.reason for s in skipped] == [
        "invalid_line",
        "missing_product_id",
        "invalid_quantity",
        "invalid_quantity",
    ]
    assert len(rows) == 1
    assert rows[0]["quantity"] == 3


def test_line_price_falls_back_to_product_price(db_session, make_product):
    product = make_product(name="Soy Sauce", price="22.25", category="Condiments", sku="SOY-1")
    rows, _ = build_item_rows([{"product_id": product.id, "quantity": 4}])

    row = rows[0]
    assert row["unit_price"] == Decimal("22.25")
    assert row["total_price"] == Decimal("89.00")
    assert row["product_name"] == "Soy Sauce"
    assert row["product_sku"] == "SOY-1"
    assert row["product_category"] == "Condiments"


def test_disagreeing_client_total_is_replaced(db_session, make_product):
    product = make_product(price="10.00")
    rows, _ = build_item_rows([
        {"product_id": product.id, "quantity": 3, "price": 10, "total": 25},
        {"product_id": product.id, "quantity": 3, "price": 10, "total_price": 30},
    ])
    assert rows[0]["total_price"] == Decimal("30.00")
    assert rows[1]["total_price"] == Decimal("30.00")


@pytest.mark.parametrize("overrides, message", [
    ({"name": ""}, "Name is required"),
    ({"totalPrice": None}, "Total price is required"),
    ({"device_id": "  "}, "Device ID is required"),
    ({"totalPrice": "100"}, "totalPrice must be a number"),
    ({"payment": "Card"}, "Invalid payment method"),
    ({"status": "Shipped"}, "Invalid status"),
    ({"discount": 150}, "discount cannot exceed totalPrice"),
    ({"items": {"product_id": "x"}}, "items must be a list"),
])
def test_header_validation_persists_nothing(db_session, overrides, message):
    with pytest.raises(ValidationError) as exc:
        create_order(_payload(**overrides))
    assert message in str(exc.value)
    assert db_session.query(Order).count() == 0


def test_non_dict_payload_rejected(db_session):
    with pytest.raises(ValidationError):
        create_order(None)


def test_order_code_collision_retries_with_new_code(db_session, make_order, monkeypatch):
    make_order(order_code="ORD000001")
    codes = iter(["ORD000001", "ORD000002"])
    monkeypatch.setattr(order_service, "generate_order_code", lambda prefix, attempt=0: next(codes))

    order = create_order(_payload()).order

    assert order.order_code == "ORD000002"
    assert db_session.query(Order).count() == 2


def test_order_code_collision_gives_up_after_configured_attempts(app, db_session, make_order, monkeypatch):
    make_order(order_code="ORD000001")
    calls = []

    def _same_code(prefix, attempt=0):
        calls.append(attempt)
        return "ORD000001"

    monkeypatch.setattr(order_service, "generate_order_code", _same_code)
    monkeypatch.setitem(app.config, "ORDER_CODE_ATTEMPTS", 3)

    with pytest.raises(OrderCodeConflictError):
        create_order(_payload())
    assert calls == [0, 1, 2]
    assert db_session.query(Order).count() == 1


def test_item_insert_failure_keeps_the_order(db_session, make_product, monkeypatch):
    product = make_product()
    bad_row = {
        "product_id": product.id,
        "quantity": 0,  # violates ck_order_items_quantity_positive
        "unit_price": Decimal("1.00"),
        "total_price": Decimal("0.00"),
        "product_name": product.name,
    }
    monkeypatch.setattr(order_service, "build_item_rows", lambda items: ([bad_row], []))

    result = create_order(_payload(items=[{"product_id": product.id, "quantity": 1}]))

    assert result.inserted_items == 0
    assert result.item_insert_error == "IntegrityError"
    assert db_session.query(Order).filter_by(id=result.order.id).count() == 1
    assert db_session.query(OrderItem).count() == 0


def test_get_order_device_filter_hides_other_devices(db_session, make_order):
    order = make_order(device_id="device-a")

    assert get_order(order.id).id == order.id
    assert get_order(order.id, device_id="device-a").id == order.id
    with pytest.raises(OrderNotFoundError):
        get_order(order.id, device_id="device-b")


def test_get_order_items_requires_existing_order(db_session):
    with pytest.raises(OrderNotFoundError):
        get_order_items("ffffffffffffffffffffffff")


def test_list_orders_pages_and_filters(db_session, make_order):
    for _ in range(3):
        make_order(device_id="device-a")
    make_order(device_id="device-b")

    page = list_orders(page=1, page_size=2)
    assert page["total"] == 4
    assert page["pageSize"] == 2
    assert len(page["orders"]) == 2

    mine = list_orders(device_id="device-b")
    assert mine["total"] == 1
    assert mine["orders"][0]["device_id"] == "device-b"


def test_list_orders_clamps_page_size(app, db_session):
    assert list_orders(page_size=10_000)["pageSize"] == app.config["ORDERS_MAX_PAGE_SIZE"]
    assert list_orders(page=0, page_size=0)["page"] == 1


def test_oversized_numeric_product_id_skips_only_that_line(db_session, make_product):
    product = make_product()

    result = create_order(_payload(items=[
        {"product_id": product.id, "quantity": 1},
        {"product_id": "99999999999999999999999", "quantity": 1},
        {"product_id": "123456789012345678901234", "quantity": 1},
    ]))

    assert result.inserted_items == 1
    assert [s.reason for s in result.skipped] == ["product_not_found", "product_not_found"]


@pytest.mark.parametrize("field", ["totalPrice", "discount", "net_total"])
def test_oversized_header_amount_is_a_validation_error(db_session, field):
    with pytest.raises(ValidationError, match="cannot exceed"):
        create_order(_payload(**{field: 1e30}))
    assert db_session.query(Order).count() == 0


def test_oversized_line_amounts_fall_back_to_computed_values(db_session, make_product):
    product = make_product(price="12.00")

    result = create_order(_payload(items=[
        {"product_id": product.id, "quantity": 2, "price": 1e30},
        {"product_id": product.id, "quantity": 1, "price": 12, "total": 1e30},
    ]))

    assert result.inserted_items == 2
    totals = sorted(
        item.total_price
        for item in db_session.query(OrderItem).filter_by(order_id=result.order.id)
    )
    assert totals == [Decimal("12.00"), Decimal("24.00")]


@pytest.mark.parametrize("quantity", [10 ** 30, "99999999999999999999", 1e30])
def test_oversized_quantity_is_skipped(db_session, make_product, quantity):
    product = make_product()
    rows, skipped = build_item_rows([{"product_id": product.id, "quantity": quantity}])
    assert rows == []
    assert [s.reason for s in skipped] == ["invalid_quantity"]

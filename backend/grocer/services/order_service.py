# Overview: Service-layer order intake; validates carts, resolves products, and persists orders with their items.

"""
Order Service - order intake and read access

CREATE FLOW:
1. Validate the header (name, totalPrice, device_id, enums) - fail fast,
   nothing persisted.
2. Build item rows: each cart line needs a product identifier and a
   positive integral quantity, and must resolve to a catalog product.
   Lines that fail are SKIPPED and reported, never fatal.
3. Insert the order (retrying on order-code collisions).
4. Bulk-insert the surviving items.

Order and items are committed separately. If the item insert fails the
order survives with zero items; item management can backfill it.

LINE PRICING:
- unit_price: payload price if it is a finite number, else the variant
  price, else the product's current price
- total_price: always quantity * unit_price; a client total is only kept
  when it agrees to within one cent
- header discounts never touch line totals
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..ids import generate_order_code
from ..models import Order, OrderItem
from ..models.orders import (
    ORDER_STATUSES,
    ORDER_TYPES,
    PAYMENT_CASH,
    PAYMENT_METHODS,
    STATUS_PENDING,
    TYPE_ONLINE,
)
from ..validation import (
    CENT,
    ValidationError,
    coerce_money,
    coerce_optional_money,
    coerce_quantity,
    optional_text,
    require_text,
    validate_choice,
)
from . import catalog_service, resolver_service


UNKNOWN_PRODUCT_NAME = "Unknown Product"


class OrderError(Exception):
    """Raised for order operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class OrderNotFoundError(OrderError):
    """Order id does not exist (or is hidden by a device filter)."""


class OrderOwnershipError(OrderError):
    """device_id on the request does not match the order's device."""


class OrderTransactionError(OrderError):
    """The guarded status transition failed and was rolled back."""


class OrderCodeConflictError(OrderError):
    """Could not allocate a unique order code; the client may retry."""


@dataclass(frozen=True)
class ItemSkip:
    """A cart line that was not persisted (resolution miss or bad line)."""
    index: int
    product_ref: Any
    reason: str

    def to_dict(self) -> dict:
        return {"index": self.index, "product_id": self.product_ref, "reason": self.reason}


@dataclass
class OrderResult:
    order: Order
    inserted_items: int = 0
    skipped: list[ItemSkip] = field(default_factory=list)
    item_insert_error: str | None = None

    def to_dict(self) -> dict:
        data = self.order.to_dict()
        data["inserted_items"] = self.inserted_items
        data["skipped_items"] = [s.to_dict() for s in self.skipped]
        if self.item_insert_error:
            data["item_insert_error"] = self.item_insert_error
        return data


def _validate_header(payload: dict) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    name = require_text(payload, "name", "Name is required")

    total_raw = payload.get("totalPrice")
    if total_raw is None:
        raise ValidationError("Total price is required")
    total_price = coerce_money(total_raw, "totalPrice", positive=True)

    device_id = require_text(payload, "device_id", "Device ID is required")

    payment = payload.get("payment") or PAYMENT_CASH
    validate_choice(payment, "payment method", PAYMENT_METHODS)
    status = payload.get("status") or STATUS_PENDING
    validate_choice(status, "status", ORDER_STATUSES)
    order_type = payload.get("type") or TYPE_ONLINE
    validate_choice(order_type, "type", ORDER_TYPES)

    discount_raw = payload.get("discount")
    discount = coerce_money(discount_raw, "discount") if discount_raw is not None else Decimal("0.00")
    if discount > total_price:
        raise ValidationError("discount cannot exceed totalPrice")

    net_raw = payload.get("net_total")
    net_total = coerce_money(net_raw, "net_total") if net_raw is not None else total_price - discount

    items = payload.get("items")
    if items is None:
        items = []
    if not isinstance(items, list):
        raise ValidationError("items must be a list")

    return {
        "name": name,
        "contact": optional_text(payload, "contact", 64),
        "address": optional_text(payload, "address"),
        "payment": payment,
        "ref": optional_text(payload, "ref", 128),
        "total_price": total_price,
        "discount": discount,
        "net_total": net_total,
        "status": status,
        "order_type": order_type,
        "device_id": device_id,
        "fcm_token": optional_text(payload, "fcm_token", 512),
        "items": items,
    }


def _first_present(line: dict, *keys: str) -> Any:
    for key in keys:
        value = line.get(key)
        if value is not None and value != "":
            return value
    return None


def _line_total(quantity: int, unit_price: Decimal, client_total: Decimal | None, index: int) -> Decimal:
    computed = (unit_price * quantity).quantize(CENT)
    if client_total is None:
        return computed
    if abs(client_total - computed) <= CENT:
        return client_total
    current_app.logger.warning(
        "Item %s: client total %s disagrees with %s x %s; using %s",
        index, client_total, quantity, unit_price, computed,
    )
    return computed


def build_item_rows(items: list) -> tuple[list[dict], list[ItemSkip]]:
    """
    Resolve and price cart lines.

    Returns (rows, skipped). Rows are OrderItem column dicts without order_id.
    """
    rows: list[dict] = []
    skipped: list[ItemSkip] = []

    for index, line in enumerate(items):
        if not isinstance(line, dict):
            skipped.append(ItemSkip(index, None, "invalid_line"))
            continue

        product_ref = _first_present(line, "product_id", "productId")
        quantity = coerce_quantity(_first_present(line, "quantity", "qty"))
        if product_ref is None:
            skipped.append(ItemSkip(index, None, "missing_product_id"))
            continue
        if quantity is None:
            skipped.append(ItemSkip(index, product_ref, "invalid_quantity"))
            continue

        client_price = coerce_optional_money(_first_present(line, "price", "unit_price"))
        client_total = coerce_optional_money(_first_present(line, "total", "total_price"))
        line_name = _first_present(line, "product_name", "name")
        line_name = line_name.strip() if isinstance(line_name, str) else None

        resolution = resolver_service.resolve(product_ref, line_name, client_price)
        if resolution is None:
            skipped.append(ItemSkip(index, product_ref, "product_not_found"))
            continue
        product = resolution.product

        variant_id = _first_present(line, "variant_id")
        variant = catalog_service.get_variant(product.id, variant_id) if isinstance(variant_id, str) else None
        variant_name = _first_present(line, "variant_name")
        if variant is not None and not variant_name:
            variant_name = variant.name

        if client_price is not None:
            unit_price = client_price
        elif variant is not None:
            unit_price = Decimal(variant.price).quantize(CENT)
        else:
            unit_price = Decimal(product.price or 0).quantize(CENT)

        rows.append({
            "product_id": product.id,
            "variant_id": variant.id if variant is not None else (variant_id if isinstance(variant_id, str) else None),
            "variant_name": variant_name if isinstance(variant_name, str) else None,
            "quantity": quantity,
            "unit_price": unit_price,
            "total_price": _line_total(quantity, unit_price, client_total, index),
            "product_name": line_name or product.name or UNKNOWN_PRODUCT_NAME,
            "product_sku": (variant.sku if variant is not None and variant.sku else product.sku),
            "product_category": product.category,
        })

        if resolution.strategy != "primary_key":
            current_app.logger.info(
                "Item %s: %r resolved to %s (%s) via %s",
                index, product_ref, product.id, product.name, resolution.strategy,
            )

    for skip in skipped:
        current_app.logger.warning(
            "Skipping order item %s (product_id=%r): %s", skip.index, skip.product_ref, skip.reason
        )

    return rows, skipped


def _insert_order(header: dict) -> Order:
    prefix = current_app.config.get("ORDER_CODE_PREFIX", "ORD")
    attempts = max(1, current_app.config.get("ORDER_CODE_ATTEMPTS", 5))

    for attempt in range(attempts):
        order = Order(order_code=generate_order_code(prefix, attempt=attempt), **header)
        db.session.add(order)
        try:
            db.session.commit()
            return order
        except IntegrityError:
            db.session.rollback()
            current_app.logger.warning("Order code %s collided (attempt %s)", order.order_code, attempt + 1)

    raise OrderCodeConflictError(
        "Could not allocate a unique order code, please retry",
        details={"attempts": attempts},
    )


def create_order(payload: dict) -> OrderResult:
    """
    Create an order and its items from a client payload.

    Raises ValidationError for header problems (nothing persisted) and
    OrderCodeConflictError when no unique code could be allocated.
    """
    header = _validate_header(payload)
    items = header.pop("items")

    rows, skipped = build_item_rows(items)

    order = _insert_order(header)
    result = OrderResult(order=order, skipped=skipped)

    if rows:
        try:
            db.session.add_all(OrderItem(order_id=order.id, **row) for row in rows)
            db.session.commit()
            result.inserted_items = len(rows)
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception("Failed to insert items for order %s", order.order_code)
            result.item_insert_error = exc.__class__.__name__

    current_app.logger.info(
        "Created order %s: %s items inserted, %s skipped",
        order.order_code, result.inserted_items, len(skipped),
    )
    return result


def get_order(order_id: str, device_id: str | None = None) -> Order:
    q = db.session.query(Order).filter_by(id=order_id)
    if device_id:
        q = q.filter_by(device_id=device_id)
    order = q.first()
    if order is None:
        raise OrderNotFoundError("Order not found")
    return order


def get_order_items(order_id: str) -> list[OrderItem]:
    get_order(order_id)
    return (
        db.session.query(OrderItem)
        .filter_by(order_id=order_id)
        .order_by(OrderItem.created_at.asc(), OrderItem.id.asc())
        .all()
    )


def list_orders(
    page: int | None = None,
    page_size: int | None = None,
    device_id: str | None = None,
) -> dict:
    """
    Newest-first order listing, optionally scoped to one device.

    page is 1-indexed; page_size is clamped to [1, ORDERS_MAX_PAGE_SIZE].
    """
    max_size = current_app.config.get("ORDERS_MAX_PAGE_SIZE", 100)
    page = max(page or 1, 1)
    page_size = min(max(page_size or 20, 1), max_size)

    base_query = db.session.query(Order)
    if device_id:
        base_query = base_query.filter(Order.device_id == device_id)

    total = base_query.count()
    orders = (
        base_query
        .order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )

    return {
        "orders": [o.to_dict() for o in orders],
        "page": page,
        "pageSize": page_size,
        "total": total,
    }

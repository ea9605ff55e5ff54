# Overview: Service-layer order status transitions; exactly-once stock decrement on entering Processing.

"""
Status Service - order status/payment updates and stock reconciliation

STATE MACHINE (permissive):
    Pending -> Processing -> Completed -> Delivered
    Pending / Processing -> Cancelled | Declined
Only the enum is enforced; callers may set any status at any time.

GUARDED TRANSITION: entering Processing from any other status decrements
stock for every item of the order, exactly once:
1. take the write lock (BEGIN IMMEDIATE on SQLite, FOR UPDATE elsewhere)
2. re-read the order under the lock
3. re-check device ownership against the fresh row
4. apply the field updates
5. if the locked row was not already Processing, decrement stock per item
6. commit; any failure rolls back everything (no partial decrement)

A second "-> Processing" call, concurrent or repeated, observes the
committed Processing status under the lock and takes the no-op path. That
makes blind client retries safe.

Notifications are sent after commit and can never undo or fail the update.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Order, OrderItem
from ..models.orders import ORDER_STATUSES, PAYMENT_METHODS, STATUS_PROCESSING
from ..validation import ValidationError, optional_text, validate_choice
from . import catalog_service, notification_service
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .notification_service import NotificationResult
from .order_service import (
    OrderError,
    OrderNotFoundError,
    OrderOwnershipError,
    OrderTransactionError,
)


UPDATABLE_FIELDS = ("payment", "ref", "status", "fcm_token")


@dataclass
class StockReconciliation:
    items_processed: int = 0
    stock_updates: int = 0
    stock_updates_attempted: int = 0


@dataclass
class StatusUpdateResult:
    order: Order
    reconciliation: StockReconciliation | None = None
    notification: NotificationResult | None = None

    def to_dict(self) -> dict:
        data = self.order.to_dict()
        if self.reconciliation is not None:
            data["items_processed"] = self.reconciliation.items_processed
            data["stock_updates"] = self.reconciliation.stock_updates
            data["stock_updates_attempted"] = self.reconciliation.stock_updates_attempted
        return data


def validate_update_fields(fields: dict) -> tuple[dict, str | None]:
    """Return (patch, device_id). Unknown keys are ignored."""
    if not isinstance(fields, dict):
        raise ValidationError("Invalid JSON payload")

    patch: dict = {}
    if "payment" in fields:
        patch["payment"] = validate_choice(fields["payment"], "payment method", PAYMENT_METHODS)
    if "status" in fields:
        patch["status"] = validate_choice(fields["status"], "status", ORDER_STATUSES)
    if "ref" in fields:
        patch["ref"] = optional_text(fields, "ref", 128)
    if "fcm_token" in fields:
        patch["fcm_token"] = optional_text(fields, "fcm_token", 512)

    if not patch:
        raise ValidationError("No update fields")

    device_id = fields.get("device_id")
    if device_id is not None and not isinstance(device_id, str):
        raise ValidationError("device_id must be a string")
    return patch, (device_id or None)


def _check_owner(order: Order, device_id: str | None) -> None:
    # Orders without a stored device are open to any caller
    if device_id and order.device_id and order.device_id != device_id:
        raise OrderOwnershipError(
            "Access denied. This order belongs to a different device.",
            details={"order_id": order.id},
        )


def _apply(order: Order, patch: dict) -> None:
    for key in UPDATABLE_FIELDS:
        if key in patch:
            setattr(order, key, patch[key])


def _decrement_stock_for_items(order_id: str) -> StockReconciliation:
    items = db.session.query(OrderItem).filter_by(order_id=order_id).all()
    stats = StockReconciliation(items_processed=len(items))
    for item in items:
        if not item.product_id or not item.quantity or item.quantity <= 0:
            continue
        stats.stock_updates_attempted += 1
        if catalog_service.decrement_stock(item.product_id, item.quantity):
            stats.stock_updates += 1
    return stats


def _enter_processing(order_id: str, patch: dict, device_id: str | None) -> tuple[Order, StockReconciliation | None]:
    def _op():
        begin_write_transaction()
        order = (
            lock_for_update(db.session.query(Order).filter_by(id=order_id))
            .populate_existing()
            .first()
        )
        if order is None:
            raise OrderNotFoundError("Order not found")
        _check_owner(order, device_id)

        previous_status = order.status
        _apply(order, patch)

        reconciliation = None
        if previous_status != STATUS_PROCESSING:
            reconciliation = _decrement_stock_for_items(order.id)

        db.session.commit()
        return order, reconciliation

    # A leftover read transaction would make BEGIN IMMEDIATE fail on SQLite
    db.session.rollback()
    try:
        return run_with_retry(_op)
    except OrderError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Processing transition failed for order %s", order_id)
        raise OrderTransactionError("Server error", details={"order_id": order_id}) from exc


def _plain_update(order_id: str, patch: dict, device_id: str | None) -> Order:
    def _op():
        order = db.session.query(Order).filter_by(id=order_id).populate_existing().first()
        if order is None:
            raise OrderNotFoundError("Order not found")
        _check_owner(order, device_id)
        _apply(order, patch)
        db.session.commit()
        return order

    try:
        return run_with_retry(_op)
    except OrderError:
        db.session.rollback()
        raise


def update_order_status(order_id: str, fields: dict) -> StatusUpdateResult:
    """
    Update payment/ref/status/fcm_token on an order.

    Raises ValidationError, OrderNotFoundError, OrderOwnershipError, or
    OrderTransactionError (guarded path only, nothing persisted).
    """
    patch, device_id = validate_update_fields(fields)

    order = db.session.query(Order).filter_by(id=order_id).first()
    if order is None:
        raise OrderNotFoundError("Order not found")
    _check_owner(order, device_id)

    new_status = patch.get("status")
    reconciliation = None
    if new_status == STATUS_PROCESSING and order.status != STATUS_PROCESSING:
        order, reconciliation = _enter_processing(order_id, patch, device_id)
        if reconciliation is not None:
            current_app.logger.info(
                "Order %s entered Processing: %s items, %s/%s stock updates",
                order.order_code,
                reconciliation.items_processed,
                reconciliation.stock_updates,
                reconciliation.stock_updates_attempted,
            )
    else:
        order = _plain_update(order_id, patch, device_id)

    notification = None
    if new_status:
        notification = notification_service.notify_status_change(order, new_status)

    return StatusUpdateResult(order=order, reconciliation=reconciliation, notification=notification)

# Overview: Flask API routes for order intake and status updates; parses input and returns JSON responses.

# backend/grocer/routes/orders.py
"""
Order routes consumed by the admin panel and the mobile ordering app.

Authentication is handled by the gateway in front of this service; the
device_id carried in payloads is a soft ownership check only.
"""

from flask import Blueprint, current_app, jsonify, request

from ..ids import is_object_id
from ..services import order_service, status_service
from ..services.order_service import (
    OrderCodeConflictError,
    OrderError,
    OrderNotFoundError,
    OrderOwnershipError,
    OrderTransactionError,
)
from ..validation import ValidationError


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _invalid_id():
    return jsonify({"error": "Invalid order ID format"}), 400


@orders_bp.post("")
def create_order_route():
    """
    Create an order with its items.

    Lines whose product cannot be resolved are skipped and listed in
    skipped_items; they do not fail the order.
    """
    try:
        payload = request.get_json(silent=True)
        result = order_service.create_order(payload)
        return jsonify({"order": result.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except OrderCodeConflictError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
def list_orders_route():
    """
    List orders, newest first.

    Query params:
    - page: int (optional, 1-indexed)
    - pageSize: int (optional, default 20, max ORDERS_MAX_PAGE_SIZE)
    - device_id: str (optional) - only orders placed by this device
    """
    page = request.args.get("page", type=int)
    page_size = request.args.get("pageSize", type=int)
    device_id = request.args.get("device_id")

    try:
        return jsonify(order_service.list_orders(page=page, page_size=page_size, device_id=device_id)), 200
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<order_id>")
def get_order_route(order_id: str):
    """Get an order with its items; device_id hides orders from other devices."""
    if not is_object_id(order_id):
        return _invalid_id()

    try:
        order = order_service.get_order(order_id, device_id=request.args.get("device_id"))
        data = order.to_dict()
        data["items"] = [item.to_dict(include_product=True) for item in order.items]
        return jsonify({"order": data}), 200

    except OrderNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to load order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<order_id>/items")
def get_order_items_route(order_id: str):
    if not is_object_id(order_id):
        return _invalid_id()

    try:
        items = order_service.get_order_items(order_id)
        return jsonify({"items": [item.to_dict(include_product=True) for item in items]}), 200

    except OrderNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to load order items")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<order_id>/payment")
def update_order_payment_route(order_id: str):
    """
    Update payment, ref, status and/or push token.

    Moving an order into Processing decrements stock for its items exactly
    once; the response then carries items_processed and stock_updates.
    """
    if not is_object_id(order_id):
        return _invalid_id()

    try:
        payload = request.get_json(silent=True) or {}
        result = status_service.update_order_status(order_id, payload)
        return jsonify({"order": result.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except OrderNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except OrderOwnershipError as e:
        return jsonify({"error": str(e)}), 403
    except OrderTransactionError:
        return jsonify({"error": "Server error"}), 500
    except OrderError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to update order")
        return jsonify({"error": "Internal server error"}), 500

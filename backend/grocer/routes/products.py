# Overview: Flask API routes for product resolution diagnostics.

from flask import Blueprint, current_app, jsonify, request

from ..services import resolver_service
from ..services.fingerprint_service import candidate_fingerprints


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("/resolve")
def resolve_product_route():
    """
    Show how a cart-line identifier resolves.

    Query params:
    - id: product id or numeric fingerprint (required)
    - name: product name hint (optional)
    - price: unit price hint (optional)
    """
    identifier = (request.args.get("id") or "").strip()
    if not identifier:
        return jsonify({"error": "id required"}), 400

    price = request.args.get("price", type=float)

    try:
        resolution = resolver_service.resolve(identifier, request.args.get("name"), price)
        if resolution is None:
            return jsonify({"error": "Product not found", "identifier": identifier}), 404

        product = resolution.product
        return jsonify({
            "product": product.to_dict(),
            "strategy": resolution.strategy,
            "fingerprints": candidate_fingerprints(product.id),
        }), 200

    except Exception:
        current_app.logger.exception("Failed to resolve product")
        return jsonify({"error": "Internal server error"}), 500

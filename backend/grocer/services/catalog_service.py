# Overview: Service-layer operations for the product catalog; lookups used by order intake and stock decrements.

"""
Catalog Service

The order core needs a narrow slice of the catalog:
- reads by id / fingerprint / name / price (resolver)
- an atomic stock decrement by id (reconciler)
- product creation so the fingerprint is assigned before first persist

Full catalog CRUD (images, suppliers, CSV import) lives elsewhere.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, ProductVariant
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_product,
    enforce_rules_variant,
    validate_payload,
)
from .fingerprint_service import compute_fingerprint


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "handle", "sku", "name", "category", "description", "barcode",
        "price", "cost", "stock", "low_stock_threshold",
        "track_stock", "available_for_sale", "sold_by_weight",
    },
    required_on_create={"name", "price"},
)

VARIANT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "sku", "option_name", "option_value", "price", "stock", "barcodes"},
    required_on_create={"name"},
)


def get_product(product_id: str) -> Product | None:
    return db.session.query(Product).filter_by(id=product_id).first()


def find_by_fingerprint(fingerprint: int) -> Product | None:
    return (
        db.session.query(Product)
        .filter(Product.fingerprint == fingerprint)
        .order_by(Product.created_at.asc(), Product.id.asc())
        .first()
    )


def find_by_name(name: str) -> Product | None:
    return (
        db.session.query(Product)
        .filter(Product.name == name)
        .order_by(Product.created_at.asc(), Product.id.asc())
        .first()
    )


def find_by_price(price: Decimal) -> Product | None:
    """First product with exactly this price. Not unique-safe."""
    return (
        db.session.query(Product)
        .filter(Product.price == price)
        .order_by(Product.created_at.asc(), Product.id.asc())
        .first()
    )


def scan_products(limit: int | None = None) -> list[Product]:
    q = db.session.query(Product).order_by(Product.created_at.asc(), Product.id.asc())
    if limit:
        q = q.limit(limit)
    return q.all()


def get_variant(product_id: str, variant_id: str) -> ProductVariant | None:
    return (
        db.session.query(ProductVariant)
        .filter_by(id=variant_id, product_id=product_id)
        .first()
    )


def decrement_stock(product_id: str, quantity: int) -> bool:
    """
    Atomically subtract quantity from a product's stock.

    SQL-side arithmetic (stock = stock - :qty) so concurrent decrements never
    lose updates. Does not commit; returns False when no row matched.
    """
    result = db.session.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(stock=Product.stock - quantity)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def create_product(payload: dict) -> Product:
    """Create a product from a client payload; the fingerprint is assigned on insert."""
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    product = Product(**patch)
    db.session.add(product)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Product handle '{patch.get('handle')}' already exists")
    return product


def add_variant(product_id: str, payload: dict) -> ProductVariant:
    product = get_product(product_id)
    if product is None:
        raise ValidationError("Product not found")

    patch = validate_payload(model=ProductVariant, payload=payload, policy=VARIANT_POLICY, partial=False)
    enforce_rules_variant(patch)
    patch.setdefault("price", product.price)

    variant = ProductVariant(product_id=product.id, **patch)
    db.session.add(variant)
    db.session.commit()
    return variant


def backfill_fingerprints(*, dry_run: bool = False) -> dict:
    """
    Assign fingerprints to legacy rows that have none.

    Rows that already carry a fingerprint are never rewritten; mismatches are
    only reported, since mobile carts may already reference the stored value.
    """
    assigned = []
    mismatched = []
    for product in db.session.query(Product).order_by(Product.created_at.asc(), Product.id.asc()):
        expected = compute_fingerprint(product.id)
        if product.fingerprint is None:
            assigned.append({"id": product.id, "name": product.name, "fingerprint": expected})
            if not dry_run:
                product.fingerprint = expected
        elif product.fingerprint != expected:
            mismatched.append({
                "id": product.id,
                "name": product.name,
                "stored": product.fingerprint,
                "expected": expected,
            })

    if dry_run:
        db.session.rollback()
    else:
        db.session.commit()

    return {"assigned": assigned, "mismatched": mismatched, "dry_run": dry_run}

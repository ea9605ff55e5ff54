from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..ids import new_object_id
from ..time_utils import to_utc_z


def money(value) -> float | None:
    return float(value) if value is not None else None


class Product(db.Model):
    """
    Catalog product.

    FINGERPRINT: the mobile app cannot carry the 24-hex primary key and
    identifies products by a 32-bit string hash of it instead. The value is
    derived from `id` once, before the first INSERT, and never recomputed.
    It is indexed but NOT unique: a 32-bit hash of a 24-char id can collide.

    STOCK: only the order reconciler (and manual adjustments outside this
    service) mutate stock, always through SQL-side arithmetic. No floor is
    enforced here; oversell policy belongs to the catalog owners.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_stock_name", "stock", "name"),
    )

    id = db.Column(db.String(24), primary_key=True, default=new_object_id)

    handle = db.Column(db.String(255), nullable=True, unique=True)
    sku = db.Column(db.String(64), nullable=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(128), nullable=True)
    description = db.Column(db.Text, nullable=True)
    barcode = db.Column(db.String(64), nullable=True, index=True)

    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    stock = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=5)
    track_stock = db.Column(db.Boolean, nullable=False, default=True)
    available_for_sale = db.Column(db.Boolean, nullable=False, default=True)
    sold_by_weight = db.Column(db.Boolean, nullable=False, default=False)

    # abs() of a signed 32-bit accumulator can be 2**31, so 64-bit storage
    fingerprint = db.Column(db.BigInteger, nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    variants = db.relationship(
        "ProductVariant",
        back_populates="product",
        lazy=True,
        order_by="ProductVariant.created_at",
        cascade="all, delete-orphan",
    )

    @property
    def is_low_stock(self) -> bool:
        return bool(self.track_stock) and (self.stock or 0) <= (self.low_stock_threshold or 0)

    def to_dict(self, include_variants: bool = False) -> dict:
        data = {
            "id": self.id,
            "handle": self.handle,
            "sku": self.sku,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "barcode": self.barcode,
            "price": money(self.price),
            "cost": money(self.cost),
            "stock": self.stock,
            "low_stock_threshold": self.low_stock_threshold,
            "is_low_stock": self.is_low_stock,
            "track_stock": self.track_stock,
            "available_for_sale": self.available_for_sale,
            "sold_by_weight": self.sold_by_weight,
            "fingerprint": self.fingerprint,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_variants:
            data["variants"] = [v.to_dict() for v in self.variants]
        return data


class ProductVariant(db.Model):
    """Sellable variant of a product (size, weight, flavour) with its own price, stock and barcodes."""
    __tablename__ = "product_variants"

    id = db.Column(db.String(24), primary_key=True, default=new_object_id)
    product_id = db.Column(
        db.String(24),
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=True)
    option_name = db.Column(db.String(64), nullable=True)
    option_value = db.Column(db.String(128), nullable=True)

    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    stock = db.Column(db.Integer, nullable=False, default=0)
    barcodes = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", back_populates="variants")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "sku": self.sku,
            "option_name": self.option_name,
            "option_value": self.option_value,
            "price": money(self.price),
            "stock": self.stock,
            "barcodes": list(self.barcodes or []),
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(Product, "before_insert")
def _assign_fingerprint(mapper, connection, target: Product) -> None:
    # Column defaults run after this hook, so the id is assigned here.
    from ..services.fingerprint_service import compute_fingerprint

    if not target.id:
        target.id = new_object_id()
    if target.fingerprint is None:
        target.fingerprint = compute_fingerprint(target.id)

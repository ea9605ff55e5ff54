from __future__ import annotations

from ..extensions import db
from ..ids import new_object_id
from ..time_utils import to_utc_z
from .catalog import money


STATUS_PENDING = "Pending"
STATUS_PROCESSING = "Processing"
STATUS_COMPLETED = "Completed"
STATUS_CANCELLED = "Cancelled"
STATUS_DECLINED = "Declined"
STATUS_DELIVERED = "Delivered"
ORDER_STATUSES = (
    STATUS_PENDING,
    STATUS_PROCESSING,
    STATUS_COMPLETED,
    STATUS_CANCELLED,
    STATUS_DECLINED,
    STATUS_DELIVERED,
)

PAYMENT_CASH = "Cash"
PAYMENT_GCASH = "GCash"
PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_GCASH)

TYPE_ONLINE = "Online"
TYPE_IN_STORE = "In-Store"
ORDER_TYPES = (TYPE_ONLINE, TYPE_IN_STORE)


class Order(db.Model):
    """
    Order header. Line items live in order_items; nothing is embedded here.

    device_id binds the order to the client device that created it. It is a
    soft ownership check for status updates, not a security boundary.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.CheckConstraint("total_price >= 0", name="ck_orders_total_price_nonneg"),
        db.CheckConstraint("discount >= 0", name="ck_orders_discount_nonneg"),
        db.CheckConstraint("net_total >= 0", name="ck_orders_net_total_nonneg"),
        db.Index("ix_orders_status_created", "status", "created_at"),
    )

    id = db.Column(db.String(24), primary_key=True, default=new_object_id)

    # Human-readable code (e.g., "ORD482913")
    order_code = db.Column(db.String(32), nullable=False, unique=True)

    name = db.Column(db.String(255), nullable=False)
    contact = db.Column(db.String(64), nullable=True)
    address = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING, index=True)
    order_type = db.Column("type", db.String(16), nullable=False, default=TYPE_ONLINE)

    payment = db.Column(db.String(16), nullable=False, default=PAYMENT_CASH)
    ref = db.Column(db.String(128), nullable=True)
    # Set by the GCash proof-upload service; read-only here
    payment_proof_url = db.Column(db.String(512), nullable=True)

    total_price = db.Column(db.Numeric(12, 2), nullable=False)
    discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    net_total = db.Column(db.Numeric(12, 2), nullable=False)

    device_id = db.Column(db.String(128), nullable=True, index=True)
    fcm_token = db.Column(db.String(512), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship(
        "OrderItem",
        back_populates="order",
        lazy=True,
        order_by="OrderItem.created_at",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_code": self.order_code,
            "name": self.name,
            "contact": self.contact,
            "address": self.address,
            "status": self.status,
            "type": self.order_type,
            "payment": self.payment,
            "ref": self.ref,
            "payment_proof_url": self.payment_proof_url,
            "totalPrice": money(self.total_price),
            "discount": money(self.discount),
            "net_total": money(self.net_total),
            "device_id": self.device_id,
            "has_push_token": bool(self.fcm_token),
            "version_id": self.version_id,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class OrderItem(db.Model):
    """
    Cart line snapshot taken at order time.

    product_name/sku/category are copied so later catalog edits do not
    rewrite order history. product_id is nullable so a deleted product
    leaves its lines behind.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
        db.CheckConstraint("unit_price >= 0", name="ck_order_items_unit_price_nonneg"),
        db.CheckConstraint("total_price >= 0", name="ck_order_items_total_price_nonneg"),
        db.Index("ix_order_items_order_product", "order_id", "product_id"),
    )

    id = db.Column(db.String(24), primary_key=True, default=new_object_id)
    order_id = db.Column(db.String(24), db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(
        db.String(24),
        db.ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    variant_id = db.Column(db.String(24), nullable=True)
    variant_name = db.Column(db.String(255), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    total_price = db.Column(db.Numeric(12, 2), nullable=False)

    product_name = db.Column(db.String(255), nullable=False)
    product_sku = db.Column(db.String(64), nullable=True)
    product_category = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self, include_product: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "variant_name": self.variant_name,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "product_category": self.product_category,
            "quantity": self.quantity,
            "unit_price": money(self.unit_price),
            "total_price": money(self.total_price),
            "created_at": to_utc_z(self.created_at),
        }
        if include_product:
            product = self.product
            data["product_details"] = (
                {"name": product.name, "category": product.category, "price": money(product.price)}
                if product is not None
                else None
            )
        return data

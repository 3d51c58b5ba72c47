from __future__ import annotations

from ..extensions import db
from fastbill.time_utils import to_utc_z


class Order(db.Model):
    """
    Order document.

    LIFECYCLE: created at checkout (or when a queued offline order is
    synced), then mutated only by payment recording (balance goes down) or
    cancellation (stock restored, status flips to "cancelled", terminal).

    local_id is the till-generated id. It is indexed but deliberately not
    unique: a crash between commit and queue removal can produce a second
    copy of the same order on the next drain.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_tenant_created", "tenant_id", "created_at"),
        db.Index("ix_orders_tenant_local_id", "tenant_id", "local_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    local_id = db.Column(db.String(32), nullable=True)

    pricing_mode = db.Column(db.String(16), nullable=False, default="retail")

    # Customer snapshot at time of sale
    customer_name = db.Column(db.String(255), nullable=False)
    customer_phone = db.Column(db.String(32), nullable=False)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_address = db.Column(db.Text, nullable=True)
    # Ledger customer (wholesale only)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    # Payment tracking (all amounts in cents)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    balance_due_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_status = db.Column(db.String(16), nullable=False, default="unpaid", index=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    previous_status = db.Column(db.String(16), nullable=True)
    created_offline = db.Column(db.Boolean, nullable=False, default=False)

    # Till clock at checkout
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    # Server clock at commit
    synced_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    lines = db.relationship(
        "OrderLine",
        backref="order",
        lazy=True,
        order_by="OrderLine.position",
        cascade="all, delete-orphan",
    )
    payments = db.relationship(
        "OrderPayment",
        backref="order",
        lazy=True,
        order_by="OrderPayment.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "local_id": self.local_id,
            "pricing_mode": self.pricing_mode,
            "customer": {
                "name": self.customer_name,
                "phone": self.customer_phone,
                "email": self.customer_email,
                "address": self.customer_address,
            },
            "customer_id": self.customer_id,
            "items": [line.to_dict() for line in self.lines],
            "total_cents": self.total_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "balance_due_cents": self.balance_due_cents,
            "payment_status": self.payment_status,
            "payments": [p.to_dict() for p in self.payments],
            "status": self.status,
            "previous_status": self.previous_status,
            "created_offline": self.created_offline,
            "created_at": to_utc_z(self.created_at),
            "synced_at": to_utc_z(self.synced_at),
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "is_offline": False,
        }


class OrderLine(db.Model):
    """Snapshot of one cart line at the time of sale."""
    __tablename__ = "order_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    # Not a foreign key: the product may be deleted after the sale
    product_id = db.Column(db.Integer, nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    brand = db.Column(db.String(128), nullable=True)
    category = db.Column(db.String(128), nullable=True)

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "brand": self.brand,
            "category": self.category,
        }


class OrderPayment(db.Model):
    """One installment recorded against an order's balance."""
    __tablename__ = "order_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    balance_after_cents = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount_cents": self.amount_cents,
            "balance_after_cents": self.balance_after_cents,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }

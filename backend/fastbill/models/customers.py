from __future__ import annotations

from ..extensions import db
from fastbill.time_utils import to_utc_z


class Customer(db.Model):
    """
    Customer ledger.

    MULTI-TENANT: phone numbers are unique per tenant.

    Running totals are denormalized and only ever changed with atomic
    increments in the same batch as the order or payment that moves them.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "phone", name="uq_customers_tenant_phone"),
        db.Index("ix_customers_tenant_name", "tenant_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    gst = db.Column(db.String(32), nullable=True)

    total_spent_cents = db.Column(db.Integer, nullable=False, default=0)
    total_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    total_due_cents = db.Column(db.Integer, nullable=False, default=0)
    last_payment_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "gst": self.gst,
            "total_spent_cents": self.total_spent_cents,
            "total_paid_cents": self.total_paid_cents,
            "total_due_cents": self.total_due_cents,
            "last_payment_at": to_utc_z(self.last_payment_at) if self.last_payment_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

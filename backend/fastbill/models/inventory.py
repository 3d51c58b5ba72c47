from __future__ import annotations

from ..extensions import db
from fastbill.time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data.

    MULTI-TENANT: Products are scoped to the owning user via tenant_id.

    PRICES: all four price fields are stored in cents. wholesale <= MRP is
    enforced when input is validated, not by the table; direct writes can
    violate it.

    STOCK: stock_qty is a mutable counter. Sales and syncs change it with
    atomic SQL increments; last_stock_change records the most recent
    signed delta so a later cancellation can be reconciled.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_tenant_name", "tenant_id", "name"),
        db.Index("ix_products_tenant_archived", "tenant_id", "archived"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    brand = db.Column(db.String(128), nullable=True)
    category = db.Column(db.String(128), nullable=True)

    purchase_price_cents = db.Column(db.Integer, nullable=False, default=0)
    mrp_cents = db.Column(db.Integer, nullable=False, default=0)
    retail_price_cents = db.Column(db.Integer, nullable=False, default=0)
    wholesale_price_cents = db.Column(db.Integer, nullable=False, default=0)

    stock_qty = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=0)

    archived = db.Column(db.Boolean, nullable=False, default=False)

    # Embedded image (data URL); the first thing dropped when local storage fills up
    product_image = db.Column(db.Text, nullable=True)

    last_stock_change = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} tenant_id={self.tenant_id} stock={self.stock_qty}>"

    def price_for(self, mode: str) -> int:
        if mode == "wholesale":
            return self.wholesale_price_cents
        return self.retail_price_cents

    def to_dict(self, include_image: bool = True) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "description": self.description,
            "brand": self.brand,
            "category": self.category,
            "purchase_price_cents": self.purchase_price_cents,
            "mrp_cents": self.mrp_cents,
            "retail_price_cents": self.retail_price_cents,
            "wholesale_price_cents": self.wholesale_price_cents,
            "stock_qty": self.stock_qty,
            "min_stock": self.min_stock,
            "archived": self.archived,
            "last_stock_change": self.last_stock_change,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_image:
            data["product_image"] = self.product_image
        return data

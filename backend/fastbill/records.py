# backend/fastbill/records.py
"""
Plain records exchanged between the till-side layer (cart, pending queue,
local storage) and the services.

Every field is declared up front; optional fields default to None. The
dict forms are what gets written to local storage, so from_dict tolerates
missing optional keys (they may have been dropped to save space).
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field, asdict, replace
from datetime import datetime
from typing import Any, Optional

from .time_utils import parse_iso_datetime, utcnow


@dataclass
class CustomerInfo:
    name: str
    phone: str
    email: Optional[str] = None
    address: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CustomerInfo":
        return cls(
            name=data.get("name", ""),
            phone=data.get("phone", ""),
            email=data.get("email"),
            address=data.get("address"),
        )

    def essential(self) -> "CustomerInfo":
        return CustomerInfo(name=self.name, phone=self.phone)


@dataclass
class LineItem:
    """Snapshot of a product line at the time of sale."""
    product_id: int
    name: str
    quantity: int
    unit_price_cents: int
    brand: Optional[str] = None
    category: Optional[str] = None
    product_image: Optional[str] = None

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LineItem":
        return cls(
            product_id=int(data["product_id"]),
            name=data.get("name", ""),
            quantity=int(data["quantity"]),
            unit_price_cents=int(data["unit_price_cents"]),
            brand=data.get("brand"),
            category=data.get("category"),
            product_image=data.get("product_image"),
        )

    def essential(self) -> "LineItem":
        return LineItem(
            product_id=self.product_id,
            name=self.name,
            quantity=self.quantity,
            unit_price_cents=self.unit_price_cents,
        )


@dataclass
class CartItem:
    """
    A cart line. Prices are carried for both modes so switching between
    retail and wholesale never needs a catalog read.
    """
    product_id: int
    name: str
    quantity: int
    retail_price_cents: int
    wholesale_price_cents: int
    mrp_cents: int = 0
    brand: Optional[str] = None
    category: Optional[str] = None
    product_image: Optional[str] = None

    def unit_price(self, mode: str) -> int:
        if mode == "wholesale":
            return self.wholesale_price_cents
        return self.retail_price_cents

    def to_line_item(self, mode: str) -> LineItem:
        return LineItem(
            product_id=self.product_id,
            name=self.name,
            quantity=self.quantity,
            unit_price_cents=self.unit_price(mode),
            brand=self.brand,
            category=self.category,
        )

    def to_dict(self, include_image: bool = True) -> dict[str, Any]:
        data = asdict(self)
        if not include_image:
            data.pop("product_image", None)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CartItem":
        return cls(
            product_id=int(data["product_id"]),
            name=data.get("name", ""),
            quantity=int(data["quantity"]),
            retail_price_cents=int(data.get("retail_price_cents", 0)),
            wholesale_price_cents=int(data.get("wholesale_price_cents", 0)),
            mrp_cents=int(data.get("mrp_cents", 0)),
            brand=data.get("brand"),
            category=data.get("category"),
            product_image=data.get("product_image"),
        )

    @classmethod
    def from_product(cls, product: dict[str, Any], quantity: int = 1) -> "CartItem":
        return cls(
            product_id=int(product["id"]),
            name=product.get("name", ""),
            quantity=quantity,
            retail_price_cents=int(product.get("retail_price_cents") or 0),
            wholesale_price_cents=int(product.get("wholesale_price_cents") or 0),
            mrp_cents=int(product.get("mrp_cents") or 0),
            brand=product.get("brand"),
            category=product.get("category"),
            product_image=product.get("product_image"),
        )


# Per-entry states of a queued order during a drain
ENTRY_PENDING = "pending"
ENTRY_COMMITTING = "committing"
ENTRY_FAILED = "failed"


@dataclass
class PendingOrder:
    """
    An order that exists only in local storage until a drain commits it.

    local_id is a millisecond timestamp string; attempts counts failed
    commits and never stops retries.
    """
    local_id: str
    customer: CustomerInfo
    items: list[LineItem]
    total_cents: int
    pricing_mode: str = "retail"
    amount_paid_cents: int = 0
    customer_id: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)
    status: str = "pending"
    created_offline: bool = True
    attempts: int = 0
    sync_state: str = ENTRY_PENDING
    last_error: Optional[str] = None

    @property
    def balance_due_cents(self) -> int:
        return max(self.total_cents - self.amount_paid_cents, 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "local_id": self.local_id,
            "customer": self.customer.to_dict(),
            "items": [item.to_dict() for item in self.items],
            "total_cents": self.total_cents,
            "pricing_mode": self.pricing_mode,
            "amount_paid_cents": self.amount_paid_cents,
            "customer_id": self.customer_id,
            # Full precision so a reload yields the identical record
            "created_at": self.created_at.isoformat(),
            "status": self.status,
            "created_offline": self.created_offline,
            "attempts": self.attempts,
            "sync_state": self.sync_state,
            "last_error": self.last_error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PendingOrder":
        return cls(
            local_id=str(data["local_id"]),
            customer=CustomerInfo.from_dict(data.get("customer") or {}),
            items=[LineItem.from_dict(item) for item in data.get("items") or []],
            total_cents=int(data.get("total_cents", 0)),
            pricing_mode=data.get("pricing_mode", "retail"),
            amount_paid_cents=int(data.get("amount_paid_cents", 0)),
            customer_id=data.get("customer_id"),
            created_at=parse_iso_datetime(data.get("created_at")) or utcnow(),
            status=data.get("status", "pending"),
            created_offline=bool(data.get("created_offline", True)),
            attempts=int(data.get("attempts", 0)),
            sync_state=data.get("sync_state", ENTRY_PENDING),
            last_error=data.get("last_error"),
        )

    def essential(self) -> "PendingOrder":
        """Copy without the fields that can be dropped when storage is full."""
        return replace(
            self,
            customer=self.customer.essential(),
            items=[item.essential() for item in self.items],
            last_error=None,
        )


_last_local_id = 0
_local_id_lock = threading.Lock()


def new_local_id() -> str:
    """Millisecond timestamp id, bumped so two ids from one process never collide."""
    global _last_local_id
    with _local_id_lock:
        candidate = int(time.time() * 1000)
        if candidate <= _last_local_id:
            candidate = _last_local_id + 1
        _last_local_id = candidate
        return str(candidate)

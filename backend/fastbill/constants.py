# backend/fastbill/constants.py
"""Business constants shared by services and validation."""

MAX_PRICE_CENTS = 999_999_999
MAX_STOCK = 999_999
MAX_PRODUCT_NAME_LENGTH = 100

PRICING_RETAIL = "retail"
PRICING_WHOLESALE = "wholesale"
PRICING_MODES = (PRICING_RETAIL, PRICING_WHOLESALE)

ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_CANCELLED = "cancelled"

PAYMENT_STATUS_UNPAID = "unpaid"
PAYMENT_STATUS_PARTIAL = "partial"
PAYMENT_STATUS_PAID = "paid"

STOCK_CHANGE_SALE = "SALE"
STOCK_CHANGE_CANCELLED = "ORDER_CANCELLED"

TIER_FREE = "FREE"
TIER_PAID = "PAID"

# Orders are never gated; only catalog size is.
SUBSCRIPTION_TIERS = {
    TIER_FREE: {
        "max_products": 100,
        "trial_period_days": 90,
        "price": 0,
        "batch_upload_size": 50,
        "offline_sync": True,
    },
    TIER_PAID: {
        "max_products": 1000,
        "trial_period_days": None,
        "price": 269,
        "batch_upload_size": 500,
        "offline_sync": True,
    },
}

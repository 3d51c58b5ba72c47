# backend/fastbill/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # The shared store all tills write to
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///fastbill.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Local durable storage for the till (pending orders, cart, cached images)
    LOCAL_STORAGE_PATH = os.environ.get("FASTBILL_LOCAL_STORAGE", "fastbill-local.json")
    LOCAL_STORAGE_QUOTA_BYTES = int(os.environ.get("FASTBILL_LOCAL_QUOTA", str(5 * 1024 * 1024)))

    CACHE_DURATION_SECONDS = int(os.environ.get("FASTBILL_CACHE_DURATION", str(24 * 60 * 60)))
    SYNC_INTERVAL_SECONDS = float(os.environ.get("FASTBILL_SYNC_INTERVAL", "5"))

    PRODUCT_PAGE_SIZE = 50
    DASHBOARD_ORDER_LIMIT = 100
    BATCH_SIZE = 400

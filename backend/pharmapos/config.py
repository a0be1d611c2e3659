# backend/pharmapos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the instance by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///pharmapos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Checkout defaults; tax rate is a fraction (0.08 == 8%)
    DEFAULT_TAX_RATE = os.environ.get("PHARMAPOS_TAX_RATE", "0")
    DEFAULT_PAYMENT_METHOD = os.environ.get("PHARMAPOS_PAYMENT_METHOD", "cash")
    CURRENCY = os.environ.get("PHARMAPOS_CURRENCY", "USD")

    # Catalog
    LOW_STOCK_DEFAULT_REORDER_LEVEL = int(os.environ.get("PHARMAPOS_REORDER_LEVEL", "10"))
    EXPIRY_WARNING_DAYS = int(os.environ.get("PHARMAPOS_EXPIRY_WARNING_DAYS", "30"))

    # Dashboard
    SALES_TREND_DAYS = int(os.environ.get("PHARMAPOS_TREND_DAYS", "7"))
    DASHBOARD_RECENT_ORDERS = int(os.environ.get("PHARMAPOS_RECENT_ORDERS", "5"))
    DASHBOARD_TOP_PRODUCTS = int(os.environ.get("PHARMAPOS_TOP_PRODUCTS", "5"))

    # Retry policy for lock conflicts
    DB_RETRY_ATTEMPTS = int(os.environ.get("PHARMAPOS_DB_RETRY_ATTEMPTS", "3"))


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LOG_LEVEL = "WARNING"

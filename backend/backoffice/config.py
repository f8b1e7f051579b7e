# backend/backoffice/config.py
from __future__ import annotations
import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/backoffice.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///backoffice.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Due-date policy for partner account lines (days after the document date)
    SALE_AR_DUE_DAYS = int(os.environ.get("SALE_AR_DUE_DAYS", "7"))
    PURCHASE_AP_DUE_DAYS = int(os.environ.get("PURCHASE_AP_DUE_DAYS", "30"))

    # Any saga step running longer than this is treated as failed and compensated
    SAGA_STEP_TIMEOUT_SECONDS = float(os.environ.get("SAGA_STEP_TIMEOUT_SECONDS", "10"))

    # Business dates (settlement dates, due dates) are taken in this zone
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "UTC")

    DOCUMENT_NUMBER_PAD = int(os.environ.get("DOCUMENT_NUMBER_PAD", "4"))

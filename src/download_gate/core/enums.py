"""Enumerations used across download-gate."""

from enum import Enum


class PaymentState(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class EventKind(str, Enum):
    """Kind of state change recorded in the event ledger."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


# Change tag written whenever a download URL is handed out.
DOWNLOAD_TAG = "download"

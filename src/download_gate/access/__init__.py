"""Download access: entitlement, throttling, auditing and the services built on them."""

from .audit import AuditRecorder
from .entitlement import authorize_order, check_ownership, check_paid
from .listing import DownloadLister
from .rate_limit import RateLimiter
from .reconcile import DownloadReconciler, update_downloads
from .service import AccessState, DownloadService

__all__ = [
    "AccessState",
    "AuditRecorder",
    "DownloadLister",
    "DownloadReconciler",
    "DownloadService",
    "RateLimiter",
    "authorize_order",
    "check_ownership",
    "check_paid",
    "update_downloads",
]

"""Core domain models used across download-gate.

These are the canonical types every component passes around. ORM records
in :mod:`download_gate.storage.postgres.models` are converted to and from
these at the repository boundary.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .enums import EventKind, PaymentState
from .ids import new_id, utc_now


# ---------------------------------------------------------------------------
# Caller identity
# ---------------------------------------------------------------------------

class CallerContext(BaseModel):
    """Verified identity of whoever is asking.

    ``subject`` is ``None`` for anonymous callers. Use :meth:`anonymous`
    rather than building an empty context by hand.
    """

    model_config = ConfigDict(frozen=True)

    subject: str | None = None
    is_admin: bool = False

    @classmethod
    def anonymous(cls) -> CallerContext:
        return cls()

    @property
    def is_anonymous(self) -> bool:
        return self.subject is None


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

class LineItem(BaseModel):
    """A purchased product within an order."""

    id: str = Field(default_factory=new_id)
    order_id: str
    sku: str = ""
    title: str = ""
    path: str = ""  # Catalog path of the product page, e.g. "/products/ebook/"
    quantity: int = 1


class Download(BaseModel):
    """A downloadable asset attached to an order.

    ``signed_url`` and ``expires_at`` are only populated on values returned
    from :meth:`DownloadService.get_download`; they are never persisted.
    """

    id: str = Field(default_factory=new_id)
    order_id: str
    line_item_id: str | None = None
    title: str = ""
    sku: str = ""
    format: str = ""
    url: str  # Asset reference handed to the URL signer
    download_count: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    signed_url: str | None = None
    expires_at: datetime | None = None


class Order(BaseModel):
    """Order as seen by download-gate. Owned by the commerce system."""

    id: str = Field(default_factory=new_id)
    user_id: str | None = None  # None for guest checkout
    email: str = ""
    payment_state: PaymentState = PaymentState.PENDING
    line_items: list[LineItem] = Field(default_factory=list)
    downloads: list[Download] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------

class Event(BaseModel):
    """Immutable ledger entry describing a change to an order."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    order_id: str
    user_id: str | None = None
    ip: str = ""
    kind: EventKind
    changes: frozenset[str] = Field(default_factory=frozenset)
    created_at: datetime = Field(default_factory=utc_now)


# ---------------------------------------------------------------------------
# Signing / listing results
# ---------------------------------------------------------------------------

class SignedURL(BaseModel):
    """Time-bounded URL issued by a signing capability."""

    model_config = ConfigDict(frozen=True)

    url: str
    expires_at: datetime


class CatalogDownload(BaseModel):
    """A downloadable asset advertised by the product catalog."""

    title: str = ""
    url: str
    sku: str = ""
    format: str = ""


class DownloadPage(BaseModel):
    """One page of a download listing plus the unpaginated total."""

    items: list[Download] = Field(default_factory=list)
    total: int = 0
    offset: int = 0
    limit: int = 0

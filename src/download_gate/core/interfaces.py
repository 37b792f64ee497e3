"""Protocol interfaces for the external capabilities download-gate uses.

Implementations can be swapped (production asset store, test doubles)
without changing callers.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .models import CatalogDownload, LineItem, SignedURL


@runtime_checkable
class IURLSigner(Protocol):
    """Issues time-bounded, tamper-evident URLs for asset references."""

    async def sign_url(self, asset_ref: str) -> SignedURL: ...


@runtime_checkable
class IDownloadCatalog(Protocol):
    """Source of truth for which assets a purchased product includes."""

    async def downloads_for(self, line_item: LineItem) -> list[CatalogDownload]: ...

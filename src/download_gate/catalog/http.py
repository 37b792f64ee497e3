"""Product catalog client backed by the store's public site.

Every product page publishes its metadata, including the list of
downloadable assets, either as a JSON document or embedded in the HTML as::

    <script class="product-metadata" type="application/json">
      {"sku": "ebook-1", "downloads": [{"title": "PDF", "url": "/files/book.pdf"}]}
    </script>
"""

from __future__ import annotations

import json
import re
from typing import Any

import httpx

from download_gate.core.config import CatalogConfig
from download_gate.core.errors import CatalogError
from download_gate.core.models import CatalogDownload, LineItem
from download_gate.observability.logger import get_logger

logger = get_logger(__name__)

_METADATA_RE = re.compile(
    r"<script[^>]*class=[\"']product-metadata[\"'][^>]*>(?P<body>.*?)</script>",
    re.DOTALL | re.IGNORECASE,
)


def parse_product_metadata(body: str, content_type: str = "") -> dict[str, Any]:
    """Extract the product metadata object from a JSON or HTML response."""
    if "json" in content_type:
        raw = body
    else:
        match = _METADATA_RE.search(body)
        if match is None:
            raise CatalogError("No product metadata found on product page")
        raw = match.group("body")

    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, ValueError) as exc:
        raise CatalogError("Product metadata is not valid JSON") from exc
    if not isinstance(data, dict):
        raise CatalogError(f"Product metadata must be an object, got {type(data).__name__}")
    return data


def downloads_from_metadata(data: dict[str, Any]) -> list[CatalogDownload]:
    entries = data.get("downloads") or []
    if not isinstance(entries, list):
        raise CatalogError("Product metadata 'downloads' must be a list")

    result: list[CatalogDownload] = []
    for entry in entries:
        if not isinstance(entry, dict) or not entry.get("url"):
            logger.warning("catalog_download_skipped", entry=entry)
            continue
        result.append(
            CatalogDownload(
                title=str(entry.get("title", "")),
                url=str(entry["url"]),
                sku=str(entry.get("sku", data.get("sku", ""))),
                format=str(entry.get("format", "")),
            )
        )
    return result


class HttpCatalog:
    """:class:`~download_gate.core.interfaces.IDownloadCatalog` over HTTP."""

    def __init__(
        self,
        site_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._site_url = site_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
        )

    @classmethod
    def from_config(cls, config: CatalogConfig) -> HttpCatalog:
        return cls(config.site_url, timeout=config.timeout_seconds)

    async def downloads_for(self, line_item: LineItem) -> list[CatalogDownload]:
        if not line_item.path:
            return []
        url = f"{self._site_url}/{line_item.path.lstrip('/')}"
        try:
            resp = await self._client.get(url)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise CatalogError(
                f"Catalog returned HTTP {exc.response.status_code} for {line_item.path}"
            ) from exc
        except httpx.HTTPError as exc:
            raise CatalogError(f"Catalog request failed for {line_item.path}") from exc

        data = parse_product_metadata(resp.text, resp.headers.get("content-type", ""))
        downloads = downloads_from_metadata(data)
        logger.debug("catalog_downloads", path=line_item.path, count=len(downloads))
        return downloads

    async def aclose(self) -> None:
        await self._client.aclose()

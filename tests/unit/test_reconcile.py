"""Tests for refreshing an order's downloads from the catalog."""

from __future__ import annotations

import pytest

from download_gate.access.reconcile import DownloadReconciler, update_downloads
from download_gate.core.enums import PaymentState
from download_gate.core.errors import (
    BadRequestError,
    CatalogError,
    InternalError,
    NotFoundError,
    UnauthorizedError,
)
from download_gate.core.models import CallerContext, CatalogDownload, Download, LineItem, Order
from download_gate.storage.postgres.connection import session_scope
from download_gate.storage.postgres.repos import OrderRepo

OWNER = CallerContext(subject="user-1")


class FakeCatalog:
    def __init__(self, offers: dict[str, list[CatalogDownload]] | None = None, *, fail: bool = False):
        self.offers = offers or {}
        self.fail = fail

    async def downloads_for(self, line_item: LineItem) -> list[CatalogDownload]:
        if self.fail:
            raise CatalogError("catalog down")
        return list(self.offers.get(line_item.path, []))


class TestUpdateDownloads:
    @pytest.mark.asyncio
    async def test_adds_missing_and_refreshes_known(self):
        order = Order(user_id="user-1", payment_state=PaymentState.PAID)
        item = LineItem(order_id=order.id, sku="ebook-1", path="/ebook/")
        order.line_items = [item]
        order.downloads = [
            Download(order_id=order.id, line_item_id=item.id, title="Old", url="/a.pdf", download_count=7),
        ]
        catalog = FakeCatalog({
            "/ebook/": [
                CatalogDownload(title="New title", url="/a.pdf", format="pdf"),
                CatalogDownload(title="EPUB", url="/a.epub", format="epub"),
            ]
        })

        added = await update_downloads(order, catalog)

        assert added == 1
        by_url = {d.url: d for d in order.downloads}
        assert by_url["/a.pdf"].title == "New title"
        assert by_url["/a.pdf"].download_count == 7
        assert by_url["/a.epub"].line_item_id == item.id
        assert by_url["/a.epub"].sku == "ebook-1"

    @pytest.mark.asyncio
    async def test_second_run_adds_nothing(self):
        order = Order(user_id="user-1", payment_state=PaymentState.PAID)
        order.line_items = [LineItem(order_id=order.id, path="/ebook/")]
        catalog = FakeCatalog({"/ebook/": [CatalogDownload(url="/a.pdf")]})

        assert await update_downloads(order, catalog) == 1
        assert await update_downloads(order, catalog) == 0
        assert len(order.downloads) == 1


class TestDownloadReconciler:
    @pytest.mark.asyncio
    async def test_persists_new_downloads(self, session_factory, seed_order):
        order = await seed_order(asset_urls=(), product_paths=("/ebook/",))
        catalog = FakeCatalog({"/ebook/": [CatalogDownload(title="PDF", url="/files/a.pdf")]})

        ack = await DownloadReconciler(session_factory, catalog).refresh_downloads(order.id, OWNER)

        assert ack == {}
        async with session_scope(session_factory) as session:
            stored = await OrderRepo(session).get_order(order.id, with_children=True)
        assert [d.url for d in stored.downloads] == ["/files/a.pdf"]
        assert stored.downloads[0].line_item_id == order.line_items[0].id

    @pytest.mark.asyncio
    async def test_missing_order_id(self, session_factory):
        with pytest.raises(BadRequestError):
            await DownloadReconciler(session_factory, FakeCatalog()).refresh_downloads("", OWNER)

    @pytest.mark.asyncio
    async def test_unknown_order(self, session_factory):
        with pytest.raises(NotFoundError):
            await DownloadReconciler(session_factory, FakeCatalog()).refresh_downloads("missing", OWNER)

    @pytest.mark.asyncio
    async def test_not_owner(self, session_factory, seed_order):
        order = await seed_order(product_paths=("/ebook/",))
        with pytest.raises(UnauthorizedError):
            await DownloadReconciler(session_factory, FakeCatalog()).refresh_downloads(
                order.id, CallerContext(subject="user-2"),
            )

    @pytest.mark.asyncio
    async def test_unpaid(self, session_factory, seed_order):
        order = await seed_order(payment_state=PaymentState.FAILED, product_paths=("/ebook/",))
        with pytest.raises(UnauthorizedError, match="not been completed"):
            await DownloadReconciler(session_factory, FakeCatalog()).refresh_downloads(order.id, OWNER)

    @pytest.mark.asyncio
    async def test_catalog_failure(self, session_factory, seed_order):
        order = await seed_order(asset_urls=(), product_paths=("/ebook/",))
        with pytest.raises(InternalError, match="updating downloads") as excinfo:
            await DownloadReconciler(session_factory, FakeCatalog(fail=True)).refresh_downloads(
                order.id, OWNER,
            )
        assert isinstance(excinfo.value.internal_error, CatalogError)

"""Refresh an order's downloads from the product catalog."""

from __future__ import annotations

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from download_gate.core.errors import (
    BadRequestError,
    InternalError,
    NotFoundError,
)
from download_gate.core.interfaces import IDownloadCatalog
from download_gate.core.models import CallerContext, Download, Order
from download_gate.observability.logger import get_logger
from download_gate.storage.postgres.connection import session_scope
from download_gate.storage.postgres.repos import OrderRepo

from .entitlement import authorize_order

logger = get_logger(__name__)


async def update_downloads(order: Order, catalog: IDownloadCatalog) -> int:
    """Bring ``order.downloads`` in line with what the catalog offers.

    Assets are matched per line item by URL. Unknown assets are appended as
    new downloads; known ones get their descriptive fields refreshed.
    Counters are never touched.

    Returns:
        Number of downloads added.
    """
    added = 0
    for item in order.line_items:
        offered = await catalog.downloads_for(item)
        known = {
            d.url: d for d in order.downloads if d.line_item_id == item.id
        }
        for asset in offered:
            current = known.get(asset.url)
            if current is None:
                download = Download(
                    order_id=order.id,
                    line_item_id=item.id,
                    title=asset.title,
                    sku=asset.sku or item.sku,
                    format=asset.format,
                    url=asset.url,
                )
                order.downloads.append(download)
                known[asset.url] = download
                added += 1
                continue
            current.title = asset.title
            current.format = asset.format
            if asset.sku:
                current.sku = asset.sku
    return added


class DownloadReconciler:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        catalog: IDownloadCatalog,
    ) -> None:
        self._session_factory = session_factory
        self._catalog = catalog

    async def refresh_downloads(self, order_id: str, caller: CallerContext) -> dict:
        """Reconcile one order's downloads and persist them.

        The catalog is queried outside any transaction; the result is saved
        in a single unit of work.

        Raises:
            BadRequestError: Missing order id.
            NotFoundError: Unknown order.
            UnauthorizedError: Caller not entitled, or order unpaid.
            InternalError: Catalog or store failure.
        """
        if not order_id:
            raise BadRequestError("Order id missing")

        log = logger.bind(order_id=order_id)
        try:
            async with session_scope(self._session_factory) as session:
                order = await OrderRepo(session).get_order(order_id, with_children=True)
        except SQLAlchemyError as exc:
            log.error("order_query_failed", error=repr(exc))
            raise InternalError("Error during database query") from exc
        if order is None:
            raise NotFoundError("Download order not found")

        authorize_order(
            caller,
            order,
            not_owner_msg="You don't have permission to access this order",
            not_paid_msg="This order has not been completed yet",
        )

        try:
            added = await update_downloads(order, self._catalog)
        except Exception as exc:
            log.error("catalog_update_failed", error=repr(exc))
            raise InternalError("Error during updating downloads") from exc

        try:
            async with session_scope(self._session_factory) as session:
                await OrderRepo(session).save_downloads(order)
        except (SQLAlchemyError, LookupError) as exc:
            log.error("order_save_failed", error=repr(exc))
            raise InternalError("Error during saving order") from exc

        log.info("downloads_refreshed", added=added, total=len(order.downloads))
        return {}

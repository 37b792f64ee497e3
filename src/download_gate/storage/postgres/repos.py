"""Repository pattern for async database operations.

Each repository encapsulates query logic for a single aggregate root.
All methods take the :class:`AsyncSession` of the caller's unit of work
(see :func:`download_gate.storage.postgres.connection.session_scope`) and
never commit on their own.

Conversion helpers translate between core domain models
(:mod:`download_gate.core.models`) and ORM records.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from download_gate.core.enums import PaymentState
from download_gate.core.ids import as_utc, utc_now
from download_gate.core.models import Download, LineItem, Order

from .models import DownloadRecord, LineItemRecord, OrderRecord

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Conversion helpers
# ---------------------------------------------------------------------------

def _record_to_download(record: DownloadRecord) -> Download:
    return Download(
        id=record.id,
        order_id=record.order_id,
        line_item_id=record.line_item_id,
        title=record.title,
        sku=record.sku,
        format=record.format,
        url=record.url,
        download_count=record.download_count,
        created_at=as_utc(record.created_at),
        updated_at=as_utc(record.updated_at),
    )


def _download_to_record(download: Download) -> DownloadRecord:
    return DownloadRecord(
        id=download.id,
        order_id=download.order_id,
        line_item_id=download.line_item_id,
        title=download.title,
        sku=download.sku,
        format=download.format,
        url=download.url,
        download_count=download.download_count,
        created_at=download.created_at,
        updated_at=download.updated_at,
    )


def _record_to_line_item(record: LineItemRecord) -> LineItem:
    return LineItem(
        id=record.id,
        order_id=record.order_id,
        sku=record.sku,
        title=record.title,
        path=record.path,
        quantity=record.quantity,
    )


def _line_item_to_record(item: LineItem) -> LineItemRecord:
    return LineItemRecord(
        id=item.id,
        order_id=item.order_id,
        sku=item.sku,
        title=item.title,
        path=item.path,
        quantity=item.quantity,
    )


def _record_to_order(record: OrderRecord, *, with_children: bool = False) -> Order:
    order = Order(
        id=record.id,
        user_id=record.user_id,
        email=record.email,
        payment_state=PaymentState(record.payment_state),
        created_at=as_utc(record.created_at),
        updated_at=as_utc(record.updated_at),
    )
    if with_children:
        order.line_items = [_record_to_line_item(li) for li in record.line_items]
        order.downloads = [_record_to_download(d) for d in record.downloads]
    return order


def _order_to_record(order: Order) -> OrderRecord:
    return OrderRecord(
        id=order.id,
        user_id=order.user_id,
        email=order.email,
        payment_state=order.payment_state.value,
        created_at=order.created_at,
        updated_at=order.updated_at,
        line_items=[_line_item_to_record(li) for li in order.line_items],
        downloads=[_download_to_record(d) for d in order.downloads],
    )


# ---------------------------------------------------------------------------
# OrderRepo
# ---------------------------------------------------------------------------

class OrderRepo:
    """Repository for :class:`OrderRecord` and its children."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_order(self, order_id: str, *, with_children: bool = False) -> Order | None:
        """Retrieve an order by id.

        Args:
            order_id: Order identifier.
            with_children: Also populate ``line_items`` and ``downloads``.

        Returns:
            Core :class:`Order` if found, otherwise ``None``.
        """
        record = await self._session.get(OrderRecord, order_id)
        if record is None:
            return None
        return _record_to_order(record, with_children=with_children)

    async def add_order(self, order: Order) -> None:
        """Insert a new order together with its line items and downloads."""
        self._session.add(_order_to_record(order))
        await self._session.flush()
        logger.debug("Inserted order %s", order.id)

    async def save_downloads(self, order: Order) -> None:
        """Persist ``order.downloads``: insert new rows, refresh descriptive fields.

        ``download_count`` of existing rows is left alone; it belongs to the
        audit recorder.
        """
        record = await self._session.get(OrderRecord, order.id)
        if record is None:
            raise LookupError(f"order {order.id} disappeared before save")

        existing = {d.id: d for d in record.downloads}
        for download in order.downloads:
            current = existing.get(download.id)
            if current is None:
                record.downloads.append(_download_to_record(download))
                continue
            current.title = download.title
            current.sku = download.sku
            current.format = download.format
            current.url = download.url
            current.line_item_id = download.line_item_id
        await self._session.flush()
        logger.debug("Saved %d downloads for order %s", len(order.downloads), order.id)


# ---------------------------------------------------------------------------
# DownloadRepo
# ---------------------------------------------------------------------------

class DownloadRepo:
    """Repository for :class:`DownloadRecord` reads and the counter increment."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_download(self, download_id: str) -> Download | None:
        record = await self._session.get(DownloadRecord, download_id)
        if record is None:
            return None
        return _record_to_download(record)

    async def increment_download_count(
        self, download_id: str, *, at: datetime | None = None,
    ) -> int:
        """Add one to ``download_count`` with a single UPDATE statement.

        ``updated_at`` is set to ``at`` when given, otherwise to the current
        UTC time.

        Returns:
            The counter value after the increment.

        Raises:
            LookupError: If the download row no longer exists.
        """
        stmt = (
            update(DownloadRecord)
            .where(DownloadRecord.id == download_id)
            .values(
                download_count=DownloadRecord.download_count + 1,
                updated_at=as_utc(at) if at is not None else utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            raise LookupError(f"download {download_id} not found for increment")

        count = await self._session.execute(
            select(DownloadRecord.download_count).where(DownloadRecord.id == download_id)
        )
        return int(count.scalar_one())

    def _paid_downloads(self, *, order_id: str | None, user_id: str | None):
        stmt = select(DownloadRecord).join(
            OrderRecord, DownloadRecord.order_id == OrderRecord.id,
        ).where(OrderRecord.payment_state == PaymentState.PAID.value)
        if order_id is not None:
            return stmt.where(OrderRecord.id == order_id)
        return stmt.where(OrderRecord.user_id == user_id)

    async def list_paid_downloads(
        self,
        *,
        order_id: str | None = None,
        user_id: str | None = None,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[list[Download], int]:
        """Downloads whose order is paid, scoped to one order or one owner.

        Exactly one of ``order_id`` / ``user_id`` must be given.

        Returns:
            ``(page, total)`` where ``total`` ignores offset/limit.
        """
        if (order_id is None) == (user_id is None):
            raise ValueError("exactly one of order_id or user_id is required")

        base = self._paid_downloads(order_id=order_id, user_id=user_id)
        total_result = await self._session.execute(
            select(func.count()).select_from(base.subquery())
        )
        total = int(total_result.scalar_one())

        stmt = (
            base.order_by(DownloadRecord.created_at, DownloadRecord.id)
            .offset(offset)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [_record_to_download(r) for r in result.scalars().all()], total

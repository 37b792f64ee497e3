"""Paginated listing of downloads that belong to paid orders."""

from __future__ import annotations

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from download_gate.core.errors import (
    DownloadGateError,
    InternalError,
    NotFoundError,
    UnauthorizedError,
)
from download_gate.core.models import CallerContext, DownloadPage
from download_gate.core.pagination import validate_pagination
from download_gate.observability.logger import get_logger
from download_gate.storage.postgres.connection import session_scope
from download_gate.storage.postgres.repos import DownloadRepo, OrderRepo

from .entitlement import authorize_order

logger = get_logger(__name__)


class DownloadLister:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        max_limit: int = 100,
    ) -> None:
        self._session_factory = session_factory
        self._max_limit = max_limit

    async def list_downloads(
        self,
        caller: CallerContext,
        *,
        order_id: str | None = None,
        offset: int = 0,
        limit: int = 50,
    ) -> DownloadPage:
        """List downloads of one order, or of every paid order the caller owns.

        Pagination is validated before the store is touched.

        Raises:
            BadRequestError: Invalid offset/limit.
            NotFoundError: ``order_id`` given but unknown.
            UnauthorizedError: Caller may not see the order, the order is
                unpaid, or an anonymous caller asked for "my downloads".
            InternalError: Store failure.
        """
        offset, limit = validate_pagination(offset, limit, max_limit=self._max_limit)
        if order_id is None and caller.is_anonymous:
            raise UnauthorizedError("You must be logged in to list your downloads")

        log = logger.bind(order_id=order_id, subject=caller.subject)
        try:
            async with session_scope(self._session_factory) as session:
                if order_id is not None:
                    order = await OrderRepo(session).get_order(order_id)
                    if order is None:
                        raise NotFoundError("Download order not found")
                    authorize_order(
                        caller,
                        order,
                        not_owner_msg="You don't have permission to access this order",
                        not_paid_msg="This order has not been completed yet",
                    )
                    items, total = await DownloadRepo(session).list_paid_downloads(
                        order_id=order_id, offset=offset, limit=limit,
                    )
                else:
                    items, total = await DownloadRepo(session).list_paid_downloads(
                        user_id=caller.subject, offset=offset, limit=limit,
                    )
        except DownloadGateError:
            raise
        except SQLAlchemyError as exc:
            log.error("download_list_failed", error=repr(exc))
            raise InternalError("Error during database query") from exc

        log.debug("downloads_listed", count=len(items), total=total)
        return DownloadPage(items=items, total=total, offset=offset, limit=limit)

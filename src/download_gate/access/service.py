"""Download access orchestrator.

``get_download`` walks a linear pipeline and stops at the first failure::

    START -> LOADED -> AUTHORIZED -> THROTTLE_CHECKED -> SIGNED -> RECORDED -> DONE

Each step either advances or raises a :class:`DownloadGateError`.
"""

from __future__ import annotations

from enum import Enum

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from download_gate.core.clock import IClock, WallClock
from download_gate.core.errors import (
    DownloadGateError,
    InternalError,
    NotFoundError,
)
from download_gate.core.interfaces import IURLSigner
from download_gate.core.models import CallerContext, Download, Order
from download_gate.ledger import EventLedger
from download_gate.observability.logger import get_logger
from download_gate.storage.postgres.connection import session_scope
from download_gate.storage.postgres.repos import DownloadRepo, OrderRepo

from .audit import AuditRecorder
from .entitlement import authorize_order
from .rate_limit import RateLimiter

logger = get_logger(__name__)


class AccessState(str, Enum):
    START = "start"
    LOADED = "loaded"
    AUTHORIZED = "authorized"
    THROTTLE_CHECKED = "throttle_checked"
    SIGNED = "signed"
    RECORDED = "recorded"
    DONE = "done"


class DownloadService:
    """Issues signed download URLs to entitled callers and audits each issue."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        signer: IURLSigner,
        *,
        clock: IClock | None = None,
        ledger: EventLedger | None = None,
        rate_limiter: RateLimiter | None = None,
        audit: AuditRecorder | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._signer = signer
        self._clock = clock or WallClock()
        ledger = ledger or EventLedger()
        self._rate_limiter = rate_limiter or RateLimiter(ledger)
        self._audit = audit or AuditRecorder(session_factory, ledger, self._clock)

    async def _load_and_check(
        self, download_id: str, caller: CallerContext, log,
    ) -> tuple[Download, Order]:
        now = self._clock.now()
        try:
            async with session_scope(self._session_factory) as session:
                download = await DownloadRepo(session).get_download(download_id)
                if download is None:
                    raise NotFoundError("Download not found")

                order = await OrderRepo(session).get_order(download.order_id)
                if order is None:
                    # downloads.order_id is a required foreign key
                    log.error("download_order_missing", order_id=download.order_id)
                    raise InternalError("Download order not found")
                log.debug("access_state", state=AccessState.LOADED.value, order_id=order.id)

                authorize_order(
                    caller,
                    order,
                    not_owner_msg="Not Authorized to access this download",
                    not_paid_msg="This download has not been paid yet",
                )
                log.debug("access_state", state=AccessState.AUTHORIZED.value)

                await self._rate_limiter.check(session, order.id, now)
                log.debug("access_state", state=AccessState.THROTTLE_CHECKED.value)
        except DownloadGateError:
            raise
        except SQLAlchemyError as exc:
            log.error("download_query_failed", error=repr(exc))
            raise InternalError("Error during database query") from exc
        return download, order

    async def get_download(
        self,
        download_id: str,
        caller: CallerContext,
        source_address: str,
    ) -> Download:
        """Return the download with a freshly signed URL.

        Args:
            download_id: Download to fetch.
            caller: Verified caller identity, :meth:`CallerContext.anonymous`
                when there is none.
            source_address: Remote address of the request; recorded in the
                ledger and used by the distinct-IP throttle.

        Raises:
            NotFoundError: Unknown download.
            UnauthorizedError: Not the owner, order unpaid, or throttled.
            InternalError: Store, signing or audit failure. When the audit
                transaction fails the URL has already been signed but is
                not returned, so every issued URL has a ledger entry.
        """
        log = logger.bind(download_id=download_id, ip=source_address)
        log.debug("access_state", state=AccessState.START.value)

        try:
            download, order = await self._load_and_check(download_id, caller, log)
        except DownloadGateError as exc:
            log.info("download_denied", status=exc.status_code, reason=exc.message)
            raise

        try:
            signed = await self._signer.sign_url(download.url)
        except Exception as exc:
            log.error("download_sign_failed", error=repr(exc))
            raise InternalError("Error signing download") from exc
        log.debug("access_state", state=AccessState.SIGNED.value)

        count = await self._audit.record_access(
            download.id,
            order.id,
            actor=caller.subject,
            ip=source_address,
        )
        log.debug("access_state", state=AccessState.RECORDED.value)

        result = download.model_copy(
            update={
                "download_count": count,
                "signed_url": signed.url,
                "expires_at": signed.expires_at,
            }
        )
        log.info(
            "download_issued",
            state=AccessState.DONE.value,
            order_id=order.id,
            download_count=count,
        )
        return result

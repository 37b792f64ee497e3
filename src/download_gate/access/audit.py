"""Audit recorder: counter increment and ledger entry as one transaction."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from download_gate.core.clock import IClock
from download_gate.core.enums import DOWNLOAD_TAG, EventKind
from download_gate.core.errors import InternalError
from download_gate.ledger import EventLedger
from download_gate.observability.logger import get_logger
from download_gate.storage.postgres.connection import session_scope
from download_gate.storage.postgres.repos import DownloadRepo

logger = get_logger(__name__)


class AuditRecorder:
    """Records that a download URL was handed out.

    Both writes (``download_count + 1`` and one ledger entry tagged
    ``"download"``) happen in a single session. If anything fails before
    the commit completes, the session is rolled back and neither write is
    visible afterwards.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ledger: EventLedger,
        clock: IClock,
    ) -> None:
        self._session_factory = session_factory
        self._ledger = ledger
        self._clock = clock

    async def record_access(
        self,
        download_id: str,
        order_id: str,
        *,
        actor: str | None,
        ip: str,
    ) -> int:
        """Increment the counter and append the ledger entry atomically.

        Returns:
            The new ``download_count``.

        Raises:
            InternalError: If the transaction could not be committed.
        """
        log = logger.bind(download_id=download_id, order_id=order_id)
        try:
            async with session_scope(self._session_factory) as session:
                at = self._clock.now()
                count = await DownloadRepo(session).increment_download_count(download_id, at=at)
                await self._ledger.append(
                    session,
                    order_id,
                    actor=actor,
                    ip=ip,
                    kind=EventKind.UPDATED,
                    changes={DOWNLOAD_TAG},
                    at=at,
                )
        except Exception as exc:
            log.error("audit_record_failed", error=repr(exc))
            raise InternalError("Error recording download") from exc

        log.info("download_recorded", download_count=count, ip=ip)
        return count

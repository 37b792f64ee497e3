"""Distinct-IP download throttle.

Denies further downloads of an order once more than ``max_ips`` distinct
source addresses fetched one of its downloads within the trailing window.
This is an abuse heuristic: the count is read without locking, so two
concurrent requests may both pass at the threshold.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from download_gate.core.config import RateLimitConfig
from download_gate.core.enums import DOWNLOAD_TAG
from download_gate.core.errors import UnauthorizedError
from download_gate.ledger import EventLedger
from download_gate.observability.logger import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_IPS = 50
DEFAULT_WINDOW = timedelta(hours=24)


class RateLimiter:
    def __init__(
        self,
        ledger: EventLedger,
        *,
        max_ips: int = DEFAULT_MAX_IPS,
        window: timedelta = DEFAULT_WINDOW,
    ) -> None:
        if max_ips < 0:
            raise ValueError(f"max_ips must be >= 0, got {max_ips}")
        self._ledger = ledger
        self._max_ips = max_ips
        self._window = window

    @classmethod
    def from_config(cls, ledger: EventLedger, config: RateLimitConfig) -> RateLimiter:
        return cls(ledger, max_ips=config.max_ips_per_window, window=config.window)

    async def count_distinct_access_ips(
        self, session: AsyncSession, order_id: str, now: datetime,
    ) -> int:
        return await self._ledger.count_distinct_ips(
            session,
            order_id,
            tag=DOWNLOAD_TAG,
            since=now - self._window,
            until=now,
        )

    async def check(self, session: AsyncSession, order_id: str, now: datetime) -> int:
        """Raise :class:`UnauthorizedError` when the order is over the limit.

        Returns:
            The distinct-IP count that was observed.
        """
        count = await self.count_distinct_access_ips(session, order_id, now)
        if count > self._max_ips:
            logger.warning(
                "download_throttled", order_id=order_id, distinct_ips=count, max_ips=self._max_ips,
            )
            raise UnauthorizedError(
                "This download has been accessed from too many IPs within the last day"
            )
        return count

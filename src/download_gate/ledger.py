"""Append-only event ledger for orders.

The ledger records who changed what on an order and from where. It is both
the audit history and the data source of the distinct-IP download throttle.
Entries are only ever inserted; there is no update or delete path.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from sqlalchemy import func, literal, select
from sqlalchemy.ext.asyncio import AsyncSession

from download_gate.core.enums import EventKind
from download_gate.core.ids import as_utc, new_id
from download_gate.core.models import Event
from download_gate.observability.logger import get_logger
from download_gate.storage.postgres.models import EventRecord

logger = get_logger(__name__)

_SEPARATOR = ","


def _join_changes(changes: Iterable[str]) -> str:
    return _SEPARATOR.join(sorted(set(changes)))


def _split_changes(raw: str) -> frozenset[str]:
    return frozenset(tag for tag in raw.split(_SEPARATOR) if tag)


def _record_to_event(record: EventRecord) -> Event:
    return Event(
        id=record.id,
        order_id=record.order_id,
        user_id=record.user_id,
        ip=record.ip,
        kind=EventKind(record.kind),
        changes=_split_changes(record.changes),
        created_at=as_utc(record.created_at),
    )


def _has_tag(tag: str):
    """SQL predicate: ``tag`` is one of the comma-separated change tags."""
    wrapped = literal(_SEPARATOR) + EventRecord.changes + literal(_SEPARATOR)
    return wrapped.like(f"%{_SEPARATOR}{tag}{_SEPARATOR}%")


class EventLedger:
    """Writes and queries ledger entries within a caller-owned session."""

    async def append(
        self,
        session: AsyncSession,
        order_id: str,
        *,
        actor: str | None,
        ip: str,
        kind: EventKind,
        changes: Iterable[str],
        at: datetime,
    ) -> Event:
        """Add one entry to the caller's unit of work. Does not commit."""
        tags = frozenset(changes)
        if any(_SEPARATOR in tag for tag in tags):
            raise ValueError(f"change tags may not contain {_SEPARATOR!r}: {sorted(tags)}")

        record = EventRecord(
            id=new_id(),
            order_id=order_id,
            user_id=actor or None,
            ip=ip,
            kind=kind.value,
            changes=_join_changes(tags),
            created_at=as_utc(at),
        )
        session.add(record)
        await session.flush()
        logger.debug(
            "ledger_append", order_id=order_id, kind=kind.value, changes=record.changes,
        )
        return _record_to_event(record)

    async def count_distinct_ips(
        self,
        session: AsyncSession,
        order_id: str,
        *,
        tag: str,
        since: datetime,
        until: datetime,
    ) -> int:
        """Distinct source IPs of ``tag`` entries for the order in ``(since, until]``."""
        stmt = (
            select(func.count(func.distinct(EventRecord.ip)))
            .where(EventRecord.order_id == order_id)
            .where(EventRecord.created_at > as_utc(since))
            .where(EventRecord.created_at <= as_utc(until))
            .where(_has_tag(tag))
        )
        result = await session.execute(stmt)
        return int(result.scalar_one())

    async def history(self, session: AsyncSession, order_id: str) -> list[Event]:
        """All entries of an order, oldest first."""
        stmt = (
            select(EventRecord)
            .where(EventRecord.order_id == order_id)
            .order_by(EventRecord.created_at, EventRecord.id)
        )
        result = await session.execute(stmt)
        return [_record_to_event(r) for r in result.scalars().all()]

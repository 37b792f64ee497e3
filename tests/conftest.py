"""Shared fixtures for the download-gate test suite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from download_gate.core.clock import FixedClock
from download_gate.core.enums import EventKind, PaymentState
from download_gate.core.models import Download, Event, LineItem, Order, SignedURL
from download_gate.ledger import EventLedger
from download_gate.storage.postgres.connection import (
    create_all,
    create_engine,
    create_session_factory,
    session_scope,
)
from download_gate.storage.postgres.repos import DownloadRepo, OrderRepo

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------

@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed SQLite engine with all tables created."""
    eng = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'gate.db'}")
    await create_all(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def ledger() -> EventLedger:
    return EventLedger()


@pytest.fixture
def seed_order(session_factory):
    """Insert an order with one download per asset URL and return it."""

    async def _seed(
        *,
        user_id: str | None = "user-1",
        payment_state: PaymentState = PaymentState.PAID,
        asset_urls: tuple[str, ...] = ("books/guide.pdf",),
        product_paths: tuple[str, ...] = (),
    ) -> Order:
        order = Order(user_id=user_id, payment_state=payment_state, created_at=NOW, updated_at=NOW)
        order.line_items = [
            LineItem(order_id=order.id, sku=f"sku-{i}", title=f"Product {i}", path=path)
            for i, path in enumerate(product_paths)
        ]
        order.downloads = [
            Download(
                order_id=order.id,
                title=f"Asset {i}",
                url=url,
                created_at=NOW + timedelta(seconds=i),
                updated_at=NOW,
            )
            for i, url in enumerate(asset_urls)
        ]
        async with session_scope(session_factory) as session:
            await OrderRepo(session).add_order(order)
        return order

    return _seed


@pytest.fixture
def seed_events(session_factory, ledger):
    """Append ledger entries for an order, one per IP, at a given time."""

    async def _seed(
        order_id: str,
        ips: list[str],
        *,
        at: datetime,
        changes: frozenset[str] = frozenset({"download"}),
    ) -> None:
        async with session_scope(session_factory) as session:
            for ip in ips:
                await ledger.append(
                    session,
                    order_id,
                    actor=None,
                    ip=ip,
                    kind=EventKind.UPDATED,
                    changes=changes,
                    at=at,
                )

    return _seed


@pytest.fixture
def snapshot(session_factory, ledger):
    """Read back ``(download_count, ledger entries)`` for a download."""

    async def _snapshot(download_id: str, order_id: str) -> tuple[int, list[Event]]:
        async with session_scope(session_factory) as session:
            download = await DownloadRepo(session).get_download(download_id)
            events = await ledger.history(session, order_id)
        assert download is not None
        return download.download_count, events

    return _snapshot


# ---------------------------------------------------------------------------
# Signers
# ---------------------------------------------------------------------------

class StubSigner:
    """Records what it was asked to sign; optionally fails."""

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[str] = []

    async def sign_url(self, asset_ref: str) -> SignedURL:
        self.calls.append(asset_ref)
        if self.fail:
            raise RuntimeError("asset store unavailable")
        return SignedURL(
            url=f"https://cdn.example.test/{asset_ref}?sig=stub",
            expires_at=NOW + timedelta(hours=1),
        )


@pytest.fixture
def signer() -> StubSigner:
    return StubSigner()


@pytest.fixture
def failing_signer() -> StubSigner:
    return StubSigner(fail=True)


@pytest.fixture
def now() -> datetime:
    return NOW

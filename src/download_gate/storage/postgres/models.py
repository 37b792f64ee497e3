"""SQLAlchemy ORM models for orders, line items, downloads and the event ledger.

Tables use string UUID primary keys and UTC timestamps, with indexes for
the queries download-gate runs (downloads by order, orders by user, ledger
entries by order and time).

Relationships:
    OrderRecord 1--* LineItemRecord  (order_id foreign key)
    OrderRecord 1--* DownloadRecord  (order_id foreign key)
    OrderRecord 1--* EventRecord     (order_id, append-only)
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)

from download_gate.core.ids import new_id, utc_now


# ---------------------------------------------------------------------------
# Declarative base
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""

    pass


# ---------------------------------------------------------------------------
# OrderRecord
# ---------------------------------------------------------------------------

class OrderRecord(Base):
    """Order row. Written by the commerce system; read-mostly here."""

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    email: Mapped[str] = mapped_column(String(255), default="")
    payment_state: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, server_default=func.now(),
    )

    # Relationships
    line_items: Mapped[list[LineItemRecord]] = relationship(
        "LineItemRecord",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="LineItemRecord.id",
        lazy="selectin",
    )
    downloads: Mapped[list[DownloadRecord]] = relationship(
        "DownloadRecord",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="DownloadRecord.created_at",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_orders_user_id", "user_id"),
        Index("ix_orders_payment_state", "payment_state"),
    )

    def __repr__(self) -> str:
        return (
            f"<OrderRecord(id={self.id!r}, user_id={self.user_id!r}, "
            f"payment_state={self.payment_state!r})>"
        )


# ---------------------------------------------------------------------------
# LineItemRecord
# ---------------------------------------------------------------------------

class LineItemRecord(Base):
    """Purchased product belonging to an order."""

    __tablename__ = "line_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("orders.id"), nullable=False,
    )
    sku: Mapped[str] = mapped_column(String(128), default="")
    title: Mapped[str] = mapped_column(String(255), default="")
    path: Mapped[str] = mapped_column(String(512), default="")
    quantity: Mapped[int] = mapped_column(Integer, default=1)

    order: Mapped[OrderRecord] = relationship("OrderRecord", back_populates="line_items")

    __table_args__ = (
        Index("ix_line_items_order_id", "order_id"),
    )


# ---------------------------------------------------------------------------
# DownloadRecord
# ---------------------------------------------------------------------------

class DownloadRecord(Base):
    """Downloadable asset of an order.

    ``download_count`` is only ever changed by the audit recorder, in the
    same transaction as the matching ledger entry.
    """

    __tablename__ = "downloads"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("orders.id"), nullable=False,
    )
    line_item_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    title: Mapped[str] = mapped_column(String(255), default="")
    sku: Mapped[str] = mapped_column(String(128), default="")
    format: Mapped[str] = mapped_column(String(32), default="")
    url: Mapped[str] = mapped_column(Text, nullable=False)
    download_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, server_default=func.now(),
    )

    order: Mapped[OrderRecord] = relationship("OrderRecord", back_populates="downloads")

    __table_args__ = (
        Index("ix_downloads_order_id", "order_id"),
        Index("ix_downloads_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<DownloadRecord(id={self.id!r}, order_id={self.order_id!r}, "
            f"download_count={self.download_count})>"
        )


# ---------------------------------------------------------------------------
# EventRecord
# ---------------------------------------------------------------------------

class EventRecord(Base):
    """Append-only ledger entry. Rows are never updated or deleted.

    ``changes`` holds the change tags joined with commas, e.g. ``"download"``.
    """

    __tablename__ = "events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    order_id: Mapped[str] = mapped_column(String(36), nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    ip: Mapped[str] = mapped_column(String(64), default="")
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    changes: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now,
    )

    __table_args__ = (
        Index("ix_events_order_id_created_at", "order_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<EventRecord(order_id={self.order_id!r}, kind={self.kind!r}, "
            f"changes={self.changes!r}, ip={self.ip!r})>"
        )

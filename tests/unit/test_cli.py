"""Tests for the click CLI."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest
from click.testing import CliRunner

from download_gate.catalog.http import HttpCatalog
from download_gate.cli import main
from download_gate.core.enums import PaymentState
from download_gate.core.models import Download, LineItem, Order
from download_gate.storage.postgres.connection import (
    create_engine,
    create_session_factory,
    session_scope,
)
from download_gate.storage.postgres.repos import OrderRepo


@pytest.fixture
def db_url(tmp_path, monkeypatch) -> str:
    url = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setenv("DOWNLOAD_GATE_DATABASE__URL", url)
    monkeypatch.setenv("DOWNLOAD_GATE_OBSERVABILITY__LOG_LEVEL", "WARNING")
    return url


def _seed(url: str) -> Order:
    order = Order(user_id="user-1", payment_state=PaymentState.PAID)
    order.downloads = [Download(order_id=order.id, url="books/guide.pdf")]

    async def _insert() -> None:
        engine = create_engine(url)
        try:
            async with session_scope(create_session_factory(engine)) as session:
                await OrderRepo(session).add_order(order)
        finally:
            await engine.dispose()

    asyncio.run(_insert())
    return order


def test_init_db_then_get(db_url, monkeypatch):
    monkeypatch.setenv("DOWNLOAD_GATE_SIGNING__SECRET", "cli-secret")
    runner = CliRunner()

    result = runner.invoke(main, ["init-db"])
    assert result.exit_code == 0, result.output

    order = _seed(db_url)
    result = runner.invoke(
        main, ["get", order.downloads[0].id, "--user", "user-1", "--ip", "203.0.113.5"],
    )
    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["download_count"] == 1
    assert "signature=" in payload["signed_url"]


def test_get_refused_for_stranger(db_url, monkeypatch):
    monkeypatch.setenv("DOWNLOAD_GATE_SIGNING__SECRET", "cli-secret")
    runner = CliRunner()
    runner.invoke(main, ["init-db"])
    order = _seed(db_url)

    result = runner.invoke(main, ["get", order.downloads[0].id, "--user", "user-2"])

    assert result.exit_code == 1
    assert json.loads(result.stdout) == {
        "code": 401,
        "msg": "Not Authorized to access this download",
    }


def test_list_bad_pagination(db_url):
    result = CliRunner().invoke(main, ["list", "--user", "user-1", "--offset", "-1"])
    assert result.exit_code == 1
    assert json.loads(result.stdout)["code"] == 400


def _seed_with_product(url: str) -> Order:
    order = Order(user_id="user-1", payment_state=PaymentState.PAID)
    order.line_items = [LineItem(order_id=order.id, sku="ebook-1", path="/products/ebook/")]

    async def _insert() -> None:
        engine = create_engine(url)
        try:
            async with session_scope(create_session_factory(engine)) as session:
                await OrderRepo(session).add_order(order)
        finally:
            await engine.dispose()

    asyncio.run(_insert())
    return order


def _load(url: str, order_id: str) -> Order:
    async def _read() -> Order:
        engine = create_engine(url)
        try:
            async with session_scope(create_session_factory(engine)) as session:
                return await OrderRepo(session).get_order(order_id, with_children=True)
        finally:
            await engine.dispose()

    return asyncio.run(_read())


@pytest.fixture
def mock_catalog(monkeypatch) -> list[HttpCatalog]:
    """Route ``HttpCatalog.from_config`` to an in-memory product site."""
    built: list[HttpCatalog] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/products/ebook/"
        return httpx.Response(
            200,
            json={
                "sku": "ebook-1",
                "downloads": [{"title": "PDF edition", "url": "/files/book.pdf", "format": "pdf"}],
            },
        )

    def from_config(cls, config):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        catalog = cls("https://shop.example.test", client=client)
        built.append(catalog)
        return catalog

    monkeypatch.setattr(HttpCatalog, "from_config", classmethod(from_config))
    return built


def test_refresh_adds_catalog_downloads(db_url, mock_catalog):
    runner = CliRunner()
    runner.invoke(main, ["init-db"])
    order = _seed_with_product(db_url)

    result = runner.invoke(main, ["refresh", order.id, "--user", "user-1"])

    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout) == {}
    stored = _load(db_url, order.id)
    assert [(d.url, d.title, d.download_count) for d in stored.downloads] == [
        ("/files/book.pdf", "PDF edition", 0),
    ]
    assert stored.downloads[0].line_item_id == order.line_items[0].id
    assert mock_catalog[0]._client.is_closed


def test_refresh_refused_for_stranger(db_url, mock_catalog):
    runner = CliRunner()
    runner.invoke(main, ["init-db"])
    order = _seed_with_product(db_url)

    result = runner.invoke(main, ["refresh", order.id, "--user", "user-2"])

    assert result.exit_code == 1
    assert json.loads(result.stdout) == {
        "code": 401,
        "msg": "You don't have permission to access this order",
    }
    assert _load(db_url, order.id).downloads == []
    assert mock_catalog[0]._client.is_closed

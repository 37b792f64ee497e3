"""CLI entry point for download-gate."""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Any, Awaitable, Callable

import click

from .core.config import Settings, load_settings
from .core.errors import DownloadGateError
from .core.models import CallerContext


def _caller(user: str | None, admin: bool) -> CallerContext:
    if user is None and not admin:
        return CallerContext.anonymous()
    return CallerContext(subject=user, is_admin=admin)


def _emit(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


def _run(
    ctx: click.Context,
    action: Callable[[Settings, Any], Awaitable[Any]],
) -> None:
    """Run ``action`` with a session factory, printing JSON or the public error."""
    from .observability.logger import new_request_id
    from .storage.postgres.connection import create_session_factory, engine_from_config

    settings: Settings = ctx.obj["settings"]

    async def _main() -> Any:
        new_request_id()
        engine = engine_from_config(settings.database, use_null_pool=True)
        try:
            return await action(settings, create_session_factory(engine))
        finally:
            await engine.dispose()

    try:
        result = asyncio.run(_main())
    except DownloadGateError as exc:
        _emit(exc.to_dict())
        sys.exit(1)
    _emit(result)


@click.group()
@click.option("--config", default=None, help="TOML config file path")
@click.pass_context
def main(ctx: click.Context, config: str | None) -> None:
    """Gate, throttle and audit access to purchased downloads."""
    from .observability.logger import setup_logging

    settings = load_settings(config_path=config)
    setup_logging(
        level=settings.observability.log_level,
        format=settings.observability.log_format,
    )
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


@main.command("init-db")
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """Create the orders, downloads and events tables."""
    from .storage.postgres.connection import create_all, engine_from_config

    settings: Settings = ctx.obj["settings"]

    async def _main() -> None:
        engine = engine_from_config(settings.database, use_null_pool=True)
        try:
            await create_all(engine)
        finally:
            await engine.dispose()

    asyncio.run(_main())
    click.echo("Tables created.")


@main.command("get")
@click.argument("download_id")
@click.option("--user", default=None, help="Caller subject (omit for anonymous)")
@click.option("--admin", is_flag=True, help="Caller holds the admin capability")
@click.option("--ip", default="127.0.0.1", help="Source address to record")
@click.pass_context
def get_download(ctx: click.Context, download_id: str, user: str | None, admin: bool, ip: str) -> None:
    """Issue a signed URL for a download."""
    from .access.service import DownloadService
    from .access.rate_limit import RateLimiter
    from .ledger import EventLedger
    from .signing import HmacURLSigner

    async def action(settings: Settings, session_factory: Any) -> Any:
        settings.validate_signing()
        ledger = EventLedger()
        service = DownloadService(
            session_factory,
            HmacURLSigner.from_config(settings.signing),
            ledger=ledger,
            rate_limiter=RateLimiter.from_config(ledger, settings.rate_limit),
        )
        download = await service.get_download(download_id, _caller(user, admin), ip)
        return download.model_dump(mode="json")

    _run(ctx, action)


@main.command("list")
@click.option("--order", "order_id", default=None, help="Order id (default: all of the caller's orders)")
@click.option("--user", default=None, help="Caller subject (omit for anonymous)")
@click.option("--admin", is_flag=True, help="Caller holds the admin capability")
@click.option("--offset", default=0, type=int)
@click.option("--limit", default=None, type=int)
@click.pass_context
def list_downloads(
    ctx: click.Context,
    order_id: str | None,
    user: str | None,
    admin: bool,
    offset: int,
    limit: int | None,
) -> None:
    """List downloads of paid orders."""
    from .access.listing import DownloadLister

    async def action(settings: Settings, session_factory: Any) -> Any:
        lister = DownloadLister(session_factory, max_limit=settings.pagination.max_limit)
        page = await lister.list_downloads(
            _caller(user, admin),
            order_id=order_id,
            offset=offset,
            limit=settings.pagination.default_limit if limit is None else limit,
        )
        return page.model_dump(mode="json")

    _run(ctx, action)


@main.command("refresh")
@click.argument("order_id")
@click.option("--user", default=None, help="Caller subject (omit for anonymous)")
@click.option("--admin", is_flag=True, help="Caller holds the admin capability")
@click.pass_context
def refresh(ctx: click.Context, order_id: str, user: str | None, admin: bool) -> None:
    """Refresh an order's downloads from the product catalog."""
    from .access.reconcile import DownloadReconciler
    from .catalog.http import HttpCatalog

    async def action(settings: Settings, session_factory: Any) -> Any:
        catalog = HttpCatalog.from_config(settings.catalog)
        try:
            return await DownloadReconciler(session_factory, catalog).refresh_downloads(
                order_id, _caller(user, admin),
            )
        finally:
            await catalog.aclose()

    _run(ctx, action)


if __name__ == "__main__":
    main()

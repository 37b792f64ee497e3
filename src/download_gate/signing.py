"""HMAC-SHA256 URL signer.

Issued URLs carry an ``expires`` unix timestamp and a ``signature`` over
the target URL and that timestamp. Whatever serves the asset can call
:meth:`HmacURLSigner.verify` with the same secret to check them.
"""

from __future__ import annotations

import hashlib
import hmac
import re
from datetime import datetime, timedelta, timezone
from urllib.parse import quote, urlsplit

from download_gate.core.clock import IClock, WallClock
from download_gate.core.config import SigningConfig
from download_gate.core.errors import ConfigError
from download_gate.core.models import SignedURL

_SIGNED_RE = re.compile(
    r"^(?P<target>.+)[?&]expires=(?P<expires>\d+)&signature=(?P<signature>[0-9a-f]{64})$"
)


class HmacURLSigner:
    """Default :class:`~download_gate.core.interfaces.IURLSigner`.

    Absolute asset references (``https://...``) are signed as-is; relative
    ones are resolved against ``base_url``.
    """

    def __init__(
        self,
        secret: str,
        base_url: str,
        *,
        ttl: timedelta = timedelta(hours=1),
        clock: IClock | None = None,
    ) -> None:
        if not secret:
            raise ConfigError("HmacURLSigner requires a non-empty secret")
        if ttl <= timedelta(0):
            raise ConfigError(f"Signed URL ttl must be positive, got {ttl}")
        self._key = secret.encode("utf-8")
        self._base_url = base_url.rstrip("/")
        self._ttl = ttl
        self._clock = clock or WallClock()

    @classmethod
    def from_config(cls, config: SigningConfig, clock: IClock | None = None) -> HmacURLSigner:
        return cls(
            config.secret,
            config.base_url,
            ttl=timedelta(seconds=config.ttl_seconds),
            clock=clock,
        )

    def _target(self, asset_ref: str) -> str:
        if urlsplit(asset_ref).scheme:
            return asset_ref
        return f"{self._base_url}/{quote(asset_ref.lstrip('/'))}"

    def _signature(self, target: str, expires: int) -> str:
        message = f"{target}\n{expires}".encode("utf-8")
        return hmac.new(self._key, message, hashlib.sha256).hexdigest()

    async def sign_url(self, asset_ref: str) -> SignedURL:
        if not asset_ref:
            raise ValueError("cannot sign an empty asset reference")
        target = self._target(asset_ref)
        expires_at = (self._clock.now() + self._ttl).replace(microsecond=0)
        expires = int(expires_at.timestamp())
        sep = "&" if "?" in target else "?"
        url = f"{target}{sep}expires={expires}&signature={self._signature(target, expires)}"
        return SignedURL(url=url, expires_at=expires_at)

    def verify(self, url: str, now: datetime | None = None) -> bool:
        """True if ``url`` was issued with this secret and has not expired."""
        match = _SIGNED_RE.match(url)
        if match is None:
            return False
        target = match.group("target")
        expires = int(match.group("expires"))
        expected = self._signature(target, expires)
        if not hmac.compare_digest(expected, match.group("signature")):
            return False
        current = now or self._clock.now()
        return current < datetime.fromtimestamp(expires, tz=timezone.utc)

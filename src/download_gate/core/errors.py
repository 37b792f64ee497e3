"""Exception hierarchy for download-gate.

Every error carries a public ``message`` and an HTTP-style ``status_code``.
The underlying cause (store or signer failure) is chained with
``raise ... from exc`` and is only ever logged, never returned to callers.
"""

from __future__ import annotations

from typing import Any


class DownloadGateError(Exception):
    """Base exception for all download-gate errors."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    @property
    def internal_error(self) -> BaseException | None:
        """The chained cause, for server-side diagnostics only."""
        return self.__cause__

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.status_code, "msg": self.message}


# --- Configuration ---
class ConfigError(DownloadGateError):
    """Invalid or missing configuration."""


# --- Request outcomes ---
class NotFoundError(DownloadGateError):
    """Order or download does not exist."""

    status_code = 404


class UnauthorizedError(DownloadGateError):
    """Caller may not access the order, it is unpaid, or it is throttled."""

    status_code = 401


class BadRequestError(DownloadGateError):
    """Malformed caller input (e.g. pagination parameters)."""

    status_code = 400


class InternalError(DownloadGateError):
    """Store query, transaction or signing failure."""

    status_code = 500


# --- External collaborators ---
class CatalogError(DownloadGateError):
    """The product catalog could not be read or returned malformed data."""

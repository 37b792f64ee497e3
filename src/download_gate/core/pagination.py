"""Offset/limit validation shared by listing operations."""

from __future__ import annotations

from .errors import BadRequestError


def validate_pagination(offset: object, limit: object, *, max_limit: int) -> tuple[int, int]:
    """Check caller-supplied offset/limit before any store access.

    Returns:
        The validated ``(offset, limit)`` pair.

    Raises:
        BadRequestError: If either value is not an integer, is negative,
            or ``limit`` exceeds ``max_limit``.
    """
    if isinstance(offset, bool) or not isinstance(offset, int):
        raise BadRequestError(f"Bad Pagination Parameters: offset must be an integer, got {offset!r}")
    if isinstance(limit, bool) or not isinstance(limit, int):
        raise BadRequestError(f"Bad Pagination Parameters: limit must be an integer, got {limit!r}")
    if offset < 0:
        raise BadRequestError(f"Bad Pagination Parameters: offset must be >= 0, got {offset}")
    if limit < 0:
        raise BadRequestError(f"Bad Pagination Parameters: limit must be >= 0, got {limit}")
    if limit > max_limit:
        raise BadRequestError(
            f"Bad Pagination Parameters: limit must be <= {max_limit}, got {limit}"
        )
    return offset, limit


def page_to_offset(page: int, per_page: int, *, max_limit: int) -> tuple[int, int]:
    """Translate 1-based ``page``/``per_page`` parameters to offset/limit."""
    if page < 1:
        raise BadRequestError(f"Bad Pagination Parameters: page must be >= 1, got {page}")
    return validate_pagination((page - 1) * per_page, per_page, max_limit=max_limit)

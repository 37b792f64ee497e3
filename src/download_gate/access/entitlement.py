"""Entitlement predicates: may this caller act on this order?"""

from __future__ import annotations

from download_gate.core.enums import PaymentState
from download_gate.core.errors import UnauthorizedError
from download_gate.core.models import CallerContext, Order


def check_ownership(caller: CallerContext, order: Order) -> bool:
    """True if the caller owns the order or is an administrator.

    Guest orders (no ``user_id``) are only reachable by administrators.
    """
    if caller.is_admin:
        return True
    return caller.subject is not None and caller.subject == order.user_id


def check_paid(order: Order) -> bool:
    return order.payment_state == PaymentState.PAID


def authorize_order(
    caller: CallerContext,
    order: Order,
    *,
    not_owner_msg: str,
    not_paid_msg: str,
) -> None:
    """Raise :class:`UnauthorizedError` unless the caller is entitled to the order."""
    if not check_ownership(caller, order):
        raise UnauthorizedError(not_owner_msg)
    if not check_paid(order):
        raise UnauthorizedError(not_paid_msg)

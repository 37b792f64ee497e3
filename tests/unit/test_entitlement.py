"""Tests for the entitlement predicates."""

from __future__ import annotations

import pytest

from download_gate.access.entitlement import authorize_order, check_ownership, check_paid
from download_gate.core.enums import PaymentState
from download_gate.core.errors import UnauthorizedError
from download_gate.core.models import CallerContext, Order


def _order(user_id: str | None = "user-1", state: PaymentState = PaymentState.PAID) -> Order:
    return Order(user_id=user_id, payment_state=state)


class TestCheckOwnership:
    def test_owner(self):
        assert check_ownership(CallerContext(subject="user-1"), _order())

    def test_other_user(self):
        assert not check_ownership(CallerContext(subject="user-2"), _order())

    def test_admin_of_someone_elses_order(self):
        assert check_ownership(CallerContext(subject="ops", is_admin=True), _order())

    def test_anonymous(self):
        assert not check_ownership(CallerContext.anonymous(), _order())

    def test_anonymous_cannot_claim_guest_order(self):
        assert not check_ownership(CallerContext.anonymous(), _order(user_id=None))

    def test_admin_reaches_guest_order(self):
        assert check_ownership(CallerContext(is_admin=True), _order(user_id=None))


class TestCheckPaid:
    @pytest.mark.parametrize("state", list(PaymentState))
    def test_only_paid_passes(self, state):
        assert check_paid(_order(state=state)) is (state == PaymentState.PAID)


class TestAuthorizeOrder:
    def test_distinguishes_messages(self):
        with pytest.raises(UnauthorizedError, match="not yours"):
            authorize_order(
                CallerContext(subject="user-2"), _order(),
                not_owner_msg="not yours", not_paid_msg="not paid",
            )
        with pytest.raises(UnauthorizedError, match="not paid"):
            authorize_order(
                CallerContext(subject="user-1"), _order(state=PaymentState.PENDING),
                not_owner_msg="not yours", not_paid_msg="not paid",
            )

    def test_ownership_checked_before_payment(self):
        with pytest.raises(UnauthorizedError, match="not yours"):
            authorize_order(
                CallerContext(subject="user-2"), _order(state=PaymentState.PENDING),
                not_owner_msg="not yours", not_paid_msg="not paid",
            )

    def test_entitled_caller_passes(self):
        authorize_order(
            CallerContext(subject="user-1"), _order(),
            not_owner_msg="not yours", not_paid_msg="not paid",
        )

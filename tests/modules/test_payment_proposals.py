"""
Tests for client payment status changes.

Validates:
- Ordinary payment transitions apply directly
- Refund statuses need a proposal and an explicit confirmation
- Stale or replaced proposals are rejected with a conflict
- Cancelling a proposal leaves the payment status untouched
"""

from datetime import UTC

import pytest

from market_kernel.db.engine import get_session
from market_kernel.exceptions import (
    ConfirmationRequiredError,
    IllegalTransitionError,
    PaymentProposalConflictError,
    ValidationError,
)
from market_modules.orders.models import PaymentStatus
from market_modules.orders.service import OrderService


@pytest.fixture
def paid_order(assigned_order, order_service, actor_id):
    order_service.request_payment(assigned_order.id, actor_id)
    return order_service.update_payment_status(
        assigned_order.id, PaymentStatus.PAID, actor_id
    )


class TestDirectPaymentStatus:

    def test_record_partial_then_full_payment(self, assigned_order, order_service, actor_id):
        order_service.request_payment(assigned_order.id, actor_id)
        order = order_service.update_payment_status(
            assigned_order.id, PaymentStatus.PARTIALLY_PAID, actor_id
        )
        assert order.payment_status == PaymentStatus.PARTIALLY_PAID
        order = order_service.update_payment_status(
            assigned_order.id, PaymentStatus.PAID, actor_id
        )
        assert order.payment_status == PaymentStatus.PAID

    def test_illegal_payment_transition(self, assigned_order, order_service, actor_id):
        with pytest.raises(IllegalTransitionError):
            order_service.update_payment_status(
                assigned_order.id, PaymentStatus.PAID, actor_id
            )

    def test_refund_requires_confirmation(self, paid_order, order_service, actor_id):
        with pytest.raises(ConfirmationRequiredError) as exc_info:
            order_service.update_payment_status(
                paid_order.id, PaymentStatus.REFUNDED, actor_id
            )
        assert exc_info.value.to_state == "refunded"
        assert order_service.get_order(paid_order.id).payment_status == PaymentStatus.PAID


class TestTwoPhaseRefund:

    def test_propose_records_intent_only(self, paid_order, order_service, actor_id):
        proposal = order_service.propose_payment_status(
            paid_order.id, PaymentStatus.REFUNDED, actor_id
        )
        assert proposal.from_status == PaymentStatus.PAID
        assert proposal.to_status == PaymentStatus.REFUNDED
        assert proposal.proposed_by_id == actor_id

        order = order_service.get_order(paid_order.id)
        assert order.payment_status == PaymentStatus.PAID
        assert order.payment_proposal == proposal

    def test_proposal_reads_back_in_utc_from_a_new_session(
        self, paid_order, order_service, config, deterministic_clock, actor_id,
    ):
        proposal = order_service.propose_payment_status(
            paid_order.id, PaymentStatus.REFUNDED, actor_id
        )
        assert proposal.proposed_at == deterministic_clock.now()

        fresh = get_session()
        try:
            reloaded = OrderService(fresh, config=config, clock=deterministic_clock).get_order(
                paid_order.id
            )
        finally:
            fresh.close()
        assert reloaded.payment_proposal == proposal
        assert reloaded.payment_proposal.proposed_at.tzinfo == UTC

    def test_confirm_applies_proposal(self, paid_order, order_service, actor_id):
        proposal = order_service.propose_payment_status(
            paid_order.id, PaymentStatus.PARTIAL_REFUNDED, actor_id
        )
        order = order_service.confirm_payment_status(paid_order.id, proposal.id, actor_id)
        assert order.payment_status == PaymentStatus.PARTIAL_REFUNDED
        assert order.payment_proposal is None

    def test_history_records_both_phases(self, paid_order, order_service, actor_id):
        proposal = order_service.propose_payment_status(
            paid_order.id, PaymentStatus.REFUNDED, actor_id
        )
        order_service.confirm_payment_status(paid_order.id, proposal.id, actor_id)
        actions = [e.action for e in order_service.order_history(paid_order.id)]
        assert actions[-2:] == ["payment_status_proposed", "payment_status_changed"]

    def test_non_sensitive_status_cannot_be_proposed(
        self, assigned_order, order_service, actor_id,
    ):
        order_service.request_payment(assigned_order.id, actor_id)
        with pytest.raises(ValidationError):
            order_service.propose_payment_status(
                assigned_order.id, PaymentStatus.PAID, actor_id
            )

    def test_unreachable_status_cannot_be_proposed(
        self, assigned_order, order_service, actor_id,
    ):
        with pytest.raises(IllegalTransitionError):
            order_service.propose_payment_status(
                assigned_order.id, PaymentStatus.REFUNDED, actor_id
            )

    def test_replaced_proposal_is_stale(self, paid_order, order_service, actor_id):
        first = order_service.propose_payment_status(
            paid_order.id, PaymentStatus.PARTIAL_REFUNDED, actor_id
        )
        second = order_service.propose_payment_status(
            paid_order.id, PaymentStatus.REFUNDED, actor_id
        )
        assert first.id != second.id
        with pytest.raises(PaymentProposalConflictError):
            order_service.confirm_payment_status(paid_order.id, first.id, actor_id)

        order = order_service.confirm_payment_status(paid_order.id, second.id, actor_id)
        assert order.payment_status == PaymentStatus.REFUNDED

    def test_status_moved_since_proposal(self, assigned_order, order_service, actor_id):
        order_service.request_payment(assigned_order.id, actor_id)
        order_service.update_payment_status(
            assigned_order.id, PaymentStatus.PARTIALLY_PAID, actor_id
        )
        proposal = order_service.propose_payment_status(
            assigned_order.id, PaymentStatus.REFUNDED, actor_id
        )
        order_service.update_payment_status(assigned_order.id, PaymentStatus.PAID, actor_id)

        with pytest.raises(PaymentProposalConflictError) as exc_info:
            order_service.confirm_payment_status(assigned_order.id, proposal.id, actor_id)
        assert "moved" in exc_info.value.reason
        assert order_service.get_order(assigned_order.id).payment_status == PaymentStatus.PAID

    def test_cancel_proposal(self, paid_order, order_service, actor_id):
        proposal = order_service.propose_payment_status(
            paid_order.id, PaymentStatus.REFUNDED, actor_id
        )
        order = order_service.cancel_payment_proposal(paid_order.id, proposal.id, actor_id)
        assert order.payment_proposal is None
        assert order.payment_status == PaymentStatus.PAID

        with pytest.raises(PaymentProposalConflictError):
            order_service.confirm_payment_status(paid_order.id, proposal.id, actor_id)

    def test_refunded_is_terminal(self, paid_order, order_service, actor_id):
        proposal = order_service.propose_payment_status(
            paid_order.id, PaymentStatus.REFUNDED, actor_id
        )
        order_service.confirm_payment_status(paid_order.id, proposal.id, actor_id)
        with pytest.raises(IllegalTransitionError):
            order_service.update_payment_status(paid_order.id, PaymentStatus.PAID, actor_id)

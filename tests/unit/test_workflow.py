"""
Tests for the workflow value objects and the order, payment and invoice tables.
"""

import pytest

from market_kernel.domain.workflow import Guard, Transition, Workflow
from market_modules.invoicing.workflows import INVOICE_WORKFLOW
from market_modules.orders.workflows import ORDER_WORKFLOW, PAYMENT_WORKFLOW


class TestWorkflowValidation:

    def test_initial_state_must_exist(self):
        with pytest.raises(ValueError, match="initial state"):
            Workflow(
                name="w",
                description="",
                initial_state="start",
                states=("open",),
                transitions=(),
            )

    def test_transition_states_must_exist(self):
        with pytest.raises(ValueError, match="unknown state"):
            Workflow(
                name="w",
                description="",
                initial_state="open",
                states=("open",),
                transitions=(Transition("open", "closed", action="close"),),
            )

    def test_terminal_state_has_no_transitions(self):
        with pytest.raises(ValueError, match="terminal"):
            Workflow(
                name="w",
                description="",
                initial_state="open",
                states=("open", "closed"),
                transitions=(Transition("closed", "open", action="reopen"),),
                terminal_states=("closed",),
            )

    def test_guard_is_descriptive(self):
        guard = Guard("ready", "Document is ready")
        t = Transition("open", "closed", action="close", guard=guard)
        assert t.guard.name == "ready"
        assert not t.requires_confirmation


class TestOrderWorkflow:

    def test_initial_state(self):
        assert ORDER_WORKFLOW.initial_state == "requested"

    def test_forward_path(self):
        assert ORDER_WORKFLOW.find("requested", "supplier_assigned").action == "assign_suppliers"
        assert ORDER_WORKFLOW.find("supplier_missing", "supplier_assigned") is not None
        assert ORDER_WORKFLOW.find("supplier_assigned", "payment_requested").action == "request_payment"
        assert ORDER_WORKFLOW.find("payment_requested", "delivered").action == "mark_delivered"

    def test_guards_declared(self):
        assert ORDER_WORKFLOW.find("requested", "supplier_missing").guard.name == "some_item_unassigned"
        assert ORDER_WORKFLOW.find("payment_requested", "delivered").guard.name == "deliveries_balanced"

    def test_no_skipping_ahead(self):
        assert ORDER_WORKFLOW.find("requested", "payment_requested") is None
        assert ORDER_WORKFLOW.find("requested", "delivered") is None

    def test_no_moving_backwards(self):
        assert ORDER_WORKFLOW.find("payment_requested", "supplier_assigned") is None

    def test_hold_from_any_open_state(self):
        for state in ("requested", "supplier_missing", "supplier_assigned", "payment_requested"):
            assert ORDER_WORKFLOW.find(state, "on_hold").action == "hold"

    def test_hold_not_from_delivered_or_hold(self):
        assert ORDER_WORKFLOW.find("delivered", "on_hold") is None
        assert ORDER_WORKFLOW.find("on_hold", "on_hold") is None

    def test_resume_targets(self):
        assert set(ORDER_WORKFLOW.allowed_targets("on_hold")) == {
            "requested", "supplier_missing", "supplier_assigned", "payment_requested",
        }
        assert ORDER_WORKFLOW.find("on_hold", "delivered") is None

    def test_allowed_targets_from_requested(self):
        assert ORDER_WORKFLOW.allowed_targets("requested") == (
            "supplier_missing", "supplier_assigned", "on_hold",
        )

    def test_delivered_is_terminal(self):
        assert ORDER_WORKFLOW.is_terminal("delivered")
        assert ORDER_WORKFLOW.allowed_targets("delivered") == ()


class TestPaymentWorkflow:

    def test_payment_path(self):
        assert PAYMENT_WORKFLOW.find("pending", "requested") is not None
        assert PAYMENT_WORKFLOW.find("requested", "partially_paid") is not None
        assert PAYMENT_WORKFLOW.find("partially_paid", "paid") is not None

    def test_refunds_need_confirmation(self):
        for src, dst in (
            ("paid", "refunded"),
            ("paid", "partial_refunded"),
            ("partially_paid", "refunded"),
            ("partial_refunded", "refunded"),
        ):
            assert PAYMENT_WORKFLOW.find(src, dst).requires_confirmation

    def test_payments_do_not_need_confirmation(self):
        assert not PAYMENT_WORKFLOW.find("requested", "paid").requires_confirmation

    def test_refunded_is_terminal(self):
        assert PAYMENT_WORKFLOW.allowed_targets("refunded") == ()

    def test_pending_cannot_be_refunded(self):
        assert PAYMENT_WORKFLOW.find("pending", "refunded") is None


class TestInvoiceWorkflow:

    def test_draft_targets(self):
        assert set(INVOICE_WORKFLOW.allowed_targets("draft")) == {"sent", "cancelled", "void"}

    def test_overdue_only_after_sending(self):
        assert INVOICE_WORKFLOW.find("draft", "overdue") is None
        assert INVOICE_WORKFLOW.find("sent", "overdue") is not None
        assert INVOICE_WORKFLOW.find("partially_paid", "overdue") is not None

    def test_terminal_states(self):
        for state in ("cancelled", "void"):
            assert INVOICE_WORKFLOW.is_terminal(state)
            assert INVOICE_WORKFLOW.allowed_targets(state) == ()

    def test_paid_can_only_be_voided(self):
        assert INVOICE_WORKFLOW.allowed_targets("paid") == ("void",)

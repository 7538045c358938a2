"""
Tests for SequenceService locked-counter allocation.
"""

from market_kernel.services.sequence_service import SequenceService


class TestSequenceService:

    def test_first_value_is_one(self, session):
        seq = SequenceService(session)
        assert seq.current_value(SequenceService.INVOICE) is None
        assert seq.next_value(SequenceService.INVOICE) == 1
        assert seq.current_value(SequenceService.INVOICE) == 1

    def test_monotonic(self, session):
        seq = SequenceService(session)
        values = [seq.next_value(SequenceService.INVOICE) for _ in range(5)]
        assert values == [1, 2, 3, 4, 5]

    def test_sequences_are_independent(self, session):
        seq = SequenceService(session)
        seq.next_value(SequenceService.INVOICE)
        seq.next_value(SequenceService.INVOICE)
        assert seq.next_value(SequenceService.PURCHASE_ORDER) == 1

    def test_rollback_returns_value(self, session):
        seq = SequenceService(session)
        seq.next_value(SequenceService.INVOICE)
        session.commit()
        seq.next_value(SequenceService.INVOICE)
        session.rollback()
        assert seq.next_value(SequenceService.INVOICE) == 2

    def test_reset(self, session):
        seq = SequenceService(session)
        seq.next_value(SequenceService.INVOICE)
        seq.reset(SequenceService.INVOICE, 100)
        assert seq.next_value(SequenceService.INVOICE) == 101

    def test_reset_creates_counter(self, session):
        seq = SequenceService(session)
        seq.reset("credit_note", 10)
        assert seq.current_value("credit_note") == 10

    def test_allocation_logged(self, session, captured_logs):
        SequenceService(session).next_value(SequenceService.INVOICE)
        allocated = [r for r in captured_logs() if r["message"] == "sequence_allocated"]
        assert allocated[0]["sequence_name"] == "invoice"
        assert allocated[0]["value"] == 1

"""
Unit tests for the payment status state machine and settlement flow.
"""

from datetime import date, datetime

import pytest

from core.errors import BackendError, FormValidationError, InvalidTransitionError, SettlementPartialFailure
from core.models.document import Invoice
from core.services.document_service import DocumentSession
from core.services.payment_service import PaymentStateMachine


@pytest.fixture
def session(backend, inventory, directory, settings):
    """Saved invoice: 2 x 1000 + 1 x 500, 10% discount, tax on -> 2700."""
    s = DocumentSession.new("invoice", backend, inventory, directory, settings)
    s.select_customer(directory.get("cus-1"))
    s.add_item("inv-oil", 2)
    s.add_item("inv-filter", 1)
    s.set_discount_input("10")
    s.set_apply_tax(True)
    s.save()
    return s


@pytest.fixture
def machine(session):
    return session.payments()


def _stored(backend, session):
    return backend.get_document("invoice", session.document.id)


class TestTransitions:
    """Tests for status transitions without settlement."""

    def test_total_is_reference_amount(self, session):
        assert session.document.total_amount == pytest.approx(2700)

    def test_pending_to_rejected_persists(self, machine, backend, session):
        assert machine.request_status("Rejected") is None
        assert session.document.payment_status == "Rejected"
        assert _stored(backend, session)["paymentStatus"] == "Rejected"

    def test_rejected_back_to_pending(self, machine, session):
        machine.request_status("Rejected")
        machine.request_status("Pending")
        assert session.document.payment_status == "Pending"

    def test_unsaved_invoice_cannot_change_status(self, backend):
        m = PaymentStateMachine(Invoice(), backend)
        with pytest.raises(FormValidationError):
            m.request_status("Rejected")

    def test_unsaved_edits_block_status_change(self, machine, backend, session):
        session.add_item("inv-oil", 1)
        assert session.dirty

        with pytest.raises(FormValidationError) as exc:
            machine.request_status("Completed")

        assert "invoice" in exc.value.errors
        assert "next_transaction_id" not in backend.calls
        assert session.document.payment_status == "Pending"

        session.save()
        assert machine.request_status("Completed").details.amount == pytest.approx(session.document.total_amount)

    def test_backend_failure_keeps_status(self, machine, backend, session):
        backend.fail("update_payment_status")
        with pytest.raises(BackendError):
            machine.request_status("Rejected")
        assert session.document.payment_status == "Pending"
        assert machine.is_processing is False


class TestSettlement:
    """Tests for the Completed transition and payment capture."""

    def test_entering_completed_fetches_transaction_id(self, machine, backend, session):
        flow = machine.request_status("Completed")

        assert flow.transaction_id == "TRX-2026-0001"
        assert "next_transaction_id" in backend.calls
        assert session.document.payment_status == "Completed"
        assert backend.transactions == []

    def test_transaction_id_failure_leaves_pending(self, machine, backend, session):
        backend.fail("next_transaction_id")
        with pytest.raises(BackendError):
            machine.request_status("Completed")
        assert session.document.payment_status == "Pending"
        assert machine.flow is None

    def test_cash_autofill(self, machine):
        flow = machine.request_status("Completed")
        flow.select_method("Card")
        flow.select_method("Cash")

        d = flow.details
        assert d.bank_name == "N/A"
        assert d.account_number == "N/A"
        assert d.transaction_ref.startswith("CASH-")
        assert d.transaction_ref[5:].isdigit()
        assert flow.validate() == {}

    def test_cash_reference_uses_clock(self, session, backend):
        m = PaymentStateMachine(session.document, backend, clock=lambda: datetime(2026, 1, 1, 0, 0, 1))
        flow = m.request_status("Completed")
        flow.select_method("Cash")
        assert flow.details.transaction_ref == f"CASH-{int(datetime(2026, 1, 1, 0, 0, 1).timestamp() * 1000)}"

    def test_amount_mismatch_rejected_before_any_write(self, machine, backend):
        flow = machine.request_status("Completed")
        flow.update(amount=2700.02)

        with pytest.raises(FormValidationError) as exc:
            flow.confirm()

        assert exc.value.errors["amount"] == "Amount must match invoice amount (LKR 2700.00)"
        assert "create_transaction" not in backend.calls

    def test_amount_within_tolerance_accepted(self, machine, backend):
        flow = machine.request_status("Completed")
        flow.update(amount=2700.005)
        flow.confirm()
        assert len(backend.transactions) == 1

    @pytest.mark.parametrize("amount", [0, -5, None])
    def test_amount_must_be_positive(self, machine, amount):
        flow = machine.request_status("Completed")
        flow.update(amount=amount)
        assert flow.validate()["amount"] == "Amount must be greater than 0"

    def test_date_required(self, machine):
        flow = machine.request_status("Completed")
        flow.update(transaction_date=None)
        assert flow.validate()["transaction_date"] == "Transaction date is required"

    def test_bank_transfer_requires_bank_fields(self, machine):
        flow = machine.request_status("Completed")
        flow.select_method("Bank Transfer")

        errors = flow.validate()
        assert errors["bank_name"] == "Bank name is required"
        assert errors["account_number"] == "Account number is required"
        assert errors["transaction_ref"] == "Transaction reference is required"

    def test_card_requires_reference_only(self, machine):
        flow = machine.request_status("Completed")
        flow.select_method("Card")
        flow.update(transaction_ref="AUTH-991")
        assert flow.validate() == {}

    def test_successful_settlement(self, machine, backend, session):
        flow = machine.request_status("Completed")
        flow.update(method="Bank Deposit", bank_name="BOC", account_number="0012345", transaction_ref="DEP-1",
                    transaction_date=date(2026, 3, 2))
        tx = flow.confirm()

        assert session.document.payment_status == "Completed"
        assert _stored(backend, session)["paymentStatus"] == "Completed"
        assert machine.flow is None
        payload = backend.transactions[0]
        assert payload["transactionId"] == tx.transaction_id
        assert payload["amount"] == "2700.00"
        assert payload["invoice"] == {"invoiceId": session.document.document_id}
        assert payload["paymentMethod"]["type"] == "Bank Deposit"
        assert payload["transactionDate"].startswith("2026-03-02")

    def test_transaction_failure_keeps_flow_open(self, machine, backend, session):
        backend.fail("create_transaction")
        flow = machine.request_status("Completed")

        with pytest.raises(BackendError):
            flow.confirm()

        assert backend.transactions == []
        assert machine.flow is flow
        assert machine.is_processing is False

    def test_partial_failure_and_retry(self, machine, backend, session):
        """Transaction written, status update failed: retry only the status update."""
        backend.fail("update_payment_status", "Gateway timeout")
        flow = machine.request_status("Completed")

        with pytest.raises(SettlementPartialFailure) as exc:
            flow.confirm()

        assert exc.value.transaction.transaction_id == flow.transaction_id
        assert session.document.payment_status == "Pending"
        assert machine.orphaned_transaction is not None
        assert len(backend.transactions) == 1

        backend.recover("update_payment_status")
        flow.confirm()

        assert len(backend.transactions) == 1
        assert backend.calls.count("create_transaction") == 1
        assert session.document.payment_status == "Completed"
        assert machine.orphaned_transaction is None

    def test_retry_status_update_entry_point(self, machine, backend, session):
        backend.fail("update_payment_status")
        flow = machine.request_status("Completed")
        with pytest.raises(SettlementPartialFailure):
            flow.confirm()

        backend.recover("update_payment_status")
        machine.retry_status_update()
        assert session.document.payment_status == "Completed"

    def test_reopening_completed_after_partial_failure_returns_same_flow(self, machine, backend):
        backend.fail("update_payment_status")
        flow = machine.request_status("Completed")
        with pytest.raises(SettlementPartialFailure):
            flow.confirm()

        assert machine.request_status("Completed") is flow

    def test_cancel_before_transaction_reverts(self, machine, backend, session):
        flow = machine.request_status("Completed")
        flow.cancel()

        assert session.document.payment_status == "Pending"
        assert machine.flow is None
        assert "create_transaction" not in backend.calls

    def test_completed_after_cancelled_partial_failure_reuses_transaction(self, machine, backend, session):
        """Closing the dialog after a partial failure must not record the payment twice."""
        backend.fail("update_payment_status")
        flow = machine.request_status("Completed")
        flow.update(method="Card", transaction_ref="AUTH-771")
        with pytest.raises(SettlementPartialFailure):
            flow.confirm()
        flow.cancel()
        assert machine.flow is None
        assert session.document.payment_status == "Pending"

        backend.recover("update_payment_status")
        resumed = machine.request_status("Completed")

        assert resumed.awaiting_status_update
        assert resumed.transaction_id == flow.transaction_id
        assert resumed.details.method == "Card"
        assert resumed.details.transaction_ref == "AUTH-771"
        resumed.confirm()

        assert backend.calls.count("next_transaction_id") == 1
        assert backend.calls.count("create_transaction") == 1
        assert len(backend.transactions) == 1
        assert session.document.payment_status == "Completed"
        assert session.document.payment_method == "Card"
        assert machine.orphaned_transaction is None

    def test_retry_status_update_after_dialog_closed(self, machine, backend, session):
        backend.fail("update_payment_status")
        flow = machine.request_status("Completed")
        with pytest.raises(SettlementPartialFailure):
            flow.confirm()
        flow.cancel()

        backend.recover("update_payment_status")
        tx = machine.retry_status_update()

        assert tx.transaction_id == flow.transaction_id
        assert backend.calls.count("create_transaction") == 1
        assert session.document.payment_status == "Completed"

    def test_cancelling_resumed_flow_stays_pending(self, machine, backend, session):
        backend.fail("update_payment_status")
        flow = machine.request_status("Completed")
        with pytest.raises(SettlementPartialFailure):
            flow.confirm()
        flow.cancel()

        machine.request_status("Completed").cancel()

        assert session.document.payment_status == "Pending"
        assert machine.orphaned_transaction is not None


class TestLeavingCompleted:
    """Tests for the Completed -> Pending rollback rules."""

    @pytest.fixture
    def settled(self, machine):
        flow = machine.request_status("Completed")
        flow.confirm()
        return machine

    def test_completed_to_rejected_invalid(self, settled):
        with pytest.raises(InvalidTransitionError):
            settled.request_status("Rejected")

    def test_completed_to_pending_needs_reopen(self, settled, session):
        with pytest.raises(InvalidTransitionError):
            settled.request_status("Pending")
        assert session.document.payment_status == "Completed"

    def test_reopen_keeps_transaction(self, settled, backend, session):
        settled.request_status("Pending", reopen=True)

        assert session.document.payment_status == "Pending"
        assert len(backend.transactions) == 1
        assert settled.transaction is not None

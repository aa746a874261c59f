"""
Widget tests for the customer form and the payment dialog (offscreen Qt).
"""

import pytest

pytest.importorskip("pytestqt")

from core.errors import SettlementPartialFailure  # noqa: E402
from core.models.document import Invoice  # noqa: E402
from core.services.customer_service import CustomerResolver  # noqa: E402
from core.services.document_service import DocumentSession  # noqa: E402
from ui.widgets.customer_form import CustomerForm  # noqa: E402
from ui.widgets.payment_dialog import PaymentDialog  # noqa: E402


class TestCustomerForm:
    """Tests for the create/edit customer dialog."""

    def test_prefills_phone_from_search(self, qtbot, directory):
        form = CustomerForm(CustomerResolver(Invoice(), directory), search_term="0771112223")
        qtbot.addWidget(form)
        assert form.ed_phone.text() == "0771112223"
        assert form.ed_name.text() == ""

    def test_prefills_name_from_search(self, qtbot, directory):
        form = CustomerForm(CustomerResolver(Invoice(), directory), search_term="Sunil Fernando")
        qtbot.addWidget(form)
        assert form.ed_name.text() == "Sunil Fernando"

    def test_missing_fields_shown_inline(self, qtbot, directory, backend):
        form = CustomerForm(CustomerResolver(Invoice(), directory), search_term="Sunil Fernando")
        qtbot.addWidget(form)
        form._save()

        assert "required" in form.lab_error.text()
        assert form.saved is None
        assert "create_customer" not in backend.calls

    def test_edit_prefills_existing(self, qtbot, directory):
        customer = directory.get("cus-1")
        form = CustomerForm(CustomerResolver(Invoice(), directory), customer=customer)
        qtbot.addWidget(form)
        assert form.ed_email.text() == "nimal.perera@gmail.com"
        assert form.ed_city.text() == "Colombo"


class TestPaymentDialog:
    """Tests for the settlement dialog."""

    @pytest.fixture
    def flow(self, backend, inventory, directory, settings):
        s = DocumentSession.new("invoice", backend, inventory, directory, settings)
        s.select_customer(directory.get("cus-1"))
        s.add_item("inv-oil", 2)
        s.add_item("inv-filter", 1)
        s.set_discount_input("10")
        s.set_apply_tax(True)
        s.save()
        return s.payments().request_status("Completed")

    def test_cash_fields_autofilled(self, qtbot, flow):
        dlg = PaymentDialog(flow)
        qtbot.addWidget(dlg)
        assert dlg.ed_bank.text() == "N/A"
        assert dlg.ed_account.text() == "N/A"
        assert dlg.ed_ref.text().startswith("CASH-")

    def test_switching_method_clears_cash_values(self, qtbot, flow):
        dlg = PaymentDialog(flow)
        qtbot.addWidget(dlg)
        dlg.cb_method.setCurrentText("Bank Transfer")
        assert dlg.ed_bank.text() == ""
        assert dlg.ed_ref.text() == ""

    def test_confirm_records_transaction(self, qtbot, flow, backend):
        dlg = PaymentDialog(flow)
        qtbot.addWidget(dlg)
        dlg._confirm()

        assert dlg.transaction is not None
        assert backend.transactions[0]["amount"] == "2700.00"
        assert flow.invoice.payment_status == "Completed"

    def test_wrong_amount_shows_error(self, qtbot, flow, backend):
        dlg = PaymentDialog(flow)
        qtbot.addWidget(dlg)
        dlg.sp_amount.setValue(2600)
        dlg._confirm()

        assert dlg.transaction is None
        assert dlg._errors["amount"].text() == "Amount must match invoice amount (LKR 2700.00)"
        assert backend.transactions == []

    def test_cancel_reverts_status(self, qtbot, flow):
        dlg = PaymentDialog(flow)
        qtbot.addWidget(dlg)
        dlg.reject()
        assert flow.invoice.payment_status == "Pending"

    def test_reopened_after_partial_failure_only_retries_status(self, qtbot, flow, backend):
        machine = flow.machine
        backend.fail("update_payment_status")
        with pytest.raises(SettlementPartialFailure):
            flow.confirm()
        flow.cancel()
        backend.recover("update_payment_status")

        dlg = PaymentDialog(machine.request_status("Completed"))
        qtbot.addWidget(dlg)
        assert dlg.btn_confirm.text() == "Retry status update"
        assert not dlg.sp_amount.isEnabled()

        dlg._confirm()

        assert dlg.transaction.transaction_id == flow.transaction_id
        assert len(backend.transactions) == 1
        assert machine.invoice.payment_status == "Completed"

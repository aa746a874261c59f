from __future__ import annotations
from PySide6.QtWidgets import (
    QDialog, QVBoxLayout, QFormLayout, QComboBox, QDoubleSpinBox, QDialogButtonBox,
    QDateEdit, QLineEdit, QLabel, QMessageBox, QPushButton
)
from PySide6.QtCore import QDate
from typing import Dict, Optional

from core.errors import BackendError, FormValidationError, OperationInProgressError, SettlementPartialFailure
from core.models.document import PAYMENT_METHODS
from core.models.payment import PaymentTransaction
from core.services.payment_service import SettlementFlow
from core.services.totals import format_money


class PaymentDialog(QDialog):
    """Captures the settlement of an invoice moved to Completed."""

    def __init__(self, flow: SettlementFlow, parent=None, currency: str = "LKR"):
        super().__init__(parent)
        self.flow = flow
        self.transaction: Optional[PaymentTransaction] = None
        inv = flow.invoice
        self.setWindowTitle(f"Payment - {inv.document_id}")
        self.setModal(True)

        self.cb_method = QComboBox()
        self.cb_method.addItems(list(PAYMENT_METHODS))
        self.cb_method.setCurrentText(flow.details.method)

        self.sp_amount = QDoubleSpinBox()
        self.sp_amount.setRange(0, 1e12)
        self.sp_amount.setDecimals(2)
        self.sp_amount.setValue(flow.details.amount or 0)

        self.dt_paid = QDateEdit()
        self.dt_paid.setCalendarPopup(True)
        self.dt_paid.setDate(QDate.currentDate())

        self.ed_bank = QLineEdit()
        self.ed_account = QLineEdit()
        self.ed_ref = QLineEdit()

        self._errors: Dict[str, QLabel] = {}
        form = QFormLayout()
        form.addRow(QLabel(f"Invoice total: {format_money(inv.total_amount, currency)}"))
        form.addRow("Payment method", self.cb_method)
        self._add_row(form, "Amount", self.sp_amount, "amount")
        self._add_row(form, "Transaction date", self.dt_paid, "transaction_date")
        self._add_row(form, "Bank name", self.ed_bank, "bank_name")
        self._add_row(form, "Account number", self.ed_account, "account_number")
        self._add_row(form, "Transaction reference", self.ed_ref, "transaction_ref")

        self.btns = QDialogButtonBox(QDialogButtonBox.Cancel)
        self.btn_confirm: QPushButton = self.btns.addButton("Confirm payment", QDialogButtonBox.AcceptRole)
        self.btns.accepted.connect(self._confirm)
        self.btns.rejected.connect(self.reject)

        lay = QVBoxLayout(self)
        lay.addLayout(form)
        lay.addWidget(self.btns)

        self.cb_method.currentTextChanged.connect(self._method_changed)
        self._sync_from_flow()
        if flow.awaiting_status_update:
            self.sp_amount.setValue(flow.details.amount or 0)
            d = flow.details.transaction_date
            self.dt_paid.setDate(QDate(d.year, d.month, d.day))
            self._retry_mode()

    def _add_row(self, form: QFormLayout, label: str, widget, key: str):
        err = QLabel()
        err.setStyleSheet("color: #c0392b; font-size: 11px;")
        err.hide()
        self._errors[key] = err
        form.addRow(label, widget)
        form.addRow("", err)

    def _method_changed(self, method: str):
        self.flow.select_method(method)
        self._sync_from_flow()

    def _sync_from_flow(self):
        d = self.flow.details
        self.ed_bank.setText(d.bank_name)
        self.ed_account.setText(d.account_number)
        self.ed_ref.setText(d.transaction_ref)
        self._show_errors(self.flow.errors)

    def _show_errors(self, errors: Dict[str, str]):
        for key, lab in self._errors.items():
            msg = errors.get(key)
            lab.setText(msg or "")
            lab.setVisible(bool(msg))

    def _push_to_flow(self):
        self.flow.update(
            amount=float(self.sp_amount.value()),
            transaction_date=self.dt_paid.date().toPython(),
            bank_name=self.ed_bank.text().strip(),
            account_number=self.ed_account.text().strip(),
            transaction_ref=self.ed_ref.text().strip(),
        )

    def _retry_mode(self):
        # transaction exists; only the status update is retried from here
        self.btn_confirm.setText("Retry status update")
        for w in (self.cb_method, self.sp_amount, self.dt_paid, self.ed_bank, self.ed_account, self.ed_ref):
            w.setEnabled(False)

    def _confirm(self):
        if not self.flow.awaiting_status_update:
            self._push_to_flow()
        self.btns.setEnabled(False)
        try:
            self.transaction = self.flow.confirm()
        except FormValidationError as e:
            self._show_errors(e.errors)
            return
        except SettlementPartialFailure as e:
            self._retry_mode()
            QMessageBox.warning(self, "Payment", e.message)
            return
        except (BackendError, OperationInProgressError) as e:
            QMessageBox.warning(self, "Payment", e.message)
            return
        finally:
            self.btns.setEnabled(True)
        self.accept()

    def reject(self):
        self.flow.cancel()
        super().reject()

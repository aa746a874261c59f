from __future__ import annotations
import logging
from datetime import date, datetime
from typing import Callable, Dict, Optional

from core.errors import (
    BackendError,
    FormValidationError,
    InvalidTransitionError,
    SettlementPartialFailure,
)
from core.models.document import Invoice, PaymentStatus
from core.models.payment import BANK_METHODS, CASH, NOT_APPLICABLE, PaymentDetails, PaymentTransaction
from core.services.gate import BusyGate
from core.services.totals import format_money
from core.storage.backend import Backend

log = logging.getLogger(__name__)

AMOUNT_TOLERANCE = 0.01

# Completed -> Pending is only reachable as a rollback or an explicit reopen
TRANSITIONS: Dict[str, frozenset] = {
    "Pending": frozenset({"Completed", "Rejected"}),
    "Rejected": frozenset({"Pending", "Completed"}),
    "Completed": frozenset({"Pending"}),
}


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


class SettlementFlow:
    """
    Payment capture opened when an invoice is moved to Completed.
    The transaction id is fetched when the flow opens; nothing is written
    until confirm().
    """

    def __init__(self, machine: "PaymentStateMachine", transaction_id: str, previous_status: str):
        self.machine = machine
        self.transaction_id = transaction_id
        self.previous_status = previous_status
        self.transaction: Optional[PaymentTransaction] = None
        self.errors: Dict[str, str] = {}
        inv = machine.invoice
        self.details = PaymentDetails(
            method=inv.payment_method or CASH,
            amount=inv.total_amount,
            transaction_date=date.today(),
        )
        self.select_method(self.details.method)

    @property
    def invoice(self) -> Invoice:
        return self.machine.invoice

    @property
    def awaiting_status_update(self) -> bool:
        return self.transaction is not None

    def select_method(self, method: str) -> PaymentDetails:
        d = self.details
        d.method = method
        if method == CASH:
            d.bank_name = NOT_APPLICABLE
            d.account_number = NOT_APPLICABLE
            d.transaction_ref = f"CASH-{int(self.machine.clock().timestamp() * 1000)}"
            self.errors = {}
        else:
            if d.bank_name == NOT_APPLICABLE:
                d.bank_name = ""
            if d.account_number == NOT_APPLICABLE:
                d.account_number = ""
            if d.transaction_ref.startswith("CASH-"):
                d.transaction_ref = ""
        return d

    def update(self, **fields) -> PaymentDetails:
        for k, v in fields.items():
            if k == "method":
                self.select_method(v)
            else:
                setattr(self.details, k, v)
        return self.details

    def validate(self) -> Dict[str, str]:
        d = self.details
        total = self.invoice.total_amount
        errors: Dict[str, str] = {}
        if not d.transaction_date:
            errors["transaction_date"] = "Transaction date is required"
        if d.amount is None or d.amount <= 0:
            errors["amount"] = "Amount must be greater than 0"
        elif abs(d.amount - total) > AMOUNT_TOLERANCE + 1e-9:
            errors["amount"] = f"Amount must match invoice amount ({format_money(total)})"
        if d.method != CASH:
            if not d.transaction_ref.strip():
                errors["transaction_ref"] = "Transaction reference is required"
            if d.method in BANK_METHODS:
                if not d.bank_name.strip():
                    errors["bank_name"] = "Bank name is required"
                if not d.account_number.strip():
                    errors["account_number"] = "Account number is required"
        self.errors = errors
        return errors

    def confirm(self) -> PaymentTransaction:
        return self.machine.confirm(self)

    def cancel(self) -> None:
        self.machine.cancel(self)


class PaymentStateMachine:
    """Payment status of one saved invoice, with the settlement side effects."""

    def __init__(
        self,
        invoice: Invoice,
        backend: Backend,
        clock: Callable[[], datetime] = datetime.now,
        has_unsaved_changes: Callable[[], bool] = lambda: False,
    ):
        self.invoice = invoice
        self.backend = backend
        self.clock = clock
        self.has_unsaved_changes = has_unsaved_changes
        self.gate = BusyGate("payment")
        self.flow: Optional[SettlementFlow] = None
        self.transaction: Optional[PaymentTransaction] = None
        self.orphaned_transaction: Optional[PaymentTransaction] = None

    @property
    def status(self) -> PaymentStatus:
        return self.invoice.payment_status

    @property
    def is_processing(self) -> bool:
        return self.gate.is_processing

    def request_status(self, target: PaymentStatus, *, reopen: bool = False) -> Optional[SettlementFlow]:
        """
        Move to `target`. Returns the SettlementFlow when target is Completed,
        None otherwise. Leaving a settled invoice needs reopen=True.
        """
        if self.flow is not None:
            if target == "Completed":
                return self.flow
            self.cancel(self.flow)

        current = self.invoice.payment_status
        if target == current:
            return None
        if not can_transition(current, target):
            raise InvalidTransitionError(current, target)
        if not self.invoice.id or self.has_unsaved_changes():
            raise FormValidationError({"invoice": "Save the invoice before changing its payment status"})

        if target == "Completed" and self.orphaned_transaction is not None:
            # the payment is already recorded; only the status update is left
            return self._resume(self.orphaned_transaction, previous_status=current)

        if target == "Completed":
            with self.gate.hold():
                tx_id = self.backend.next_transaction_id()
            self.flow = SettlementFlow(self, tx_id, previous_status=current)
            self.invoice.payment_status = "Completed"
            log.debug("Settlement opened for %s with %s", self.invoice.document_id, tx_id)
            return self.flow

        if current == "Completed":
            if not reopen:
                raise InvalidTransitionError(current, target)
            log.warning(
                "Reopening settled invoice %s; transaction %s stays recorded",
                self.invoice.document_id, self.transaction.transaction_id if self.transaction else "?",
            )

        with self.gate.hold():
            self.backend.update_payment_status(self.invoice.id, target)
        self.invoice.payment_status = target
        return None

    def confirm(self, flow: SettlementFlow) -> PaymentTransaction:
        """
        Validate, record the transaction, then persist the Completed status.
        A second call after a partial failure only retries the status update.
        """
        with self.gate.hold():
            if flow.transaction is not None:
                self._push_completed(flow)
                return flow.transaction

            errors = flow.validate()
            if errors:
                raise FormValidationError(errors)

            d = flow.details
            tx = PaymentTransaction(
                transaction_id=flow.transaction_id,
                method=d.method,
                bank_name=d.bank_name,
                account_number=d.account_number,
                transaction_ref=d.transaction_ref,
                amount=float(d.amount),
                transaction_date=datetime.combine(d.transaction_date, self.clock().time()),
                document_ref=self.invoice.document_id,
            )
            self.backend.create_transaction(tx.to_backend())
            flow.transaction = tx
            self.transaction = tx
            log.info("Transaction %s recorded for %s", tx.transaction_id, self.invoice.document_id)
            self._push_completed(flow)
            return tx

    def retry_status_update(self) -> PaymentTransaction:
        flow = self.flow
        if (flow is None or flow.transaction is None) and self.orphaned_transaction is not None:
            flow = self._resume(self.orphaned_transaction, previous_status=self.invoice.payment_status)
        if flow is None or flow.transaction is None:
            raise InvalidTransitionError(self.invoice.payment_status, "Completed")
        return self.confirm(flow)

    def _resume(self, tx: PaymentTransaction, previous_status: str) -> SettlementFlow:
        """Flow bound to an already recorded transaction; confirm() only pushes the status."""
        flow = SettlementFlow(self, tx.transaction_id, previous_status=previous_status)
        flow.update(
            method=tx.method,
            bank_name=tx.bank_name,
            account_number=tx.account_number,
            transaction_ref=tx.transaction_ref,
            amount=tx.amount,
            transaction_date=tx.transaction_date.date(),
        )
        flow.transaction = tx
        self.flow = flow
        self.transaction = tx
        self.invoice.payment_status = "Completed"
        log.info("Resuming status update for %s with recorded %s", self.invoice.document_id, tx.transaction_id)
        return flow

    def cancel(self, flow: SettlementFlow) -> None:
        if flow.transaction is None or flow.transaction is self.orphaned_transaction:
            self.invoice.payment_status = "Pending"
        if flow.transaction is not None:
            log.warning(
                "Settlement closed with transaction %s recorded but %s still %s",
                flow.transaction.transaction_id, self.invoice.document_id, self.invoice.payment_status,
            )
        if self.flow is flow:
            self.flow = None

    def _push_completed(self, flow: SettlementFlow) -> None:
        try:
            self.backend.update_payment_status(self.invoice.id, "Completed")
        except BackendError as e:
            self.invoice.payment_status = "Pending"
            self.orphaned_transaction = flow.transaction
            log.error("Status update failed after %s was recorded: %s", flow.transaction.transaction_id, e.message)
            raise SettlementPartialFailure(flow.transaction, e) from e
        self.invoice.payment_status = "Completed"
        self.invoice.payment_method = flow.details.method
        self.orphaned_transaction = None
        if self.flow is flow:
            self.flow = None

from __future__ import annotations
import logging
from typing import Optional

from PySide6.QtWidgets import (
    QWidget, QDialog, QVBoxLayout, QFormLayout, QHBoxLayout, QComboBox, QTextEdit, QLineEdit,
    QPushButton, QTableWidget, QTableWidgetItem, QHeaderView, QSpinBox, QDoubleSpinBox,
    QLabel, QDateEdit, QCheckBox, QListWidget, QListWidgetItem, QMessageBox, QProgressBar,
    QGroupBox, QScrollArea
)
from PySide6.QtCore import Qt, QDate
from PySide6.QtGui import QPixmap

from core.errors import (
    BackendError, ErpError, FormValidationError, InvalidTransitionError,
    OperationInProgressError, RenderError, StockExceededError
)
from core.models.document import PAYMENT_METHODS, Invoice, Quotation
from core.rendering.export import ExportPipeline
from core.services.document_service import DocumentSession
from core.services.totals import format_money
from ui.widgets.customer_form import CustomerForm
from ui.widgets.payment_dialog import PaymentDialog

log = logging.getLogger(__name__)

COL_NAME, COL_QTY, COL_PRICE, COL_TOTAL = range(4)


def _qdate(d) -> QDate:
    return QDate(d.year, d.month, d.day)


class PreviewDialog(QDialog):
    def __init__(self, image, parent=None):
        super().__init__(parent)
        self.setWindowTitle("Preview")
        lab = QLabel()
        lab.setPixmap(QPixmap.fromImage(image))
        area = QScrollArea()
        area.setWidget(lab)
        lay = QVBoxLayout(self)
        lay.addWidget(area)
        self.resize(min(image.width() + 40, 900), min(image.height() + 40, 1000))


class DocumentEditor(QWidget):
    """Editor for one invoice or quotation, hosted in a main window tab."""

    def __init__(self, session: DocumentSession, exporter: ExportPipeline, parent=None):
        super().__init__(parent)
        self.session = session
        self.exporter = exporter
        self.currency = session.settings.currency
        self._loading = False
        doc = session.document
        is_invoice = isinstance(doc, Invoice)

        # ----- banner / busy ----- #
        self.lab_banner = QLabel()
        self.lab_banner.setStyleSheet("background: #fdecea; color: #c0392b; padding: 6px;")
        self.btn_dismiss = QPushButton("Dismiss")
        self.btn_dismiss.clicked.connect(self._dismiss_banner)
        banner = QHBoxLayout()
        banner.addWidget(self.lab_banner, 1)
        banner.addWidget(self.btn_dismiss)
        self.busy = QProgressBar()
        self.busy.setRange(0, 0)
        self.busy.hide()
        self.exporter.on_busy_changed(self._busy_changed)

        # ----- customer ----- #
        self.ed_customer_search = QLineEdit()
        self.ed_customer_search.setPlaceholderText("Search customer by name, phone or email")
        self.lst_customers = QListWidget()
        self.lst_customers.setMaximumHeight(90)
        self.lab_customer = QLabel("No customer selected")
        btn_new_customer = QPushButton("New customer")
        btn_edit_customer = QPushButton("Edit")
        btn_clear_customer = QPushButton("Clear")
        self.ed_customer_search.textEdited.connect(self._search_customers)
        self.lst_customers.itemClicked.connect(self._pick_customer)
        btn_new_customer.clicked.connect(self._new_customer)
        btn_edit_customer.clicked.connect(self._edit_customer)
        btn_clear_customer.clicked.connect(self._clear_customer)

        cust_bar = QHBoxLayout()
        cust_bar.addWidget(self.lab_customer, 1)
        cust_bar.addWidget(btn_new_customer)
        cust_bar.addWidget(btn_edit_customer)
        cust_bar.addWidget(btn_clear_customer)
        box_customer = QGroupBox("Customer")
        lay_c = QVBoxLayout(box_customer)
        lay_c.addWidget(self.ed_customer_search)
        lay_c.addWidget(self.lst_customers)
        lay_c.addLayout(cust_bar)

        # ----- add item ----- #
        self.ed_item_search = QLineEdit()
        self.ed_item_search.setPlaceholderText("Search item by name, code, brand or model")
        self.cb_item = QComboBox()
        self.sp_qty = QSpinBox()
        self.sp_qty.setRange(1, 1_000_000)
        self.sp_price = QDoubleSpinBox()
        self.sp_price.setRange(0, 1e12)
        self.sp_price.setDecimals(2)
        self.sp_price.setEnabled(is_invoice)
        self.lab_stock = QLabel()
        self.lab_stock.setStyleSheet("color: #d35400;")
        btn_add = QPushButton("Add item")
        self.ed_item_search.textEdited.connect(self._search_items)
        self.cb_item.currentIndexChanged.connect(self._item_changed)
        self.sp_qty.valueChanged.connect(self._update_stock_warning)
        btn_add.clicked.connect(self._add_item)

        add_bar = QHBoxLayout()
        add_bar.addWidget(self.cb_item, 1)
        add_bar.addWidget(QLabel("Qty"))
        add_bar.addWidget(self.sp_qty)
        add_bar.addWidget(QLabel("Unit price"))
        add_bar.addWidget(self.sp_price)
        add_bar.addWidget(btn_add)
        box_items = QGroupBox("Items")
        lay_i = QVBoxLayout(box_items)
        lay_i.addWidget(self.ed_item_search)
        lay_i.addLayout(add_bar)
        lay_i.addWidget(self.lab_stock)

        self.tbl = QTableWidget(0, 4)
        self.tbl.setHorizontalHeaderLabels(["Description", "Qty", "Unit price", "Total"])
        self.tbl.horizontalHeader().setSectionResizeMode(QHeaderView.Stretch)
        self.tbl.setSelectionBehavior(self.tbl.SelectionBehavior.SelectRows)
        self.tbl.itemChanged.connect(self._cell_edited)
        btn_del = QPushButton("Remove item")
        btn_del.clicked.connect(self._del_line)
        lay_i.addWidget(self.tbl)
        lay_i.addWidget(btn_del, 0, Qt.AlignmentFlag.AlignLeft)

        # ----- document fields ----- #
        self.ed_issue = QDateEdit(); self.ed_issue.setCalendarPopup(True)
        self.ed_term = QDateEdit(); self.ed_term.setCalendarPopup(True)
        self.cb_method = QComboBox(); self.cb_method.addItems(list(PAYMENT_METHODS))
        self.ed_discount = QLineEdit()
        self.chk_tax = QCheckBox(f"Apply tax ({session.settings.tax_rate * 100:g}%)")
        self.chk_tax.setVisible(is_invoice)
        self.ed_notes = QTextEdit()
        self.ed_notes.setMaximumHeight(70)
        self.cb_status = QComboBox()
        if is_invoice:
            self.cb_status.addItems(["Pending", "Completed", "Rejected"])
        else:
            self.cb_status.addItems(["Pending", "Accepted", "Rejected", "Expired"])

        self.ed_issue.dateChanged.connect(lambda qd: self._set_field(issue_date=qd.toPython()))
        self.ed_term.dateChanged.connect(self._term_changed)
        self.cb_method.currentTextChanged.connect(lambda t: self._set_field(payment_method=t))
        self.ed_discount.textEdited.connect(self._discount_edited)
        self.ed_discount.editingFinished.connect(self._discount_committed)
        self.chk_tax.toggled.connect(self._tax_toggled)
        self.ed_notes.textChanged.connect(lambda: self._set_field(notes=self.ed_notes.toPlainText().strip() or None))
        self.cb_status.activated.connect(self._status_requested)

        fields = QFormLayout()
        fields.addRow("Issue date", self.ed_issue)
        fields.addRow("Due date" if is_invoice else "Valid until", self.ed_term)
        fields.addRow("Payment method", self.cb_method)
        fields.addRow("Discount (%)", self.ed_discount)
        fields.addRow("", self.chk_tax)
        fields.addRow("Notes", self.ed_notes)
        fields.addRow("Payment status" if is_invoice else "Status", self.cb_status)

        self.lab_totals = QLabel()
        self.lab_totals.setAlignment(Qt.AlignmentFlag.AlignRight)

        # ----- actions ----- #
        btn_save = QPushButton("Save")
        self.btn_preview = QPushButton("Preview")
        self.btn_download = QPushButton("Download PDF")
        self.btn_print = QPushButton("Print")
        btn_save.clicked.connect(self._save)
        self.btn_preview.clicked.connect(self._preview)
        self.btn_download.clicked.connect(self._download)
        self.btn_print.clicked.connect(self._print)
        actions = QHBoxLayout()
        actions.addWidget(btn_save)
        actions.addStretch(1)
        actions.addWidget(self.btn_preview)
        actions.addWidget(self.btn_download)
        actions.addWidget(self.btn_print)

        lay = QVBoxLayout(self)
        lay.addLayout(banner)
        lay.addWidget(self.busy)
        lay.addWidget(box_customer)
        lay.addWidget(box_items, 1)
        lay.addLayout(fields)
        lay.addWidget(self.lab_totals)
        lay.addLayout(actions)

        self._fill_from_document()

    # -------- UI helpers --------
    def _fill_from_document(self):
        self._loading = True
        doc = self.session.document
        self.ed_issue.setDate(_qdate(doc.issue_date))
        self.ed_term.setDate(_qdate(doc.due_date if isinstance(doc, Invoice) else doc.valid_until))
        self.cb_method.setCurrentText(doc.payment_method or "Cash")
        self.ed_discount.setText(self.session.discount.raw_input)
        if isinstance(doc, Invoice):
            self.chk_tax.setChecked(doc.apply_tax)
        self.ed_notes.setPlainText(doc.notes or "")
        self._loading = False
        self._refresh_customer()
        self._refresh_table()
        self._refresh_status()
        self._show_banner(None)

    def _refresh_customer(self):
        c = self.session.document.customer_snapshot
        self.lab_customer.setText(f"{c.full_name} ({c.phone or c.email or '-'})" if c else "No customer selected")

    def _refresh_status(self):
        doc = self.session.document
        self.cb_status.setCurrentText(doc.payment_status if isinstance(doc, Invoice) else doc.status)

    def _refresh_table(self):
        self._loading = True
        doc = self.session.document
        warnings = self.session.items.warnings()
        self.tbl.setRowCount(0)
        for li in doc.items:
            r = self.tbl.rowCount()
            self.tbl.insertRow(r)
            name = QTableWidgetItem(li.item_name)
            name.setData(Qt.ItemDataRole.UserRole, li.id)
            name.setFlags(name.flags() & ~Qt.ItemFlag.ItemIsEditable)
            if li.id in warnings:
                name.setToolTip(warnings[li.id])
                name.setForeground(Qt.GlobalColor.darkRed)
            qty = QTableWidgetItem(str(li.quantity))
            price = QTableWidgetItem(f"{li.unit_price:.2f}")
            if isinstance(doc, Quotation):
                price.setFlags(price.flags() & ~Qt.ItemFlag.ItemIsEditable)
            total = QTableWidgetItem(format_money(li.total, self.currency))
            total.setFlags(total.flags() & ~Qt.ItemFlag.ItemIsEditable)
            self.tbl.setItem(r, COL_NAME, name)
            self.tbl.setItem(r, COL_QTY, qty)
            self.tbl.setItem(r, COL_PRICE, price)
            self.tbl.setItem(r, COL_TOTAL, total)
        self._loading = False
        self._update_totals()

    def _update_totals(self):
        doc = self.session.document
        parts = [f"Subtotal: {format_money(doc.sub_total, self.currency)}"]
        if isinstance(doc, Invoice) and doc.apply_tax:
            parts.append(f"Tax: {format_money(doc.tax_amount, self.currency)}")
        parts.append(f"Discount: - {format_money(doc.discount_amount, self.currency)}")
        parts.append(f"<b>Total: {format_money(doc.total_amount, self.currency)}</b>")
        self.lab_totals.setText(" &nbsp; ".join(parts))

    def _show_banner(self, message: Optional[str]):
        self.lab_banner.setText(message or "")
        self.lab_banner.setVisible(bool(message))
        self.btn_dismiss.setVisible(bool(message))

    def _dismiss_banner(self):
        self.exporter.dismiss_error()
        self._show_banner(None)

    def _busy_changed(self, busy: bool):
        self.busy.setVisible(busy)
        self.btn_download.setEnabled(not busy)
        self.btn_print.setEnabled(not busy)

    # -------- Customer --------
    def _search_customers(self, text: str):
        self.lst_customers.clear()
        for c in self.session.customers.search(text):
            it = QListWidgetItem(f"{c.full_name} | {c.phone or '-'} | {c.email or '-'}")
            it.setData(Qt.ItemDataRole.UserRole, c)
            self.lst_customers.addItem(it)

    def _pick_customer(self, item: QListWidgetItem):
        self.session.select_customer(item.data(Qt.ItemDataRole.UserRole))
        self.lst_customers.clear()
        self.ed_customer_search.clear()
        self._refresh_customer()

    def _new_customer(self):
        dlg = CustomerForm(self.session.customers, self, search_term=self.ed_customer_search.text())
        if dlg.exec() == QDialog.Accepted:
            self.session.dirty = True
            self._refresh_customer()

    def _edit_customer(self):
        c = self.session.document.customer_snapshot
        if not c:
            return
        dlg = CustomerForm(self.session.customers, self, customer=c)
        if dlg.exec() == QDialog.Accepted:
            self.session.dirty = True
            self._refresh_customer()

    def _clear_customer(self):
        self.session.clear_customer()
        self._refresh_customer()

    # -------- Items --------
    def _search_items(self, text: str):
        self.cb_item.clear()
        for it in self.session.items.inventory.search(text):
            self.cb_item.addItem(
                f"{it.product_name} [{it.product_code or '-'}] - {format_money(it.sell_price, self.currency)} ({it.quantity} in stock)",
                it.id,
            )

    def _item_changed(self, _idx: int):
        ref = self.cb_item.currentData()
        it = self.session.items.inventory.get(ref) if ref else None
        if it:
            self.sp_price.setValue(it.sell_price)
        self._update_stock_warning()

    def _update_stock_warning(self, *_):
        ref = self.cb_item.currentData()
        msg = self.session.items.stock_warning(ref, self.sp_qty.value()) if ref else None
        self.lab_stock.setText(msg or "")

    def _add_item(self):
        ref = self.cb_item.currentData()
        try:
            self.session.add_item(ref, self.sp_qty.value(), self.sp_price.value())
        except (FormValidationError, StockExceededError) as e:
            QMessageBox.warning(self, "Add item", e.message)
            return
        self.sp_qty.setValue(1)
        self._refresh_table()
        self._update_stock_warning()

    def _del_line(self):
        row = self.tbl.currentRow()
        if row < 0:
            return
        self.session.remove_item(self.tbl.item(row, COL_NAME).data(Qt.ItemDataRole.UserRole))
        self._refresh_table()

    def _cell_edited(self, cell: QTableWidgetItem):
        if self._loading or cell.column() not in (COL_QTY, COL_PRICE):
            return
        item_id = self.tbl.item(cell.row(), COL_NAME).data(Qt.ItemDataRole.UserRole)
        try:
            if cell.column() == COL_QTY:
                self.session.update_quantity(item_id, cell.text())
            else:
                self.session.update_unit_price(item_id, cell.text())
        except (FormValidationError, StockExceededError) as e:
            QMessageBox.warning(self, "Items", e.message)
        # invalid input snaps back to the value in effect
        self._refresh_table()

    # -------- Fields --------
    def _set_field(self, **fields):
        if self._loading:
            return
        self.session.set_fields(**fields)
        self._refresh_table()

    def _term_changed(self, qd: QDate):
        key = "due_date" if isinstance(self.session.document, Invoice) else "valid_until"
        self._set_field(**{key: qd.toPython()})

    def _discount_edited(self, text: str):
        self.session.set_discount_input(text)
        self._update_totals()

    def _discount_committed(self):
        self.session.commit_discount()
        self.ed_discount.setText(self.session.discount.raw_input)
        self._update_totals()

    def _tax_toggled(self, checked: bool):
        if self._loading:
            return
        self.session.set_apply_tax(checked)
        self._update_totals()

    # -------- Status --------
    def _status_requested(self, _idx: int):
        target = self.cb_status.currentText()
        try:
            if isinstance(self.session.document, Invoice):
                self._request_payment_status(target)
            else:
                self.session.update_quotation_status(target)
        except InvalidTransitionError as e:
            if isinstance(self.session.document, Invoice) and e.current == "Completed":
                answer = QMessageBox.question(
                    self, "Payment status",
                    "This invoice is settled. Reopen it? The recorded transaction is kept.",
                )
                if answer == QMessageBox.Yes:
                    self._reopen(target)
            else:
                QMessageBox.warning(self, "Status", e.message)
        except ErpError as e:
            QMessageBox.warning(self, "Status", e.message)
        self._refresh_status()

    def _request_payment_status(self, target: str):
        flow = self.session.payments().request_status(target)
        if flow is not None:
            PaymentDialog(flow, self, currency=self.currency).exec()

    def _reopen(self, target: str):
        try:
            self.session.payments().request_status(target, reopen=True)
        except ErpError as e:
            QMessageBox.warning(self, "Payment status", e.message)

    # -------- Save / export --------
    def _save(self):
        try:
            self.session.save()
        except FormValidationError as e:
            QMessageBox.warning(self, "Save", "\n".join(e.errors.values()))
            return
        except (BackendError, OperationInProgressError) as e:
            QMessageBox.critical(self, "Save", e.message)
            return
        self.ed_discount.setText(self.session.discount.raw_input)
        self._refresh_table()
        QMessageBox.information(self, "Save", f"{self.session.kind.capitalize()} {self.session.document.document_id} saved.")

    def _preview(self):
        try:
            image = self.exporter.preview(self.session.document)
        except RenderError:
            self._show_banner(self.exporter.last_error)
            return
        PreviewDialog(image, self).exec()

    def _download(self):
        try:
            path = self.exporter.export_file(self.session.document)
        except OperationInProgressError:
            return
        except RenderError:
            self._show_banner(self.exporter.last_error)
            return
        self._show_banner(None)
        QMessageBox.information(self, "Download", f"Saved to:\n{path}")

    def _print(self):
        try:
            self.exporter.print_document(self.session.document)
        except OperationInProgressError:
            return
        except RenderError:
            self._show_banner(self.exporter.last_error)
            return
        self._show_banner(None)

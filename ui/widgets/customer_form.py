from __future__ import annotations
from PySide6.QtWidgets import (
    QDialog, QVBoxLayout, QFormLayout, QLineEdit, QDialogButtonBox, QLabel, QMessageBox
)
from PySide6.QtCore import Qt
from typing import Optional

from core.errors import BackendError, FormValidationError, OperationInProgressError
from core.models.customer import Address, Customer, CustomerDraft
from core.services.customer_service import CustomerResolver


class CustomerForm(QDialog):
    """Create or edit the document's customer. Saves through the resolver on OK."""

    def __init__(self, resolver: CustomerResolver, parent=None,
                 customer: Optional[Customer] = None, search_term: str = ""):
        super().__init__(parent)
        self.setWindowTitle("Edit customer" if customer else "New customer")
        self.setModal(True)
        self.resolver = resolver
        self._orig_customer = customer
        self.saved: Optional[Customer] = None

        self.ed_name = QLineEdit()
        self.ed_email = QLineEdit()
        self.ed_phone = QLineEdit()
        self.ed_vat = QLineEdit()
        self.ed_street = QLineEdit()
        self.ed_city = QLineEdit()
        self.ed_country = QLineEdit()
        self.ed_zip = QLineEdit()
        self.ed_vehicle_number = QLineEdit()
        self.ed_vehicle_model = QLineEdit()
        self.ed_year = QLineEdit()
        self.lab_error = QLabel()
        self.lab_error.setStyleSheet("color: #c0392b;")
        self.lab_error.setWordWrap(True)

        self._fields = {
            "full_name": self.ed_name,
            "email": self.ed_email,
            "phone": self.ed_phone,
            "vat_number": self.ed_vat,
        }

        form = QFormLayout()
        form.addRow("Full name *", self.ed_name)
        form.addRow("Email *", self.ed_email)
        form.addRow("Phone *", self.ed_phone)
        form.addRow("VAT number *", self.ed_vat)
        form.addRow("Street", self.ed_street)
        form.addRow("City", self.ed_city)
        form.addRow("Country", self.ed_country)
        form.addRow("ZIP", self.ed_zip)
        form.addRow("Vehicle number", self.ed_vehicle_number)
        form.addRow("Vehicle model", self.ed_vehicle_model)
        form.addRow("Year of manufacture", self.ed_year)

        self.btns = QDialogButtonBox(QDialogButtonBox.Ok | QDialogButtonBox.Cancel)
        self.btns.accepted.connect(self._save)
        self.btns.rejected.connect(self.reject)

        lay = QVBoxLayout(self)
        lay.addLayout(form)
        lay.addWidget(self.lab_error)
        lay.addWidget(self.btns)

        if customer:
            self._fill(CustomerDraft.from_customer(customer))
        else:
            self._fill(resolver.prefill_guess(search_term))

    def _fill(self, d: CustomerDraft):
        self.ed_name.setText(d.full_name)
        self.ed_email.setText(d.email)
        self.ed_phone.setText(d.phone)
        self.ed_vat.setText(d.vat_number)
        self.ed_street.setText(d.address.street or "")
        self.ed_city.setText(d.address.city or "")
        self.ed_country.setText(d.address.country or "")
        self.ed_zip.setText(d.address.zip or "")
        self.ed_vehicle_number.setText(d.vehicle_number)
        self.ed_vehicle_model.setText(d.vehicle_model)
        self.ed_year.setText(d.year_of_manufacture)

    def get_draft(self) -> CustomerDraft:
        return CustomerDraft(
            full_name=self.ed_name.text().strip(),
            email=self.ed_email.text().strip(),
            phone=self.ed_phone.text().strip(),
            vat_number=self.ed_vat.text().strip(),
            address=Address(
                street=self.ed_street.text().strip() or None,
                city=self.ed_city.text().strip() or None,
                country=self.ed_country.text().strip() or None,
                zip=self.ed_zip.text().strip() or None,
            ),
            vehicle_number=self.ed_vehicle_number.text().strip(),
            vehicle_model=self.ed_vehicle_model.text().strip(),
            year_of_manufacture=self.ed_year.text().strip(),
        )

    def _save(self):
        draft = self.get_draft()
        self.btns.setEnabled(False)
        try:
            if self._orig_customer:
                self.saved = self.resolver.update(self._orig_customer.id, draft)
            else:
                self.saved = self.resolver.create(draft)
        except FormValidationError as e:
            self.lab_error.setText("\n".join(e.errors.values()))
            first = next((self._fields[k] for k in e.errors if k in self._fields), None)
            if first:
                first.setFocus(Qt.FocusReason.ActiveWindowFocusReason)
            return
        except (BackendError, OperationInProgressError) as e:
            QMessageBox.warning(self, "Customer", e.message)
            return
        finally:
            self.btns.setEnabled(True)
        self.accept()

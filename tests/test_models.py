"""
Unit tests for model wire mapping.
"""

from datetime import date, datetime

import pytest
from pydantic import ValidationError

from core.errors import DocumentIdImmutableError
from core.models.common import parse_date, ref_id
from core.models.customer import Customer
from core.models.document import Invoice, LineItem, Quotation
from core.models.inventory import InventoryItem
from core.models.payment import PaymentTransaction

from conftest import CUSTOMERS, INVENTORY


class TestCommon:
    """Tests for shared helpers."""

    @pytest.mark.parametrize("value, expected", [
        ("cus-1", "cus-1"),
        ({"_id": "cus-1", "fullName": "X"}, "cus-1"),
        ({"id": 7}, "7"),
        (None, None),
    ])
    def test_ref_id(self, value, expected):
        assert ref_id(value) == expected

    @pytest.mark.parametrize("value, expected", [
        ("2026-03-01", date(2026, 3, 1)),
        ("2026-03-01T10:15:00.000Z", date(2026, 3, 1)),
        (datetime(2026, 3, 1, 9), date(2026, 3, 1)),
        ("", None),
    ])
    def test_parse_date(self, value, expected):
        assert parse_date(value) == expected


class TestCustomerAndInventory:
    """Tests for read-model records."""

    def test_customer_from_backend(self):
        c = Customer.from_backend(CUSTOMERS[0])
        assert c.id == "cus-1"
        assert c.full_name == "Nimal Perera"
        assert c.vat_number == "VAT-001"
        assert c.year_of_manufacture == "2008"
        assert c.address.one_line() == "12 Galle Rd, Colombo, Sri Lanka, 00300"

    def test_customer_rejects_bad_email(self):
        with pytest.raises(ValidationError):
            Customer(full_name="X", email="not-an-email")

    def test_inventory_from_backend(self):
        item = InventoryItem.from_backend(INVENTORY[0])
        assert item.id == "inv-oil"
        assert item.quantity == 5
        assert item.vehicle.year == "2008"
        assert item.matches("corolla")
        assert not item.matches("civic")


class TestDocumentMapping:
    """Tests for invoice and quotation wire format."""

    def test_line_item_total(self):
        assert LineItem(inventory_ref="a", item_name="A", quantity=3, unit_price=2.5).total == 7.5

    def test_line_item_rejects_zero_quantity(self):
        with pytest.raises(ValidationError):
            LineItem(inventory_ref="a", item_name="A", quantity=0, unit_price=1)

    def test_invoice_to_backend(self):
        inv = Invoice(
            document_id="INV-2026-0001", customer_ref="cus-1", apply_tax=True,
            items=[LineItem(inventory_ref="inv-oil", item_name="Oil", quantity=2, unit_price=1000)],
            issue_date=date(2026, 3, 1), due_date=date(2026, 3, 31),
        )
        inv.recalculate()
        d = inv.to_backend()

        assert d["invoiceId"] == "INV-2026-0001"
        assert d["customer"] == "cus-1"
        assert d["items"] == [{"item": "inv-oil", "quantity": 2, "unitPrice": 1000, "total": 2000}]
        assert d["applyVat"] is True
        assert d["vatAmount"] == pytest.approx(360)
        assert d["dueDate"] == "2026-03-31"
        assert "_id" not in d

    def test_invoice_from_populated_backend(self):
        inv = Invoice.from_backend({
            "_id": "doc-1", "invoiceId": "INV-2026-0004",
            "customer": CUSTOMERS[1],
            "items": [{"item": INVENTORY[1], "quantity": 2, "unitPrice": 500, "total": 1000}],
            "subTotal": 1000, "discount": 100, "totalAmount": 900,
            "issueDate": "2026-03-01T00:00:00.000Z", "paymentStatus": "Rejected",
        })

        assert inv.customer_ref == "cus-2"
        assert inv.customer_snapshot.full_name == "Kamala Silva"
        assert inv.items[0].inventory_ref == "inv-filter"
        assert inv.items[0].item_name == "Oil Filter"
        assert inv.discount_percentage == pytest.approx(10)
        assert inv.payment_status == "Rejected"
        assert inv.apply_tax is False

    def test_discount_percentage_zero_without_subtotal(self):
        q = Quotation.from_backend({"quotationId": "QUO-2026-0001", "subTotal": 0, "discount": 50})
        assert q.discount_percentage == 0

    def test_quotation_to_backend(self):
        q = Quotation(document_id="QUO-2026-0001", valid_until=date(2026, 4, 1), status="Accepted")
        d = q.to_backend()
        assert d["quotationId"] == "QUO-2026-0001"
        assert d["validUntil"] == "2026-04-01"
        assert d["status"] == "Accepted"
        assert "applyVat" not in d

    def test_document_id_set_once(self):
        inv = Invoice()
        inv.document_id = "INV-2026-0001"
        inv.document_id = "INV-2026-0001"
        with pytest.raises(DocumentIdImmutableError):
            inv.document_id = "INV-2026-0002"


class TestPaymentTransaction:
    """Tests for the transaction record."""

    def test_amount_serialized_with_two_decimals(self):
        tx = PaymentTransaction(
            transaction_id="TRX-2026-0001", method="Cash", bank_name="N/A", account_number="N/A",
            transaction_ref="CASH-1", amount=2700, transaction_date=datetime(2026, 3, 1, 10, 0),
            document_ref="INV-2026-0001",
        )
        d = tx.to_backend()
        assert d["amount"] == "2700.00"
        assert d["paymentMethod"]["type"] == "Cash"
        assert PaymentTransaction.from_backend(d) == tx

    def test_immutable(self):
        tx = PaymentTransaction(
            transaction_id="TRX-1", method="Card", bank_name="", account_number="",
            transaction_ref="A", amount=1, transaction_date=datetime(2026, 3, 1), document_ref="INV-1",
        )
        with pytest.raises(ValidationError):
            tx.amount = 2

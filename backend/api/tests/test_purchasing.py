"""Tests for purchase invoices and supplier payments."""

from decimal import Decimal

from django.test import TestCase
from django.utils import timezone

from ..exceptions import Conflict, InsufficientFunds, NotFound, ValidationFailed
from ..models import LedgerEntry, Payment, PurchaseInvoice, StockAdjustment
from ..services.ledger import ledger_entries_for, recalculate_balance
from ..services.purchasing import (
    create_payment,
    create_purchase_invoice,
    delete_payment,
    delete_purchase_invoice,
    get_purchase_summary,
    get_supplier_statement,
    update_purchase_invoice,
)
from . import create_user, make_account, make_item, make_supplier


class PurchaseInvoiceTestCase(TestCase):
    def setUp(self):
        self.user = create_user()
        self.account = make_account("Cash", "10000.00", user=self.user)
        self.supplier = make_supplier(user=self.user)
        self.steel = make_item("Steel", quantity="10", unit_price="100.00")
        self.bolts = make_item("Bolts")
        self.year = timezone.localdate().year

    def invoice(self, **overrides):
        data = {
            "supplier_id": self.supplier.pk,
            "items": [
                {"item_id": self.steel.pk, "quantity": "20", "unit_price": "200.00"},
                {"item_id": self.bolts.pk, "quantity": "100", "unit_price": "10.00"},
            ],
            "tax_amount": "100.00",
            "discount_amount": "50.00",
            "user": self.user,
        }
        data.update(overrides)
        return create_purchase_invoice(**data)


class CreatePurchaseInvoiceTests(PurchaseInvoiceTestCase):
    def test_partially_paid_invoice_moves_stock_supplier_and_account(self):
        invoice = self.invoice(payment_status="partial", paid_amount="2000.00", account_id=self.account.pk)

        self.assertEqual(invoice.subtotal, Decimal("5000.00"))
        self.assertEqual(invoice.total_amount, Decimal("5050.00"))
        self.assertEqual(invoice.outstanding_amount, Decimal("3050.00"))
        self.assertEqual(invoice.invoice_number, f"PI-{self.year}-0001")

        self.supplier.refresh_from_db()
        self.account.refresh_from_db()
        self.assertEqual(self.supplier.current_balance, Decimal("3050.00"))
        self.assertEqual(self.account.current_balance, Decimal("8000.00"))

        supplier_entries = LedgerEntry.objects.filter(supplier=self.supplier)
        self.assertEqual(supplier_entries.count(), 2)
        self.assertEqual(
            list(supplier_entries.values_list("description", flat=True)),
            [f"Purchase Invoice #{invoice.invoice_number}", f"Payment for Invoice #{invoice.invoice_number}"],
        )
        self.assertEqual(LedgerEntry.objects.filter(account=self.account, is_opening=False).count(), 1)

        payment = Payment.objects.get(purchase_invoice=invoice)
        self.assertEqual(payment.payment_number, f"PAY-{self.year}-0001")
        self.assertEqual(payment.amount, Decimal("2000.00"))

        self.steel.refresh_from_db()
        self.assertEqual(self.steel.quantity, Decimal("30.00"))
        self.assertEqual(self.steel.avg_price, Decimal("166.67"))
        self.assertEqual(
            StockAdjustment.objects.get(item=self.bolts).reason,
            f"Purchase Invoice #{invoice.invoice_number}",
        )

    def test_unpaid_invoice_only_credits_supplier(self):
        invoice = self.invoice()

        self.supplier.refresh_from_db()
        self.account.refresh_from_db()
        self.assertEqual(invoice.payment_status, PurchaseInvoice.UNPAID)
        self.assertEqual(self.supplier.current_balance, Decimal("5050.00"))
        self.assertEqual(self.account.current_balance, Decimal("10000.00"))
        self.assertFalse(Payment.objects.exists())

    def test_numbers_are_sequential(self):
        first = self.invoice()
        second = self.invoice()
        self.assertEqual(first.invoice_number, f"PI-{self.year}-0001")
        self.assertEqual(second.invoice_number, f"PI-{self.year}-0002")

    def test_insufficient_funds_rolls_back_everything(self):
        poor = make_account("Petty", "100.00")
        with self.assertRaises(InsufficientFunds):
            self.invoice(payment_status="paid", paid_amount="5050.00", account_id=poor.pk)

        self.assertFalse(PurchaseInvoice.objects.exists())
        self.steel.refresh_from_db()
        self.supplier.refresh_from_db()
        self.assertEqual(self.steel.quantity, Decimal("10.00"))
        self.assertEqual(self.supplier.current_balance, Decimal("0.00"))

    def test_payment_terms_are_validated(self):
        cases = [
            {"payment_status": "paid", "paid_amount": "100.00", "account_id": self.account.pk},
            {"payment_status": "partial", "paid_amount": "5050.00", "account_id": self.account.pk},
            {"payment_status": "partial", "paid_amount": "10.00"},
            {"payment_status": "unpaid", "paid_amount": "10.00"},
        ]
        for overrides in cases:
            with self.subTest(overrides=overrides):
                with self.assertRaises(ValidationFailed):
                    self.invoice(**overrides)
        self.assertFalse(PurchaseInvoice.objects.exists())

    def test_bad_lines_are_rejected(self):
        with self.assertRaises(ValidationFailed):
            self.invoice(items=[])
        with self.assertRaises(ValidationFailed):
            self.invoice(items=[{"item_id": self.steel.pk, "quantity": "0", "unit_price": "1.00"}])
        with self.assertRaises(NotFound):
            self.invoice(items=[{"item_id": 999999, "quantity": "1", "unit_price": "1.00"}])
        with self.assertRaises(ValidationFailed):
            self.invoice(discount_amount="6000.00")


class UpdateAndDeleteInvoiceTests(PurchaseInvoiceTestCase):
    def test_update_applies_quantity_difference_and_new_total(self):
        invoice = self.invoice(tax_amount="0", discount_amount="0")

        update_purchase_invoice(
            invoice,
            items=[{"item_id": self.steel.pk, "quantity": "25", "unit_price": "200.00"}],
            user=self.user,
        )

        invoice.refresh_from_db()
        self.steel.refresh_from_db()
        self.bolts.refresh_from_db()
        self.supplier.refresh_from_db()
        self.assertEqual(invoice.total_amount, Decimal("5000.00"))
        self.assertEqual(self.steel.quantity, Decimal("35.00"))
        self.assertEqual(self.bolts.quantity, Decimal("0.00"))
        self.assertEqual(self.supplier.current_balance, Decimal("5000.00"))
        credit = LedgerEntry.objects.get(supplier=self.supplier)
        self.assertEqual(credit.amount, Decimal("5000.00"))

    def test_due_date_can_be_cleared(self):
        due = timezone.localdate()
        invoice = self.invoice(due_date=due)

        update_purchase_invoice(invoice, notes="call first")
        invoice.refresh_from_db()
        self.assertEqual(invoice.due_date, due)

        update_purchase_invoice(invoice, due_date=None)
        invoice.refresh_from_db()
        self.assertIsNone(invoice.due_date)
        self.assertEqual(invoice.notes, "call first")

    def test_invoice_with_payment_cannot_change(self):
        invoice = self.invoice(payment_status="partial", paid_amount="100.00", account_id=self.account.pk)
        with self.assertRaises(Conflict):
            update_purchase_invoice(invoice, notes="late")
        with self.assertRaises(Conflict):
            delete_purchase_invoice(invoice)

    def test_delete_reverts_stock_balance_and_history(self):
        invoice = self.invoice()
        delete_purchase_invoice(invoice)

        self.steel.refresh_from_db()
        self.bolts.refresh_from_db()
        self.supplier.refresh_from_db()
        self.assertEqual(self.steel.quantity, Decimal("10.00"))
        self.assertEqual(self.bolts.quantity, Decimal("0.00"))
        self.assertEqual(self.supplier.current_balance, Decimal("0.00"))
        self.assertFalse(PurchaseInvoice.objects.exists())
        self.assertFalse(LedgerEntry.objects.filter(supplier=self.supplier).exists())
        self.assertFalse(StockAdjustment.objects.filter(item=self.bolts).exists())


class DirectPaymentTests(PurchaseInvoiceTestCase):
    def setUp(self):
        super().setUp()
        self.invoice()

    def test_direct_payment_debits_both_sides(self):
        payment = create_payment(
            supplier_id=self.supplier.pk, account_id=self.account.pk, amount="1000.00", user=self.user
        )

        self.supplier.refresh_from_db()
        self.account.refresh_from_db()
        self.assertTrue(payment.is_direct)
        self.assertEqual(payment.notes, "Direct payment to supplier")
        self.assertEqual(self.supplier.current_balance, Decimal("4050.00"))
        self.assertEqual(self.account.current_balance, Decimal("9000.00"))
        self.assertEqual(payment.ledger_entries.count(), 2)

    def test_payment_cannot_exceed_outstanding_balance(self):
        with self.assertRaises(ValidationFailed):
            create_payment(supplier_id=self.supplier.pk, account_id=self.account.pk, amount="5050.01")

    def test_payment_to_settled_supplier_is_rejected(self):
        settled = make_supplier("Settled")
        with self.assertRaises(ValidationFailed):
            create_payment(supplier_id=settled.pk, account_id=self.account.pk, amount="1.00")

    def test_payment_larger_than_account_balance_fails(self):
        poor = make_account("Petty", "10.00")
        with self.assertRaises(InsufficientFunds):
            create_payment(supplier_id=self.supplier.pk, account_id=poor.pk, amount="20.00")
        self.assertFalse(Payment.objects.exists())
        self.supplier.refresh_from_db()
        self.assertEqual(self.supplier.current_balance, Decimal("5050.00"))

    def test_delete_direct_payment_restores_balances(self):
        payment = create_payment(supplier_id=self.supplier.pk, account_id=self.account.pk, amount="50.00")
        delete_payment(payment)

        self.supplier.refresh_from_db()
        self.account.refresh_from_db()
        self.assertEqual(self.supplier.current_balance, Decimal("5050.00"))
        self.assertEqual(self.account.current_balance, Decimal("10000.00"))
        self.assertFalse(Payment.objects.exists())
        self.assertEqual(LedgerEntry.objects.filter(payment__isnull=False).count(), 0)

    def test_invoice_payment_cannot_be_deleted_directly(self):
        invoice = self.invoice(payment_status="partial", paid_amount="10.00", account_id=self.account.pk)
        with self.assertRaises(Conflict):
            delete_payment(invoice.payments.get())


class ReportingTests(PurchaseInvoiceTestCase):
    def test_summary_and_statement(self):
        self.invoice()
        self.invoice(payment_status="paid", paid_amount="5050.00", account_id=self.account.pk)

        summary = get_purchase_summary()
        self.assertEqual(summary["total_invoices"], 2)
        self.assertEqual(summary["paid_count"], 1)
        self.assertEqual(summary["unpaid_count"], 1)
        self.assertEqual(summary["total_amount"], Decimal("10100.00"))
        self.assertEqual(summary["outstanding_amount"], Decimal("5050.00"))

        statement = get_supplier_statement(self.supplier.pk)
        self.assertEqual(statement["summary"]["invoice_count"], 2)
        self.assertEqual(statement["summary"]["total_payments"], Decimal("5050.00"))
        self.assertEqual(statement["summary"]["outstanding_balance"], Decimal("5050.00"))
        self.assertEqual(len(statement["payments"]), 1)


class RunningBalanceTests(PurchaseInvoiceTestCase):
    def running_balances(self, entity):
        return list(
            ledger_entries_for(entity).order_by("transaction_date", "id").values_list("balance", flat=True)
        )

    def assert_replay_agrees(self, entity, expected):
        self.assertEqual(self.running_balances(entity), expected)
        recalculate_balance(entity)
        self.assertEqual(self.running_balances(entity), expected)

    def test_invoice_edit_moves_later_entries(self):
        invoice = self.invoice(tax_amount="0", discount_amount="0")
        create_payment(supplier_id=self.supplier.pk, account_id=self.account.pk, amount="1000.00")

        update_purchase_invoice(
            invoice,
            items=[
                {"item_id": self.steel.pk, "quantity": "30", "unit_price": "200.00"},
                {"item_id": self.bolts.pk, "quantity": "100", "unit_price": "10.00"},
            ],
        )

        self.supplier.refresh_from_db()
        self.assertEqual(self.supplier.current_balance, Decimal("6000.00"))
        self.assert_replay_agrees(self.supplier, [Decimal("7000.00"), Decimal("6000.00")])

    def test_deleting_earlier_payment_moves_later_entries(self):
        self.invoice()
        first = create_payment(supplier_id=self.supplier.pk, account_id=self.account.pk, amount="1000.00")
        create_payment(supplier_id=self.supplier.pk, account_id=self.account.pk, amount="200.00")

        delete_payment(first)

        self.assert_replay_agrees(self.supplier, [Decimal("5050.00"), Decimal("4850.00")])
        self.assert_replay_agrees(self.account, [Decimal("10000.00"), Decimal("9800.00")])

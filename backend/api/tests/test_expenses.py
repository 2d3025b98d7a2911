from datetime import date
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone

from ..exceptions import InsufficientFunds, NotFound, ValidationFailed
from ..models import Expense, ExpenseCategory, LedgerEntry
from ..services.expenses import create_expense, create_expenses_bulk, delete_expense, update_expense
from . import create_user, make_account


class ExpenseServiceTests(TestCase):
    def setUp(self):
        self.user = create_user()
        self.account = make_account("Cash", "500.00")
        self.category = ExpenseCategory.objects.create(name="Utilities")

    def create(self, amount="120.00", **overrides):
        data = {
            "category_id": self.category.pk,
            "account_id": self.account.pk,
            "amount": amount,
            "description": "Electricity bill",
            "user": self.user,
        }
        data.update(overrides)
        return create_expense(**data)

    def test_expense_debits_account_once(self):
        expense = self.create()

        self.account.refresh_from_db()
        self.assertEqual(self.account.current_balance, Decimal("380.00"))
        entry = LedgerEntry.objects.get(expense=expense)
        self.assertEqual(entry.transaction_type, LedgerEntry.DEBIT)
        self.assertEqual(entry.description, "Electricity bill")
        self.assertEqual(expense.expense_date, timezone.localdate())

    def test_expense_larger_than_balance_is_rejected(self):
        with self.assertRaises(InsufficientFunds):
            self.create(amount="500.01")
        self.assertFalse(Expense.objects.exists())

    def test_missing_references_and_bad_amounts(self):
        with self.assertRaises(NotFound):
            self.create(category_id=999999)
        with self.assertRaises(ValidationFailed):
            self.create(amount="0")
        with self.assertRaises(ValidationFailed):
            self.create(description=" ")

    def test_delete_posts_credit_reversal(self):
        expense = self.create()
        expense_id = expense.pk
        delete_expense(expense, user=self.user)

        self.account.refresh_from_db()
        self.assertEqual(self.account.current_balance, Decimal("500.00"))
        self.assertFalse(Expense.objects.exists())
        descriptions = list(
            LedgerEntry.objects.filter(account=self.account, is_opening=False).values_list("description", flat=True)
        )
        self.assertEqual(descriptions, ["Electricity bill", f"Reversal: expense #{expense_id} deleted"])

    def test_amount_and_account_are_fixed(self):
        expense = self.create()
        with self.assertRaises(ValidationFailed):
            update_expense(expense, amount=Decimal("1.00"))

        update_expense(expense, description="Power", notes="March")
        expense.refresh_from_db()
        self.assertEqual(expense.description, "Power")
        self.assertEqual(expense.amount, Decimal("120.00"))

    def test_bulk_is_all_or_nothing(self):
        entries = [
            {"category_id": self.category.pk, "account_id": self.account.pk, "amount": "100.00", "description": "Water"},
            {"category_id": self.category.pk, "account_id": self.account.pk, "amount": "450.00", "description": "Gas"},
        ]
        with self.assertRaises(InsufficientFunds):
            create_expenses_bulk(date(2024, 3, 1), entries)
        self.assertFalse(Expense.objects.exists())

        entries[1]["amount"] = "50.00"
        created = create_expenses_bulk(date(2024, 3, 1), entries)
        self.assertEqual(len(created), 2)
        self.assertTrue(all(expense.expense_date == date(2024, 3, 1) for expense in created))
        self.account.refresh_from_db()
        self.assertEqual(self.account.current_balance, Decimal("350.00"))

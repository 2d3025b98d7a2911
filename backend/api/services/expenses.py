"""Expense workflows.

Creating an expense debits its account through the ledger engine in the same
transaction that stores the expense.  Deleting one posts a compensating
credit instead of rewriting history.
"""

from __future__ import annotations

import logging
from typing import Iterable, Mapping

from django.db import transaction
from django.utils import timezone

from ..exceptions import NotFound, ValidationFailed
from ..models import Account, Expense, ExpenseCategory, LedgerEntry
from .ledger import create_ledger_entry, to_decimal

logger = logging.getLogger(__name__)

__all__ = [
    "create_expense",
    "create_expenses_bulk",
    "delete_expense",
    "update_expense",
]

EDITABLE_FIELDS = ("category", "description", "expense_date", "notes", "receipt_image")


def _missing(model, ids) -> list[str]:
    wanted = set(ids)
    found = set(model.objects.filter(pk__in=wanted).values_list("pk", flat=True))
    return sorted(str(pk) for pk in wanted - found)


def _post_expense(*, category, account, amount, description, expense_date, notes, receipt_image, user) -> Expense:
    amount = to_decimal(amount)
    if amount <= 0:
        raise ValidationFailed("Expense amount must be greater than zero.")
    description = (description or "").strip()
    if not description:
        raise ValidationFailed("Expense description is required.")

    expense = Expense.objects.create(
        category=category,
        account=account,
        amount=amount,
        description=description,
        expense_date=expense_date or timezone.localdate(),
        notes=(notes or "").strip(),
        receipt_image=receipt_image,
        created_by=user,
    )
    create_ledger_entry(
        account,
        LedgerEntry.DEBIT,
        amount,
        description,
        expense=expense,
        user=user,
    )
    return expense


def create_expense(
    *,
    category_id,
    account_id,
    amount,
    description: str,
    expense_date=None,
    notes: str = "",
    receipt_image=None,
    user=None,
) -> Expense:
    """Record an expense and debit its account; fails if the account cannot cover it."""

    try:
        category = ExpenseCategory.objects.get(pk=category_id)
    except (ExpenseCategory.DoesNotExist, ValueError, TypeError) as exc:
        raise NotFound(f"Expense category with ID {category_id} not found.") from exc
    try:
        account = Account.objects.get(pk=account_id)
    except (Account.DoesNotExist, ValueError, TypeError) as exc:
        raise NotFound(f"Account with ID {account_id} not found.") from exc

    with transaction.atomic():
        expense = _post_expense(
            category=category,
            account=account,
            amount=amount,
            description=description,
            expense_date=expense_date,
            notes=notes,
            receipt_image=receipt_image,
            user=user,
        )

    logger.info("Created expense %s (%s) on account %s", expense.pk, expense.amount, account.pk)
    return expense


def create_expenses_bulk(expense_date, entries: Iterable[Mapping], user=None) -> list[Expense]:
    """Record several expenses dated ``expense_date`` in one transaction."""

    entries = list(entries)
    if not entries:
        raise ValidationFailed("At least one expense is required.")

    missing_categories = _missing(ExpenseCategory, (entry.get("category_id") for entry in entries))
    if missing_categories:
        raise NotFound(f"Expense categories not found: {', '.join(missing_categories)}.")
    missing_accounts = _missing(Account, (entry.get("account_id") for entry in entries))
    if missing_accounts:
        raise NotFound(f"Accounts not found: {', '.join(missing_accounts)}.")

    created = []
    with transaction.atomic():
        for entry in entries:
            created.append(
                _post_expense(
                    category=ExpenseCategory.objects.get(pk=entry["category_id"]),
                    account=Account.objects.get(pk=entry["account_id"]),
                    amount=entry.get("amount"),
                    description=entry.get("description"),
                    expense_date=expense_date,
                    notes=entry.get("notes"),
                    receipt_image=None,
                    user=user,
                )
            )

    logger.info("Created %s expenses for %s", len(created), expense_date)
    return created


def update_expense(expense: Expense, **changes) -> Expense:
    """Change descriptive fields; amount and account stay as posted."""

    for field in ("amount", "account", "account_id"):
        if field in changes:
            raise ValidationFailed(
                "Amount and account cannot be changed; delete the expense and record it again."
            )

    update_fields = []
    for field in EDITABLE_FIELDS:
        if field not in changes:
            continue
        value = changes[field]
        if field == "description":
            value = (value or "").strip()
            if not value:
                raise ValidationFailed("Expense description is required.")
        setattr(expense, field, value)
        update_fields.append(field)

    if update_fields:
        expense.save(update_fields=update_fields)
        logger.info("Updated expense %s (%s)", expense.pk, ", ".join(update_fields))
    return expense


def delete_expense(expense: Expense, user=None) -> None:
    """Credit the expense amount back to its account, then delete the expense."""

    expense_id = expense.pk
    with transaction.atomic():
        if expense.ledger_entries.exists():
            create_ledger_entry(
                expense.account,
                LedgerEntry.CREDIT,
                expense.amount,
                f"Reversal: expense #{expense_id} deleted",
                user=user,
            )
        expense.delete()

    logger.info("Deleted expense %s", expense_id)

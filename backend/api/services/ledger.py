"""Ledger engine for accounts, suppliers and customers.

Every balance change is recorded as an append-only :class:`LedgerEntry`.  The
helpers below lock the entity row with ``select_for_update`` before reading
its balance, write the entry with the resulting running balance and update
``current_balance`` inside the same transaction, so the cached balance on the
entity can always be rebuilt from ``opening_balance`` plus the entries.

Amounts are expressed in the system's base precision (two decimal places) and
are always positive; the direction comes from the transaction type.  Only
accounts refuse to go negative.  Supplier and customer balances are guarded
by the callers that create payments against them.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone

from ..exceptions import Conflict, InsufficientFunds, NotFound, ValidationFailed
from ..models import Account, LedgerEntry

logger = logging.getLogger(__name__)

__all__ = [
    "MONEY_QUANTIZER",
    "adjust_ledger_entry_amount",
    "create_account",
    "create_ledger_entry",
    "ensure_deletable",
    "get_account_balance",
    "get_account_ledger",
    "ledger_entries_for",
    "recalculate_balance",
    "reverse_ledger_entry",
    "to_decimal",
]

MONEY_QUANTIZER = Decimal("0.01")


def to_decimal(amount: Optional[Decimal | int | float | str]) -> Decimal:
    """Normalise *amount* to a Decimal with the project's rounding rules."""

    if amount in (None, ""):
        return Decimal("0.00")
    if isinstance(amount, Decimal):
        value = amount
    else:
        try:
            value = Decimal(str(amount))
        except InvalidOperation as exc:
            raise ValidationFailed(f"'{amount}' is not a valid amount.") from exc
    return value.quantize(MONEY_QUANTIZER, rounding=ROUND_HALF_UP)


def _lock(entity):
    return type(entity).objects.select_for_update().get(pk=entity.pk)


def _refuses_negative(entity) -> bool:
    return entity.LEDGER_ENTITY_TYPE == LedgerEntry.ACCOUNT


def ledger_entries_for(entity):
    """Return the queryset of entries recorded against ``entity``."""

    return LedgerEntry.objects.filter(**{entity.LEDGER_ENTITY_TYPE: entity})


def create_ledger_entry(
    entity,
    transaction_type: str,
    amount: Decimal | int | float | str,
    description: str,
    reference_number: str = "",
    *,
    payment=None,
    purchase_invoice=None,
    expense=None,
    user=None,
    transaction_date=None,
) -> LedgerEntry:
    """Append a CREDIT or DEBIT entry to ``entity`` and move its balance.

    Raises :class:`InsufficientFunds` when a debit would take an account below
    zero.  The entry and the balance update commit together or not at all.
    """

    amount = to_decimal(amount)
    if amount <= 0:
        raise ValidationFailed("Ledger amounts must be greater than zero.")
    if transaction_type not in (LedgerEntry.CREDIT, LedgerEntry.DEBIT):
        raise ValidationFailed(f"Unknown transaction type '{transaction_type}'.")

    with transaction.atomic():
        locked = _lock(entity)
        current = to_decimal(locked.current_balance)

        if transaction_type == LedgerEntry.DEBIT:
            if _refuses_negative(locked) and amount > current:
                raise InsufficientFunds(
                    f"Insufficient balance in '{locked}'. Available: {current}, required: {amount}.",
                    extra={"available": str(current), "required": str(amount)},
                )
            new_balance = current - amount
        else:
            new_balance = current + amount

        if _refuses_negative(locked) and new_balance < 0:
            raise InsufficientFunds(
                f"Transaction would leave '{locked}' with a negative balance.",
                extra={"available": str(current), "required": str(amount)},
            )

        entry = LedgerEntry.objects.create(
            entity_type=locked.LEDGER_ENTITY_TYPE,
            transaction_type=transaction_type,
            amount=amount,
            balance=new_balance,
            description=description,
            reference_number=reference_number or "",
            payment=payment,
            purchase_invoice=purchase_invoice,
            expense=expense,
            transaction_date=transaction_date or timezone.now(),
            created_by=user,
            **{locked.LEDGER_ENTITY_TYPE: locked},
        )
        locked.current_balance = new_balance
        locked.save(update_fields=["current_balance", "updated_at"])

    entity.current_balance = new_balance
    logger.info(
        "%s %s of %s on %s #%s, balance now %s",
        locked.LEDGER_ENTITY_TYPE,
        transaction_type,
        amount,
        locked,
        locked.pk,
        new_balance,
    )
    return entry


def _shift_later_entries(entry: LedgerEntry, delta: Decimal) -> None:
    """Move the running balance of every entry recorded after ``entry``."""

    later = Q(transaction_date__gt=entry.transaction_date) | Q(
        transaction_date=entry.transaction_date, id__gt=entry.pk
    )
    ledger_entries_for(entry.entity).filter(later).update(balance=F("balance") + delta)


def reverse_ledger_entry(entry: LedgerEntry) -> Decimal:
    """Undo ``entry``'s effect on its entity's balance and delete the entry."""

    with transaction.atomic():
        entity = _lock(entry.entity)
        new_balance = to_decimal(entity.current_balance) - entry.signed_amount
        entity.current_balance = new_balance
        entity.save(update_fields=["current_balance", "updated_at"])
        _shift_later_entries(entry, -entry.signed_amount)
        entry.delete()
    return new_balance


def adjust_ledger_entry_amount(entry: LedgerEntry, new_amount) -> LedgerEntry:
    """Change the amount of ``entry`` and carry the difference to its entity."""

    new_amount = to_decimal(new_amount)
    if new_amount <= 0:
        raise ValidationFailed("Ledger amounts must be greater than zero.")

    difference = new_amount - entry.amount
    if not difference:
        return entry
    delta = difference if entry.transaction_type == LedgerEntry.CREDIT else -difference

    with transaction.atomic():
        entity = _lock(entry.entity)
        new_balance = to_decimal(entity.current_balance) + delta
        if _refuses_negative(entity) and new_balance < 0:
            raise InsufficientFunds(f"Adjustment would leave '{entity}' with a negative balance.")
        entity.current_balance = new_balance
        entity.save(update_fields=["current_balance", "updated_at"])
        entry.amount = new_amount
        entry.balance = entry.balance + delta
        entry.save(update_fields=["amount", "balance"])
        _shift_later_entries(entry, delta)
    return entry


def recalculate_balance(entity) -> Decimal:
    """Rebuild ``current_balance`` and the cached running balances.

    Entries are replayed by transaction date starting from the opening
    balance.  Running it again without new entries yields the same result.
    """

    with transaction.atomic():
        locked = _lock(entity)
        balance = to_decimal(locked.opening_balance)
        entries = ledger_entries_for(locked).select_for_update().order_by("transaction_date", "id")
        for entry in entries:
            if entry.is_opening:
                continue
            balance += entry.signed_amount
            if entry.balance != balance:
                entry.balance = balance
                entry.save(update_fields=["balance"])
        locked.current_balance = balance
        locked.save(update_fields=["current_balance", "updated_at"])

    entity.current_balance = balance
    logger.info("Recalculated %s #%s balance: %s", locked.LEDGER_ENTITY_TYPE, locked.pk, balance)
    return balance


def ensure_deletable(entity) -> None:
    """Raise :class:`Conflict` unless ``entity`` has no balance-affecting history.

    Deletion is allowed with no entries at all, or with a single entry (the
    opening balance line) while the balance still equals the opening balance.
    """

    count = ledger_entries_for(entity).count()
    if count == 0:
        return
    if count == 1 and entity.current_balance == entity.opening_balance:
        return
    raise Conflict(
        f"Cannot delete '{entity}': it has {count} ledger entries.",
        extra={"ledger_entries": count},
    )


def create_account(
    *,
    name: str,
    account_type: str = Account.CASH,
    opening_balance=None,
    account_number: str = "",
    bank_name: str = "",
    user=None,
) -> Account:
    """Create an account and record its opening balance line."""

    name = (name or "").strip()
    if not name:
        raise ValidationFailed("Account name is required.")
    opening_balance = to_decimal(opening_balance)
    if opening_balance < 0:
        raise ValidationFailed("Opening balance cannot be negative.")
    if account_type == Account.BANK and not (bank_name or "").strip():
        raise ValidationFailed("Bank name is required for bank accounts.")
    if Account.objects.filter(name__iexact=name).exists():
        raise Conflict(f"Account with name '{name}' already exists.")

    with transaction.atomic():
        account = Account.objects.create(
            name=name,
            account_type=account_type,
            account_number=(account_number or "").strip(),
            bank_name=(bank_name or "").strip(),
            opening_balance=opening_balance,
            current_balance=opening_balance,
            created_by=user,
        )
        if opening_balance > 0:
            LedgerEntry.objects.create(
                entity_type=LedgerEntry.ACCOUNT,
                account=account,
                transaction_type=LedgerEntry.CREDIT,
                amount=opening_balance,
                balance=opening_balance,
                description="Opening Balance",
                is_opening=True,
                transaction_date=account.created_at,
                created_by=user,
            )

    logger.info("Account %s created with opening balance %s", account.pk, opening_balance)
    return account


def _get_account(account_id) -> Account:
    try:
        return Account.objects.get(pk=account_id)
    except (Account.DoesNotExist, ValueError, TypeError) as exc:
        raise NotFound(f"Account with ID {account_id} not found.") from exc


def get_account_balance(account_id) -> dict:
    account = _get_account(account_id)
    return {
        "account_id": account.pk,
        "account_name": account.name,
        "opening_balance": account.opening_balance,
        "current_balance": account.current_balance,
    }


def get_account_ledger(account_id) -> list[dict]:
    """Return the account's entries in chronological order for display."""

    account = _get_account(account_id)
    entries = (
        ledger_entries_for(account)
        .select_related("payment", "purchase_invoice")
        .order_by("transaction_date", "id")
    )
    rows = []
    for entry in entries:
        reference = entry.reference_number
        if not reference and entry.payment_id:
            reference = entry.payment.payment_number
        if not reference and entry.purchase_invoice_id:
            reference = entry.purchase_invoice.invoice_number
        rows.append(
            {
                "id": entry.pk,
                "date": entry.transaction_date,
                "description": entry.description,
                "type": entry.transaction_type,
                "amount": entry.amount,
                "balance": entry.balance,
                "reference": reference or None,
            }
        )
    return rows

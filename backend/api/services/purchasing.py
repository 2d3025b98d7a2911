"""Purchase invoice and supplier payment workflows.

Each public function validates its input against the current records first
and then performs every balance, stock and ledger mutation inside a single
``transaction.atomic()`` block: an invoice either lands with its lines, stock
receipts, supplier credit and optional payment, or nothing is written.
Document numbers are allocated inside the same block; the number columns are
unique so a concurrent duplicate aborts the transaction.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from decimal import Decimal
from typing import Iterable, Mapping

from django.db import transaction
from django.db.models import Count, DecimalField, Q, Sum
from django.db.models.functions import Coalesce
from django.utils import timezone

from ..exceptions import Conflict, InsufficientFunds, NotFound, ValidationFailed
from ..models import (
    Account,
    Item,
    LedgerEntry,
    Payment,
    PurchaseInvoice,
    PurchaseInvoiceItem,
    Supplier,
)
from .inventory import adjust_stock, revert_stock
from .ledger import (
    adjust_ledger_entry_amount,
    create_ledger_entry,
    reverse_ledger_entry,
    to_decimal,
)

logger = logging.getLogger(__name__)

__all__ = [
    "create_payment",
    "create_purchase_invoice",
    "delete_payment",
    "delete_purchase_invoice",
    "get_purchase_summary",
    "get_supplier",
    "get_supplier_statement",
    "next_document_number",
    "update_purchase_invoice",
]

INVOICE_PREFIX = "PI"
PAYMENT_PREFIX = "PAY"


def next_document_number(model, field: str, prefix: str, on_date=None) -> str:
    """Return the next ``<prefix>-<year>-<NNNN>`` number for ``model``.

    Must be called inside the transaction that creates the numbered row.
    """

    year = (on_date or timezone.localdate()).year
    stem = f"{prefix}-{year}-"
    last_number = (
        model.objects.select_for_update()
        .filter(**{f"{field}__startswith": stem})
        .order_by(f"-{field}")
        .values_list(field, flat=True)
        .first()
    )
    sequence = 1
    if last_number:
        suffix = last_number[len(stem):]
        if suffix.isdigit():
            sequence = int(suffix) + 1

    number = f"{stem}{sequence:04d}"
    while model.objects.filter(**{field: number}).exists():
        sequence += 1
        number = f"{stem}{sequence:04d}"
    return number


def get_supplier(supplier_id) -> Supplier:
    try:
        return Supplier.objects.get(pk=supplier_id)
    except (Supplier.DoesNotExist, ValueError, TypeError) as exc:
        raise NotFound(f"Supplier with ID {supplier_id} not found.") from exc


def _get_account(account_id) -> Account:
    try:
        return Account.objects.get(pk=account_id)
    except (Account.DoesNotExist, ValueError, TypeError) as exc:
        raise NotFound(f"Account with ID {account_id} not found.") from exc


def _normalise_lines(lines: Iterable[Mapping]) -> list[tuple[int, Decimal, Decimal]]:
    normalised = []
    for line in lines:
        quantity = to_decimal(line.get("quantity"))
        unit_price = to_decimal(line.get("unit_price"))
        if quantity <= 0:
            raise ValidationFailed("Item quantity must be greater than zero.")
        if unit_price <= 0:
            raise ValidationFailed("Item unit price must be greater than zero.")
        normalised.append((line.get("item_id"), quantity, unit_price))
    if not normalised:
        raise ValidationFailed("At least one item is required.")
    return normalised


def _load_items(item_ids) -> dict[int, Item]:
    wanted = set(item_ids)
    items = {item.pk: item for item in Item.objects.filter(pk__in=wanted)}
    missing = sorted(str(pk) for pk in wanted - set(items))
    if missing:
        raise NotFound(f"Items not found: {', '.join(missing)}.", extra={"missing_item_ids": missing})
    return items


def _validate_payment_terms(payment_status, paid_amount, account_id, total_amount) -> Decimal:
    """Check that ``payment_status`` agrees with the amount paid up front."""

    if payment_status == PurchaseInvoice.UNPAID:
        if paid_amount not in (None, "") and to_decimal(paid_amount) != 0:
            raise ValidationFailed("paid_amount must not be provided for unpaid invoices.")
        return Decimal("0.00")

    if payment_status not in (PurchaseInvoice.PAID, PurchaseInvoice.PARTIAL):
        raise ValidationFailed(f"Unknown payment status '{payment_status}'.")
    if not account_id:
        raise ValidationFailed("account_id is required when the invoice is paid or partially paid.")
    if paid_amount in (None, ""):
        raise ValidationFailed("paid_amount is required when the invoice is paid or partially paid.")

    paid = to_decimal(paid_amount)
    if payment_status == PurchaseInvoice.PAID and paid != total_amount:
        raise ValidationFailed(
            f"For paid invoices paid_amount ({paid}) must equal total_amount ({total_amount})."
        )
    if payment_status == PurchaseInvoice.PARTIAL and not (0 < paid < total_amount):
        raise ValidationFailed(
            f"For partially paid invoices paid_amount must be between 0 and total_amount ({total_amount})."
        )
    return paid


def _totals(subtotal: Decimal, tax_amount, discount_amount) -> tuple[Decimal, Decimal, Decimal]:
    tax = to_decimal(tax_amount)
    discount = to_decimal(discount_amount)
    if tax < 0 or discount < 0:
        raise ValidationFailed("Tax and discount cannot be negative.")
    total = subtotal + tax - discount
    if total <= 0:
        raise ValidationFailed("Invoice total must be greater than zero.")
    return tax, discount, total


def create_purchase_invoice(
    *,
    supplier_id,
    items: Iterable[Mapping],
    payment_status: str = PurchaseInvoice.UNPAID,
    paid_amount=None,
    account_id=None,
    tax_amount=None,
    discount_amount=None,
    invoice_date=None,
    due_date=None,
    notes: str = "",
    user=None,
) -> PurchaseInvoice:
    """Record a purchase: lines, stock receipts, supplier credit and payment."""

    lines = _normalise_lines(items)
    supplier = get_supplier(supplier_id)
    stock_items = _load_items(item_id for item_id, _, _ in lines)

    subtotal = sum((to_decimal(qty * price) for _, qty, price in lines), Decimal("0.00"))
    tax, discount, total = _totals(subtotal, tax_amount, discount_amount)
    paid = _validate_payment_terms(payment_status, paid_amount, account_id, total)
    account = _get_account(account_id) if paid > 0 else None
    if account is not None and paid > account.current_balance:
        raise InsufficientFunds(
            f"Insufficient balance in '{account}'. Available: {account.current_balance}, required: {paid}.",
            extra={"available": str(account.current_balance), "required": str(paid)},
        )
    invoice_date = invoice_date or timezone.localdate()

    with transaction.atomic():
        number = next_document_number(PurchaseInvoice, "invoice_number", INVOICE_PREFIX)
        invoice = PurchaseInvoice.objects.create(
            invoice_number=number,
            supplier=supplier,
            invoice_date=invoice_date,
            due_date=due_date,
            subtotal=subtotal,
            tax_amount=tax,
            discount_amount=discount,
            total_amount=total,
            paid_amount=paid,
            payment_status=payment_status,
            notes=notes or "",
            created_by=user,
        )

        reason = f"Purchase Invoice #{number}"
        for item_id, quantity, unit_price in lines:
            stock_item = stock_items[item_id]
            PurchaseInvoiceItem.objects.create(
                purchase_invoice=invoice,
                item=stock_item,
                quantity=quantity,
                unit_price=unit_price,
                total_price=to_decimal(quantity * unit_price),
            )
            adjust_stock(stock_item, quantity, unit_price, reason, user=user, purchase_invoice=invoice)

        create_ledger_entry(
            supplier,
            LedgerEntry.CREDIT,
            total,
            f"Purchase Invoice #{number}",
            number,
            purchase_invoice=invoice,
            user=user,
        )

        if paid > 0:
            payment_number = next_document_number(Payment, "payment_number", PAYMENT_PREFIX)
            payment = Payment.objects.create(
                payment_number=payment_number,
                supplier=supplier,
                account=account,
                purchase_invoice=invoice,
                amount=paid,
                payment_date=invoice_date,
                notes=f"Payment for Purchase Invoice #{number}",
                created_by=user,
            )
            create_ledger_entry(
                supplier,
                LedgerEntry.DEBIT,
                paid,
                f"Payment for Invoice #{number}",
                payment_number,
                payment=payment,
                purchase_invoice=invoice,
                user=user,
            )
            create_ledger_entry(
                account,
                LedgerEntry.DEBIT,
                paid,
                f"Payment for Purchase Invoice #{number}",
                payment_number,
                payment=payment,
                purchase_invoice=invoice,
                user=user,
            )

    logger.info(
        "Purchase invoice %s created for supplier %s: total=%s paid=%s",
        number,
        supplier.pk,
        total,
        paid,
    )
    return invoice


def _lock_editable_invoice(invoice: PurchaseInvoice) -> PurchaseInvoice:
    locked = PurchaseInvoice.objects.select_for_update().get(pk=invoice.pk)
    if locked.payments.exists():
        raise Conflict(f"Invoice {locked.invoice_number} has payments and cannot be changed.")
    return locked


def _quantities_by_item(lines) -> "OrderedDict[int, Decimal]":
    totals: OrderedDict[int, Decimal] = OrderedDict()
    for item_id, quantity in lines:
        totals[item_id] = totals.get(item_id, Decimal("0.00")) + quantity
    return totals


def update_purchase_invoice(invoice: PurchaseInvoice, *, user=None, **changes) -> PurchaseInvoice:
    """Edit an unpaid invoice without payments.

    When ``items`` is supplied the lines are replaced and only the per-item
    quantity difference is applied to stock.  Any change of the total is
    carried to the supplier balance through the invoice's credit entry.
    """

    new_lines = None
    if changes.get("items") is not None:
        new_lines = _normalise_lines(changes["items"])
        stock_items = _load_items(item_id for item_id, _, _ in new_lines)

    with transaction.atomic():
        locked = _lock_editable_invoice(invoice)
        if locked.payment_status != PurchaseInvoice.UNPAID:
            raise Conflict(f"Only unpaid invoices can be updated; {locked.invoice_number} is {locked.payment_status}.")

        subtotal = locked.subtotal
        if new_lines is not None:
            old_quantities = _quantities_by_item(
                locked.items.values_list("item_id", "quantity")
            )
            new_quantities = _quantities_by_item((item_id, qty) for item_id, qty, _ in new_lines)
            new_prices = {item_id: price for item_id, _, price in new_lines}
            reason = f"Purchase Invoice #{locked.invoice_number} (updated)"

            for item_id in set(old_quantities) | set(new_quantities):
                delta = new_quantities.get(item_id, Decimal("0.00")) - old_quantities.get(item_id, Decimal("0.00"))
                if not delta:
                    continue
                stock_item = stock_items.get(item_id) or Item.objects.get(pk=item_id)
                adjust_stock(
                    stock_item,
                    delta,
                    new_prices.get(item_id),
                    reason,
                    user=user,
                    purchase_invoice=locked,
                )

            locked.items.all().delete()
            subtotal = Decimal("0.00")
            for item_id, quantity, unit_price in new_lines:
                line_total = to_decimal(quantity * unit_price)
                PurchaseInvoiceItem.objects.create(
                    purchase_invoice=locked,
                    item=stock_items[item_id],
                    quantity=quantity,
                    unit_price=unit_price,
                    total_price=line_total,
                )
                subtotal += line_total

        tax, discount, total = _totals(
            subtotal,
            changes.get("tax_amount", locked.tax_amount),
            changes.get("discount_amount", locked.discount_amount),
        )
        difference = total - locked.total_amount
        if difference:
            credit = locked.ledger_entries.filter(
                entity_type=LedgerEntry.SUPPLIER,
                transaction_type=LedgerEntry.CREDIT,
            ).first()
            if credit is not None:
                adjust_ledger_entry_amount(credit, total)
            else:
                create_ledger_entry(
                    locked.supplier,
                    LedgerEntry.CREDIT if difference > 0 else LedgerEntry.DEBIT,
                    abs(difference),
                    f"Purchase Invoice #{locked.invoice_number} (updated)",
                    locked.invoice_number,
                    purchase_invoice=locked,
                    user=user,
                )

        locked.subtotal = subtotal
        locked.tax_amount = tax
        locked.discount_amount = discount
        locked.total_amount = total
        for field in ("invoice_date", "notes"):
            if changes.get(field) is not None:
                setattr(locked, field, changes[field])
        if "due_date" in changes:
            locked.due_date = changes["due_date"]
        locked.save()

    logger.info("Purchase invoice %s updated: total=%s (difference %s)", locked.invoice_number, total, difference)
    return locked


def delete_purchase_invoice(invoice: PurchaseInvoice) -> None:
    """Remove an invoice without payments and undo its stock and balance effects."""

    with transaction.atomic():
        locked = _lock_editable_invoice(invoice)
        number = locked.invoice_number

        for line in locked.items.select_related("item"):
            revert_stock(line.item, line.quantity)
        for entry in locked.ledger_entries.all():
            reverse_ledger_entry(entry)

        locked.stock_adjustments.all().delete()
        locked.items.all().delete()
        locked.delete()

    logger.info("Purchase invoice %s deleted", number)


def create_payment(
    *,
    supplier_id,
    account_id,
    amount,
    payment_date=None,
    notes: str = "",
    user=None,
) -> Payment:
    """Pay a supplier directly from ``account_id`` without an invoice."""

    amount = to_decimal(amount)
    if amount <= 0:
        raise ValidationFailed("Payment amount must be greater than zero.")
    supplier = get_supplier(supplier_id)
    account = _get_account(account_id)
    payment_date = payment_date or timezone.localdate()

    with transaction.atomic():
        supplier = Supplier.objects.select_for_update().get(pk=supplier.pk)
        outstanding = supplier.current_balance
        if outstanding == 0:
            raise ValidationFailed(f"Supplier '{supplier}' has no outstanding balance.")
        if amount > outstanding:
            raise ValidationFailed(
                f"Payment amount ({amount}) exceeds the outstanding balance of '{supplier}' ({outstanding}).",
                extra={"outstanding_balance": str(outstanding)},
            )

        number = next_document_number(Payment, "payment_number", PAYMENT_PREFIX)
        payment = Payment.objects.create(
            payment_number=number,
            supplier=supplier,
            account=account,
            amount=amount,
            payment_date=payment_date,
            notes=notes or "Direct payment to supplier",
            created_by=user,
        )
        create_ledger_entry(
            supplier,
            LedgerEntry.DEBIT,
            amount,
            f"Direct Payment #{number}",
            number,
            payment=payment,
            user=user,
        )
        create_ledger_entry(
            account,
            LedgerEntry.DEBIT,
            amount,
            f"Direct Payment #{number} to {supplier.name}",
            number,
            payment=payment,
            user=user,
        )

    logger.info("Direct payment %s of %s to supplier %s from account %s", number, amount, supplier.pk, account.pk)
    return payment


def delete_payment(payment: Payment) -> None:
    """Delete a direct payment and restore both balances."""

    if payment.purchase_invoice_id:
        raise Conflict(
            f"Payment {payment.payment_number} belongs to invoice "
            f"{payment.purchase_invoice.invoice_number} and cannot be deleted on its own."
        )

    with transaction.atomic():
        for entry in payment.ledger_entries.select_for_update():
            reverse_ledger_entry(entry)
        number = payment.payment_number
        payment.delete()

    logger.info("Direct payment %s deleted", number)


def get_purchase_summary() -> dict:
    money = DecimalField(max_digits=14, decimal_places=2)
    totals = PurchaseInvoice.objects.aggregate(
        total_invoices=Count("id"),
        paid_count=Count("id", filter=Q(payment_status=PurchaseInvoice.PAID)),
        unpaid_count=Count("id", filter=Q(payment_status=PurchaseInvoice.UNPAID)),
        partial_count=Count("id", filter=Q(payment_status=PurchaseInvoice.PARTIAL)),
        total_amount=Coalesce(Sum("total_amount"), Decimal("0.00"), output_field=money),
        paid_amount=Coalesce(Sum("paid_amount"), Decimal("0.00"), output_field=money),
    )
    totals["outstanding_amount"] = totals["total_amount"] - totals["paid_amount"]
    return totals


def get_supplier_statement(supplier_id) -> dict:
    """Summarise a supplier's invoices and payments."""

    supplier = get_supplier(supplier_id)
    invoices = list(supplier.purchase_invoices.order_by("-invoice_date", "-id"))
    payments = list(
        supplier.payments.select_related("account", "purchase_invoice").order_by("-payment_date", "-id")
    )

    total_purchases = sum((invoice.total_amount for invoice in invoices), Decimal("0.00"))
    total_payments = sum((payment.amount for payment in payments), Decimal("0.00"))

    return {
        "supplier_id": supplier.pk,
        "supplier_name": supplier.name,
        "company_name": supplier.company_name,
        "phone": supplier.phone,
        "address": supplier.address,
        "opening_balance": supplier.opening_balance,
        "current_balance": supplier.current_balance,
        "summary": {
            "total_purchases": total_purchases,
            "total_payments": total_payments,
            "outstanding_balance": supplier.current_balance,
            "invoice_count": len(invoices),
            "payment_count": len(payments),
            "unpaid_invoice_count": sum(1 for i in invoices if i.payment_status == PurchaseInvoice.UNPAID),
            "partial_invoice_count": sum(1 for i in invoices if i.payment_status == PurchaseInvoice.PARTIAL),
        },
        "invoices": [
            {
                "id": invoice.pk,
                "invoice_number": invoice.invoice_number,
                "invoice_date": invoice.invoice_date,
                "due_date": invoice.due_date,
                "total_amount": invoice.total_amount,
                "paid_amount": invoice.paid_amount,
                "outstanding_amount": invoice.outstanding_amount,
                "payment_status": invoice.payment_status,
                "notes": invoice.notes,
            }
            for invoice in invoices
        ],
        "payments": [
            {
                "id": payment.pk,
                "payment_number": payment.payment_number,
                "payment_date": payment.payment_date,
                "amount": payment.amount,
                "invoice_id": payment.purchase_invoice_id,
                "invoice_number": payment.purchase_invoice.invoice_number if payment.purchase_invoice_id else None,
                "account_name": payment.account.name,
                "notes": payment.notes,
            }
            for payment in payments
        ],
    }

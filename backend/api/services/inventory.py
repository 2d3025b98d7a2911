"""Inventory costing: stock quantities and weighted-average unit costs.

Item quantities only change through :func:`adjust_stock` (or
:func:`receive_finished_goods` for completed production), each of which locks
the item row, recomputes the quantity and average price and appends a
:class:`StockAdjustment` in the same transaction.  The sum of an item's
adjustments therefore always equals its quantity.
"""

from __future__ import annotations

import logging
from decimal import Decimal, ROUND_HALF_UP

from django.db import transaction

from ..exceptions import Conflict, InsufficientStock, NotFound, ValidationFailed
from ..models import Item, Recipe, StockAdjustment
from .ledger import MONEY_QUANTIZER, to_decimal

logger = logging.getLogger(__name__)

__all__ = [
    "adjust_stock",
    "ensure_item_deletable",
    "get_item",
    "get_stock_history",
    "get_stock_info",
    "receive_finished_goods",
    "revert_stock",
    "weighted_average",
]


def weighted_average(current_qty, current_avg, added_qty, unit_price) -> Decimal:
    """Return the average unit cost after adding ``added_qty`` at ``unit_price``."""

    total_qty = current_qty + added_qty
    if total_qty <= 0:
        return Decimal("0.00")
    total_value = current_qty * current_avg + added_qty * unit_price
    return (total_value / total_qty).quantize(MONEY_QUANTIZER, rounding=ROUND_HALF_UP)


def get_item(item_id) -> Item:
    try:
        return Item.objects.select_related("category").get(pk=item_id)
    except (Item.DoesNotExist, ValueError, TypeError) as exc:
        raise NotFound(f"Item with ID {item_id} not found.") from exc


def adjust_stock(
    item: Item,
    quantity,
    unit_price=None,
    reason: str = "",
    *,
    notes: str = "",
    user=None,
    purchase_invoice=None,
    production=None,
) -> StockAdjustment:
    """Add (positive ``quantity``) or remove (negative) stock for ``item``.

    Adding stock requires a positive ``unit_price`` and re-weights the average
    price.  Removing stock keeps the average price unless the item runs out,
    in which case it resets to zero.
    """

    quantity = to_decimal(quantity)
    if quantity == 0:
        raise ValidationFailed("Adjustment quantity cannot be zero.")
    if quantity > 0:
        unit_price = to_decimal(unit_price)
        if unit_price <= 0:
            raise ValidationFailed("Unit price must be greater than zero when adding stock.")
    reason = (reason or "").strip()
    if not reason:
        raise ValidationFailed("A reason is required for stock adjustments.")

    with transaction.atomic():
        locked = Item.objects.select_for_update().get(pk=item.pk)
        current_qty = to_decimal(locked.quantity)
        new_qty = current_qty + quantity
        if new_qty < 0:
            logger.warning(
                "Rejected stock adjustment of %s for item %s: only %s available",
                quantity,
                locked.pk,
                current_qty,
            )
            raise InsufficientStock(
                f"Insufficient stock for '{locked.name}'. Available: {current_qty}, requested: {-quantity}.",
                extra={
                    "item_id": locked.pk,
                    "available": str(current_qty),
                    "requested": str(-quantity),
                },
            )

        if quantity > 0:
            new_avg = weighted_average(current_qty, to_decimal(locked.avg_price), quantity, unit_price)
        elif new_qty == 0:
            new_avg = Decimal("0.00")
        else:
            new_avg = to_decimal(locked.avg_price)

        locked.quantity = new_qty
        locked.avg_price = new_avg
        locked.save(update_fields=["quantity", "avg_price", "updated_at"])

        adjustment = StockAdjustment.objects.create(
            item=locked,
            quantity=quantity,
            avg_price=new_avg,
            reason=reason,
            notes=notes or "",
            purchase_invoice=purchase_invoice,
            production=production,
            created_by=user,
        )

    item.quantity = new_qty
    item.avg_price = new_avg
    logger.info("Stock for item %s adjusted by %s (%s): qty=%s avg=%s", item.pk, quantity, reason, new_qty, new_avg)
    return adjustment


def receive_finished_goods(
    item: Item,
    quantity,
    unit_cost,
    reason: str,
    *,
    user=None,
    production=None,
) -> StockAdjustment:
    """Add produced units to ``item`` and set its average price to ``unit_cost``.

    Unlike purchases, completed batches overwrite the average price instead
    of weighting it against the stock already on hand.
    """

    quantity = to_decimal(quantity)
    unit_cost = to_decimal(unit_cost)
    if quantity <= 0:
        raise ValidationFailed("Produced quantity must be greater than zero.")

    with transaction.atomic():
        locked = Item.objects.select_for_update().get(pk=item.pk)
        locked.quantity = to_decimal(locked.quantity) + quantity
        locked.avg_price = unit_cost
        locked.save(update_fields=["quantity", "avg_price", "updated_at"])
        adjustment = StockAdjustment.objects.create(
            item=locked,
            quantity=quantity,
            avg_price=unit_cost,
            reason=reason,
            production=production,
            created_by=user,
        )

    item.quantity = locked.quantity
    item.avg_price = unit_cost
    return adjustment


def revert_stock(item: Item, quantity) -> Item:
    """Take back ``quantity`` previously received for ``item``.

    Used when the document that received the stock is deleted together with
    its adjustments, so no new adjustment is written here.
    """

    quantity = to_decimal(quantity)
    with transaction.atomic():
        locked = Item.objects.select_for_update().get(pk=item.pk)
        new_qty = to_decimal(locked.quantity) - quantity
        if new_qty < 0:
            raise InsufficientStock(
                f"Cannot reverse {quantity} units of '{locked.name}': only {locked.quantity} left in stock.",
                extra={"item_id": locked.pk, "available": str(locked.quantity), "requested": str(quantity)},
            )
        locked.quantity = new_qty
        if new_qty == 0:
            locked.avg_price = Decimal("0.00")
        locked.save(update_fields=["quantity", "avg_price", "updated_at"])
    return locked


def get_stock_info(item_id) -> dict:
    item = get_item(item_id)
    return {
        "item_id": item.pk,
        "item_name": item.name,
        "quantity": item.quantity,
        "avg_price": item.avg_price,
        "total_value": to_decimal(item.total_value),
        "item_type": item.item_type,
        "category_name": item.category.name,
    }


def get_stock_history(item_id):
    """Return the item's adjustments, newest first."""

    item = get_item(item_id)
    return (
        StockAdjustment.objects.filter(item=item)
        .select_related("item", "created_by", "purchase_invoice", "production")
        .order_by("-adjustment_date", "-id")
    )


def ensure_item_deletable(item: Item) -> None:
    if item.quantity != 0:
        raise Conflict(
            f"Cannot delete '{item.name}': it still has {item.quantity} units in stock.",
            extra={"quantity": str(item.quantity)},
        )
    adjustments = item.stock_adjustments.count()
    if adjustments:
        raise Conflict(
            f"Cannot delete '{item.name}': it has {adjustments} stock adjustments.",
            extra={"stock_adjustments": adjustments},
        )
    if item.recipe_usages.exists() or Recipe.objects.filter(final_product=item).exists():
        raise Conflict(f"Cannot delete '{item.name}': it is referenced by a recipe.")

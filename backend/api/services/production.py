"""Production batches: draft, in process, done.

A batch copies its recipe's ingredients when it is created and may diverge
from them afterwards without touching the recipe.  Starting a batch consumes
the raw materials; completing it turns the batch into serialized finished
units costed at the ingredients' current average prices.  Status changes go
through :meth:`Production.transition_to`, which only allows the next step.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable, Mapping

from django.db import transaction
from django.utils import timezone

from ..exceptions import Conflict, InsufficientStock, NotFound, ValidationFailed
from ..models import Production, ProductionIngredient, ProductionItem
from .inventory import adjust_stock, receive_finished_goods
from .ledger import to_decimal
from .recipes import get_recipe, validate_ingredient_items

logger = logging.getLogger(__name__)

__all__ = [
    "complete_production",
    "create_production",
    "delete_production",
    "get_feasibility",
    "get_production",
    "start_production",
    "update_ingredients",
    "update_production_notes",
]


def get_production(production_id) -> Production:
    try:
        return Production.objects.select_related("recipe__final_product").get(pk=production_id)
    except (Production.DoesNotExist, ValueError, TypeError) as exc:
        raise NotFound(f"Production with ID {production_id} not found.") from exc


def _require_status(production: Production, status, action: str) -> None:
    if production.status != status:
        raise Conflict(
            f"Cannot {action} batch '{production.batch_number}' while it is "
            f"{Production.Status(production.status).label}."
        )


def create_production(*, recipe_id, batch_number: str, quantity, notes: str = "", user=None) -> Production:
    """Open a draft batch with a copy of the recipe's ingredients."""

    recipe = get_recipe(recipe_id)
    batch_number = (batch_number or "").strip()
    if not batch_number:
        raise ValidationFailed("Batch number is required.")
    try:
        quantity = int(quantity)
    except (TypeError, ValueError) as exc:
        raise ValidationFailed("Quantity must be a whole number.") from exc
    if quantity < 1:
        raise ValidationFailed("Quantity must be at least 1.")
    if Production.objects.filter(batch_number=batch_number).exists():
        raise Conflict(f"Batch number '{batch_number}' already exists.")

    with transaction.atomic():
        production = Production.objects.create(
            batch_number=batch_number,
            recipe=recipe,
            quantity=quantity,
            notes=(notes or "").strip(),
            created_by=user,
        )
        ProductionIngredient.objects.bulk_create(
            ProductionIngredient(
                production=production,
                item_id=ingredient.item_id,
                quantity=ingredient.quantity,
                is_from_recipe=True,
            )
            for ingredient in recipe.ingredients.all()
        )

    logger.info("Production batch %s created from recipe %s (qty %s)", batch_number, recipe.pk, quantity)
    return production


def update_production_notes(production: Production, notes: str) -> Production:
    _require_status(production, Production.Status.DRAFT, "edit notes of")
    production.notes = (notes or "").strip()
    production.save(update_fields=["notes", "updated_at"])
    return production


def update_ingredients(production: Production, ingredients: Iterable[Mapping]) -> Production:
    """Replace the batch's ingredient list; the recipe stays untouched."""

    if production.status == Production.Status.DONE:
        raise Conflict(f"Cannot modify ingredients of completed batch '{production.batch_number}'.")

    resolved = validate_ingredient_items(
        ingredients,
        production.recipe.final_product_id,
        raw_only=False,
    )

    with transaction.atomic():
        production.ingredients.all().delete()
        ProductionIngredient.objects.bulk_create(
            ProductionIngredient(production=production, item=item, quantity=quantity, is_from_recipe=False)
            for item, quantity in resolved
        )

    logger.info("Production batch %s ingredients replaced (%s items)", production.batch_number, len(resolved))
    return production


def get_feasibility(production: Production) -> dict:
    """Compare the batch's requirements with current stock. Read only."""

    quantity = production.quantity
    cost_per_unit = Decimal("0.00")
    rows = []
    suggestions = []

    for ingredient in production.ingredients.select_related("item").order_by("id"):
        item = ingredient.item
        required = to_decimal(ingredient.quantity * quantity)
        available = to_decimal(item.quantity)
        sufficient = available >= required
        shortage = Decimal("0.00") if sufficient else required - available
        line_cost = to_decimal(ingredient.quantity * item.avg_price)
        cost_per_unit += line_cost
        rows.append(
            {
                "item_id": item.pk,
                "item_name": item.name,
                "required": required,
                "available": available,
                "sufficient": sufficient,
                "shortage": shortage,
                "current_avg_price": item.avg_price,
                "estimated_cost": to_decimal(line_cost * quantity),
            }
        )
        if not sufficient:
            suggestions.append(
                f"Purchase {shortage} more unit(s) of '{item.name}' via Purchase Invoice or Stock Adjustment"
            )

    insufficient = sum(1 for row in rows if not row["sufficient"])
    return {
        "production_id": production.pk,
        "can_produce": insufficient == 0,
        "ingredients": rows,
        "estimated_cost_per_unit": cost_per_unit,
        "estimated_total_cost": to_decimal(cost_per_unit * quantity),
        "total_sufficient": len(rows) - insufficient,
        "total_insufficient": insufficient,
        "suggestions": suggestions,
    }


def _json_ready(feasibility: dict) -> dict:
    """Stringify decimals so the breakdown can travel inside an error body."""

    def convert(value):
        if isinstance(value, Decimal):
            return str(value)
        if isinstance(value, list):
            return [convert(v) for v in value]
        if isinstance(value, dict):
            return {k: convert(v) for k, v in value.items()}
        return value

    return convert(feasibility)


def start_production(production: Production, user=None) -> Production:
    """Consume the raw materials and move the batch to in process."""

    with transaction.atomic():
        production = Production.objects.select_for_update().get(pk=production.pk)
        _require_status(production, Production.Status.DRAFT, "start")
        if not production.ingredients.exists():
            raise ValidationFailed(f"Batch '{production.batch_number}' has no ingredients.")

        feasibility = get_feasibility(production)
        if not feasibility["can_produce"]:
            logger.warning("Production batch %s cannot start: insufficient stock", production.batch_number)
            raise InsufficientStock(
                f"Insufficient stock to start batch '{production.batch_number}'.",
                extra={"feasibility": _json_ready(feasibility)},
            )

        reason = f"Production Started - Batch #{production.batch_number}"
        for ingredient in production.ingredients.select_related("item").order_by("id"):
            adjust_stock(
                ingredient.item,
                -(ingredient.quantity * production.quantity),
                reason=reason,
                user=user,
                production=production,
            )

        production.transition_to(Production.Status.IN_PROCESS)
        production.start_date = timezone.now()
        production.save(update_fields=["status", "start_date", "updated_at"])

    logger.info("Production batch %s started", production.batch_number)
    return production


def _clean_serials(production: Production, serial_numbers) -> list[str]:
    serials = [str(serial).strip() for serial in (serial_numbers or [])]
    if any(not serial for serial in serials):
        raise ValidationFailed("Serial numbers cannot be empty.")
    if len(serials) != production.quantity:
        raise ValidationFailed(
            f"Expected {production.quantity} serial numbers, received {len(serials)}."
        )
    duplicates = sorted({serial for serial in serials if serials.count(serial) > 1})
    if duplicates:
        raise ValidationFailed(
            f"Duplicate serial numbers: {', '.join(duplicates)}.",
            extra={"duplicates": duplicates},
        )
    existing = sorted(
        ProductionItem.objects.filter(serial_number__in=serials).values_list("serial_number", flat=True)
    )
    if existing:
        raise Conflict(
            f"Serial numbers already in use: {', '.join(existing)}.",
            extra={"existing_serial_numbers": existing},
        )
    return serials


def complete_production(production: Production, serial_numbers, user=None) -> Production:
    """Produce one serialized unit per serial number and close the batch.

    The cost per unit is the sum of ingredient quantity times the current
    average price; the finished item's average price is set to that cost.
    """

    with transaction.atomic():
        production = Production.objects.select_for_update().select_related(
            "recipe__final_product"
        ).get(pk=production.pk)
        _require_status(production, Production.Status.IN_PROCESS, "complete")
        serials = _clean_serials(production, serial_numbers)

        cost_per_unit = Decimal("0.00")
        for ingredient in production.ingredients.select_related("item"):
            cost_per_unit += ingredient.quantity * ingredient.item.avg_price
        cost_per_unit = to_decimal(cost_per_unit)

        final_product = production.recipe.final_product
        ProductionItem.objects.bulk_create(
            ProductionItem(
                production=production,
                item=final_product,
                serial_number=serial,
                cost_price=cost_per_unit,
            )
            for serial in serials
        )
        receive_finished_goods(
            final_product,
            production.quantity,
            cost_per_unit,
            f"Production Complete - Batch #{production.batch_number}",
            user=user,
            production=production,
        )

        production.transition_to(Production.Status.DONE)
        production.cost_per_unit = cost_per_unit
        production.total_cost = to_decimal(cost_per_unit * production.quantity)
        production.completion_date = timezone.now()
        production.save(
            update_fields=["status", "cost_per_unit", "total_cost", "completion_date", "updated_at"]
        )

    logger.info(
        "Production batch %s completed: %s units at %s each",
        production.batch_number,
        production.quantity,
        cost_per_unit,
    )
    return production


def delete_production(production: Production) -> None:
    _require_status(production, Production.Status.DRAFT, "delete")
    batch_number = production.batch_number
    production.delete()
    logger.info("Production batch %s deleted", batch_number)

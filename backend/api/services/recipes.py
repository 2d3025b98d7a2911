"""Recipe blueprints: the raw materials needed for one unit of a final product.

A recipe stays editable until one of its production batches has been
completed, and can only be deleted while no batch references it at all.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable, Mapping

from django.db import transaction

from ..exceptions import Conflict, NotFound, ValidationFailed
from ..models import Item, Production, Recipe, RecipeIngredient
from .ledger import to_decimal

logger = logging.getLogger(__name__)

__all__ = [
    "add_ingredient",
    "create_recipe",
    "delete_recipe",
    "ensure_recipe_editable",
    "get_cost_per_unit",
    "get_recipe",
    "remove_ingredient",
    "update_ingredient",
    "update_recipe",
    "validate_ingredient_items",
]


def get_recipe(recipe_id) -> Recipe:
    try:
        return Recipe.objects.select_related("final_product").get(pk=recipe_id)
    except (Recipe.DoesNotExist, ValueError, TypeError) as exc:
        raise NotFound(f"Recipe with ID {recipe_id} not found.") from exc


def _positive_quantity(value) -> Decimal:
    quantity = to_decimal(value)
    if quantity <= 0:
        raise ValidationFailed("Ingredient quantity must be greater than zero.")
    return quantity


def validate_ingredient_items(
    ingredients: Iterable[Mapping],
    final_product_id,
    *,
    raw_only: bool = True,
) -> list[tuple[Item, Decimal]]:
    """Resolve ``ingredients`` to ``(item, quantity)`` pairs.

    Item ids must be unique, must exist and must not include the final
    product itself.  Recipes also require every ingredient to be a raw
    material.
    """

    ingredients = list(ingredients)
    if not ingredients:
        raise ValidationFailed("At least one ingredient is required.")

    item_ids = [ingredient.get("item_id") for ingredient in ingredients]
    if len(set(item_ids)) != len(item_ids):
        raise ValidationFailed("Duplicate item_id in ingredients.")
    if final_product_id in item_ids:
        raise ValidationFailed("The final product cannot be an ingredient of itself.")

    items = Item.objects.in_bulk(item_ids)
    missing = [str(pk) for pk in item_ids if pk not in items]
    if missing:
        raise NotFound(f"Ingredient items not found: {', '.join(missing)}.")

    resolved = []
    for ingredient in ingredients:
        item = items[ingredient["item_id"]]
        if raw_only and item.item_type != Item.RAW:
            raise ValidationFailed(f"Ingredient '{item.name}' must be a raw material.")
        resolved.append((item, _positive_quantity(ingredient.get("quantity"))))
    return resolved


def ensure_recipe_editable(recipe: Recipe) -> None:
    done = recipe.productions.filter(status=Production.Status.DONE).count()
    if done:
        raise Conflict(
            f"Recipe '{recipe.name}' has {done} completed production batches and can no longer be edited.",
            extra={"completed_productions": done},
        )


def create_recipe(*, name: str, final_product_id, ingredients, description: str = "", user=None) -> Recipe:
    try:
        final_product = Item.objects.get(pk=final_product_id)
    except (Item.DoesNotExist, ValueError, TypeError) as exc:
        raise NotFound(f"Item with ID {final_product_id} not found.") from exc
    if final_product.item_type != Item.FINAL:
        raise ValidationFailed(f"'{final_product.name}' is not a final product.")
    if Recipe.objects.filter(final_product=final_product).exists():
        raise Conflict(f"A recipe for '{final_product.name}' already exists.")
    name = (name or "").strip()
    if not name:
        raise ValidationFailed("Recipe name is required.")

    resolved = validate_ingredient_items(ingredients, final_product.pk)

    with transaction.atomic():
        recipe = Recipe.objects.create(
            name=name,
            description=(description or "").strip(),
            final_product=final_product,
            created_by=user,
        )
        RecipeIngredient.objects.bulk_create(
            RecipeIngredient(recipe=recipe, item=item, quantity=quantity) for item, quantity in resolved
        )

    logger.info("Recipe %s created for item %s with %s ingredients", recipe.pk, final_product.pk, len(resolved))
    return recipe


def update_recipe(recipe: Recipe, *, name=None, description=None, ingredients=None) -> Recipe:
    ensure_recipe_editable(recipe)

    resolved = None
    if ingredients is not None:
        resolved = validate_ingredient_items(ingredients, recipe.final_product_id)

    with transaction.atomic():
        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationFailed("Recipe name is required.")
            recipe.name = name
        if description is not None:
            recipe.description = description.strip()
        recipe.save()

        if resolved is not None:
            recipe.ingredients.all().delete()
            RecipeIngredient.objects.bulk_create(
                RecipeIngredient(recipe=recipe, item=item, quantity=quantity) for item, quantity in resolved
            )

    logger.info("Recipe %s updated", recipe.pk)
    return recipe


def delete_recipe(recipe: Recipe) -> None:
    count = recipe.productions.count()
    if count:
        raise Conflict(
            f"Recipe '{recipe.name}' is used by {count} production batches and cannot be deleted.",
            extra={"productions": count},
        )
    recipe_id = recipe.pk
    recipe.delete()
    logger.info("Recipe %s deleted", recipe_id)


def add_ingredient(recipe: Recipe, item_id, quantity) -> RecipeIngredient:
    ensure_recipe_editable(recipe)
    if item_id == recipe.final_product_id:
        raise ValidationFailed("The final product cannot be an ingredient of itself.")
    try:
        item = Item.objects.get(pk=item_id)
    except (Item.DoesNotExist, ValueError, TypeError) as exc:
        raise NotFound(f"Item with ID {item_id} not found.") from exc
    if item.item_type != Item.RAW:
        raise ValidationFailed(f"Ingredient '{item.name}' must be a raw material.")
    if recipe.ingredients.filter(item=item).exists():
        raise Conflict(f"'{item.name}' is already in this recipe.")

    return RecipeIngredient.objects.create(recipe=recipe, item=item, quantity=_positive_quantity(quantity))


def _get_ingredient(recipe: Recipe, item_id) -> RecipeIngredient:
    try:
        return recipe.ingredients.select_related("item").get(item_id=item_id)
    except (RecipeIngredient.DoesNotExist, ValueError, TypeError) as exc:
        raise NotFound(f"Ingredient item ID {item_id} not found in this recipe.") from exc


def update_ingredient(recipe: Recipe, item_id, quantity) -> RecipeIngredient:
    ensure_recipe_editable(recipe)
    ingredient = _get_ingredient(recipe, item_id)
    ingredient.quantity = _positive_quantity(quantity)
    ingredient.save(update_fields=["quantity"])
    return ingredient


def remove_ingredient(recipe: Recipe, item_id) -> None:
    ensure_recipe_editable(recipe)
    ingredient = _get_ingredient(recipe, item_id)
    if recipe.ingredients.count() == 1:
        raise ValidationFailed("A recipe must keep at least one ingredient.")
    ingredient.delete()


def get_cost_per_unit(recipe: Recipe) -> dict:
    """Cost of one unit at the ingredients' current average prices."""

    cost = Decimal("0.00")
    breakdown = []
    for ingredient in recipe.ingredients.select_related("item").order_by("id"):
        line_cost = to_decimal(ingredient.quantity * ingredient.item.avg_price)
        cost += line_cost
        breakdown.append(
            {
                "item_id": ingredient.item_id,
                "item_name": ingredient.item.name,
                "quantity": ingredient.quantity,
                "avg_price": ingredient.item.avg_price,
                "line_cost": line_cost,
            }
        )
    return {"recipe_id": recipe.pk, "cost_per_unit": cost, "breakdown": breakdown}

from decimal import Decimal

from django.test import TestCase

from ..exceptions import Conflict, NotFound, ValidationFailed
from ..models import Item, Production
from ..services.production import create_production
from ..services.recipes import (
    add_ingredient,
    create_recipe,
    delete_recipe,
    get_cost_per_unit,
    remove_ingredient,
    update_ingredient,
    update_recipe,
)
from . import make_item


class RecipeTests(TestCase):
    def setUp(self):
        self.wood = make_item("Wood", quantity="10", unit_price="40.00")
        self.glue = make_item("Glue", quantity="5", unit_price="5.00")
        self.chair = make_item("Chair", Item.FINAL)
        self.recipe = create_recipe(
            name="Chair",
            final_product_id=self.chair.pk,
            ingredients=[
                {"item_id": self.wood.pk, "quantity": "3"},
                {"item_id": self.glue.pk, "quantity": "2"},
            ],
        )

    def test_cost_per_unit_uses_current_average_prices(self):
        cost = get_cost_per_unit(self.recipe)
        self.assertEqual(cost["cost_per_unit"], Decimal("130.00"))
        self.assertEqual([row["line_cost"] for row in cost["breakdown"]], [Decimal("120.00"), Decimal("10.00")])

    def test_final_product_rules(self):
        with self.assertRaises(Conflict):
            create_recipe(name="Again", final_product_id=self.chair.pk, ingredients=[{"item_id": self.wood.pk, "quantity": "1"}])
        with self.assertRaises(ValidationFailed):
            create_recipe(name="Raw", final_product_id=self.wood.pk, ingredients=[{"item_id": self.glue.pk, "quantity": "1"}])
        with self.assertRaises(NotFound):
            create_recipe(name="Ghost", final_product_id=999999, ingredients=[{"item_id": self.glue.pk, "quantity": "1"}])

    def test_ingredient_rules(self):
        table = make_item("Table", Item.FINAL)
        cases = [
            [],
            [{"item_id": self.wood.pk, "quantity": "1"}, {"item_id": self.wood.pk, "quantity": "2"}],
            [{"item_id": table.pk, "quantity": "1"}],
            [{"item_id": self.chair.pk, "quantity": "1"}],
            [{"item_id": self.wood.pk, "quantity": "0"}],
        ]
        for ingredients in cases:
            with self.subTest(ingredients=ingredients):
                with self.assertRaises(ValidationFailed):
                    create_recipe(name="Table", final_product_id=table.pk, ingredients=ingredients)

    def test_per_ingredient_operations(self):
        screws = make_item("Screws")
        add_ingredient(self.recipe, screws.pk, "8")
        with self.assertRaises(Conflict):
            add_ingredient(self.recipe, screws.pk, "1")

        update_ingredient(self.recipe, screws.pk, "6")
        self.assertEqual(self.recipe.ingredients.get(item=screws).quantity, Decimal("6.00"))

        remove_ingredient(self.recipe, screws.pk)
        remove_ingredient(self.recipe, self.glue.pk)
        with self.assertRaises(ValidationFailed):
            remove_ingredient(self.recipe, self.wood.pk)
        with self.assertRaises(NotFound):
            update_ingredient(self.recipe, screws.pk, "1")

    def test_recipe_locked_after_completed_production(self):
        production = create_production(recipe_id=self.recipe.pk, batch_number="B-1", quantity=1)
        Production.objects.filter(pk=production.pk).update(status=Production.Status.DONE)

        with self.assertRaises(Conflict):
            update_recipe(self.recipe, name="Renamed")
        with self.assertRaises(Conflict):
            add_ingredient(self.recipe, make_item("Nails").pk, "1")

    def test_recipe_with_any_production_cannot_be_deleted(self):
        create_production(recipe_id=self.recipe.pk, batch_number="B-2", quantity=1)
        with self.assertRaises(Conflict):
            delete_recipe(self.recipe)

    def test_update_replaces_ingredients(self):
        update_recipe(self.recipe, name="Chair v2", ingredients=[{"item_id": self.wood.pk, "quantity": "4"}])
        self.recipe.refresh_from_db()
        self.assertEqual(self.recipe.name, "Chair v2")
        self.assertEqual(list(self.recipe.ingredients.values_list("item_id", flat=True)), [self.wood.pk])

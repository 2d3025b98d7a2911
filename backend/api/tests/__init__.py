from decimal import Decimal

from django.contrib.auth.models import User

from ..models import Category, Item, Supplier
from ..services.inventory import adjust_stock
from ..services.ledger import create_account


def create_user(username: str = "tester", password: str = "pw"):
    return User.objects.create_user(username=username, password=password)


def make_account(name: str = "Cash", opening_balance="0.00", user=None, **kwargs):
    return create_account(name=name, opening_balance=Decimal(opening_balance), user=user, **kwargs)


def make_supplier(name: str = "Acme Supplies", opening_balance="0.00", user=None):
    opening = Decimal(opening_balance)
    return Supplier.objects.create(
        name=name,
        opening_balance=opening,
        current_balance=opening,
        created_by=user,
    )


def make_item(name: str, item_type: str = Item.RAW, *, category=None, quantity=None, unit_price=None, user=None):
    """Create an item, optionally seeding stock through a regular adjustment."""

    if category is None:
        category, _ = Category.objects.get_or_create(name="General")
    item = Item.objects.create(name=name, item_type=item_type, category=category, created_by=user)
    if quantity:
        adjust_stock(item, Decimal(quantity), Decimal(unit_price), "Opening stock", user=user)
        item.refresh_from_db()
    return item

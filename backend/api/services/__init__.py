from .expenses import create_expense, create_expenses_bulk, delete_expense, update_expense
from .inventory import (
    adjust_stock,
    ensure_item_deletable,
    get_stock_history,
    get_stock_info,
)
from .ledger import (
    create_account,
    create_ledger_entry,
    ensure_deletable,
    get_account_balance,
    get_account_ledger,
    recalculate_balance,
)
from .production import (
    complete_production,
    create_production,
    delete_production,
    get_feasibility,
    start_production,
    update_ingredients,
    update_production_notes,
)
from .purchasing import (
    create_payment,
    create_purchase_invoice,
    delete_payment,
    delete_purchase_invoice,
    get_purchase_summary,
    get_supplier_statement,
    update_purchase_invoice,
)
from .recipes import (
    add_ingredient,
    create_recipe,
    delete_recipe,
    get_cost_per_unit,
    remove_ingredient,
    update_ingredient,
    update_recipe,
)

__all__ = [
    "add_ingredient",
    "adjust_stock",
    "complete_production",
    "create_account",
    "create_expense",
    "create_expenses_bulk",
    "create_ledger_entry",
    "create_payment",
    "create_production",
    "create_purchase_invoice",
    "create_recipe",
    "delete_expense",
    "delete_payment",
    "delete_production",
    "delete_purchase_invoice",
    "delete_recipe",
    "ensure_deletable",
    "ensure_item_deletable",
    "get_account_balance",
    "get_account_ledger",
    "get_cost_per_unit",
    "get_feasibility",
    "get_purchase_summary",
    "get_stock_history",
    "get_stock_info",
    "get_supplier_statement",
    "recalculate_balance",
    "remove_ingredient",
    "start_production",
    "update_expense",
    "update_ingredient",
    "update_ingredients",
    "update_production_notes",
    "update_purchase_invoice",
    "update_recipe",
]

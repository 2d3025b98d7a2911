# backend/api/admin.py

from django.contrib import admin
from .models import (
    Account,
    Activity,
    Category,
    Customer,
    Expense,
    ExpenseCategory,
    Item,
    LedgerEntry,
    Payment,
    Production,
    ProductionIngredient,
    ProductionItem,
    PurchaseInvoice,
    PurchaseInvoiceItem,
    Recipe,
    RecipeIngredient,
    StockAdjustment,
    Supplier,
)


@admin.register(LedgerEntry)
class LedgerEntryAdmin(admin.ModelAdmin):
    list_display = ('transaction_date', 'entity_type', 'transaction_type', 'amount', 'balance', 'description')
    list_filter = ('entity_type', 'transaction_type')
    search_fields = ('description', 'reference_number')


@admin.register(StockAdjustment)
class StockAdjustmentAdmin(admin.ModelAdmin):
    list_display = ('adjustment_date', 'item', 'quantity', 'avg_price', 'reason')
    search_fields = ('item__name', 'reason')


admin.site.register(Account)
admin.site.register(Activity)
admin.site.register(Supplier)
admin.site.register(Customer)
admin.site.register(Category)
admin.site.register(Item)
admin.site.register(PurchaseInvoice)
admin.site.register(PurchaseInvoiceItem)
admin.site.register(Payment)
admin.site.register(ExpenseCategory)
admin.site.register(Expense)
admin.site.register(Recipe)
admin.site.register(RecipeIngredient)
admin.site.register(Production)
admin.site.register(ProductionIngredient)
admin.site.register(ProductionItem)

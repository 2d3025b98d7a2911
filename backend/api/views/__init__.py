"""Expose public API views for the application."""

from .accounts import AccountViewSet
from .activities import ActivityViewSet
from .customers import CustomerViewSet
from .expenses import ExpenseCategoryViewSet, ExpenseViewSet
from .items import CategoryViewSet, ItemViewSet
from .production import ProductionViewSet
from .purchases import PaymentViewSet, PurchaseInvoiceViewSet
from .recipes import RecipeIngredientViewSet, RecipeViewSet
from .suppliers import SupplierPaymentViewSet, SupplierViewSet

__all__ = [
    'AccountViewSet',
    'ActivityViewSet',
    'CategoryViewSet',
    'CustomerViewSet',
    'ExpenseCategoryViewSet',
    'ExpenseViewSet',
    'ItemViewSet',
    'PaymentViewSet',
    'ProductionViewSet',
    'PurchaseInvoiceViewSet',
    'RecipeIngredientViewSet',
    'RecipeViewSet',
    'SupplierPaymentViewSet',
    'SupplierViewSet',
]

"""URL routing for the ledger and inventory API."""

from django.urls import include, path
from rest_framework.permissions import AllowAny
from rest_framework.routers import DefaultRouter
from rest_framework_nested import routers
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from .views import (
    AccountViewSet,
    ActivityViewSet,
    CategoryViewSet,
    CustomerViewSet,
    ExpenseCategoryViewSet,
    ExpenseViewSet,
    ItemViewSet,
    PaymentViewSet,
    ProductionViewSet,
    PurchaseInvoiceViewSet,
    RecipeIngredientViewSet,
    RecipeViewSet,
    SupplierPaymentViewSet,
    SupplierViewSet,
)

router = DefaultRouter()
router.register(r'activities', ActivityViewSet, basename='activity')
router.register(r'accounts', AccountViewSet, basename='account')
router.register(r'suppliers', SupplierViewSet, basename='supplier')
router.register(r'customers', CustomerViewSet, basename='customer')
router.register(r'categories', CategoryViewSet, basename='category')
router.register(r'items', ItemViewSet, basename='item')
router.register(r'purchase-invoices', PurchaseInvoiceViewSet, basename='purchase-invoice')
router.register(r'payments', PaymentViewSet, basename='payment')
router.register(r'expense-categories', ExpenseCategoryViewSet, basename='expense-category')
router.register(r'expenses', ExpenseViewSet, basename='expense')
router.register(r'recipes', RecipeViewSet, basename='recipe')
router.register(r'productions', ProductionViewSet, basename='production')

suppliers_router = routers.NestedSimpleRouter(router, r'suppliers', lookup='supplier')
suppliers_router.register(r'payments', SupplierPaymentViewSet, basename='supplier-payments')

recipes_router = routers.NestedSimpleRouter(router, r'recipes', lookup='recipe')
recipes_router.register(r'ingredients', RecipeIngredientViewSet, basename='recipe-ingredients')

urlpatterns = [
    path(
        'token/',
        TokenObtainPairView.as_view(permission_classes=[AllowAny]),
        name='get_token',
    ),
    path(
        'token/refresh/',
        TokenRefreshView.as_view(permission_classes=[AllowAny]),
        name='refresh_token',
    ),
    path('', include(router.urls)),
    path('', include(suppliers_router.urls)),
    path('', include(recipes_router.urls)),
]

"""Customer related API views."""

from rest_framework import viewsets
from rest_framework.filters import SearchFilter
from rest_framework.permissions import IsAuthenticated

from ..models import Customer
from ..serializers import CustomerSerializer
from .utils import LedgerEntityMixin


class CustomerViewSet(LedgerEntityMixin, viewsets.ModelViewSet):
    """CRUD operations for customers.

    Customers only carry a balance and a ledger here; no workflow posts to
    them yet, but entries written through the ledger service show up under
    ``/customers/{id}/ledger/``.
    """

    serializer_class = CustomerSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [SearchFilter]
    search_fields = ['name', 'company_name', 'phone']

    def get_queryset(self):
        return Customer.objects.all().order_by('name')

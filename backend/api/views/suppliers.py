"""Supplier related API views."""

from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.filters import SearchFilter
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import Payment, Supplier
from ..report_exports import generate_supplier_statement_pdf, generate_supplier_statement_workbook
from ..serializers import PaymentSerializer, SupplierSerializer
from ..services.purchasing import get_supplier, get_supplier_statement
from .utils import LedgerEntityMixin, get_export_format, pdf_response, xlsx_response


class SupplierViewSet(LedgerEntityMixin, viewsets.ModelViewSet):
    """CRUD operations for suppliers."""

    serializer_class = SupplierSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [SearchFilter]
    search_fields = ['name', 'company_name', 'phone']

    def get_queryset(self):
        return Supplier.objects.all().order_by('name')

    @action(detail=True, methods=['get'])
    def statement(self, request, pk=None):
        supplier = self.get_object()
        statement = get_supplier_statement(supplier.pk)

        export_format = get_export_format(request)
        filename_stub = f'supplier-{supplier.pk}-statement'
        if export_format in {'xlsx', 'excel'}:
            return xlsx_response(generate_supplier_statement_workbook(statement), filename_stub)
        if export_format == 'pdf':
            return pdf_response(generate_supplier_statement_pdf(statement), filename_stub)

        return Response(statement)


class SupplierPaymentViewSet(viewsets.ReadOnlyModelViewSet):
    """Payments made to a single supplier, invoice-linked and direct."""

    serializer_class = PaymentSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        supplier = get_supplier(self.kwargs.get('supplier_pk'))
        return (
            Payment.objects.filter(supplier=supplier)
            .select_related('supplier', 'account', 'purchase_invoice')
            .order_by('-payment_date', '-id')
        )

"""Purchase invoice and supplier payment API views."""

from django.db import transaction
from django.db.models import Q
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..activity_logger import log_activity
from ..models import Payment, PurchaseInvoice
from ..serializers import (
    PaymentSerializer,
    PaymentWriteSerializer,
    PurchaseInvoiceReadSerializer,
    PurchaseInvoiceUpdateSerializer,
    PurchaseInvoiceWriteSerializer,
)
from ..services.purchasing import delete_payment, delete_purchase_invoice, get_purchase_summary
from .utils import parse_bool


class PurchaseInvoiceViewSet(viewsets.ModelViewSet):
    """Create, edit and delete purchase invoices.

    Writing an invoice moves stock, the supplier balance and (when paid) an
    account balance in one transaction; see :mod:`api.services.purchasing`.
    """

    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        queryset = (
            PurchaseInvoice.objects.select_related('supplier')
            .prefetch_related('items__item', 'payments__account')
            .order_by('-invoice_date', '-id')
        )
        params = self.request.query_params
        if params.get('supplier_id'):
            queryset = queryset.filter(supplier_id=params['supplier_id'])
        if params.get('payment_status'):
            queryset = queryset.filter(payment_status=params['payment_status'])
        if params.get('from_date'):
            queryset = queryset.filter(invoice_date__gte=params['from_date'])
        if params.get('to_date'):
            queryset = queryset.filter(invoice_date__lte=params['to_date'])
        return queryset

    def get_serializer_class(self):
        if self.action == 'create':
            return PurchaseInvoiceWriteSerializer
        if self.action in ['update', 'partial_update']:
            return PurchaseInvoiceUpdateSerializer
        return PurchaseInvoiceReadSerializer

    def create(self, request, *args, **kwargs):
        write_serializer = PurchaseInvoiceWriteSerializer(data=request.data, context={'request': request})
        write_serializer.is_valid(raise_exception=True)
        with transaction.atomic():
            invoice = write_serializer.save()
            log_activity(request.user, 'created', invoice)
        return Response(PurchaseInvoiceReadSerializer(invoice).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        invoice = self.get_object()
        write_serializer = PurchaseInvoiceUpdateSerializer(
            invoice, data=request.data, partial=True, context={'request': request}
        )
        write_serializer.is_valid(raise_exception=True)
        with transaction.atomic():
            invoice = write_serializer.save()
            log_activity(request.user, 'updated', invoice)
        invoice = self.get_queryset().get(pk=invoice.pk)
        return Response(PurchaseInvoiceReadSerializer(invoice).data)

    def perform_destroy(self, instance):
        with transaction.atomic():
            log_activity(self.request.user, 'deleted', instance)
            delete_purchase_invoice(instance)

    @action(detail=False, methods=['get'])
    def summary(self, request):
        return Response(get_purchase_summary())


class PaymentViewSet(
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.DestroyModelMixin,
    viewsets.GenericViewSet,
):
    """Direct supplier payments; invoice payments are listed here too."""

    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        queryset = Payment.objects.select_related('supplier', 'account', 'purchase_invoice').order_by(
            '-payment_date', '-id'
        )
        params = self.request.query_params
        if params.get('supplier_id'):
            queryset = queryset.filter(supplier_id=params['supplier_id'])
        if params.get('account_id'):
            queryset = queryset.filter(account_id=params['account_id'])
        if parse_bool(params.get('direct_only')):
            queryset = queryset.filter(purchase_invoice__isnull=True)
        if params.get('from_date'):
            queryset = queryset.filter(payment_date__gte=params['from_date'])
        if params.get('to_date'):
            queryset = queryset.filter(payment_date__lte=params['to_date'])
        search = params.get('search')
        if search:
            queryset = queryset.filter(
                Q(payment_number__icontains=search)
                | Q(supplier__name__icontains=search)
                | Q(notes__icontains=search)
            )
        return queryset

    def get_serializer_class(self):
        if self.action == 'create':
            return PaymentWriteSerializer
        return PaymentSerializer

    def create(self, request, *args, **kwargs):
        write_serializer = PaymentWriteSerializer(data=request.data, context={'request': request})
        write_serializer.is_valid(raise_exception=True)
        with transaction.atomic():
            payment = write_serializer.save()
            log_activity(request.user, 'created', payment)
        return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)

    def perform_destroy(self, instance):
        with transaction.atomic():
            log_activity(self.request.user, 'deleted', instance)
            delete_payment(instance)

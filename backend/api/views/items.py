"""Category, item and stock related API views."""

from django.db import transaction
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.filters import SearchFilter
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..activity_logger import log_activity
from ..exceptions import Conflict
from ..models import Category, Item
from ..serializers import (
    CategorySerializer,
    ItemSerializer,
    StockAdjustmentSerializer,
    StockAdjustRequestSerializer,
)
from ..services.inventory import adjust_stock, ensure_item_deletable, get_stock_history, get_stock_info


class StockHistoryPagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100


class CategoryViewSet(viewsets.ModelViewSet):
    """CRUD operations for item categories."""

    serializer_class = CategorySerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        return Category.objects.all().order_by('name')

    def perform_create(self, serializer):
        instance = serializer.save(created_by=self.request.user)
        log_activity(self.request.user, 'created', instance)

    def perform_update(self, serializer):
        instance = serializer.save()
        log_activity(self.request.user, 'updated', instance)

    def perform_destroy(self, instance):
        count = instance.items.count()
        if count:
            raise Conflict(
                f"Category '{instance.name}' has {count} items and cannot be deleted.",
                extra={'items': count},
            )
        log_activity(self.request.user, 'deleted', instance)
        instance.delete()


class ItemViewSet(viewsets.ModelViewSet):
    """CRUD operations for raw materials and final products.

    Quantities and average prices are read only here; they move through the
    ``adjust`` action, purchase invoices and production batches.
    """

    serializer_class = ItemSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [SearchFilter]
    search_fields = ['name', 'category__name']

    def get_queryset(self):
        queryset = Item.objects.select_related('category').order_by('name')
        item_type = self.request.query_params.get('item_type')
        if item_type:
            queryset = queryset.filter(item_type=item_type)
        category = self.request.query_params.get('category')
        if category:
            queryset = queryset.filter(category_id=category)
        return queryset

    def perform_create(self, serializer):
        instance = serializer.save(created_by=self.request.user)
        log_activity(self.request.user, 'created', instance)

    def perform_update(self, serializer):
        instance = serializer.save()
        log_activity(self.request.user, 'updated', instance)

    def perform_destroy(self, instance):
        ensure_item_deletable(instance)
        log_activity(self.request.user, 'deleted', instance)
        instance.delete()

    @action(detail=True, methods=['get'])
    def stock(self, request, pk=None):
        item = self.get_object()
        return Response(get_stock_info(item.pk))

    @action(detail=True, methods=['post'])
    def adjust(self, request, pk=None):
        item = self.get_object()
        serializer = StockAdjustRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        with transaction.atomic():
            adjustment = adjust_stock(
                item,
                data['quantity'],
                data.get('unit_price'),
                data['reason'],
                notes=data.get('notes', ''),
                user=request.user,
            )
            log_activity(
                request.user,
                'updated',
                item,
                description=f"Adjusted stock of {item.name} by {adjustment.quantity} ({adjustment.reason}).",
            )

        return Response(
            {
                'adjustment': StockAdjustmentSerializer(adjustment).data,
                'stock': get_stock_info(item.pk),
            },
            status=status.HTTP_201_CREATED,
        )

    @action(detail=True, methods=['get'])
    def history(self, request, pk=None):
        item = self.get_object()
        queryset = get_stock_history(item.pk)
        paginator = StockHistoryPagination()
        page = paginator.paginate_queryset(queryset, request, view=self)
        serializer = StockAdjustmentSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)

"""Expense related API views."""

from django.db import transaction
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..activity_logger import log_activity
from ..exceptions import Conflict
from ..models import Expense, ExpenseCategory
from ..serializers import BulkExpenseSerializer, ExpenseCategorySerializer, ExpenseSerializer
from ..services.expenses import delete_expense


class ExpenseCategoryViewSet(viewsets.ModelViewSet):
    """CRUD operations for expense categories."""

    serializer_class = ExpenseCategorySerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        return ExpenseCategory.objects.order_by('name')

    def perform_create(self, serializer):
        instance = serializer.save(created_by=self.request.user)
        log_activity(self.request.user, 'created', instance)

    def perform_update(self, serializer):
        instance = serializer.save()
        log_activity(self.request.user, 'updated', instance)

    def perform_destroy(self, instance):
        count = instance.expenses.count()
        if count:
            raise Conflict(
                f"Expense category '{instance.name}' has {count} expenses and cannot be deleted.",
                extra={'expenses': count},
            )
        log_activity(self.request.user, 'deleted', instance)
        instance.delete()


class ExpenseViewSet(viewsets.ModelViewSet):
    """CRUD operations for expenses.

    Amount and account are fixed once posted; deleting an expense credits
    the amount back to its account.
    """

    serializer_class = ExpenseSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        queryset = Expense.objects.select_related('category', 'account').order_by('-expense_date', '-id')
        params = self.request.query_params
        if params.get('category_id'):
            queryset = queryset.filter(category_id=params['category_id'])
        if params.get('account_id'):
            queryset = queryset.filter(account_id=params['account_id'])
        if params.get('from_date'):
            queryset = queryset.filter(expense_date__gte=params['from_date'])
        if params.get('to_date'):
            queryset = queryset.filter(expense_date__lte=params['to_date'])
        return queryset

    def perform_create(self, serializer):
        with transaction.atomic():
            instance = serializer.save()
            log_activity(self.request.user, 'created', instance)

    def perform_update(self, serializer):
        instance = serializer.save()
        log_activity(self.request.user, 'updated', instance)

    def perform_destroy(self, instance):
        with transaction.atomic():
            log_activity(self.request.user, 'deleted', instance)
            delete_expense(instance, user=self.request.user)

    @action(detail=False, methods=['post'])
    def bulk(self, request):
        serializer = BulkExpenseSerializer(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)
        with transaction.atomic():
            expenses = serializer.save()
            for expense in expenses:
                log_activity(request.user, 'created', expense)
        return Response(ExpenseSerializer(expenses, many=True).data, status=status.HTTP_201_CREATED)

"""Money account related API views."""

from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..activity_logger import log_activity
from ..models import Account
from ..serializers import AccountSerializer
from ..services.ledger import get_account_balance, get_account_ledger, recalculate_balance
from .utils import LedgerEntityMixin


class AccountViewSet(LedgerEntityMixin, viewsets.ModelViewSet):
    """CRUD operations for cash, bank and card accounts."""

    serializer_class = AccountSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        queryset = Account.objects.all().order_by('name')
        account_type = self.request.query_params.get('account_type')
        if account_type:
            queryset = queryset.filter(account_type=account_type)
        return queryset

    def ledger_rows(self, entity):
        return get_account_ledger(entity.pk)

    @action(detail=True, methods=['get'])
    def balance(self, request, pk=None):
        account = self.get_object()
        return Response(get_account_balance(account.pk))

    @action(detail=True, methods=['post'])
    def recalculate(self, request, pk=None):
        account = self.get_object()
        before = account.current_balance
        after = recalculate_balance(account)
        if before != after:
            log_activity(
                request.user,
                'updated',
                account,
                description=f'Recalculated balance of {account.name}: {before} -> {after}.',
            )
        account.refresh_from_db()
        return Response(AccountSerializer(account).data)

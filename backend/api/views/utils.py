"""Utility helpers shared across API view modules."""

from django.db import transaction
from django.http import HttpResponse
from rest_framework.decorators import action
from rest_framework.response import Response

from ..activity_logger import log_activity
from ..report_exports import generate_ledger_workbook
from ..serializers import LedgerEntrySerializer
from ..services.ledger import ensure_deletable, ledger_entries_for

XLSX_CONTENT_TYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'


def get_export_format(request):
    export_format = request.query_params.get('export_format') or ''
    return export_format.lower()


def file_response(content, filename, content_type):
    response = HttpResponse(content, content_type=content_type)
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    return response


def xlsx_response(content, filename_stub):
    return file_response(content, f'{filename_stub}.xlsx', XLSX_CONTENT_TYPE)


def pdf_response(content, filename_stub):
    return file_response(content, f'{filename_stub}.pdf', 'application/pdf')


def parse_bool(value):
    return str(value).lower() in {'1', 'true', 'yes', 'on'}


class LedgerEntityMixin:
    """Shared behaviour for viewsets whose model keeps a ledger.

    Deletion is refused while the entity has balance-affecting history, and
    a ``ledger`` action lists its entries in chronological order
    (``?export_format=xlsx`` returns a workbook instead).
    """

    def perform_create(self, serializer):
        instance = serializer.save(created_by=self.request.user)
        log_activity(self.request.user, 'created', instance)

    def perform_update(self, serializer):
        instance = serializer.save()
        log_activity(self.request.user, 'updated', instance)

    def perform_destroy(self, instance):
        ensure_deletable(instance)
        with transaction.atomic():
            log_activity(self.request.user, 'deleted', instance)
            instance.delete()

    def ledger_rows(self, entity):
        return [
            {
                'date': entry.transaction_date,
                'description': entry.description,
                'reference': entry.reference_number or None,
                'type': entry.transaction_type,
                'amount': entry.amount,
                'balance': entry.balance,
            }
            for entry in ledger_entries_for(entity).order_by('transaction_date', 'id')
        ]

    @action(detail=True, methods=['get'])
    def ledger(self, request, pk=None):
        entity = self.get_object()
        if get_export_format(request) in {'xlsx', 'excel'}:
            content = generate_ledger_workbook(f'Ledger - {entity}', self.ledger_rows(entity))
            return xlsx_response(content, f'{entity.LEDGER_ENTITY_TYPE}-{entity.pk}-ledger')

        entries = ledger_entries_for(entity).order_by('transaction_date', 'id')
        return Response(LedgerEntrySerializer(entries, many=True).data)

"""Activity log related API views."""

from rest_framework import viewsets
from rest_framework.permissions import IsAuthenticated

from ..models import Activity
from ..serializers import ActivitySerializer


class ActivityViewSet(viewsets.ReadOnlyModelViewSet):
    """Read-only access to the audit trail."""

    serializer_class = ActivitySerializer
    permission_classes = [IsAuthenticated]
    pagination_class = None

    def get_queryset(self):
        queryset = Activity.objects.select_related('user').order_by('-timestamp', '-id')
        params = self.request.query_params
        date_str = params.get('date')
        if date_str:
            queryset = queryset.filter(timestamp__date=date_str)
        if params.get('action_type'):
            queryset = queryset.filter(action_type=params['action_type'])
        if params.get('mine'):
            queryset = queryset.filter(user=self.request.user)
        return queryset

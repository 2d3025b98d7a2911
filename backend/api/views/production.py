"""Production batch API views."""

from django.db import transaction
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..activity_logger import log_activity
from ..models import Production
from ..serializers import (
    ProductionCompleteSerializer,
    ProductionCreateSerializer,
    ProductionIngredientsSerializer,
    ProductionNotesSerializer,
    ProductionSerializer,
)
from ..services import production as production_service


class ProductionViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.DestroyModelMixin,
    viewsets.GenericViewSet,
):
    """Production batches moving from draft to in process to done."""

    serializer_class = ProductionSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        queryset = (
            Production.objects.select_related('recipe__final_product')
            .prefetch_related('ingredients__item', 'items')
            .order_by('-created_at', '-id')
        )
        params = self.request.query_params
        if params.get('status'):
            queryset = queryset.filter(status=params['status'])
        if params.get('recipe_id'):
            queryset = queryset.filter(recipe_id=params['recipe_id'])
        return queryset

    def _respond(self, production, status_code=status.HTTP_200_OK):
        production = self.get_queryset().get(pk=production.pk)
        return Response(ProductionSerializer(production).data, status=status_code)

    def create(self, request, *args, **kwargs):
        serializer = ProductionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        with transaction.atomic():
            production = production_service.create_production(user=request.user, **serializer.validated_data)
            log_activity(request.user, 'created', production)
        return self._respond(production, status.HTTP_201_CREATED)

    def perform_destroy(self, instance):
        with transaction.atomic():
            log_activity(self.request.user, 'deleted', instance)
            production_service.delete_production(instance)

    @action(detail=True, methods=['patch'])
    def notes(self, request, pk=None):
        production = self.get_object()
        serializer = ProductionNotesSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        production = production_service.update_production_notes(production, serializer.validated_data['notes'])
        log_activity(request.user, 'updated', production)
        return self._respond(production)

    @action(detail=True, methods=['put'])
    def ingredients(self, request, pk=None):
        production = self.get_object()
        serializer = ProductionIngredientsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        with transaction.atomic():
            production = production_service.update_ingredients(production, serializer.validated_data['ingredients'])
            log_activity(
                request.user,
                'updated',
                production,
                description=f"Ingredients of batch {production.batch_number} were replaced.",
            )
        return self._respond(production)

    @action(detail=True, methods=['get'])
    def feasibility(self, request, pk=None):
        production = self.get_object()
        return Response(production_service.get_feasibility(production))

    @action(detail=True, methods=['post'])
    def start(self, request, pk=None):
        production = self.get_object()
        with transaction.atomic():
            production = production_service.start_production(production, user=request.user)
            log_activity(
                request.user,
                'started',
                production,
                description=f"Production batch {production.batch_number} was started.",
            )
        return self._respond(production)

    @action(detail=True, methods=['post'])
    def complete(self, request, pk=None):
        production = self.get_object()
        serializer = ProductionCompleteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        with transaction.atomic():
            production = production_service.complete_production(
                production, serializer.validated_data['serial_numbers'], user=request.user
            )
            log_activity(
                request.user,
                'completed',
                production,
                description=(
                    f"Production batch {production.batch_number} was completed: "
                    f"{production.quantity} units at {production.cost_per_unit}."
                ),
            )
        return self._respond(production)

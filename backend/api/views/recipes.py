"""Recipe related API views."""

from django.db import transaction
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..activity_logger import log_activity
from ..models import Recipe
from ..serializers import (
    IngredientInputSerializer,
    RecipeIngredientSerializer,
    RecipeSerializer,
    RecipeUpdateSerializer,
    RecipeWriteSerializer,
)
from ..services import recipes as recipe_service


class RecipeViewSet(viewsets.ModelViewSet):
    """CRUD operations for recipes and their unit cost."""

    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        queryset = (
            Recipe.objects.select_related('final_product')
            .prefetch_related('ingredients__item')
            .order_by('name')
        )
        final_product = self.request.query_params.get('final_product')
        if final_product:
            queryset = queryset.filter(final_product_id=final_product)
        return queryset

    def get_serializer_class(self):
        if self.action == 'create':
            return RecipeWriteSerializer
        if self.action in ['update', 'partial_update']:
            return RecipeUpdateSerializer
        return RecipeSerializer

    def create(self, request, *args, **kwargs):
        serializer = RecipeWriteSerializer(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)
        with transaction.atomic():
            recipe = serializer.save()
            log_activity(request.user, 'created', recipe)
        return Response(RecipeSerializer(recipe).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        recipe = self.get_object()
        serializer = RecipeUpdateSerializer(recipe, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        with transaction.atomic():
            recipe = serializer.save()
            log_activity(request.user, 'updated', recipe)
        return Response(RecipeSerializer(self.get_queryset().get(pk=recipe.pk)).data)

    def perform_destroy(self, instance):
        with transaction.atomic():
            log_activity(self.request.user, 'deleted', instance)
            recipe_service.delete_recipe(instance)

    @action(detail=True, methods=['get'])
    def cost(self, request, pk=None):
        recipe = self.get_object()
        return Response(recipe_service.get_cost_per_unit(recipe))


class RecipeIngredientViewSet(viewsets.ViewSet):
    """Ingredients of one recipe, addressed by their item id."""

    permission_classes = [IsAuthenticated]
    lookup_field = 'item_id'

    def _recipe(self):
        return recipe_service.get_recipe(self.kwargs.get('recipe_pk'))

    def list(self, request, recipe_pk=None):
        recipe = self._recipe()
        ingredients = recipe.ingredients.select_related('item').order_by('id')
        return Response(RecipeIngredientSerializer(ingredients, many=True).data)

    def create(self, request, recipe_pk=None):
        recipe = self._recipe()
        serializer = IngredientInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        with transaction.atomic():
            ingredient = recipe_service.add_ingredient(
                recipe, serializer.validated_data['item_id'], serializer.validated_data['quantity']
            )
            log_activity(request.user, 'updated', recipe, description=f"Added {ingredient.item} to recipe {recipe}.")
        return Response(RecipeIngredientSerializer(ingredient).data, status=status.HTTP_201_CREATED)

    def update(self, request, recipe_pk=None, item_id=None):
        recipe = self._recipe()
        serializer = IngredientInputSerializer(data={'item_id': item_id, 'quantity': request.data.get('quantity')})
        serializer.is_valid(raise_exception=True)
        with transaction.atomic():
            ingredient = recipe_service.update_ingredient(
                recipe, serializer.validated_data['item_id'], serializer.validated_data['quantity']
            )
            log_activity(request.user, 'updated', recipe)
        return Response(RecipeIngredientSerializer(ingredient).data)

    def destroy(self, request, recipe_pk=None, item_id=None):
        recipe = self._recipe()
        with transaction.atomic():
            recipe_service.remove_ingredient(recipe, item_id)
            log_activity(request.user, 'updated', recipe, description=f"Removed item {item_id} from recipe {recipe}.")
        return Response(status=status.HTTP_204_NO_CONTENT)

import json
import logging

from django.contrib.contenttypes.models import ContentType
from django.core import serializers

from .models import Activity, Production, PurchaseInvoice, Recipe

logger = logging.getLogger(__name__)

# Child rows captured alongside the parent when a document is deleted.
SNAPSHOT_CHILDREN = {
    PurchaseInvoice: 'items',
    Production: 'ingredients',
    Recipe: 'ingredients',
}


def snapshot(instance):
    """Serialize ``instance`` (and its line rows, if it has any) to JSON."""
    for model, relation in SNAPSHOT_CHILDREN.items():
        if isinstance(instance, model):
            return json.dumps({
                'object': serializers.serialize('json', [instance]),
                'children': serializers.serialize('json', getattr(instance, relation).all()),
            })
    return serializers.serialize('json', [instance])


def log_activity(user, action_type, instance, description=None):
    """Append an entry to the audit trail.

    Deleted objects keep a JSON snapshot in ``object_repr`` so the record
    survives the row itself.
    """
    if description is None:
        description = f"{instance.__class__.__name__} {instance} was {action_type}."
    object_repr = snapshot(instance) if action_type == 'deleted' else ''

    activity = Activity.objects.create(
        user=user,
        action_type=action_type,
        description=description[:255],
        content_type=ContentType.objects.get_for_model(instance),
        object_id=instance.pk,
        object_repr=object_repr,
    )
    logger.debug("Activity %s: %s", activity.pk, description)
    return activity

"""
Signals for the training app
Dispatch duration recomputes when tree nodes are saved or deleted
"""
from django.conf import settings
from django.db import transaction
from django.core.exceptions import ObjectDoesNotExist
from django.db.models.signals import post_delete, post_save
import logging

logger = logging.getLogger(__name__)


TREE_MODELS = (
    'training.Formation',
    'training.Module',
    'training.Chapter',
    'training.Course',
    'training.Exercise',
    'training.QCM',
)

# Fields whose change can alter an aggregate
DURATION_RELEVANT_FIELDS = {
    'base_duration_minutes',
    'estimated_duration_minutes',
    'time_limit_minutes',
    'is_active',
    'order_index',
    'formation',
    'module',
    'chapter',
    'course',
}


def auto_dispatch_enabled():
    return getattr(settings, 'DURATION_AUTO_DISPATCH', True)


def has_duration_relevant_changes(update_fields):
    """A save without update_fields may have changed anything"""
    if update_fields is None:
        return True
    return bool(DURATION_RELEVANT_FIELDS.intersection(update_fields))


def _dispatch_on_commit(entity, operation, context=None):
    from training.services import DurationUpdateDispatcher

    def dispatch():
        # The row is already committed, a broker failure must not surface from save()
        try:
            DurationUpdateDispatcher().dispatch(entity, operation, context)
        except Exception:
            logger.exception(
                f"Failed to dispatch duration update entity_type={entity.duration_entity_type} "
                f"entity_id={entity.pk} operation={operation}"
            )

    transaction.on_commit(dispatch)


def schedule_duration_update(sender, instance, created, update_fields=None, raw=False, **kwargs):
    """
    Queue a duration recompute once the transaction saving instance commits.
    Skips fixture loading and saves that only touched unrelated fields.
    """
    if raw or not auto_dispatch_enabled():
        return
    if not created and not has_duration_relevant_changes(update_fields):
        return

    logger.debug(
        f"Scheduling duration update entity_type={instance.duration_entity_type} "
        f"entity_id={instance.pk} created={created}"
    )
    _dispatch_on_commit(instance, 'create' if created else 'update')


def schedule_parent_duration_update(sender, instance, **kwargs):
    """
    The deleted node can no longer be reloaded, so recompute its parent instead.
    """
    if not auto_dispatch_enabled():
        return

    try:
        parent = instance.duration_parent
    except ObjectDoesNotExist as e:
        # Parent removed in the same cascade
        logger.debug(f"No parent to update after delete entity_type={instance.duration_entity_type}: {e}")
        return

    if parent is None:
        return

    _dispatch_on_commit(parent, 'child_removed', {
        'child_type': str(instance.duration_entity_type),
        'child_id': instance.pk,
    })


for _model in TREE_MODELS:
    post_save.connect(schedule_duration_update, sender=_model, dispatch_uid=f"duration_save_{_model}")
    post_delete.connect(schedule_parent_duration_update, sender=_model, dispatch_uid=f"duration_delete_{_model}")

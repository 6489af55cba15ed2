"""
Training Celery Tasks

Background consumer of duration update messages published by
training.services.dispatcher.DurationUpdateDispatcher.
"""
import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    name='training.tasks.recalculate_entity_duration',
    max_retries=3,
    default_retry_delay=60,
)
def recalculate_entity_duration(self, entity_type: str, entity_id: int,
                                operation: str = 'update', context: dict = None):
    """
    Recompute the duration of one entity and propagate it up the tree.

    The entity is reloaded here rather than trusted from the time of dispatch.

    Args:
        entity_type: DurationEntityType value (course, chapter, ...)
        entity_id: primary key of the entity
        operation: what happened to the entity (create, update, child_removed, ...)
        context: free-form details attached by the dispatcher
    """
    from training.services import DurationCalculationService
    from training.services.entities import load_entity

    entity = load_entity(entity_type, entity_id)
    if entity is None:
        logger.warning(
            f"Duration update skipped, entity not found entity_type={entity_type} "
            f"entity_id={entity_id} operation={operation}"
        )
        return {'status': 'skipped', 'reason': 'entity_not_found'}

    try:
        DurationCalculationService().update_entity_duration(entity)
    except Exception as e:
        logger.exception(
            f"Duration update failed entity_type={entity_type} entity_id={entity_id} "
            f"operation={operation} context={context or {}}"
        )
        raise self.retry(exc=e)

    return {
        'status': 'success',
        'entity_type': entity_type,
        'entity_id': entity_id,
        'operation': operation,
    }

"""
Duration Update Dispatcher

Lets write paths request a duration recompute without walking the tree
inside the request. Each request becomes a DurationUpdateMessage handed to a
publisher; the default publisher enqueues the Celery task
training.tasks.recalculate_entity_duration, which reloads the entity from
the database and runs the propagation engine.
"""
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, Iterable, Optional

from training.services.entities import get_entity_type

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DurationUpdateMessage:
    entity_type: str
    entity_id: int
    operation: str
    context: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def publish_to_celery(message: DurationUpdateMessage):
    """Enqueue a message on the Celery duration queue"""
    from training.tasks import recalculate_entity_duration

    return recalculate_entity_duration.delay(**message.to_dict())


class DurationUpdateDispatcher:
    """
    Publishes duration recompute requests.

    Args:
        publisher: callable taking a DurationUpdateMessage, defaults to Celery
    """

    def __init__(self, publisher: Optional[Callable[[DurationUpdateMessage], Any]] = None):
        self.publisher = publisher or publish_to_celery

    def dispatch(self, entity, operation: str = 'update', context: Optional[Dict[str, Any]] = None) -> bool:
        """
        Request a recompute for one entity.
        Returns False, without publishing, for entities that are not saved yet.
        """
        entity_type = get_entity_type(entity)

        if entity.pk is None:
            logger.info(
                f"Skipping duration dispatch for unsaved entity entity_type={entity_type.value} "
                f"operation={operation}"
            )
            return False

        message = DurationUpdateMessage(
            entity_type=entity_type.value,
            entity_id=entity.pk,
            operation=operation,
            context=dict(context or {}),
        )
        self.publisher(message)

        logger.info(
            f"Dispatched duration update entity_type={message.entity_type} "
            f"entity_id={message.entity_id} operation={operation}"
        )
        return True

    def dispatch_batch(self, entities: Iterable, operation: str = 'update',
                       context: Optional[Dict[str, Any]] = None) -> int:
        """Publish one message per entity. Returns the number of messages published."""
        entities = list(entities)
        dispatched = sum(1 for entity in entities if self.dispatch(entity, operation, context))

        logger.info(
            f"Dispatched duration batch entities={len(entities)} published={dispatched} "
            f"operation={operation}"
        )
        return dispatched

"""
Resolution between tree model instances and their DurationEntityType
"""
from django.apps import apps

from training.exceptions import UnknownDurationEntityType, UnsupportedDurationEntity
from training.models import DurationEntityType


MODEL_NAMES = {
    DurationEntityType.FORMATION: 'Formation',
    DurationEntityType.MODULE: 'Module',
    DurationEntityType.CHAPTER: 'Chapter',
    DurationEntityType.COURSE: 'Course',
    DurationEntityType.EXERCISE: 'Exercise',
    DurationEntityType.QCM: 'QCM',
}


def get_entity_type(entity) -> DurationEntityType:
    """Return the DurationEntityType of a tree model instance"""
    entity_type = getattr(type(entity), 'duration_entity_type', None)
    if entity_type is None:
        raise UnsupportedDurationEntity(entity)
    return DurationEntityType(entity_type)


def coerce_entity_type(value) -> DurationEntityType:
    try:
        return DurationEntityType(value)
    except ValueError:
        raise UnknownDurationEntityType(value) from None


def get_model_for_type(entity_type):
    entity_type = coerce_entity_type(entity_type)
    return apps.get_model('training', MODEL_NAMES[entity_type])


def load_entity(entity_type, entity_id):
    """Fetch a fresh instance from the database, or None when it is gone"""
    model = get_model_for_type(entity_type)
    return model.objects.filter(pk=entity_id).first()

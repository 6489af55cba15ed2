"""
Duration Calculation Service

Computes and propagates durations across the formation tree:

    Formation (hours) <- Module (hours) <- Chapter (minutes) <- Course (minutes)

Courses add the estimated minutes of their active Exercises and the time limit
of their active QCMs to their own base duration. Modules convert the minutes
of their chapters to hours, rounding up.

Reads go through DurationCache and never write. Writes only happen through
update_entity_duration / batch_update_durations, which recompute a node,
store the result when it is stale and walk up to the parent.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Tuple

from django.conf import settings
from django.db import transaction

from training.models import DurationEntityType
from training.services.duration_cache import DurationCache
from training.services.entities import get_entity_type, get_model_for_type

logger = logging.getLogger(__name__)


MINUTES_PER_HOUR = 60
HOURS_PER_TRAINING_DAY = 8

AGGREGATE_TYPES = (
    DurationEntityType.COURSE,
    DurationEntityType.CHAPTER,
    DurationEntityType.MODULE,
    DurationEntityType.FORMATION,
)


def minutes_to_hours(minutes: int, round_up: bool = True) -> int:
    """Convert minutes to whole hours, rounding up by default, half-up otherwise"""
    if round_up:
        return math.ceil(minutes / MINUTES_PER_HOUR)
    return (minutes + MINUTES_PER_HOUR // 2) // MINUTES_PER_HOUR


def hours_to_minutes(hours: int) -> int:
    return hours * MINUTES_PER_HOUR


def format_duration(value: int, unit: str) -> str:
    """
    Human readable duration.
    Minutes render as "45 min" / "1h 30min", hours as training days of 8 hours.
    """
    if unit == 'minutes':
        if value < MINUTES_PER_HOUR:
            return f"{value} min"
        hours, minutes = divmod(value, MINUTES_PER_HOUR)
        if minutes == 0:
            return f"{hours}h"
        return f"{hours}h {minutes}min"

    if unit == 'hours':
        if value < HOURS_PER_TRAINING_DAY:
            return f"{value}h"
        days, hours = divmod(value, HOURS_PER_TRAINING_DAY)
        label = f"{days} jour{'s' if days > 1 else ''}"
        if hours == 0:
            return label
        return f"{label} {hours}h"

    return f"{value} {unit}"


@dataclass
class _BatchJournal:
    """Writes made inside a batch, kept to undo in-memory state on rollback"""
    writes: List[Tuple[Any, str, Any]] = field(default_factory=list)
    touched: List[Tuple[str, Any]] = field(default_factory=list)


class DurationCalculationService:
    """
    Aggregation and propagation engine for the formation tree.

    Args:
        cache: DurationCache instance, or a raw cache backend to wrap in one.
            Defaults to a DurationCache on the configured alias
        course_tolerance_minutes: difference a stored course duration may have
            with its calculated value before being rewritten
    """

    def __init__(self, cache=None, course_tolerance_minutes=None):
        if cache is None:
            cache = DurationCache()
        elif not isinstance(cache, DurationCache):
            cache = DurationCache(backend=cache)
        self.cache = cache
        if course_tolerance_minutes is None:
            course_tolerance_minutes = getattr(settings, 'DURATION_COURSE_TOLERANCE_MINUTES', 5)
        self.course_tolerance_minutes = course_tolerance_minutes
        self._journal = None
        self._handlers = {
            DurationEntityType.COURSE: self._update_course_duration,
            DurationEntityType.CHAPTER: self._update_chapter_duration,
            DurationEntityType.MODULE: self._update_module_duration,
            DurationEntityType.FORMATION: self._update_formation_duration,
            DurationEntityType.EXERCISE: self._update_course_from_child,
            DurationEntityType.QCM: self._update_course_from_child,
        }

    # =====================================================
    # Aggregation
    # =====================================================

    def calculate_course_duration(self, course) -> int:
        """Course base duration plus its active exercises and QCMs, in minutes"""
        return self.cache.get(
            DurationEntityType.COURSE, course.pk,
            lambda: self._calculate_course_duration_direct(course)
        )

    def _calculate_course_duration_direct(self, course) -> int:
        exercises = list(course.get_active_exercises())
        qcms = list(course.get_active_qcms())

        total = course.base_duration_minutes or 0
        total += sum(exercise.estimated_duration_minutes or 0 for exercise in exercises)
        total += sum(qcm.time_limit_minutes or 0 for qcm in qcms)

        logger.info(
            f"Calculated course duration course_id={course.pk} "
            f"base={course.base_duration_minutes} exercises={len(exercises)} "
            f"qcms={len(qcms)} total={total}"
        )
        return total

    def calculate_chapter_duration(self, chapter) -> int:
        """Sum of the active courses of the chapter, in minutes"""
        return self.cache.get(
            DurationEntityType.CHAPTER, chapter.pk,
            lambda: self._calculate_chapter_duration_direct(chapter)
        )

    def _calculate_chapter_duration_direct(self, chapter) -> int:
        courses = list(chapter.get_active_courses())
        total = sum(self.calculate_course_duration(course) for course in courses)

        logger.info(
            f"Calculated chapter duration chapter_id={chapter.pk} "
            f"courses={len(courses)} total={total}"
        )
        return total

    def calculate_module_duration(self, module) -> int:
        """Active chapters of the module converted to hours, rounded up"""
        return self.cache.get(
            DurationEntityType.MODULE, module.pk,
            lambda: self._calculate_module_duration_direct(module)
        )

    def _calculate_module_duration_direct(self, module) -> int:
        chapters = list(module.get_active_chapters())
        total_minutes = sum(self.calculate_chapter_duration(chapter) for chapter in chapters)
        total_hours = minutes_to_hours(total_minutes)

        logger.info(
            f"Calculated module duration module_id={module.pk} chapters={len(chapters)} "
            f"total_minutes={total_minutes} total_hours={total_hours}"
        )
        return total_hours

    def calculate_formation_duration(self, formation) -> int:
        """Sum of the active modules of the formation, in hours"""
        return self.cache.get(
            DurationEntityType.FORMATION, formation.pk,
            lambda: self._calculate_formation_duration_direct(formation)
        )

    def _calculate_formation_duration_direct(self, formation) -> int:
        modules = list(formation.get_active_modules())
        total = sum(self.calculate_module_duration(module) for module in modules)

        logger.info(
            f"Calculated formation duration formation_id={formation.pk} "
            f"modules={len(modules)} total_hours={total}"
        )
        return total

    # =====================================================
    # Propagation
    # =====================================================

    def update_entity_duration(self, entity) -> None:
        """
        Recompute the duration of a changed entity and propagate upward.
        Errors are logged and re-raised.
        """
        entity_type = get_entity_type(entity)
        handler = self._handlers[entity_type]

        logger.info(f"Starting duration update entity_type={entity_type.value} entity_id={entity.pk}")
        try:
            handler(entity)
        except Exception:
            logger.exception(
                f"Failed to update duration entity_type={entity_type.value} entity_id={entity.pk}"
            )
            raise

    def batch_update_durations(self, entities: Iterable) -> int:
        """
        Propagate several entities as one unit of work.

        All stored durations are written inside a single transaction: if any
        entity fails, nothing of the batch is kept and the error is re-raised.
        A batch started inside another one rolls back only its own writes on
        failure, and hands them to the enclosing batch on success.
        Returns the number of entities processed.
        """
        entities = list(entities)
        if not entities:
            logger.warning("No entities provided for batch duration update")
            return 0

        parent_journal = self._journal
        journal = self._journal = _BatchJournal()
        try:
            with transaction.atomic():
                for entity in entities:
                    self.update_entity_duration(entity)
        except Exception as e:
            self._rollback_journal(journal)
            logger.error(
                f"Batch duration update failed entity_count={len(entities)} error={e}"
            )
            raise
        else:
            if parent_journal is not None:
                parent_journal.writes.extend(journal.writes)
                parent_journal.touched.extend(journal.touched)
        finally:
            self._journal = parent_journal

        logger.info(f"Batch duration update completed entity_count={len(entities)}")
        return len(entities)

    def _rollback_journal(self, journal):
        for instance, field_name, old_value in reversed(journal.writes):
            setattr(instance, field_name, old_value)
        self.cache.invalidate_many(journal.touched)

    def _invalidate(self, entity_type, entity):
        self.cache.invalidate(entity_type, entity.pk)
        if self._journal is not None:
            self._journal.touched.append((entity_type, entity.pk))

    def _store(self, entity, field_name, value):
        old_value = getattr(entity, field_name)
        if self._journal is not None:
            self._journal.writes.append((entity, field_name, old_value))

        setattr(entity, field_name, value)
        if entity.pk is not None:
            # QuerySet.update keeps stored aggregates from re-triggering post_save
            type(entity).objects.filter(pk=entity.pk).update(**{field_name: value})

        logger.info(
            f"Stored duration entity_type={entity.duration_entity_type} entity_id={entity.pk} "
            f"{field_name}: {old_value} -> {value}"
        )

    def _update_course_duration(self, course):
        self._invalidate(DurationEntityType.COURSE, course)
        calculated = self.calculate_course_duration(course)
        stored = course.duration_minutes or 0

        if abs(stored - calculated) > self.course_tolerance_minutes:
            self._store(course, 'duration_minutes', calculated)
        else:
            logger.debug(
                f"Course duration within tolerance course_id={course.pk} "
                f"stored={stored} calculated={calculated}"
            )

        chapter = course.duration_parent
        if chapter is not None:
            self._update_chapter_duration(chapter)

    def _update_chapter_duration(self, chapter):
        self._invalidate(DurationEntityType.CHAPTER, chapter)
        calculated = self.calculate_chapter_duration(chapter)
        self._store(chapter, 'duration_minutes', calculated)

        module = chapter.duration_parent
        if module is not None:
            self._update_module_duration(module)

    def _update_module_duration(self, module):
        self._invalidate(DurationEntityType.MODULE, module)
        calculated = self.calculate_module_duration(module)
        self._store(module, 'duration_hours', calculated)

        formation = module.duration_parent
        if formation is not None:
            self._update_formation_duration(formation)

    def _update_formation_duration(self, formation):
        self._invalidate(DurationEntityType.FORMATION, formation)
        calculated = self.calculate_formation_duration(formation)
        self._store(formation, 'duration_hours', calculated)

    def _update_course_from_child(self, entity):
        course = entity.duration_parent
        if course is None:
            logger.info(
                f"No course to update entity_type={entity.duration_entity_type} entity_id={entity.pk}"
            )
            return
        self._update_course_duration(course)

    # =====================================================
    # Maintenance
    # =====================================================

    def clear_duration_caches(self) -> int:
        """Drop the cached duration of every persisted node. Returns the number of keys removed."""
        entries = []
        for entity_type in AGGREGATE_TYPES:
            model = get_model_for_type(entity_type)
            entries.extend(
                (entity_type, pk) for pk in model.objects.values_list('pk', flat=True)
            )
        cleared = self.cache.invalidate_many(entries)
        logger.info(f"Duration caches cleared keys={cleared}")
        return cleared

    def get_duration_statistics(self, entity) -> Dict[str, Any]:
        """
        Calculated vs stored duration of an entity, with child counts.
        Leaves (Exercise, QCM) only report their identity.
        """
        entity_type = get_entity_type(entity)
        stats = {
            'entity_type': entity_type.value,
            'entity_id': entity.pk,
        }

        if entity_type == DurationEntityType.FORMATION:
            stats['calculated_duration'] = self.calculate_formation_duration(entity)
            stats['stored_duration'] = entity.duration_hours or 0
            stats['unit'] = 'hours'
            stats['module_count'] = entity.get_active_modules().count()
        elif entity_type == DurationEntityType.MODULE:
            stats['calculated_duration'] = self.calculate_module_duration(entity)
            stats['stored_duration'] = entity.duration_hours or 0
            stats['unit'] = 'hours'
            stats['chapter_count'] = entity.get_active_chapters().count()
        elif entity_type == DurationEntityType.CHAPTER:
            stats['calculated_duration'] = self.calculate_chapter_duration(entity)
            stats['stored_duration'] = entity.duration_minutes or 0
            stats['unit'] = 'minutes'
            stats['course_count'] = entity.get_active_courses().count()
        elif entity_type == DurationEntityType.COURSE:
            stats['calculated_duration'] = self.calculate_course_duration(entity)
            stats['stored_duration'] = entity.duration_minutes or 0
            stats['unit'] = 'minutes'
            stats['exercise_count'] = entity.get_active_exercises().count()
            stats['qcm_count'] = entity.get_active_qcms().count()

        if 'calculated_duration' in stats:
            stats['difference'] = stats['calculated_duration'] - stats['stored_duration']
            stats['needs_update'] = stats['difference'] != 0
        else:
            stats['difference'] = 0
            stats['needs_update'] = False

        return stats

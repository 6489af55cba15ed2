"""
Training services package

Provides the duration subsystem of the formation tree:
- Aggregation and propagation of durations
- Duration caching
- Asynchronous update dispatching
"""

from training.services.duration import (
    DurationCalculationService,
    format_duration,
    hours_to_minutes,
    minutes_to_hours,
)
from training.services.duration_cache import DurationCache
from training.services.dispatcher import (
    DurationUpdateDispatcher,
    DurationUpdateMessage,
    publish_to_celery,
)

__all__ = [
    'DurationCalculationService',
    'DurationCache',
    'DurationUpdateDispatcher',
    'DurationUpdateMessage',
    'publish_to_celery',
    'format_duration',
    'hours_to_minutes',
    'minutes_to_hours',
]

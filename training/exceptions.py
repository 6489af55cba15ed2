"""Exceptions raised by the duration subsystem"""


class DurationError(Exception):
    """Base class for duration subsystem errors"""


class UnsupportedDurationEntity(DurationError, TypeError):
    """Object is not a node of the formation tree"""

    def __init__(self, entity):
        self.entity = entity
        super().__init__(f"{type(entity).__name__} does not take part in duration aggregation")


class UnknownDurationEntityType(DurationError, ValueError):
    """Entity type string outside the supported set"""

    def __init__(self, entity_type):
        self.entity_type = entity_type
        super().__init__(f"Unknown duration entity type: {entity_type!r}")

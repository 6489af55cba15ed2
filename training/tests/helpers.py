"""Shared fixtures for the training tests"""
from django.core.cache import caches
from django.test import TestCase

from training.models import Formation, Module, Chapter, Course, Exercise, QCM


class FakeCache:
    """Dictionary backed stand-in for a Django cache, without expiry"""

    def __init__(self):
        self.store = {}
        self.timeouts = {}

    def get_or_set(self, key, default, timeout=None):
        if key not in self.store:
            self.store[key] = default() if callable(default) else default
            self.timeouts[key] = timeout
        return self.store[key]

    def delete(self, key):
        return self.store.pop(key, None) is not None

    def delete_many(self, keys):
        for key in keys:
            self.delete(key)


class DurationTestCase(TestCase):
    """Clears the shared cache so ids reused between tests never hit old entries"""

    def setUp(self):
        super().setUp()
        caches['default'].clear()


def build_tree():
    """
    Formation with one module, one chapter and one course.

    Course: base 100 min, active exercise of 30 min, inactive QCM of 999 min.
    Stored values are deliberately stale: chapter 500 min, module and formation 10 h.
    """
    formation = Formation.objects.create(title='Python Developer', duration_hours=10)
    module = Module.objects.create(formation=formation, title='Foundations', duration_hours=10)
    chapter = Chapter.objects.create(module=module, title='Syntax', duration_minutes=500)
    course = Course.objects.create(
        chapter=chapter, title='Variables', base_duration_minutes=100, duration_minutes=100
    )
    exercise = Exercise.objects.create(course=course, title='Swap two values', estimated_duration_minutes=30)
    qcm = QCM.objects.create(course=course, title='Quiz', time_limit_minutes=999, is_active=False)
    return {
        'formation': formation,
        'module': module,
        'chapter': chapter,
        'course': course,
        'exercise': exercise,
        'qcm': qcm,
    }

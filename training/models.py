"""
Training app models
Formations, Modules, Chapters, Courses and their Exercises / QCMs

Each level of the tree stores a duration snapshot that is maintained by
training.services.duration.DurationCalculationService:

    Formation (hours) <- Module (hours) <- Chapter (minutes) <- Course (minutes)
                                                     Exercise / QCM (minutes)
"""
from django.db import models

from core.models import TimeStampedModel


class DurationEntityType(models.TextChoices):
    """Closed set of node types taking part in duration aggregation"""
    FORMATION = 'formation', 'Formation'
    MODULE = 'module', 'Module'
    CHAPTER = 'chapter', 'Chapter'
    COURSE = 'course', 'Course'
    EXERCISE = 'exercise', 'Exercise'
    QCM = 'qcm', 'QCM'


class Formation(TimeStampedModel):
    """
    Top level training programme.
    duration_hours is the sum of the active modules' durations.
    """
    LEVEL_CHOICES = [
        ('beginner', 'Beginner'),
        ('intermediate', 'Intermediate'),
        ('advanced', 'Advanced'),
    ]
    FORMAT_CHOICES = [
        ('in-person', 'In person'),
        ('online', 'Online'),
        ('hybrid', 'Hybrid'),
    ]

    duration_entity_type = DurationEntityType.FORMATION

    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    level = models.CharField(max_length=20, choices=LEVEL_CHOICES, default='beginner')
    format = models.CharField(max_length=20, choices=FORMAT_CHOICES, default='in-person')

    # Aggregate maintained by the duration service
    duration_hours = models.PositiveIntegerField(default=0)

    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['title']

    def __str__(self):
        return self.title

    @property
    def duration_parent(self):
        return None

    def get_active_modules(self):
        if self.pk is None:
            return Module.objects.none()
        return self.modules.filter(is_active=True)


class Module(TimeStampedModel):
    """
    Module of a formation.
    duration_hours is the ceiling of the active chapters' minutes over 60.
    """
    duration_entity_type = DurationEntityType.MODULE

    formation = models.ForeignKey(
        Formation,
        on_delete=models.CASCADE,
        related_name='modules',
        null=True, blank=True
    )
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    order_index = models.PositiveIntegerField(default=0)

    duration_hours = models.PositiveIntegerField(default=0)

    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['formation', 'order_index']

    def __str__(self):
        return self.title

    @property
    def duration_parent(self):
        return self.formation

    def get_active_chapters(self):
        if self.pk is None:
            return Chapter.objects.none()
        return self.chapters.filter(is_active=True)


class Chapter(TimeStampedModel):
    """Chapter of a module, duration_minutes sums its active courses"""
    duration_entity_type = DurationEntityType.CHAPTER

    module = models.ForeignKey(
        Module,
        on_delete=models.CASCADE,
        related_name='chapters',
        null=True, blank=True
    )
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    order_index = models.PositiveIntegerField(default=0)

    duration_minutes = models.PositiveIntegerField(default=0)

    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['module', 'order_index']

    def __str__(self):
        return self.title

    @property
    def duration_parent(self):
        return self.module

    def get_active_courses(self):
        if self.pk is None:
            return Course.objects.none()
        return self.courses.filter(is_active=True)


class Course(TimeStampedModel):
    """
    Single course inside a chapter.

    base_duration_minutes is entered by the author. duration_minutes is the
    stored total (base + active exercises + active QCM time limits).
    """
    TYPE_LESSON = 'lesson'
    TYPE_VIDEO = 'video'
    TYPE_DOCUMENT = 'document'
    TYPE_PRACTICAL = 'practical'
    TYPE_CHOICES = [
        (TYPE_LESSON, 'Lesson'),
        (TYPE_VIDEO, 'Video'),
        (TYPE_DOCUMENT, 'Document'),
        (TYPE_PRACTICAL, 'Practical'),
    ]

    duration_entity_type = DurationEntityType.COURSE

    chapter = models.ForeignKey(
        Chapter,
        on_delete=models.CASCADE,
        related_name='courses',
        null=True, blank=True
    )
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default=TYPE_LESSON)
    order_index = models.PositiveIntegerField(default=0)

    base_duration_minutes = models.PositiveIntegerField(
        null=True, blank=True,
        help_text="Time spent on the course content itself, in minutes"
    )
    duration_minutes = models.PositiveIntegerField(
        default=0,
        help_text="Total including active exercises and QCMs (maintained automatically)"
    )

    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['chapter', 'order_index']

    def __str__(self):
        return self.title

    @property
    def duration_parent(self):
        return self.chapter

    def get_active_exercises(self):
        if self.pk is None:
            return Exercise.objects.none()
        return self.exercises.filter(is_active=True)

    def get_active_qcms(self):
        if self.pk is None:
            return QCM.objects.none()
        return self.qcms.filter(is_active=True)


class Exercise(TimeStampedModel):
    """Exercise attached to a course"""
    TYPE_PRACTICAL = 'practical'
    TYPE_THEORETICAL = 'theoretical'
    TYPE_CHOICES = [
        (TYPE_PRACTICAL, 'Practical'),
        (TYPE_THEORETICAL, 'Theoretical'),
    ]
    DIFFICULTY_CHOICES = [
        ('beginner', 'Beginner'),
        ('intermediate', 'Intermediate'),
        ('advanced', 'Advanced'),
    ]

    duration_entity_type = DurationEntityType.EXERCISE

    course = models.ForeignKey(
        Course,
        on_delete=models.CASCADE,
        related_name='exercises',
        null=True, blank=True
    )
    title = models.CharField(max_length=255)
    instructions = models.TextField(blank=True)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default=TYPE_PRACTICAL)
    difficulty = models.CharField(max_length=20, choices=DIFFICULTY_CHOICES, default='beginner')
    order_index = models.PositiveIntegerField(default=0)

    estimated_duration_minutes = models.PositiveIntegerField(null=True, blank=True)

    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['course', 'order_index']

    def __str__(self):
        return self.title

    @property
    def duration_parent(self):
        return self.course


class QCM(TimeStampedModel):
    """Multiple choice quiz attached to a course"""
    duration_entity_type = DurationEntityType.QCM

    course = models.ForeignKey(
        Course,
        on_delete=models.CASCADE,
        related_name='qcms',
        null=True, blank=True
    )
    title = models.CharField(max_length=255)
    questions = models.JSONField(default=list, blank=True)
    order_index = models.PositiveIntegerField(default=0)

    time_limit_minutes = models.PositiveIntegerField(null=True, blank=True)
    max_score = models.PositiveIntegerField(default=100)
    passing_score = models.PositiveIntegerField(default=70)

    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['course', 'order_index']
        verbose_name = 'QCM'
        verbose_name_plural = 'QCMs'

    def __str__(self):
        return self.title

    @property
    def duration_parent(self):
        return self.course

"""Training app admin configuration"""
from django.contrib import admin
from django.contrib import messages

from .models import Formation, Module, Chapter, Course, Exercise, QCM
from .services import DurationUpdateDispatcher, format_duration


@admin.action(description='Recalculate durations')
def recalculate_durations(modeladmin, request, queryset):
    """Queue a duration recompute for every selected node"""
    dispatched = DurationUpdateDispatcher().dispatch_batch(
        queryset,
        operation='admin_recalculate',
        context={'requested_by': request.user.pk},
    )
    modeladmin.message_user(
        request,
        f'{dispatched} duration recalculation(s) queued.',
        messages.SUCCESS
    )


class ModuleInline(admin.TabularInline):
    model = Module
    extra = 0
    fields = ['title', 'order_index', 'duration_hours', 'is_active']
    readonly_fields = ['duration_hours']
    ordering = ['order_index']


class ChapterInline(admin.TabularInline):
    model = Chapter
    extra = 0
    fields = ['title', 'order_index', 'duration_minutes', 'is_active']
    readonly_fields = ['duration_minutes']
    ordering = ['order_index']


class CourseInline(admin.TabularInline):
    model = Course
    extra = 0
    fields = ['title', 'type', 'order_index', 'base_duration_minutes', 'duration_minutes', 'is_active']
    readonly_fields = ['duration_minutes']
    ordering = ['order_index']


class ExerciseInline(admin.TabularInline):
    model = Exercise
    extra = 0
    fields = ['title', 'type', 'difficulty', 'estimated_duration_minutes', 'is_active']


class QCMInline(admin.TabularInline):
    model = QCM
    extra = 0
    fields = ['title', 'time_limit_minutes', 'passing_score', 'is_active']


@admin.register(Formation)
class FormationAdmin(admin.ModelAdmin):
    list_display = ['title', 'level', 'format', 'duration_hours', 'display_duration', 'is_active']
    list_filter = ['level', 'format', 'is_active']
    search_fields = ['title']
    readonly_fields = ['duration_hours']
    inlines = [ModuleInline]
    actions = [recalculate_durations]

    @admin.display(description='Duration')
    def display_duration(self, obj):
        return format_duration(obj.duration_hours, 'hours')


@admin.register(Module)
class ModuleAdmin(admin.ModelAdmin):
    list_display = ['title', 'formation', 'order_index', 'duration_hours', 'is_active']
    list_filter = ['is_active', 'formation']
    search_fields = ['title', 'formation__title']
    readonly_fields = ['duration_hours']
    raw_id_fields = ['formation']
    inlines = [ChapterInline]
    actions = [recalculate_durations]


@admin.register(Chapter)
class ChapterAdmin(admin.ModelAdmin):
    list_display = ['title', 'module', 'order_index', 'duration_minutes', 'display_duration', 'is_active']
    list_filter = ['is_active', 'module__formation']
    search_fields = ['title', 'module__title']
    readonly_fields = ['duration_minutes']
    raw_id_fields = ['module']
    inlines = [CourseInline]
    actions = [recalculate_durations]

    @admin.display(description='Duration')
    def display_duration(self, obj):
        return format_duration(obj.duration_minutes, 'minutes')


@admin.register(Course)
class CourseAdmin(admin.ModelAdmin):
    list_display = ['title', 'chapter', 'type', 'base_duration_minutes', 'duration_minutes', 'is_active']
    list_filter = ['type', 'is_active']
    search_fields = ['title', 'chapter__title']
    readonly_fields = ['duration_minutes']
    raw_id_fields = ['chapter']
    inlines = [ExerciseInline, QCMInline]
    actions = [recalculate_durations]


@admin.register(Exercise)
class ExerciseAdmin(admin.ModelAdmin):
    list_display = ['title', 'course', 'type', 'difficulty', 'estimated_duration_minutes', 'is_active']
    list_filter = ['type', 'difficulty', 'is_active']
    search_fields = ['title', 'course__title']
    raw_id_fields = ['course']


@admin.register(QCM)
class QCMAdmin(admin.ModelAdmin):
    list_display = ['title', 'course', 'time_limit_minutes', 'passing_score', 'is_active']
    list_filter = ['is_active']
    search_fields = ['title', 'course__title']
    raw_id_fields = ['course']

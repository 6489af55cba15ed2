from unittest import mock

from django.test import override_settings

from training.admin import recalculate_durations
from training.exceptions import UnknownDurationEntityType, UnsupportedDurationEntity
from training.models import Course, Exercise
from training.services import DurationUpdateDispatcher, DurationUpdateMessage, publish_to_celery
from training.tasks import recalculate_entity_duration
from training.tests.helpers import DurationTestCase, build_tree


class RecordingPublisher:
    def __init__(self):
        self.messages = []

    def __call__(self, message):
        self.messages.append(message)


class TestDurationUpdateDispatcher(DurationTestCase):
    def setUp(self):
        super().setUp()
        self.publisher = RecordingPublisher()
        self.dispatcher = DurationUpdateDispatcher(publisher=self.publisher)

    def test_dispatch_publishes_message(self):
        course = Course.objects.create(title='Course', base_duration_minutes=30)

        self.assertTrue(self.dispatcher.dispatch(course, 'update', {'source': 'editor'}))

        self.assertEqual(self.publisher.messages, [
            DurationUpdateMessage('course', course.pk, 'update', {'source': 'editor'}),
        ])

    def test_dispatch_does_not_compute(self):
        tree = build_tree()

        with mock.patch('training.services.DurationCalculationService.update_entity_duration') as update:
            self.dispatcher.dispatch(tree['exercise'])

        update.assert_not_called()
        tree['course'].refresh_from_db()
        self.assertEqual(tree['course'].duration_minutes, 100)

    def test_unsaved_entity_is_not_published(self):
        self.assertFalse(self.dispatcher.dispatch(Course(title='Draft')))
        self.assertEqual(self.publisher.messages, [])

    def test_unsupported_entity_is_rejected(self):
        with self.assertRaises(UnsupportedDurationEntity):
            self.dispatcher.dispatch(object())

    def test_dispatch_batch_publishes_one_message_per_entity(self):
        tree = build_tree()
        entities = [tree['course'], tree['chapter'], Course(title='Draft'), tree['formation']]

        published = self.dispatcher.dispatch_batch(entities, operation='bulk_import', context={'batch': 1})

        self.assertEqual(published, 3)
        self.assertEqual(
            [(m.entity_type, m.operation, m.context) for m in self.publisher.messages],
            [
                ('course', 'bulk_import', {'batch': 1}),
                ('chapter', 'bulk_import', {'batch': 1}),
                ('formation', 'bulk_import', {'batch': 1}),
            ]
        )

    def test_message_to_dict(self):
        message = DurationUpdateMessage('qcm', 4, 'create')

        self.assertEqual(message.to_dict(), {
            'entity_type': 'qcm',
            'entity_id': 4,
            'operation': 'create',
            'context': {},
        })

    def test_default_publisher_enqueues_celery_task(self):
        self.assertIs(DurationUpdateDispatcher().publisher, publish_to_celery)

        with mock.patch('training.tasks.recalculate_entity_duration') as task:
            publish_to_celery(DurationUpdateMessage('chapter', 3, 'update', {'a': 1}))

        task.delay.assert_called_once_with(
            entity_type='chapter', entity_id=3, operation='update', context={'a': 1}
        )


class TestRecalculateEntityDurationTask(DurationTestCase):
    def setUp(self):
        super().setUp()
        self.tree = build_tree()

    def test_dispatched_change_reaches_every_level(self):
        dispatcher = DurationUpdateDispatcher(
            publisher=lambda message: recalculate_entity_duration(**message.to_dict())
        )
        exercise = self.tree['exercise']
        exercise.estimated_duration_minutes = 60
        exercise.save()

        dispatcher.dispatch(exercise)

        for name in ('course', 'chapter', 'module', 'formation'):
            self.tree[name].refresh_from_db()
        self.assertEqual(self.tree['course'].duration_minutes, 160)
        self.assertEqual(self.tree['chapter'].duration_minutes, 160)
        self.assertEqual(self.tree['module'].duration_hours, 3)
        self.assertEqual(self.tree['formation'].duration_hours, 3)

    def test_task_reloads_entity(self):
        course = self.tree['course']
        Course.objects.filter(pk=course.pk).update(base_duration_minutes=10)

        result = recalculate_entity_duration('course', course.pk)

        self.assertEqual(result, {
            'status': 'success',
            'entity_type': 'course',
            'entity_id': course.pk,
            'operation': 'update',
        })
        course.refresh_from_db()
        self.assertEqual(course.duration_minutes, 40)

    def test_missing_entity_is_skipped(self):
        with self.assertLogs('training.tasks', level='WARNING'):
            result = recalculate_entity_duration('course', 999999)

        self.assertEqual(result, {'status': 'skipped', 'reason': 'entity_not_found'})

    def test_unknown_entity_type(self):
        with self.assertRaises(UnknownDurationEntityType):
            recalculate_entity_duration('lesson', 1)

    def test_failure_is_logged_and_raised(self):
        with mock.patch(
            'training.services.DurationCalculationService.update_entity_duration',
            side_effect=RuntimeError('broken'),
        ):
            with self.assertLogs('training.tasks', level='ERROR') as logs:
                with self.assertRaises(RuntimeError):
                    recalculate_entity_duration('chapter', self.tree['chapter'].pk, 'update')

        self.assertIn('Duration update failed entity_type=chapter', logs.output[0])


@mock.patch('training.services.dispatcher.publish_to_celery')
class TestDurationSignals(DurationTestCase):
    def setUp(self):
        super().setUp()
        self.tree = build_tree()

    def test_save_dispatches_update_after_commit(self, publish):
        course = self.tree['course']
        course.base_duration_minutes = 45

        with self.captureOnCommitCallbacks(execute=True):
            course.save()

        publish.assert_called_once_with(DurationUpdateMessage('course', course.pk, 'update', {}))

    def test_create_dispatches_create(self, publish):
        with self.captureOnCommitCallbacks(execute=True):
            exercise = Exercise.objects.create(
                course=self.tree['course'], title='New', estimated_duration_minutes=15
            )

        publish.assert_called_once_with(DurationUpdateMessage('exercise', exercise.pk, 'create', {}))

    def test_unrelated_field_update_is_ignored(self, publish):
        course = self.tree['course']
        course.title = 'Renamed'

        with self.captureOnCommitCallbacks(execute=True):
            course.save(update_fields=['title'])

        publish.assert_not_called()

    def test_relevant_field_update_is_dispatched(self, publish):
        course = self.tree['course']
        course.is_active = False

        with self.captureOnCommitCallbacks(execute=True):
            course.save(update_fields=['is_active', 'updated_at'])

        publish.assert_called_once()

    def test_delete_dispatches_parent(self, publish):
        exercise = self.tree['exercise']
        exercise_pk = exercise.pk

        with self.captureOnCommitCallbacks(execute=True):
            exercise.delete()

        publish.assert_called_once_with(DurationUpdateMessage(
            'course', self.tree['course'].pk, 'child_removed',
            {'child_type': 'exercise', 'child_id': exercise_pk},
        ))

    def test_nothing_published_before_commit(self, publish):
        with self.captureOnCommitCallbacks(execute=False) as callbacks:
            self.tree['chapter'].save()

        publish.assert_not_called()
        self.assertEqual(len(callbacks), 1)

    def test_broker_failure_does_not_fail_the_save(self, publish):
        publish.side_effect = ConnectionError('broker down')

        with self.assertLogs('training.signals', level='ERROR') as logs:
            with self.captureOnCommitCallbacks(execute=True):
                exercise = Exercise.objects.create(
                    course=self.tree['course'], title='New', estimated_duration_minutes=15
                )

        publish.assert_called_once()
        self.assertTrue(Exercise.objects.filter(pk=exercise.pk).exists())
        self.assertIn('Failed to dispatch duration update entity_type=exercise', logs.output[0])

    @override_settings(DURATION_AUTO_DISPATCH=False)
    def test_auto_dispatch_can_be_disabled(self, publish):
        with self.captureOnCommitCallbacks(execute=True):
            self.tree['course'].save()
            self.tree['exercise'].delete()

        publish.assert_not_called()


class TestRecalculateAdminAction(DurationTestCase):
    def test_action_queues_selected_nodes(self):
        tree = build_tree()
        modeladmin = mock.Mock()
        request = mock.Mock()
        request.user.pk = 7

        with mock.patch('training.services.dispatcher.publish_to_celery') as publish:
            recalculate_durations(modeladmin, request, Course.objects.filter(pk=tree['course'].pk))

        publish.assert_called_once_with(DurationUpdateMessage(
            'course', tree['course'].pk, 'admin_recalculate', {'requested_by': 7},
        ))
        modeladmin.message_user.assert_called_once()

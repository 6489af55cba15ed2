import csv
import io
import json

from django.core.management import call_command
from django.core.management.base import CommandError

from training.models import Course, Chapter
from training.tests.helpers import DurationTestCase, build_tree


class TestSyncDurationsCommand(DurationTestCase):
    def setUp(self):
        super().setUp()
        self.tree = build_tree()

    def refresh_tree(self):
        for name in ('course', 'chapter', 'module', 'formation'):
            self.tree[name].refresh_from_db()

    def test_sync_all_fixes_stale_durations(self):
        out = io.StringIO()

        call_command('sync_durations', stdout=out)

        self.refresh_tree()
        self.assertEqual(self.tree['course'].duration_minutes, 130)
        self.assertEqual(self.tree['chapter'].duration_minutes, 130)
        self.assertEqual(self.tree['module'].duration_hours, 3)
        self.assertEqual(self.tree['formation'].duration_hours, 3)
        self.assertIn('Duration sync completed', out.getvalue())

    def test_dry_run_changes_nothing(self):
        out = io.StringIO()

        call_command('sync_durations', '--dry-run', stdout=out)

        self.refresh_tree()
        self.assertEqual(self.tree['course'].duration_minutes, 100)
        self.assertEqual(self.tree['chapter'].duration_minutes, 500)
        self.assertEqual(self.tree['module'].duration_hours, 10)
        self.assertIn('DRY RUN', out.getvalue())

    def test_single_entity(self):
        other_chapter = Chapter.objects.create(title='Other', duration_minutes=77)
        Course.objects.create(chapter=other_chapter, title='Course', base_duration_minutes=20, duration_minutes=20)

        call_command('sync_durations', 'chapter', '--entity-id', str(other_chapter.pk), stdout=io.StringIO())

        other_chapter.refresh_from_db()
        self.tree['chapter'].refresh_from_db()
        self.assertEqual(other_chapter.duration_minutes, 20)
        self.assertEqual(self.tree['chapter'].duration_minutes, 500)

    def test_course_within_tolerance_is_not_counted_as_updated(self):
        course = Course.objects.create(title='Close enough', base_duration_minutes=100, duration_minutes=97)
        out = io.StringIO()

        call_command('sync_durations', 'course', '--entity-id', str(course.pk), stdout=out)

        course.refresh_from_db()
        self.assertEqual(course.duration_minutes, 97)
        self.assertIn('Duration sync completed: 0 entities updated', out.getvalue())

    def test_dry_run_reports_expected_updates(self):
        Course.objects.create(title='Close enough', base_duration_minutes=100, duration_minutes=97)
        out = io.StringIO()

        call_command('sync_durations', 'course', '--dry-run', stdout=out)

        # Only the scenario course is beyond the tolerance band
        self.assertIn('Duration sync completed: 1 entities updated', out.getvalue())

    def test_sync_counts_rewritten_entities(self):
        out = io.StringIO()

        call_command('sync_durations', stdout=out)

        # Ancestors are fixed by the course propagation and are no longer stale when their turn comes
        self.assertIn('Duration sync completed: 1 entities updated', out.getvalue())

    def test_invalid_entity_type(self):
        with self.assertRaises(CommandError):
            call_command('sync_durations', 'lesson', stdout=io.StringIO())


class TestAnalyzeDurationsCommand(DurationTestCase):
    def setUp(self):
        super().setUp()
        self.tree = build_tree()

    def test_json_report(self):
        out = io.StringIO()

        call_command('analyze_durations', 'course', '--format', 'json', stdout=out)

        rows = json.loads(out.getvalue())
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]['entity_id'], self.tree['course'].pk)
        self.assertEqual(rows[0]['stored_duration'], 100)
        self.assertEqual(rows[0]['calculated_duration'], 130)
        self.assertEqual(rows[0]['parent_entity'], 'Syntax')
        self.assertTrue(rows[0]['has_inconsistency'])

    def test_inconsistencies_only_after_sync(self):
        call_command('sync_durations', stdout=io.StringIO())
        out = io.StringIO()

        call_command('analyze_durations', '--inconsistencies-only', '--format', 'json', stdout=out)

        self.assertEqual(json.loads(out.getvalue()), [])

    def test_csv_report(self):
        out = io.StringIO()

        call_command('analyze_durations', 'module', '--format', 'csv', stdout=out)

        rows = list(csv.DictReader(io.StringIO(out.getvalue())))
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]['unit'], 'hours')
        self.assertEqual(rows[0]['difference'], '-7')

    def test_table_summary(self):
        out = io.StringIO()

        call_command('analyze_durations', stdout=out)

        self.assertIn('Analyzed 4 entities, found 4 inconsistencies', out.getvalue())

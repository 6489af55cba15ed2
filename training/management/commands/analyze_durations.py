"""
Management command reporting stored vs calculated durations.
Usage: python manage.py analyze_durations [entity_type] [--inconsistencies-only] [--format json]
"""
import csv
import io
import json

from django.core.management.base import BaseCommand

from training.models import DurationEntityType
from training.services import DurationCalculationService
from training.services.entities import get_model_for_type


ANALYZE_ORDER = [
    DurationEntityType.COURSE,
    DurationEntityType.CHAPTER,
    DurationEntityType.MODULE,
    DurationEntityType.FORMATION,
]

TABLE_COLUMNS = [
    ('entity_type', 'Type', 10),
    ('entity_id', 'ID', 6),
    ('entity_title', 'Title', 32),
    ('stored_duration', 'Stored', 8),
    ('calculated_duration', 'Calculated', 10),
    ('difference', 'Diff', 6),
    ('unit', 'Unit', 8),
    ('has_inconsistency', 'Status', 6),
    ('parent_entity', 'Parent', 22),
]


def truncate(value, width):
    value = str(value)
    if len(value) > width:
        return value[:width - 3] + '...'
    return value


class Command(BaseCommand):
    help = 'Analyze stored durations against calculated ones'

    def add_arguments(self, parser):
        parser.add_argument(
            'entity_type',
            nargs='?',
            default='all',
            choices=[t.value for t in ANALYZE_ORDER] + ['all'],
            help='Entity type to analyze (default: all)',
        )
        parser.add_argument(
            '--inconsistencies-only',
            action='store_true',
            help='Only list entities whose stored duration is out of date',
        )
        parser.add_argument(
            '--threshold',
            type=int,
            default=5,
            help='Minimum difference counted as an inconsistency (default: 5)',
        )
        parser.add_argument(
            '--format',
            dest='output_format',
            default='table',
            choices=['table', 'json', 'csv'],
            help='Output format (default: table)',
        )

    def handle(self, *args, **options):
        self.service = DurationCalculationService()
        threshold = options['threshold']

        if options['entity_type'] == 'all':
            entity_types = ANALYZE_ORDER
        else:
            entity_types = [DurationEntityType(options['entity_type'])]

        results = []
        for entity_type in entity_types:
            results.extend(self.analyze_entity_type(entity_type, threshold))

        if options['inconsistencies_only']:
            results = [row for row in results if row['has_inconsistency']]

        output_format = options['output_format']
        if output_format == 'json':
            self.stdout.write(json.dumps(results, indent=2))
        elif output_format == 'csv':
            self.output_csv(results)
        else:
            self.output_table(results)

        inconsistencies = sum(1 for row in results if row['has_inconsistency'])
        if output_format == 'table':
            self.stdout.write(self.style.SUCCESS(
                f'Analyzed {len(results)} entities, found {inconsistencies} inconsistencies'
            ))

    def analyze_entity_type(self, entity_type, threshold):
        rows = []
        for entity in get_model_for_type(entity_type).objects.filter(is_active=True).order_by('pk'):
            stats = self.service.get_duration_statistics(entity)
            parent = entity.duration_parent
            rows.append({
                'entity_type': entity_type.label,
                'entity_id': entity.pk,
                'entity_title': entity.title,
                'stored_duration': stats['stored_duration'],
                'calculated_duration': stats['calculated_duration'],
                'difference': stats['difference'],
                'unit': stats['unit'],
                'has_inconsistency': abs(stats['difference']) >= threshold,
                'exercise_count': stats.get('exercise_count'),
                'qcm_count': stats.get('qcm_count'),
                'parent_entity': parent.title if parent is not None else 'N/A',
            })
        return rows

    def output_table(self, results):
        if not results:
            self.stdout.write('No results to display')
            return

        header = ' '.join(title.ljust(width) for _, title, width in TABLE_COLUMNS)
        self.stdout.write(header)
        self.stdout.write('-' * len(header))

        for row in results:
            cells = []
            for key, _, width in TABLE_COLUMNS:
                value = row[key]
                if key == 'has_inconsistency':
                    value = 'STALE' if value else 'OK'
                cells.append(truncate(value, width).ljust(width))
            line = ' '.join(cells)
            if row['has_inconsistency']:
                self.stdout.write(self.style.WARNING(line))
            else:
                self.stdout.write(line)

    def output_csv(self, results):
        if not results:
            return
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=list(results[0].keys()))
        writer.writeheader()
        writer.writerows(results)
        self.stdout.write(buffer.getvalue(), ending='')

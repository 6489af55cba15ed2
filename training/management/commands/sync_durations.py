"""
Management command to synchronize stored durations with calculated ones.
Processes the tree bottom-up (course, chapter, module, formation) in batches.
Usage: python manage.py sync_durations [formation|module|chapter|course|all] [--dry-run]
"""
from django.core.management.base import BaseCommand

from training.models import DurationEntityType
from training.services import DurationCalculationService
from training.services.entities import get_model_for_type


SYNC_ORDER = [
    DurationEntityType.COURSE,
    DurationEntityType.CHAPTER,
    DurationEntityType.MODULE,
    DurationEntityType.FORMATION,
]

STORED_FIELDS = {
    DurationEntityType.COURSE: 'duration_minutes',
    DurationEntityType.CHAPTER: 'duration_minutes',
    DurationEntityType.MODULE: 'duration_hours',
    DurationEntityType.FORMATION: 'duration_hours',
}


class Command(BaseCommand):
    help = 'Synchronize stored durations across the formation tree'

    def add_arguments(self, parser):
        parser.add_argument(
            'entity_type',
            nargs='?',
            default='all',
            choices=[t.value for t in SYNC_ORDER] + ['all'],
            help='Entity type to sync (default: all)',
        )
        parser.add_argument(
            '--entity-id',
            type=int,
            help='Only sync the entity with this ID',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be updated without making changes',
        )
        parser.add_argument(
            '--force',
            action='store_true',
            help='Update even when the stored duration matches the calculated one',
        )
        parser.add_argument(
            '--clear-cache',
            action='store_true',
            help='Clear duration caches before syncing',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=50,
            help='Number of entities per transaction (default: 50)',
        )

    def handle(self, *args, **options):
        self.service = DurationCalculationService()
        self.dry_run = options['dry_run']
        self.force = options['force']
        self.batch_size = max(1, options['batch_size'])
        entity_id = options.get('entity_id')

        if options['clear_cache']:
            cleared = self.service.clear_duration_caches()
            self.stdout.write(f'Cleared {cleared} cached duration(s)')

        if self.dry_run:
            self.stdout.write(self.style.WARNING('DRY RUN - no changes will be made'))

        if options['entity_type'] == 'all':
            entity_types = SYNC_ORDER
        else:
            entity_types = [DurationEntityType(options['entity_type'])]

        total_updated = 0
        total_errors = 0
        for entity_type in entity_types:
            updated, errors = self.sync_entity_type(entity_type, entity_id)
            total_updated += updated
            total_errors += errors

        if total_errors:
            self.stdout.write(self.style.ERROR(
                f'Duration sync finished with {total_errors} failed batch(es), {total_updated} entities updated'
            ))
        else:
            self.stdout.write(self.style.SUCCESS(
                f'Duration sync completed: {total_updated} entities updated'
            ))

    def sync_entity_type(self, entity_type, entity_id=None):
        label = entity_type.label
        self.stdout.write(self.style.MIGRATE_HEADING(f'Syncing {label} durations'))

        queryset = get_model_for_type(entity_type).objects.filter(is_active=True).order_by('pk')
        if entity_id:
            queryset = queryset.filter(pk=entity_id)
        entities = list(queryset)

        if not entities:
            self.stdout.write(f'  No {label.lower()} found to sync')
            return 0, 0

        updated = 0
        errors = 0
        for start in range(0, len(entities), self.batch_size):
            batch = entities[start:start + self.batch_size]
            stale = []

            for entity in batch:
                stats = self.service.get_duration_statistics(entity)
                if self.force or stats['needs_update']:
                    stale.append((entity, stats))
                    self.stdout.write(
                        f'  {label} "{entity}" - stored: {stats["stored_duration"]} {stats["unit"]}, '
                        f'calculated: {stats["calculated_duration"]} {stats["unit"]}, '
                        f'difference: {stats["difference"]}'
                    )

            if not stale:
                continue

            if self.dry_run:
                updated += sum(1 for _, stats in stale if self.expects_rewrite(entity_type, stats))
                continue

            try:
                self.service.batch_update_durations([entity for entity, _ in stale])
            except Exception as e:
                errors += 1
                self.stderr.write(self.style.ERROR(f'  Error processing {label.lower()} batch: {e}'))
                continue

            stored_field = STORED_FIELDS[entity_type]
            updated += sum(
                1 for entity, stats in stale
                if (getattr(entity, stored_field) or 0) != stats['stored_duration']
            )

        self.stdout.write(f'  {label}: checked {len(entities)}, updated {updated}, errors {errors}')
        return updated, errors

    def expects_rewrite(self, entity_type, stats):
        """Whether propagation would change the stored value, courses keeping their tolerance band"""
        if entity_type == DurationEntityType.COURSE:
            return abs(stats['difference']) > self.service.course_tolerance_minutes
        return stats['difference'] != 0

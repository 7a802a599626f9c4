from django.core.management.base import BaseCommand
from core.models import SystemSetting


class Command(BaseCommand):
    help = 'Initialize default billing and scheduling settings'

    def handle(self, *args, **options):
        created_count, skipped_count = SystemSetting.initialize_defaults()

        if options.get('verbosity', 1) >= 2:
            for key in SystemSetting.DEFAULTS:
                self.stdout.write(f'  {key} = {SystemSetting.get_setting(key)}')

        # Summary message
        if created_count > 0:
            self.stdout.write(self.style.SUCCESS(
                f'✓ Settings initialization complete: {created_count} created, {skipped_count} already existed'
            ))
        else:
            self.stdout.write(self.style.SUCCESS(
                f'✓ All settings already initialized ({skipped_count} settings)'
            ))

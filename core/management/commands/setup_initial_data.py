import os

from django.core.management.base import BaseCommand
from django.contrib.auth import get_user_model
from users.models import Role
from services.models import Service
from core.models import SystemSetting
from decimal import Decimal

User = get_user_model()

ROLE_DESCRIPTIONS = {
    Role.ADMIN: ('Administrator', 'Full system access, including refunds'),
    Role.DENTIST: ('Dentist', 'Practitioner with patient, appointment and billing access'),
    Role.STAFF: ('Staff', 'Reception staff handling bookings and payments'),
}

DEFAULT_SERVICES = [
    ('Comprehensive Exam', 'D0150', Decimal('95.00'), 45),
    ('Adult Prophylaxis', 'D1110', Decimal('110.00'), 60),
    ('Bitewing X-Rays', 'D0274', Decimal('65.00'), 15),
    ('Composite Filling', 'D2391', Decimal('180.00'), 60),
    ('Simple Extraction', 'D7140', Decimal('200.00'), 45),
    ('Root Canal, Molar', 'D3330', Decimal('1100.00'), 120),
]


class Command(BaseCommand):
    help = 'Set up roles, an admin account, starter services and system settings'

    def add_arguments(self, parser):
        parser.add_argument('--admin-password', default=os.environ.get('SMILESYNC_ADMIN_PASSWORD'),
                            help='Password for the admin account (default: $SMILESYNC_ADMIN_PASSWORD)')
        parser.add_argument('--skip-services', action='store_true', help='Do not create starter services')

    def handle(self, *args, **options):
        self.stdout.write(self.style.SUCCESS('Setting up initial data...'))

        self.create_default_roles()
        self.create_admin_user(options['admin_password'])
        if not options['skip_services']:
            self.create_default_services()

        created, skipped = SystemSetting.initialize_defaults()
        self.stdout.write(f'  ✓ Settings: {created} created, {skipped} already existed')

        self.stdout.write(self.style.SUCCESS('Initial data setup completed!'))

    def create_default_roles(self):
        """Create default roles with their permission maps"""
        self.stdout.write('Creating default roles...')

        for name, (display_name, description) in ROLE_DESCRIPTIONS.items():
            role, created = Role.objects.get_or_create(
                name=name,
                defaults={
                    'display_name': display_name,
                    'description': description,
                    'permissions': dict(Role.DEFAULT_PERMISSIONS[name]),
                    'is_default': True,
                }
            )
            if created:
                self.stdout.write(f'  ✓ Created role: {role.display_name}')
            else:
                self.stdout.write(f'  - Role already exists: {role.display_name}')

    def create_admin_user(self, password):
        """Create the admin account when a password is provided"""
        self.stdout.write('Creating admin user...')

        if User.objects.filter(username='admin').exists():
            self.stdout.write('  - Admin user already exists')
            return
        if not password:
            self.stdout.write(self.style.WARNING('  ! No admin password given, skipping admin user'))
            return

        admin_user = User.objects.create_superuser(
            username='admin',
            email='admin@smilesync.local',
            password=password,
            first_name='System',
            last_name='Administrator',
            role=Role.objects.get(name=Role.ADMIN),
        )
        self.stdout.write(f'  ✓ Created admin user: {admin_user.username}')

    def create_default_services(self):
        self.stdout.write('Creating default services...')

        for name, code, price, duration in DEFAULT_SERVICES:
            service, created = Service.objects.get_or_create(
                code=code,
                defaults={'name': name, 'price': price, 'duration_minutes': duration}
            )
            if created:
                self.stdout.write(f'  ✓ Created service: {service.name}')
            else:
                self.stdout.write(f'  - Service already exists: {service.name}')

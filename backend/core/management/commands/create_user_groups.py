from django.core.management.base import BaseCommand
from django.contrib.auth.models import Group, Permission

from backend.core.permissions import ROLE_CALLER, ROLE_DELIVERY, ROLE_SUPERVISOR, ROLE_ADMIN


class Command(BaseCommand):
    help = 'Create Django user groups for RBAC: Caller, Delivery, Supervisor, Admin'

    def handle(self, *args, **options):
        groups_config = [
            {
                'name': ROLE_CALLER,
                'description': 'Call center agents - clients, orders, payments and follow-ups',
                'apps': ['clients', 'orders'],
            },
            {
                'name': ROLE_DELIVERY,
                'description': 'Delivery agents - own profile, carried stock and delivery statuses',
                'apps': [],
            },
            {
                'name': ROLE_SUPERVISOR,
                'description': 'Supervisors - every module, no user administration',
                'apps': ['*'],
            },
            {
                'name': ROLE_ADMIN,
                'description': 'Administrators - full system access including backend',
                'apps': ['*'],
            },
        ]

        created_count = 0
        updated_count = 0

        for group_config in groups_config:
            group, created = Group.objects.get_or_create(name=group_config['name'])

            if created:
                self.stdout.write(self.style.SUCCESS(f'✓ Created group: {group_config["name"]}'))
                created_count += 1
            else:
                self.stdout.write(f'  Group already exists: {group_config["name"]}')
                updated_count += 1

            if group_config['name'] == ROLE_ADMIN:
                group.permissions.set(Permission.objects.all())
                self.stdout.write('  Added all permissions to Admin group')
            elif group_config['apps'] == ['*']:
                permissions = Permission.objects.exclude(
                    content_type__app_label='admin'
                ).exclude(
                    content_type__app_label='auth',
                    codename__in=['add_user', 'change_user', 'delete_user']
                )
                group.permissions.set(permissions)
                self.stdout.write(f'  Added module permissions to {group_config["name"]} group')
            else:
                # API access is decided by group membership; model permissions only matter in the admin
                group.permissions.set(Permission.objects.filter(content_type__app_label__in=group_config['apps']))
                self.stdout.write(f'  Basic permissions set for {group_config["name"]} group')

        self.stdout.write(self.style.SUCCESS(
            f'\nCompleted: {created_count} groups created, {updated_count} groups already existed'
        ))

from django.core.management.base import BaseCommand
from django.contrib.auth import get_user_model
from django.db import transaction

from apps.identity.invite_service import InviteService
from apps.identity.models import Invite, Role, UserRole
from apps.organizations.models import Company, Condo
from apps.registry.models import Resident, Unit
from apps.registry.resident_service import ResidentService

User = get_user_model()

DEMO_PASSWORD = 'password123'


class Command(BaseCommand):
    help = 'Seeds the database with a demo company, condo, units, users and an invite.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--clean',
            action='store_true',
            help='Delete existing data before seeding',
        )
        parser.add_argument(
            '--units',
            type=int,
            default=10,
            help='Number of units to create in the demo condo',
        )

    def handle(self, *args, **options):
        if options['clean']:
            self.clean()

        with transaction.atomic():
            superadmin = self.user('superadmin', is_staff=True, is_superuser=True)
            self.grant(superadmin, Role.SUPERADMIN)

            company, _ = Company.objects.get_or_create(
                name='Demo Management Co',
                defaults={'legal_name': 'Demo Management Co LLC', 'inn': '7700000000'},
            )
            condo, _ = Condo.objects.get_or_create(company=company, name='Sunrise Residences')

            director = self.user('director')
            self.grant(director, Role.COMPANY_ADMIN, company=company)

            manager = self.user('manager')
            self.grant(manager, Role.CONDO_ADMIN, condo=condo)

            guard = self.user('guard')
            self.grant(guard, Role.SECURITY_GUARD, condo=condo)

            units = []
            for i in range(1, options['units'] + 1):
                unit, _ = Unit.objects.get_or_create(
                    condo=condo,
                    number=str(100 + i),
                    deleted_at=None,
                    defaults={'floor': 1 + i // 4},
                )
                units.append(unit)

        owner = self.user('owner')
        if units and not Resident.objects.active().filter(user=owner, unit=units[0]).exists():
            ResidentService.create_resident(owner.id, units[0].id, is_owner=True, performed_by=director)

        if len(units) > 1:
            invite = InviteService.create_invite(
                units[1].id,
                created_by=manager,
                email='tenant@example.com',
                max_uses=2,
            )
            self.stdout.write(f'Invite token for unit {units[1].number}: {invite.token}')

        self.stdout.write(self.style.SUCCESS(
            f'Seeded company "{company.name}" with {len(units)} units. '
            f'Users: superadmin, director, manager, guard, owner (password: {DEMO_PASSWORD})'
        ))

    def user(self, username, **extra):
        user, created = User.objects.get_or_create(
            username=username,
            defaults={'email': f'{username}@example.com', **extra},
        )
        if created:
            user.set_password(DEMO_PASSWORD)
            user.save()
        return user

    def grant(self, user, role, company=None, condo=None):
        UserRole.objects.get_or_create(
            user=user, role=role, company=company, condo=condo, deleted_at=None,
        )

    def clean(self):
        self.stdout.write('Cleaning existing data...')
        Invite.objects.all().delete()
        Resident.objects.all().delete()
        UserRole.objects.all().delete()
        Unit.objects.all().delete()
        Condo.objects.all().delete()
        Company.objects.all().delete()
        User.objects.filter(is_superuser=False).delete()

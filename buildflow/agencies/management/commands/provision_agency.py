from django.core.management.base import BaseCommand, CommandError

from buildflow.agencies.db import InvalidDatabaseName, validate_database_name
from buildflow.agencies.models import Agency
from buildflow.agencies.provisioning import provision_agency_database


class Command(BaseCommand):
    help = 'Create (if needed) an agency and provision its database'

    def add_arguments(self, parser):
        parser.add_argument('database_name', help='Database name of the agency')
        parser.add_argument('--name', help='Display name, required when the agency does not exist yet')
        parser.add_argument('--domain', help='Agency domain, required when the agency does not exist yet')
        parser.add_argument('--plan', default='free', help='Subscription plan')
        parser.add_argument('--skip-migrate', action='store_true', help='Create the database without migrating it')

    def handle(self, *args, **options):
        try:
            database_name = validate_database_name(options['database_name'])
        except InvalidDatabaseName as e:
            raise CommandError(str(e))

        agency = Agency.objects.filter(database_name=database_name).first()
        if agency is None:
            if not options['name'] or not options['domain']:
                raise CommandError('--name and --domain are required for a new agency')
            agency = Agency.objects.create(
                name=options['name'],
                domain=options['domain'],
                database_name=database_name,
                subscription_plan=options['plan'],
            )
            self.stdout.write(self.style.SUCCESS(f'Created agency: {agency.name}'))
        else:
            self.stdout.write(f'Agency already exists: {agency.name}')

        result = provision_agency_database(agency, migrate=not options['skip_migrate'])
        if result['created']:
            self.stdout.write(self.style.SUCCESS(f'Created database: {database_name}'))
        if result['migrated']:
            self.stdout.write(self.style.SUCCESS(f'Migrated database: {database_name}'))
        if not result['created'] and not result['migrated']:
            self.stdout.write(f'Nothing to provision for {database_name}')

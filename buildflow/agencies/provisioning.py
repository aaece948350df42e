"""
Creating and migrating agency databases
"""
import logging

from django.conf import settings
from django.core.management import call_command
from django.db import connections

from .db import quote_identifier, registry

logger = logging.getLogger(__name__)


def is_postgresql(alias='default'):
    return connections[alias].vendor == 'postgresql'


def database_exists(database_name):
    with connections['default'].cursor() as cursor:
        cursor.execute('SELECT 1 FROM pg_database WHERE datname = %s', [database_name])
        return cursor.fetchone() is not None


def create_database(database_name):
    """CREATE DATABASE for an agency. Returns False when it already exists."""
    if database_exists(database_name):
        logger.info(f"Database {database_name} already exists")
        return False
    # CREATE DATABASE cannot run inside a transaction block
    connection = connections['default']
    connection.ensure_connection()
    previous_autocommit = connection.get_autocommit()
    connection.set_autocommit(True)
    try:
        with connection.cursor() as cursor:
            cursor.execute(f'CREATE DATABASE {quote_identifier(database_name)}')
    finally:
        connection.set_autocommit(previous_autocommit)
    logger.info(f"Created database {database_name}")
    return True


def provision_agency_database(agency, migrate=True):
    """
    Make the agency's database usable.

    With database isolation on PostgreSQL the database is created, registered
    as a connection alias and migrated. Other setups share the main database
    and have nothing to create.
    """
    if settings.AGENCY_ISOLATION != 'database' or not is_postgresql():
        logger.info(f"Agency {agency.database_name} uses the shared database, nothing to provision")
        return {'database_name': agency.database_name, 'created': False, 'migrated': False}

    created = create_database(agency.database_name)
    alias = registry.get_alias(agency.database_name)
    if migrate:
        call_command('migrate', database=alias, interactive=False, verbosity=0)
        logger.info(f"Migrated agency database {agency.database_name}")
    return {'database_name': agency.database_name, 'created': created, 'migrated': migrate}

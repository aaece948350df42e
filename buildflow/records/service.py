"""
Runs query builder statements against an agency database and returns rows
as dictionaries.
"""
import datetime
import logging

from django.apps import apps
from django.conf import settings
from django.core.exceptions import FieldDoesNotExist, ValidationError
from django.db import connections, transaction
from django.utils import timezone

from buildflow.agencies.context import tenant_alias
from buildflow.core.cache_utils import invalidate_agency_cache

from . import builder
from .builder import FilterCondition, QueryBuilderError

logger = logging.getLogger(__name__)

AGENCY_COLUMN = 'agency_id'
READ_ONLY_COLUMNS = frozenset(['id', AGENCY_COLUMN, 'created_at'])
VALUELESS_FILTER_OPERATORS = frozenset(['like', 'ilike', 'is'])


class RecordError(Exception):
    """A records operation could not be completed."""


class RecordNotFound(RecordError):
    pass


class TableNotAllowed(RecordError):
    pass


def tenant_models():
    """db_table -> model for every agency-owned model of the tenant apps

    Line-item tables have no agency_id column and are only reachable through
    their parent documents.
    """
    models = {}
    for app_label in settings.TENANT_APPS:
        for model in apps.get_app_config(app_label).get_models():
            if any(field.column == AGENCY_COLUMN for field in model._meta.concrete_fields):
                models[model._meta.db_table] = model
    return models


def get_table_model(table):
    builder.validate_identifier(table)
    model = tenant_models().get(table)
    if model is None:
        raise TableNotAllowed(f'Table "{table}" is not available')
    return model


class RecordService:
    """
    Generic CRUD over the tables of the tenant apps.

    Every statement is scoped to ``agency_id`` when the table has that column,
    values are converted with the model fields before they are bound, and
    unknown columns are rejected.
    """

    def __init__(self, using=None, agency_id=None):
        self.using = using or tenant_alias()
        self.agency_id = agency_id

    @property
    def connection(self):
        return connections[self.using]

    # Value conversion

    def _field(self, model, column):
        try:
            field = model._meta.get_field(column)
        except FieldDoesNotExist:
            raise RecordError(f'Unknown column "{column}" on {model._meta.db_table}')
        if not getattr(field, 'concrete', False) or field.many_to_many:
            raise RecordError(f'Unknown column "{column}" on {model._meta.db_table}')
        return field

    def _prep(self, model, column, value):
        field = self._field(model, column)
        if value is None:
            return None
        try:
            return field.get_db_prep_save(field.to_python(value), connection=self.connection)
        except (ValidationError, TypeError, ValueError) as e:
            raise QueryBuilderError(f'Invalid value for "{column}": {e}')

    def _prep_where(self, model, where):
        prepared = {}
        for column, value in (where or {}).items():
            if isinstance(value, (list, tuple)):
                prepared[column] = [self._prep(model, column, item) for item in value]
            elif isinstance(value, dict) and 'operator' in value:
                operand = value.get('value')
                operator = str(value['operator']).strip().lower()
                if operator in ('in', 'not in') and isinstance(operand, (list, tuple)):
                    operand = [self._prep(model, column, item) for item in operand]
                elif operator not in ('like', 'ilike', 'not like', 'not ilike', 'is', 'is not'):
                    operand = self._prep(model, column, operand)
                else:
                    self._field(model, column)
                prepared[column] = {**value, 'value': operand}
            else:
                prepared[column] = self._prep(model, column, value)
        return prepared

    def _prep_filters(self, model, filters):
        prepared = []
        for raw in filters or []:
            condition = FilterCondition.from_dict(raw)
            if condition.column == builder.OR_FILTER_COLUMN:
                prepared.append(condition)
                continue
            operator = str(condition.operator).lower()
            value = condition.value
            if operator == 'in' and isinstance(value, (list, tuple)):
                value = [self._prep(model, condition.column, item) for item in value]
            elif operator not in VALUELESS_FILTER_OPERATORS:
                value = self._prep(model, condition.column, value)
            else:
                self._field(model, condition.column)
            prepared.append(FilterCondition(condition.column, condition.operator, value, condition.negated))
        return prepared

    def _prep_row(self, model, data, fill_defaults=True):
        if not isinstance(data, dict):
            raise RecordError('Record data must be an object')
        row = {}
        for column, value in data.items():
            field = self._field(model, column)
            row[field.column] = self._prep(model, column, value)
        if fill_defaults:
            self._fill_defaults(model, row)
        return row

    def _fill_defaults(self, model, row):
        now = timezone.now()
        for field in model._meta.concrete_fields:
            if field.column in row or field.primary_key:
                continue
            if getattr(field, 'auto_now', False) or getattr(field, 'auto_now_add', False):
                value = now
            elif field.has_default() or (field.empty_strings_allowed and not field.null):
                value = field.get_default()
            else:
                continue
            row[field.column] = field.get_db_prep_save(value, connection=self.connection)

    def _from_db(self, model, row):
        columns = {field.column: field for field in model._meta.concrete_fields}
        result = {}
        for column, value in row.items():
            field = columns.get(column)
            if field is not None and value is not None:
                if hasattr(field, 'from_db_value'):
                    value = field.from_db_value(value, None, self.connection)
                value = field.to_python(value)
                if settings.USE_TZ and isinstance(value, datetime.datetime) and timezone.is_naive(value):
                    value = timezone.make_aware(value, datetime.timezone.utc)
            result[column] = value
        return result

    # Scoping

    def _is_scoped(self, model):
        return self.agency_id is not None and any(
            field.column == AGENCY_COLUMN for field in model._meta.concrete_fields
        )

    def _scoped_agency(self, model):
        return self._prep(model, AGENCY_COLUMN, self.agency_id)

    def _scope(self, model, where=None, filters=None):
        where = self._prep_where(model, where)
        filters = self._prep_filters(model, filters)
        if self._is_scoped(model):
            agency = self._scoped_agency(model)
            if filters:
                filters.append(FilterCondition(AGENCY_COLUMN, 'eq', agency))
            else:
                where[AGENCY_COLUMN] = agency
        return where, filters

    # Execution

    def _fetch_all(self, sql, params):
        with self.connection.cursor() as cursor:
            cursor.execute(sql, params)
            if cursor.description is None:
                return []
            names = [column[0] for column in cursor.description]
            return [dict(zip(names, row)) for row in cursor.fetchall()]

    def _execute(self, sql, params):
        with self.connection.cursor() as cursor:
            cursor.execute(sql, params)
            return cursor.rowcount

    def _changed(self):
        if self.agency_id is not None:
            agency_id = self.agency_id
            transaction.on_commit(lambda: invalidate_agency_cache(agency_id), using=self.using)

    def select_records(self, table, select='*', where=None, filters=None, order_by='', limit=None, offset=None):
        model = get_table_model(table)
        where, filters = self._scope(model, where, filters)
        sql, params = builder.select_query(table, select=select, where=where, filters=filters,
                                           order_by=order_by, limit=limit, offset=offset)
        return [self._from_db(model, row) for row in self._fetch_all(sql, params)]

    def select_one(self, table, where=None, select='*'):
        model = get_table_model(table)
        where, _ = self._scope(model, where)
        sql, params = builder.select_one_query(table, where=where, select=select)
        rows = self._fetch_all(sql, params)
        return self._from_db(model, rows[0]) if rows else None

    def count_records(self, table, where=None, filters=None):
        model = get_table_model(table)
        where, filters = self._scope(model, where, filters)
        sql, params = builder.count_query(table, where=where, filters=filters)
        rows = self._fetch_all(sql, params)
        return int(rows[0]['count']) if rows else 0

    def insert_record(self, table, data):
        model = get_table_model(table)
        row = self._prep_row(model, data)
        if self._is_scoped(model):
            row[AGENCY_COLUMN] = self._scoped_agency(model)
        sql, params = builder.insert_query(table, row, agency_id=row.get(AGENCY_COLUMN))
        rows = self._fetch_all(sql, params)
        if not rows:
            raise RecordError(f'Insert into {table} returned no data')
        self._changed()
        logger.debug(f"Inserted record into {table}")
        return self._from_db(model, rows[0])

    def _update_values(self, model, data):
        values = {column: value for column, value in (data or {}).items() if column not in READ_ONLY_COLUMNS}
        if not values:
            raise RecordError('Nothing to update')
        return self._prep_row(model, values, fill_defaults=False)

    def _now(self, model):
        try:
            model._meta.get_field('updated_at')
        except FieldDoesNotExist:
            return None
        return self._prep(model, 'updated_at', timezone.now())

    def update_record(self, table, data, where):
        """
        Update matching rows and return the first. When the update returns
        nothing the row is looked up again, so an unchanged row still comes
        back; RecordNotFound is raised if it does not exist.
        """
        model = get_table_model(table)
        if not where:
            raise QueryBuilderError('Update requires a where clause')
        values = self._update_values(model, data)
        scoped_where, _ = self._scope(model, where)
        sql, params = builder.update_query(table, values, scoped_where, now=self._now(model))
        rows = self._fetch_all(sql, params)
        if rows:
            self._changed()
            return self._from_db(model, rows[0])

        existing = self.select_one(table, where)
        if existing is None:
            raise RecordNotFound(f'No {table} record matches {where}')
        return existing

    def delete_record(self, table, where):
        model = get_table_model(table)
        if not where:
            raise QueryBuilderError('Delete requires a where clause')
        scoped_where, _ = self._scope(model, where)
        sql, params = builder.delete_query(table, scoped_where)
        deleted = self._execute(sql, params)
        if deleted:
            self._changed()
        return deleted

    def batch_insert(self, table, records):
        if not records:
            return []
        model = get_table_model(table)
        rows = [self._prep_row(model, record) for record in records]
        if self._is_scoped(model):
            agency = self._scoped_agency(model)
            for row in rows:
                row[AGENCY_COLUMN] = agency
        sql, params = builder.batch_insert_query(table, rows)
        inserted = self._fetch_all(sql, params)
        self._changed()
        return [self._from_db(model, row) for row in inserted]

    def batch_update(self, table, records):
        """Update each record by its ``id``"""
        updated = []
        with transaction.atomic(using=self.using):
            for record in records:
                record = dict(record)
                record_id = record.pop('id', None)
                if record_id is None:
                    raise RecordError('Every record in a batch update needs an id')
                updated.append(self.update_record(table, record, {'id': record_id}))
        return updated

    def _unique_column_sets(self, model):
        sets = [{model._meta.get_field(name).column for name in names} for names in model._meta.unique_together]
        for constraint in model._meta.total_unique_constraints:
            sets.append({model._meta.get_field(name).column for name in constraint.fields})
        for field in model._meta.concrete_fields:
            if field.unique:
                sets.append({field.column})
        return sets

    def _conflict_target(self, model, keys):
        """Columns for ON CONFLICT, widened with agency_id for per-agency unique keys"""
        unique_sets = self._unique_column_sets(model)
        if set(keys) in unique_sets:
            return keys
        if self._is_scoped(model) and set(keys) | {AGENCY_COLUMN} in unique_sets:
            return keys + [AGENCY_COLUMN]
        raise QueryBuilderError(f'{", ".join(keys)} is not a unique key of {model._meta.db_table}')

    def upsert_record(self, table, data, unique_key):
        """
        Insert ``data`` or, when the unique key already exists, update the
        supplied columns of that row. Columns the caller did not send keep
        their stored values; ``updated_at`` is refreshed.
        """
        model = get_table_model(table)
        row = self._prep_row(model, data, fill_defaults=False)
        update_columns = [column for column in row if column not in READ_ONLY_COLUMNS]
        self._fill_defaults(model, row)
        if self._is_scoped(model):
            row[AGENCY_COLUMN] = self._scoped_agency(model)
        keys = [unique_key] if isinstance(unique_key, str) else list(unique_key or [])
        keys = self._conflict_target(model, [self._field(model, key).column for key in keys])
        now = self._now(model)
        if now is not None:
            row['updated_at'] = now
            if 'updated_at' not in update_columns:
                update_columns.append('updated_at')
        sql, params = builder.upsert_query(table, row, keys, update_columns=update_columns)
        rows = self._fetch_all(sql, params)
        self._changed()
        if rows:
            return self._from_db(model, rows[0])
        return self.select_one(table, {key: row[key] for key in keys})

    def get_paginated(self, table, page=1, page_size=20, select='*', where=None, filters=None, order_by=''):
        page = max(int(page or 1), 1)
        page_size = max(int(page_size or 20), 1)
        offset = (page - 1) * page_size
        return {
            'data': self.select_records(table, select=select, where=where, filters=filters,
                                        order_by=order_by, limit=page_size, offset=offset),
            'total': self.count_records(table, where=where, filters=filters),
            'page': page,
            'page_size': page_size,
        }

    def raw_query(self, sql, params=None):
        """Run trusted server-side SQL. Never pass client input as ``sql``."""
        return self._fetch_all(sql, list(params or []))

    def raw_query_one(self, sql, params=None):
        rows = self.raw_query(sql, params)
        return rows[0] if rows else None

    def execute_transaction(self, callback):
        """Run ``callback(service)`` atomically on this service's database"""
        with transaction.atomic(using=self.using):
            return callback(self)

"""
Parameterized SQL statement builder.

Every function is pure: it returns ``(sql, params)`` and never touches a
database. Table and column names are validated and double quoted, values are
always bound as parameters, and operators come from fixed allowlists.

Two placeholder styles are supported:

* ``format``  ``%s`` placeholders, as taken by DB-API cursors (the default)
* ``numeric`` ``$1, $2, ...`` placeholders, numbered the way PostgreSQL's
  extended protocol expects. Numbering runs across the whole statement, so
  the WHERE clause of an UPDATE continues after its SET clause.
"""
import re
from dataclasses import dataclass
from typing import Any

IDENTIFIER_PATTERN = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')
MAX_IDENTIFIER_LENGTH = 63

# Tables that always carry the owning agency
AGENCY_REQUIRED_TABLES = frozenset([
    'profiles', 'user_roles', 'departments', 'team_assignments', 'clients',
    'projects', 'tasks', 'invoices', 'quotations', 'jobs', 'job_cost_items',
    'job_categories', 'leads', 'lead_sources', 'crm_activities',
    'chart_of_accounts', 'journal_entries', 'journal_entry_lines',
    'attendance', 'leave_requests', 'leave_types', 'leave_balances', 'payroll',
    'payroll_periods', 'reimbursement_requests', 'reimbursement_attachments',
    'reimbursement_categories', 'expense_categories', 'employee_details',
    'employee_salary_details', 'holidays', 'company_events', 'notifications',
    'dashboard_widgets', 'custom_reports', 'message_threads', 'messages',
    'thread_participants', 'document_folders', 'documents', 'reports',
])

TABLES_WITHOUT_UPDATED_AT = frozenset(['user_roles'])

# agency_settings rows are keyed by the agency database itself
TABLES_WITHOUT_AGENCY_COLUMN = frozenset(['agency_settings'])

# Operators accepted in a ``where`` mapping ({'col': {'operator': '>', 'value': 1}})
WHERE_OPERATORS = {
    '=': '=',
    '!=': '!=',
    '<>': '<>',
    '>': '>',
    '>=': '>=',
    '<': '<',
    '<=': '<=',
    'like': 'LIKE',
    'ilike': 'ILIKE',
    'not like': 'NOT LIKE',
    'not ilike': 'NOT ILIKE',
    'in': 'IN',
    'not in': 'NOT IN',
    'is': 'IS',
    'is not': 'IS NOT',
}

# Operators accepted in a filter list
COMPARISON_FILTERS = {
    'eq': '=',
    'neq': '!=',
    'gt': '>',
    'gte': '>=',
    'lt': '<',
    'lte': '<=',
    'like': 'LIKE',
    'ilike': 'ILIKE',
}
FILTER_OPERATORS = frozenset(COMPARISON_FILTERS) | {'in', 'is'}

# Parts of an ``__or__`` filter
OR_FILTER_OPERATORS = frozenset(['eq', 'neq', 'gt', 'gte', 'lt', 'lte', 'like', 'ilike', 'is'])
OR_EMITTED_OPERATORS = frozenset(['eq', 'neq', 'like', 'ilike'])
OR_FILTER_COLUMN = '__or__'

IS_LITERALS = {'true': 'TRUE', 'false': 'FALSE', 'null': 'NULL'}

ORDER_PATTERN = re.compile(r'^\s*([A-Za-z_][A-Za-z0-9_]*)(?:\s+(asc|desc))?(?:\s+nulls\s+(first|last))?\s*$',
                           re.IGNORECASE)


class QueryBuilderError(ValueError):
    """Raised for unsafe or malformed query input."""


@dataclass
class FilterCondition:
    column: str
    operator: str
    value: Any = None
    negated: bool = False

    @classmethod
    def from_dict(cls, data):
        if isinstance(data, cls):
            return data
        if not isinstance(data, dict):
            raise QueryBuilderError('Each filter must be an object')
        try:
            return cls(
                column=data['column'],
                operator=data['operator'],
                value=data.get('value'),
                negated=bool(data.get('negated', False)),
            )
        except KeyError as e:
            raise QueryBuilderError(f'Filter is missing {e.args[0]}')


class Placeholders:
    """Hands out placeholders in the chosen style, keeping the running index"""

    def __init__(self, style='format', start=1):
        if style not in ('format', 'numeric'):
            raise QueryBuilderError(f'Unknown placeholder style: {style}')
        self.style = style
        self.index = start

    def next(self):
        if self.style == 'format':
            return '%s'
        placeholder = f'${self.index}'
        self.index += 1
        return placeholder

    def many(self, count):
        return ', '.join(self.next() for _ in range(count))


def validate_identifier(name):
    if not isinstance(name, str) or not IDENTIFIER_PATTERN.match(name):
        raise QueryBuilderError(f'Invalid identifier: {name!r}')
    if len(name) > MAX_IDENTIFIER_LENGTH:
        raise QueryBuilderError(f'Identifier too long: {name!r}')
    return name


def quote_identifier(name):
    return f'"{validate_identifier(name)}"'


def quote_column_list(columns):
    return ', '.join(quote_identifier(column) for column in columns)


def _select_list(select):
    if select is None or select == '*' or select == '':
        return '*'
    if isinstance(select, str):
        columns = [part.strip() for part in select.split(',') if part.strip()]
    else:
        columns = list(select)
    if not columns:
        return '*'
    return quote_column_list(columns)


def _order_clause(order_by):
    if not order_by:
        return ''
    parts = order_by if isinstance(order_by, (list, tuple)) else str(order_by).split(',')
    rendered = []
    for part in parts:
        match = ORDER_PATTERN.match(part)
        if not match:
            raise QueryBuilderError(f'Invalid order_by: {part!r}')
        column, direction, nulls = match.groups()
        clause = quote_identifier(column)
        if direction:
            clause += f' {direction.upper()}'
        if nulls:
            clause += f' NULLS {nulls.upper()}'
        rendered.append(clause)
    return ' ORDER BY ' + ', '.join(rendered)


def _non_negative_int(value, name):
    if value is None:
        return None
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise QueryBuilderError(f'{name} must be an integer')
    if value < 0:
        raise QueryBuilderError(f'{name} must not be negative')
    return value


def _where_conditions(where, placeholders):
    conditions = []
    params = []
    for column, value in (where or {}).items():
        quoted = quote_identifier(column)
        if value is None:
            conditions.append(f'{quoted} IS NULL')
        elif isinstance(value, (list, tuple)):
            if not value:
                conditions.append('1 = 0')
                continue
            conditions.append(f'{quoted} IN ({placeholders.many(len(value))})')
            params.extend(value)
        elif isinstance(value, dict) and 'operator' in value:
            operator = str(value['operator']).strip().lower()
            if operator not in WHERE_OPERATORS:
                raise QueryBuilderError(f'Operator not allowed: {value["operator"]!r}')
            sql_operator = WHERE_OPERATORS[operator]
            operand = value.get('value')
            if operator in ('in', 'not in'):
                if not isinstance(operand, (list, tuple)) or not operand:
                    raise QueryBuilderError(f'Operator {operator} needs a non-empty list')
                conditions.append(f'{quoted} {sql_operator} ({placeholders.many(len(operand))})')
                params.extend(operand)
            elif operator in ('is', 'is not'):
                conditions.append(f'{quoted} {sql_operator} {_is_literal(operand)}')
            else:
                conditions.append(f'{quoted} {sql_operator} {placeholders.next()}')
                params.append(operand)
        else:
            conditions.append(f'{quoted} = {placeholders.next()}')
            params.append(value)
    return conditions, params


def _is_literal(value):
    if value is None:
        return 'NULL'
    if isinstance(value, bool):
        return 'TRUE' if value else 'FALSE'
    literal = IS_LITERALS.get(str(value).strip().lower())
    if literal is None:
        raise QueryBuilderError(f'IS expects true, false or null, got {value!r}')
    return literal


def build_where_clause(where, start_index=1, placeholder_style='format'):
    """
    Build ``WHERE ...`` from a column -> value mapping.

    ``None`` becomes ``IS NULL``, lists become ``IN (...)``, a dict with an
    ``operator`` key applies that operator and anything else is an equality.
    Returns ``('', [])`` for an empty mapping.
    """
    placeholders = Placeholders(placeholder_style, start_index)
    return _build_where(where, placeholders)


def _build_where(where, placeholders):
    conditions, params = _where_conditions(where, placeholders)
    if not conditions:
        return '', []
    return 'WHERE ' + ' AND '.join(conditions), params


def parse_or_filter(text):
    """
    Parse ``col.op.value,col.op.value`` into FilterConditions.

    Parts that do not have three segments, use an unknown operator or name an
    invalid column are skipped. The value may itself contain dots.
    """
    conditions = []
    if not text:
        return conditions
    for part in str(text).split(','):
        segments = part.strip().split('.', 2)
        if len(segments) != 3:
            continue
        column, operator, value = segments
        operator = operator.lower()
        if operator not in OR_FILTER_OPERATORS or not IDENTIFIER_PATTERN.match(column):
            continue
        conditions.append(FilterCondition(column=column, operator=operator, value=value))
    return conditions


def _filter_condition(condition, placeholders):
    """Render one filter, or return (None, []) when it must be skipped"""
    operator = str(condition.operator).lower()
    column = quote_identifier(condition.column)
    value = condition.value

    if operator == 'eq' and value is None:
        return f'{column} IS NULL', []
    if operator == 'neq' and value is None:
        return f'{column} IS NOT NULL', []
    if operator in COMPARISON_FILTERS:
        return f'{column} {COMPARISON_FILTERS[operator]} {placeholders.next()}', [value]
    if operator == 'in':
        if not isinstance(value, (list, tuple)) or not value:
            return None, []
        return f'{column} IN ({placeholders.many(len(value))})', list(value)
    if operator == 'is':
        return f'{column} IS {_is_literal(value)}', []
    return None, []


def _or_group(text, placeholders):
    parts = []
    params = []
    for condition in parse_or_filter(text):
        if condition.operator not in OR_EMITTED_OPERATORS:
            continue
        sql, condition_params = _filter_condition(condition, placeholders)
        if sql:
            parts.append(sql)
            params.extend(condition_params)
    if not parts:
        return None, []
    return '(' + ' OR '.join(parts) + ')', params


def _build_filters(filters, placeholders):
    conditions = []
    params = []
    for raw in filters or []:
        condition = FilterCondition.from_dict(raw)
        if condition.column == OR_FILTER_COLUMN:
            # OR groups ignore ``negated``
            sql, condition_params = _or_group(condition.value, placeholders)
        else:
            if str(condition.operator).lower() not in FILTER_OPERATORS:
                continue
            sql, condition_params = _filter_condition(condition, placeholders)
            if sql and condition.negated:
                sql = f'NOT ({sql})'
        if not sql:
            continue
        conditions.append(sql)
        params.extend(condition_params)
    if not conditions:
        return '', []
    return 'WHERE ' + ' AND '.join(conditions), params


def build_filters_clause(filters, start_index=1, placeholder_style='format'):
    """Build ``WHERE ...`` from a list of FilterConditions (or equivalent dicts)"""
    placeholders = Placeholders(placeholder_style, start_index)
    return _build_filters(filters, placeholders)


def _conditions(where, filters, placeholders):
    # filters win over where when both are given
    if filters:
        return _build_filters(filters, placeholders)
    return _build_where(where, placeholders)


def _join(*parts):
    return ' '.join(part for part in parts if part)


def select_query(table, select='*', where=None, filters=None, order_by='', limit=None, offset=None,
                 placeholder_style='format'):
    placeholders = Placeholders(placeholder_style)
    clause, params = _conditions(where, filters, placeholders)
    sql = _join(f'SELECT {_select_list(select)} FROM {quote_identifier(table)}', clause)
    sql += _order_clause(order_by)

    limit = _non_negative_int(limit, 'limit')
    offset = _non_negative_int(offset, 'offset')
    if limit is not None:
        sql += f' LIMIT {placeholders.next()}'
        params.append(limit)
    if offset is not None:
        sql += f' OFFSET {placeholders.next()}'
        params.append(offset)
    return sql, params


def select_one_query(table, where=None, select='*', placeholder_style='format'):
    placeholders = Placeholders(placeholder_style)
    clause, params = _build_where(where, placeholders)
    sql = _join(f'SELECT {_select_list(select)} FROM {quote_identifier(table)}', clause, 'LIMIT 1')
    return sql, params


def count_query(table, where=None, filters=None, placeholder_style='format'):
    placeholders = Placeholders(placeholder_style)
    clause, params = _conditions(where, filters, placeholders)
    return _join(f'SELECT COUNT(*) AS count FROM {quote_identifier(table)}', clause), params


def delete_query(table, where, placeholder_style='format'):
    if not where:
        raise QueryBuilderError('DELETE requires a where clause')
    placeholders = Placeholders(placeholder_style)
    clause, params = _build_where(where, placeholders)
    return _join(f'DELETE FROM {quote_identifier(table)}', clause), params


def _prepare_row(table, data, agency_id=None):
    row = dict(data)
    if table in TABLES_WITHOUT_AGENCY_COLUMN:
        row.pop('agency_id', None)
    elif table in AGENCY_REQUIRED_TABLES and agency_id and not row.get('agency_id'):
        row['agency_id'] = agency_id
    return row


def insert_query(table, data, agency_id=None, placeholder_style='format'):
    """INSERT one row, injecting ``agency_id`` for agency scoped tables"""
    row = _prepare_row(table, data, agency_id)
    if not row:
        raise QueryBuilderError('INSERT requires at least one column')
    placeholders = Placeholders(placeholder_style)
    columns = list(row)
    sql = (
        f'INSERT INTO {quote_identifier(table)} ({quote_column_list(columns)}) '
        f'VALUES ({placeholders.many(len(columns))}) RETURNING *'
    )
    return sql, [row[column] for column in columns]


def update_query(table, data, where, now=None, placeholder_style='format'):
    """
    UPDATE rows matching ``where``. SET parameters come first and the WHERE
    parameters are numbered after them. ``updated_at`` is set to ``now``
    unless the table has no such column.
    """
    if not where:
        raise QueryBuilderError('UPDATE requires a where clause')
    values = dict(data)
    if table in TABLES_WITHOUT_AGENCY_COLUMN:
        values.pop('agency_id', None)
    if table not in TABLES_WITHOUT_UPDATED_AT and now is not None:
        values['updated_at'] = now
    if not values:
        raise QueryBuilderError('UPDATE requires at least one column')

    placeholders = Placeholders(placeholder_style)
    assignments = []
    params = []
    for column, value in values.items():
        assignments.append(f'{quote_identifier(column)} = {placeholders.next()}')
        params.append(value)
    clause, where_params = _build_where(where, placeholders)
    sql = _join(f'UPDATE {quote_identifier(table)} SET {", ".join(assignments)}', clause, 'RETURNING *')
    return sql, params + where_params


def batch_insert_query(table, records, agency_id=None, placeholder_style='format'):
    """
    INSERT several rows using the column set of the first record.
    Returns ``(None, [])`` for an empty list.
    """
    if not records:
        return None, []
    rows = [_prepare_row(table, record, agency_id) for record in records]
    columns = list(rows[0])
    if not columns:
        raise QueryBuilderError('INSERT requires at least one column')
    placeholders = Placeholders(placeholder_style)
    values = []
    params = []
    for row in rows:
        values.append(f'({placeholders.many(len(columns))})')
        params.extend(row.get(column) for column in columns)
    sql = (
        f'INSERT INTO {quote_identifier(table)} ({quote_column_list(columns)}) '
        f'VALUES {", ".join(values)} RETURNING *'
    )
    return sql, params


def upsert_query(table, data, unique_key, agency_id=None, update_columns=None, placeholder_style='format'):
    """
    INSERT ... ON CONFLICT (unique_key) DO UPDATE SET col = EXCLUDED.col

    Every column of ``data`` is inserted. On conflict only ``update_columns``
    are overwritten (all non-key columns when not given), so columns filled
    with defaults for the INSERT keep their stored values.
    """
    row = _prepare_row(table, data, agency_id)
    keys = [unique_key] if isinstance(unique_key, str) else list(unique_key)
    if not keys:
        raise QueryBuilderError('Upsert requires a unique key')
    for key in keys:
        if key not in row:
            raise QueryBuilderError(f'Upsert data is missing unique key {key!r}')
    placeholders = Placeholders(placeholder_style)
    columns = list(row)
    if update_columns is None:
        update_columns = columns
    for column in update_columns:
        if column not in row:
            raise QueryBuilderError(f'Upsert update column {column!r} is not in the data')
    updates = [column for column in update_columns if column not in keys]
    if updates:
        action = 'DO UPDATE SET ' + ', '.join(
            f'{quote_identifier(column)} = EXCLUDED.{quote_identifier(column)}' for column in updates
        )
    else:
        action = 'DO NOTHING'
    sql = (
        f'INSERT INTO {quote_identifier(table)} ({quote_column_list(columns)}) '
        f'VALUES ({placeholders.many(len(columns))}) '
        f'ON CONFLICT ({quote_column_list(keys)}) {action} RETURNING *'
    )
    return sql, [row[column] for column in columns]

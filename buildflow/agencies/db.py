"""
Agency database names and the registry of per-agency connection aliases
"""
import logging
import re
import threading
from collections import Counter, OrderedDict
from copy import deepcopy

from django.conf import settings
from django.db import connections
from django.utils.connection import ConnectionDoesNotExist

logger = logging.getLogger(__name__)

DATABASE_NAME_PATTERN = re.compile(r'^[a-z_][a-z0-9_-]*$', re.IGNORECASE)
MAX_DATABASE_NAME_LENGTH = 63
ALIAS_PREFIX = 'agency_'

RESERVED_KEYWORDS = frozenset([
    'all', 'analyse', 'analyze', 'and', 'any', 'array', 'as', 'asc',
    'asymmetric', 'authorization', 'binary', 'both', 'case', 'cast', 'check',
    'collate', 'column', 'constraint', 'create', 'cross', 'current_catalog',
    'current_date', 'current_role', 'current_schema', 'current_time',
    'current_timestamp', 'current_user', 'default', 'deferrable', 'desc',
    'distinct', 'do', 'else', 'end', 'except', 'false', 'fetch', 'for',
    'foreign', 'from', 'grant', 'group', 'having', 'in', 'initially',
    'intersect', 'into', 'lateral', 'leading', 'left', 'like', 'limit',
    'localtime', 'localtimestamp', 'not', 'null', 'offset', 'on', 'only',
    'or', 'order', 'outer', 'over', 'overlaps', 'placing', 'primary',
    'references', 'returning', 'right', 'select', 'session_user', 'similar',
    'some', 'symmetric', 'table', 'then', 'to', 'trailing', 'true', 'union',
    'unique', 'user', 'using', 'variadic', 'verbose', 'when', 'where',
    'window', 'with',
])


class InvalidDatabaseName(ValueError):
    """Raised when an agency database name is not safe to use."""


def validate_database_name(name):
    """Return the trimmed database name or raise InvalidDatabaseName"""
    if not isinstance(name, str) or not name.strip():
        raise InvalidDatabaseName('Database name is required')

    name = name.strip()
    if len(name) > MAX_DATABASE_NAME_LENGTH:
        raise InvalidDatabaseName(
            f'Database name must be at most {MAX_DATABASE_NAME_LENGTH} characters'
        )
    if not DATABASE_NAME_PATTERN.match(name):
        raise InvalidDatabaseName(
            'Database name may only contain letters, digits, underscores and hyphens '
            'and must start with a letter or underscore'
        )
    if name.lower() in RESERVED_KEYWORDS:
        raise InvalidDatabaseName(f'"{name}" is a reserved SQL keyword')
    return name


def quote_identifier(name):
    """Validate a database name and wrap it in double quotes"""
    name = validate_database_name(name)
    return '"' + name.replace('"', '""') + '"'


def alias_for(database_name):
    return f'{ALIAS_PREFIX}{database_name}'


class AgencyConnectionRegistry:
    """
    Keeps Django database aliases for agency databases.

    Aliases are cloned from the main database settings with NAME replaced and
    are kept in least-recently-used order. Once more than ``max_connections``
    aliases are registered the oldest one that no context is using is closed
    and removed.

    Connections are per thread, so eviction can only close the calling
    thread's connection. Other threads close theirs in
    ``close_stale_connections``, which runs when a request finishes.
    """

    def __init__(self, max_connections=None):
        self._max_connections = max_connections
        self._aliases = OrderedDict()
        self._in_use = Counter()
        self._stale = set()
        self._lock = threading.Lock()

    def __contains__(self, database_name):
        return database_name in self._aliases

    def __len__(self):
        return len(self._aliases)

    @property
    def max_connections(self):
        return self._max_connections or settings.AGENCY_MAX_CONNECTIONS

    @property
    def aliases(self):
        return list(self._aliases.values())

    @property
    def stale_aliases(self):
        with self._lock:
            return set(self._stale)

    def get_alias(self, database_name):
        """Register (or touch) the alias for an agency database and return it"""
        database_name = validate_database_name(database_name)
        with self._lock:
            return self._register(database_name)

    def acquire(self, database_name):
        """Like get_alias, and the alias is not evicted until ``release``"""
        database_name = validate_database_name(database_name)
        with self._lock:
            self._in_use[database_name] += 1
            return self._register(database_name)

    def release(self, database_name):
        with self._lock:
            if self._in_use[database_name] > 1:
                self._in_use[database_name] -= 1
            else:
                self._in_use.pop(database_name, None)

    def in_use(self, database_name):
        with self._lock:
            return self._in_use.get(database_name, 0)

    def _register(self, database_name):
        if database_name in self._aliases:
            self._aliases.move_to_end(database_name)
            return self._aliases[database_name]

        alias = alias_for(database_name)
        config = deepcopy(connections.databases['default'])
        config['NAME'] = database_name
        connections.databases[alias] = config
        self._aliases[database_name] = alias
        self._stale.discard(alias)
        logger.info(f"Registered database alias {alias}")
        self._evict(keep=database_name)
        return alias

    def _evict(self, keep):
        excess = len(self._aliases) - self.max_connections
        for database_name in list(self._aliases):
            if excess <= 0:
                return
            if database_name == keep or self._in_use.get(database_name):
                continue
            evicted_alias = self._aliases.pop(database_name)
            self._close_alias(evicted_alias)
            logger.info(f"Evicted least recently used database alias {evicted_alias}")
            excess -= 1
        if excess > 0:
            logger.warning(f"{len(self._aliases)} database aliases are in use, "
                           f"above the limit of {self.max_connections}")

    def remove(self, database_name):
        with self._lock:
            alias = self._aliases.pop(database_name, None)
            self._in_use.pop(database_name, None)
            if alias:
                self._close_alias(alias)

    def close_all(self):
        with self._lock:
            while self._aliases:
                _, alias = self._aliases.popitem(last=False)
                self._close_alias(alias)
            self._in_use.clear()

    def close_stale_connections(self):
        """Close the calling thread's connections to evicted aliases"""
        for alias in self.stale_aliases:
            try:
                connection = connections[alias]
            except ConnectionDoesNotExist:
                continue
            try:
                connection.close()
            except Exception as e:
                logger.warning(f"Error closing stale connection {alias}: {str(e)}")
            del connections[alias]

    def _close_alias(self, alias):
        try:
            connections[alias].close()
        except Exception as e:
            logger.warning(f"Error closing connection {alias}: {str(e)}")
        try:
            del connections[alias]
        except (AttributeError, KeyError):
            pass
        connections.databases.pop(alias, None)
        self._stale.add(alias)


registry = AgencyConnectionRegistry()

from .base import RunResult, Statement, StatementAdapter
from .embedded import EmbeddedAdapter
from .errors import DatabaseError, DatabaseNotInitializedError, SnapshotError, UnsupportedDatabaseURL, is_unique_violation
from .factory import create_adapter
from .pooled import PooledAdapter
from .schema import TABLES, initialize_schema

# Package initializer: exposes the collection API, the deferred builder and the exceptions.
from .exceptions import EloquentBaseException, EloquentValidationException, QueryCompilationException, \
    MacroCollisionException, EloquentNotSupportedException
from . import aggregates
from . import paths
from . import queries
from .common import MISSING
from .config import Policy, DEFAULT_POLICY
from .paths import resolve
from .queries import Expression, compile_query, normalize_where
from .macros import MacroRegistry
from .collection import Collection, collect
from .async_collection import AsyncCollection, ExecutorContext, ExecutionMetadata
from .executors import InMemoryExecutor

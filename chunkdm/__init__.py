# Public API exports
from chunkdm.core.config import EngineConfig as EngineConfig
from chunkdm.core.delimited import CsvOptions as CsvOptions
from chunkdm.core.errors import ChunkdmError as ChunkdmError
from chunkdm.core.errors import ChunkIOError as ChunkIOError
from chunkdm.core.errors import ConcurrentWriteError as ConcurrentWriteError
from chunkdm.core.errors import CorruptMetadataError as CorruptMetadataError
from chunkdm.core.errors import DatasetExistsError as DatasetExistsError
from chunkdm.core.errors import DatasetNotFoundError as DatasetNotFoundError
from chunkdm.core.errors import DuplicateNameError as DuplicateNameError
from chunkdm.core.errors import (
    MemoryBudgetExceededError as MemoryBudgetExceededError,
)
from chunkdm.core.errors import ParseError as ParseError
from chunkdm.core.errors import TypeMismatchError as TypeMismatchError
from chunkdm.core.errors import UnknownColumnError as UnknownColumnError
from chunkdm.core.errors import ValidationError as ValidationError
from chunkdm.core.models import CatalogEntry as CatalogEntry
from chunkdm.core.models import ColumnType as ColumnType
from chunkdm.core.models import Schema as Schema
from chunkdm.datasets import Dataset as Dataset
from chunkdm.managers import DataManager as DataManager
from chunkdm.query import QueryPlan as QueryPlan
from chunkdm.query import col as col
from chunkdm.query import lit as lit
from chunkdm.repositories import ChunkStore as ChunkStore
from chunkdm.services import ExecutionEngine as ExecutionEngine

__all__ = [
    "CatalogEntry",
    "ChunkIOError",
    "ChunkStore",
    "ChunkdmError",
    "ColumnType",
    "ConcurrentWriteError",
    "CorruptMetadataError",
    "CsvOptions",
    "DataManager",
    "Dataset",
    "DatasetExistsError",
    "DatasetNotFoundError",
    "DuplicateNameError",
    "EngineConfig",
    "ExecutionEngine",
    "MemoryBudgetExceededError",
    "ParseError",
    "QueryPlan",
    "Schema",
    "TypeMismatchError",
    "UnknownColumnError",
    "ValidationError",
    "col",
    "lit",
]

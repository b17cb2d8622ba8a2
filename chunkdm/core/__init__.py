# Core module exports
from chunkdm.core.config import EngineConfig as EngineConfig
from chunkdm.core.metadata import MetadataIndex as MetadataIndex
from chunkdm.core.models import ChunkInfo as ChunkInfo
from chunkdm.core.models import ColumnSpec as ColumnSpec
from chunkdm.core.models import ColumnType as ColumnType
from chunkdm.core.models import Schema as Schema
from chunkdm.core.storage import (
    get_catalog_db_path as get_catalog_db_path,
)
from chunkdm.core.storage import (
    get_metadata_path as get_metadata_path,
)
from chunkdm.core.storage import (
    init_repo as init_repo,
)
from chunkdm.core.utils import (
    infer_column_types as infer_column_types,
)

__all__ = [
    "ChunkInfo",
    "ColumnSpec",
    "ColumnType",
    "EngineConfig",
    "MetadataIndex",
    "Schema",
    "get_catalog_db_path",
    "get_metadata_path",
    "infer_column_types",
    "init_repo",
]

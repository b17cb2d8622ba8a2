# Local imports
from chunkdm.repositories.catalog_repository import CatalogRepository
from chunkdm.repositories.chunk_store import ChunkStore, ChunkWriter

__all__ = ["CatalogRepository", "ChunkStore", "ChunkWriter"]

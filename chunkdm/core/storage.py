# Standard library
from pathlib import Path

# -----------------------------
# Dataset directory layout
# -----------------------------

METADATA_FILE_NAME = "_metadata.json"
LOCK_FILE_NAME = ".write.lock"
CHUNK_FILE_TEMPLATE = "chunk-{chunk_id:05d}.parquet"


def get_metadata_path(dataset_path: Path) -> Path:
    """Get path of a dataset's metadata file."""
    return dataset_path / METADATA_FILE_NAME


def get_lock_path(dataset_path: Path) -> Path:
    """Get path of a dataset's writer lock file."""
    return dataset_path / LOCK_FILE_NAME


def chunk_file_name(chunk_id: int) -> str:
    """Get file name for a chunk.

    Example:
        chunk_id=7 -> "chunk-00007.parquet"
    """
    return CHUNK_FILE_TEMPLATE.format(chunk_id=chunk_id)


# -----------------------------
# Workspace layout
# -----------------------------


def init_repo(repo_path: Path) -> None:
    """Initialize workspace structure."""
    repo_path.mkdir(parents=True, exist_ok=True)
    (repo_path / "datasets").mkdir(exist_ok=True)


def get_catalog_db_path(repo_path: Path) -> Path:
    """Get path to the workspace catalog database."""
    return repo_path / "catalog.db"


def get_dataset_dir(repo_path: Path, dataset_id: str) -> Path:
    """Get the directory a workspace dataset is written to."""
    return repo_path / "datasets" / dataset_id

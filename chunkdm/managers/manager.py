# Standard library
import os
from pathlib import Path
from typing import TextIO

# Third-party
import polars as pl

# Local imports
from chunkdm.core.config import EngineConfig
from chunkdm.core.delimited import CsvOptions
from chunkdm.core.errors import ChunkdmError, DatasetExistsError
from chunkdm.core.logging_config import configure_logging, get_logger
from chunkdm.core.models import CatalogEntry
from chunkdm.core.storage import get_catalog_db_path, get_dataset_dir, init_repo
from chunkdm.core.validation import validate_dataset_name, validate_description
from chunkdm.datasets.dataset import Dataset
from chunkdm.query.plan import QueryPlan
from chunkdm.repositories.catalog_repository import CatalogRepository
from chunkdm.repositories.chunk_store import ChunkStore
from chunkdm.services.display_service import DisplayService
from chunkdm.services.execution_service import ExecutionEngine

_LOGGER = get_logger(__name__)

# -----------------------------
# Unified Data Manager
# -----------------------------


class DataManager:
    """Data manager - single API surface for a workspace of chunked datasets.

    Datasets are stored under ``<repo>/datasets/<id>/`` and registered by
    name in the workspace catalog.
    """

    def __init__(
        self,
        repo_path: str | Path | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        if repo_path is None:
            env_path: str | None = os.getenv("CHUNKDM_REPO")
            if env_path:
                self.repo_path = Path(env_path).expanduser().resolve()
            else:
                self.repo_path = Path.cwd() / ".chunkdm"
        else:
            self.repo_path = Path(repo_path).expanduser().resolve()

        self.config: EngineConfig = config or EngineConfig.from_env()
        configure_logging(self.config.log_level)

        init_repo(self.repo_path)

        # Initialize repositories
        self._catalog_repo = CatalogRepository(get_catalog_db_path(self.repo_path))
        self._catalog_repo.init_database()
        self._store = ChunkStore(self.config)

        # Initialize services
        self._engine = ExecutionEngine(self.config, self._store)
        self._display_service = DisplayService(self._catalog_repo)

    # -----------------------------
    # Data Access
    # -----------------------------

    def open(self, name: str) -> Dataset:
        """Open a registered dataset by name.

        Raises:
            DatasetNotFoundError: If the name is not registered
            CorruptMetadataError: If the dataset's files are inconsistent
        """
        entry: CatalogEntry = self._catalog_repo.find_by_name(name)
        return self._store.open_existing(entry.path)

    def list_datasets(self, name_filter: str | None = None) -> list[CatalogEntry]:
        """Get all datasets with optional filtering.

        Args:
            name_filter: Optional name pattern to filter by

        Returns:
            List of CatalogEntry objects, newest first
        """
        return self._catalog_repo.list_datasets(name_filter=name_filter)

    def query(self, name: str) -> QueryPlan:
        """Start a lazy query over a registered dataset.

        Examples:
            >>> plan = dm.query("sales").filter(col("amount") > 100).select("region")
            >>> df = dm.collect(plan)
        """
        return self.open(name).lazy()

    def collect(self, plan: QueryPlan) -> pl.DataFrame:
        """Evaluate a plan into memory, within the configured result budget."""
        return self._engine.collect(plan)

    # -----------------------------
    # Dataset Creation
    # -----------------------------

    def ingest(
        self,
        name: str,
        source: str | Path | TextIO,
        chunk_row_count: int | None = None,
        options: CsvOptions | None = None,
        description: str | None = None,
    ) -> Dataset:
        """Ingest a delimited file as a new named dataset.

        Args:
            name: Dataset name
            source: Path of the input file, or an open text stream
            chunk_row_count: Rows per chunk (config default if omitted)
            options: Parsing options
            description: Optional description

        Returns:
            The written Dataset

        Raises:
            ValidationError: If name or description is invalid
            DatasetExistsError: If the name is already registered
            ParseError: On a malformed record; nothing is kept
        """
        dataset_id: str = self._prepare_new(name, description)
        destination: Path = get_dataset_dir(self.repo_path, dataset_id)
        try:
            dataset: Dataset = self._store.create(
                source, destination, chunk_row_count=chunk_row_count, options=options
            )
        except ChunkdmError:
            self._store.discard(destination)
            raise
        self._register(dataset_id, name, dataset, description, parent_ids=[])
        return dataset

    def materialize(
        self,
        name: str,
        plan: QueryPlan,
        chunk_row_count: int | None = None,
        description: str | None = None,
    ) -> Dataset:
        """Evaluate a plan into a new named dataset, chunk by chunk.

        Catalog datasets the plan reads are recorded as its parents.

        Args:
            name: Dataset name
            plan: Plan to evaluate
            chunk_row_count: Rows per chunk (config default if omitted)
            description: Optional description

        Returns:
            The written Dataset
        """
        dataset_id: str = self._prepare_new(name, description)
        destination: Path = get_dataset_dir(self.repo_path, dataset_id)
        try:
            dataset: Dataset = self._engine.compute_to_chunk_store(
                plan, destination, chunk_row_count=chunk_row_count
            )
        except ChunkdmError:
            self._store.discard(destination)
            raise

        parent_ids: list[str] = []
        for base in plan.datasets:
            parent: CatalogEntry | None = self._catalog_repo.find_by_path(str(base.path))
            if parent is not None and parent.id not in parent_ids:
                parent_ids.append(parent.id)

        self._register(dataset_id, name, dataset, description, parent_ids=parent_ids)
        return dataset

    def _prepare_new(self, name: str, description: str | None) -> str:
        validate_dataset_name(name)
        validate_description(description)
        if self._catalog_repo.name_exists(name):
            msg = f"Dataset '{name}' already exists"
            raise DatasetExistsError(msg)
        return self._catalog_repo.generate_id()

    def _register(
        self,
        dataset_id: str,
        name: str,
        dataset: Dataset,
        description: str | None,
        parent_ids: list[str],
    ) -> None:
        entry = CatalogEntry(
            id=dataset_id,
            name=name,
            path=str(dataset.path),
            created_at=dataset.index.created_at,
            row_count=dataset.row_count,
            column_count=len(dataset.schema),
            schema={spec.name: spec.type.value for spec in dataset.schema.columns},
            description=description,
            parent_ids=parent_ids,
        )
        try:
            self._catalog_repo.save(entry)
        except DatasetExistsError:
            self._store.discard(dataset.path)
            raise
        _LOGGER.info("dataset_registered", name=name, id=dataset_id, parents=len(parent_ids))

    # -----------------------------
    # Export & Deletion
    # -----------------------------

    def export_csv(
        self,
        plan_or_dataset: QueryPlan | Dataset,
        path: str | Path,
        separator: str = ",",
    ) -> int:
        """Stream a plan or a whole dataset into a delimited file.

        Returns:
            Number of data rows written
        """
        plan: QueryPlan = (
            plan_or_dataset.lazy()
            if isinstance(plan_or_dataset, Dataset)
            else plan_or_dataset
        )
        return self._engine.write_csv(plan, path, separator=separator)

    def delete(self, name: str, *, force: bool = False) -> None:
        """Delete dataset with safety checks.

        Args:
            name: Dataset name
            force: Skip confirmation warnings if True (keyword-only)
        """
        from rich.console import Console

        entry: CatalogEntry = self._catalog_repo.find_by_name(name)

        # Check for children
        children: list[CatalogEntry] = self._catalog_repo.get_children(entry.id)

        if children and not force:
            console = Console()
            child_names: list[str] = [child.name for child in children]
            console.print(
                f"[yellow]Warning:[/] Dataset '{entry.name}' has "
                f"{len(children)} derived dataset(s):\n"
                f"  {', '.join(child_names)}\n"
                f"Deleting will leave these with a missing parent.\n"
                f"Use force=True to delete anyway."
            )
            return

        # Delete chunks and catalog entry
        self._store.discard(entry.path)
        self._catalog_repo.delete(entry.id)
        _LOGGER.info("dataset_deleted", name=name, id=entry.id)

    # -----------------------------
    # Display Operations
    # -----------------------------

    def show(self, name: str) -> None:
        """Display comprehensive information about a dataset.

        Args:
            name: Dataset name
        """
        entry: CatalogEntry = self._catalog_repo.find_by_name(name)
        dataset: Dataset = self._store.open_existing(entry.path)
        self._display_service.show_dataset_info(entry, dataset)

    def show_all(self, name_filter: str | None = None) -> None:
        """Display all datasets in a rich table.

        Args:
            name_filter: Optional name pattern to filter by
        """
        self._display_service.show_datasets_table(name_filter=name_filter)

    def explain(self, plan: QueryPlan) -> None:
        """Display the optimized execution plan as a tree."""
        self._display_service.show_plan(plan)

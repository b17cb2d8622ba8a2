# Standard library
import json
import sqlite3
import uuid
from pathlib import Path
from typing import Any

# Local imports
from chunkdm.core.errors import DatasetExistsError, DatasetNotFoundError
from chunkdm.core.models import CatalogEntry
from chunkdm.repositories.schemas import (
    SQL_CREATE_DATASETS,
    SQL_CREATE_INDEXES,
    SQL_CREATE_LINEAGE,
)

_ENTRY_COLUMNS = (
    "id, name, path, created_at, row_count, column_count, schema_json, description"
)

# -----------------------------
# Catalog Repository
# -----------------------------


class CatalogRepository:
    """Repository for the workspace catalog: dataset names, locations and lineage."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn: sqlite3.Connection = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    # -----------------------------
    # Database Initialization
    # -----------------------------

    def init_database(self) -> None:
        """Initialize SQLite database with schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn: sqlite3.Connection = self._connect()
        try:
            conn.execute(SQL_CREATE_DATASETS)
            conn.execute(SQL_CREATE_LINEAGE)
            conn.executescript(SQL_CREATE_INDEXES)
            conn.commit()
        finally:
            conn.close()

    # -----------------------------
    # CRUD Operations
    # -----------------------------

    def generate_id(self) -> str:
        """Generate a new unique dataset ID.

        Returns:
            UUID string
        """
        return str(uuid.uuid4())

    def save(self, entry: CatalogEntry) -> None:
        """Register a dataset and its parents.

        Raises:
            DatasetExistsError: If the name is already registered
        """
        conn: sqlite3.Connection = self._connect()
        try:
            try:
                conn.execute(
                    f"INSERT INTO datasets ({_ENTRY_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        entry.id,
                        entry.name,
                        entry.path,
                        entry.created_at,
                        entry.row_count,
                        entry.column_count,
                        json.dumps(entry.schema),
                        entry.description,
                    ),
                )
            except sqlite3.IntegrityError as error:
                msg = f"Dataset '{entry.name}' already exists"
                raise DatasetExistsError(msg) from error

            for parent_id in entry.parent_ids:
                conn.execute(
                    """
                    INSERT OR IGNORE INTO lineage (child_id, parent_id)
                    VALUES (?, ?)
                    """,
                    (entry.id, parent_id),
                )

            conn.commit()
        finally:
            conn.close()

    def load(self, dataset_id: str) -> CatalogEntry:
        """Load a catalog entry by ID.

        Raises:
            DatasetNotFoundError: If dataset not found
        """
        conn: sqlite3.Connection = self._connect()
        try:
            cursor: sqlite3.Cursor = conn.execute(
                f"SELECT {_ENTRY_COLUMNS} FROM datasets WHERE id = ?",
                (dataset_id,),
            )
            row: Any = cursor.fetchone()
            if not row:
                msg = f"Dataset with ID '{dataset_id}' not found"
                raise DatasetNotFoundError(msg)
            return self._to_entry(conn, row)
        finally:
            conn.close()

    def find_by_name(self, name: str) -> CatalogEntry:
        """Load a catalog entry by dataset name.

        Raises:
            DatasetNotFoundError: If no dataset has this name
        """
        conn: sqlite3.Connection = self._connect()
        try:
            cursor: sqlite3.Cursor = conn.execute(
                f"SELECT {_ENTRY_COLUMNS} FROM datasets WHERE name = ?",
                (name,),
            )
            row: Any = cursor.fetchone()
            if not row:
                msg = f"Dataset '{name}' not found"
                raise DatasetNotFoundError(msg)
            return self._to_entry(conn, row)
        finally:
            conn.close()

    def find_by_path(self, path: str) -> CatalogEntry | None:
        """Load the catalog entry registered for a dataset directory, if any."""
        conn: sqlite3.Connection = self._connect()
        try:
            cursor: sqlite3.Cursor = conn.execute(
                f"SELECT {_ENTRY_COLUMNS} FROM datasets WHERE path = ?",
                (path,),
            )
            row: Any = cursor.fetchone()
            return self._to_entry(conn, row) if row else None
        finally:
            conn.close()

    def name_exists(self, name: str) -> bool:
        conn: sqlite3.Connection = self._connect()
        try:
            cursor: sqlite3.Cursor = conn.execute(
                "SELECT 1 FROM datasets WHERE name = ?", (name,)
            )
            return cursor.fetchone() is not None
        finally:
            conn.close()

    def _to_entry(self, conn: sqlite3.Connection, row: Any) -> CatalogEntry:
        (
            id_val,
            name,
            path,
            created_at,
            row_count,
            column_count,
            schema_json,
            description,
        ) = row

        parents_cursor: sqlite3.Cursor = conn.execute(
            """
            SELECT parent_id FROM lineage
            WHERE child_id = ?
            """,
            (id_val,),
        )
        parent_ids: list[str] = [parent[0] for parent in parents_cursor.fetchall()]

        return CatalogEntry(
            id=id_val,
            name=name,
            path=path,
            created_at=created_at,
            row_count=row_count,
            column_count=column_count,
            schema=json.loads(schema_json),
            description=description,
            parent_ids=parent_ids,
        )

    # -----------------------------
    # Dataset Listing & Filtering
    # -----------------------------

    def list_datasets(
        self,
        name_filter: str | None = None,
        limit: int | None = None,
    ) -> list[CatalogEntry]:
        """List datasets with optional filtering.

        Args:
            name_filter: Optional substring of the name (SQL LIKE pattern)
            limit: Optional maximum number of results

        Returns:
            List of CatalogEntry, ordered by creation time (newest first)
        """
        query: str = f"SELECT {_ENTRY_COLUMNS} FROM datasets WHERE 1=1"
        params: list[str | int] = []

        if name_filter:
            query += " AND name LIKE ?"
            params.append(f"%{name_filter}%")

        query += " ORDER BY created_at DESC"

        if limit:
            query += " LIMIT ?"
            params.append(limit)

        conn: sqlite3.Connection = self._connect()
        try:
            cursor: sqlite3.Cursor = conn.execute(query, params)
            return [self._to_entry(conn, row) for row in cursor.fetchall()]
        finally:
            conn.close()

    # -----------------------------
    # Lineage & Deletion
    # -----------------------------

    def get_children(self, dataset_id: str) -> list[CatalogEntry]:
        """Get all datasets derived from a dataset.

        Args:
            dataset_id: Parent dataset ID

        Returns:
            List of child catalog entries
        """
        conn: sqlite3.Connection = self._connect()
        try:
            cursor: sqlite3.Cursor = conn.execute(
                """
                SELECT child_id FROM lineage
                WHERE parent_id = ?
                """,
                (dataset_id,),
            )
            child_ids: list[str] = [row[0] for row in cursor.fetchall()]
        finally:
            conn.close()

        return [self.load(child_id) for child_id in child_ids]

    def delete(self, dataset_id: str) -> None:
        """Delete a dataset's catalog entry.

        Note:
            Cascades to lineage rows via foreign keys (ON DELETE CASCADE)
        """
        conn: sqlite3.Connection = self._connect()
        try:
            conn.execute("DELETE FROM datasets WHERE id = ?", (dataset_id,))
            conn.commit()
        finally:
            conn.close()

# SQL Schema Definitions

SQL_CREATE_DATASETS = """
CREATE TABLE IF NOT EXISTS datasets (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    path TEXT NOT NULL,
    created_at TEXT NOT NULL,
    row_count INTEGER NOT NULL,
    column_count INTEGER NOT NULL,
    schema_json TEXT NOT NULL,
    description TEXT
);
"""

SQL_CREATE_LINEAGE = """
CREATE TABLE IF NOT EXISTS lineage (
    child_id TEXT NOT NULL,
    parent_id TEXT NOT NULL,
    PRIMARY KEY (child_id, parent_id),
    FOREIGN KEY (child_id) REFERENCES datasets(id) ON DELETE CASCADE,
    FOREIGN KEY (parent_id) REFERENCES datasets(id) ON DELETE CASCADE
);
"""

SQL_CREATE_INDEXES = """
CREATE INDEX IF NOT EXISTS idx_datasets_name ON datasets(name);
CREATE INDEX IF NOT EXISTS idx_lineage_child ON lineage(child_id);
CREATE INDEX IF NOT EXISTS idx_lineage_parent ON lineage(parent_id);
"""

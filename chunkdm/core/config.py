# Standard library
import os
import re
from dataclasses import dataclass

# Local imports
from chunkdm.core.errors import ConfigError

# -----------------------------
# Constants
# -----------------------------

DEFAULT_CHUNK_ROW_COUNT = 100_000
DEFAULT_JOIN_MEMORY_BUDGET = 256 * 1024**2
DEFAULT_RESULT_MEMORY_BUDGET = 512 * 1024**2
DEFAULT_INFER_SCHEMA_ROWS = 1_000
DEFAULT_COMPRESSION = "zstd"
DEFAULT_LOG_LEVEL = "INFO"

SUPPORTED_COMPRESSIONS = ("lz4", "uncompressed", "snappy", "gzip", "brotli", "zstd")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_SIZE_PATTERN = re.compile(r"^\s*(\d+)\s*([KMG]?)I?B?\s*$", re.IGNORECASE)
_SIZE_UNITS = {"": 1, "K": 1024, "M": 1024**2, "G": 1024**3}
_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}

# -----------------------------
# Engine Configuration
# -----------------------------


@dataclass(frozen=True)
class EngineConfig:
    """Validated engine configuration.

    Passed explicitly to every store, engine and manager; nothing in chunkdm
    reads process-wide settings after construction.

    Attributes:
        chunk_row_count: Default maximum rows per chunk file
        join_memory_budget: Byte ceiling for a join's in-memory build side
        result_memory_budget: Byte ceiling for a collected result table
        infer_schema_rows: Records sampled to infer column types on ingest
        verify_chunks: Recompute per-chunk row counts when reopening
        compression: Parquet codec used for chunk files
        log_level: Minimum structured log level
    """

    chunk_row_count: int = DEFAULT_CHUNK_ROW_COUNT
    join_memory_budget: int = DEFAULT_JOIN_MEMORY_BUDGET
    result_memory_budget: int = DEFAULT_RESULT_MEMORY_BUDGET
    infer_schema_rows: int = DEFAULT_INFER_SCHEMA_ROWS
    verify_chunks: bool = True
    compression: str = DEFAULT_COMPRESSION
    log_level: str = DEFAULT_LOG_LEVEL

    def __post_init__(self) -> None:
        for field_name in (
            "chunk_row_count",
            "join_memory_budget",
            "result_memory_budget",
            "infer_schema_rows",
        ):
            value: int = getattr(self, field_name)
            if value <= 0:
                msg = f"{field_name} must be positive, got {value}"
                raise ConfigError(msg)
        if self.compression not in SUPPORTED_COMPRESSIONS:
            msg = (
                f"Unsupported compression '{self.compression}'. "
                f"Expected one of: {', '.join(SUPPORTED_COMPRESSIONS)}"
            )
            raise ConfigError(msg)
        if self.log_level.upper() not in LOG_LEVELS:
            msg = f"Unknown log level '{self.log_level}'"
            raise ConfigError(msg)

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build config from CHUNKDM_* environment variables.

        Returns:
            A validated config object

        Raises:
            ConfigError: If any environment value is invalid
        """
        return cls(
            chunk_row_count=_parse_int(
                "CHUNKDM_CHUNK_ROWS", DEFAULT_CHUNK_ROW_COUNT
            ),
            join_memory_budget=_parse_size(
                "CHUNKDM_JOIN_MEMORY_BUDGET", DEFAULT_JOIN_MEMORY_BUDGET
            ),
            result_memory_budget=_parse_size(
                "CHUNKDM_RESULT_MEMORY_BUDGET", DEFAULT_RESULT_MEMORY_BUDGET
            ),
            infer_schema_rows=_parse_int(
                "CHUNKDM_INFER_SCHEMA_ROWS", DEFAULT_INFER_SCHEMA_ROWS
            ),
            verify_chunks=_parse_bool("CHUNKDM_VERIFY_CHUNKS", default=True),
            compression=os.getenv("CHUNKDM_COMPRESSION", DEFAULT_COMPRESSION),
            log_level=os.getenv("CHUNKDM_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper(),
        )


# -----------------------------
# Environment parsing
# -----------------------------


def parse_size(raw_value: str) -> int:
    """Parse a byte size such as ``1048576``, ``512K``, ``256M`` or ``2GB``.

    Args:
        raw_value: Size string

    Returns:
        Size in bytes

    Raises:
        ConfigError: If the value is not a recognised size
    """
    match = _SIZE_PATTERN.match(raw_value)
    if match is None:
        msg = f"Invalid byte size '{raw_value}'. Use an integer with optional K/M/G suffix."
        raise ConfigError(msg)
    number, unit = match.groups()
    return int(number) * _SIZE_UNITS[unit.upper()]


def _parse_size(name: str, default: int) -> int:
    raw_value: str | None = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return parse_size(raw_value)
    except ConfigError as error:
        msg = f"Invalid {name} value: {error}"
        raise ConfigError(msg) from error


def _parse_int(name: str, default: int) -> int:
    raw_value: str | None = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError as error:
        msg = f"Invalid {name} value: expected integer, got '{raw_value}'"
        raise ConfigError(msg) from error


def _parse_bool(name: str, *, default: bool) -> bool:
    raw_value: str | None = os.getenv(name)
    if raw_value is None:
        return default
    lowered = raw_value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    msg = f"Invalid {name} value: expected a boolean, got '{raw_value}'"
    raise ConfigError(msg)

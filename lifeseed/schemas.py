"""Schema access utilities for lifeseed.

This module provides runtime access to the bundled SQL schema.

Lookup order:
- importlib.resources first (installed package)
- file reading next to this module (source checkout)
- FileNotFoundError if the schema is in neither location

USAGE:
    >>> from lifeseed.schemas import get_sql_schema
    >>> ledger_sql = get_sql_schema('ledger')
"""

from __future__ import annotations

from importlib.resources import files as resource_files
from pathlib import Path

VALID_SCHEMAS = {"ledger"}

# Must match the version row inserted by ledger.sql
SCHEMA_VERSION = "20261019"


def get_sql_schema(name: str = "ledger") -> str:
    """Get SQL schema content.

    Args:
        name: Schema name ('ledger')

    Returns:
        SQL schema content as string

    Raises:
        ValueError: If name is not a known schema
        FileNotFoundError: If schema file not found in bundled or file locations

    Examples:
        >>> 'CREATE TABLE IF NOT EXISTS lifetree' in get_sql_schema('ledger')
        True
    """
    if name not in VALID_SCHEMAS:
        raise ValueError(
            f"Invalid schema: {name!r}. Must be one of: {sorted(VALID_SCHEMAS)}"
        )

    try:
        schema_file = resource_files("lifeseed") / "schemas" / "sql" / f"{name}.sql"
        if schema_file.is_file():
            return schema_file.read_text(encoding="utf-8")
    except (FileNotFoundError, ModuleNotFoundError):
        # Fall through to file reading
        pass

    file_path = Path(__file__).parent / "schemas" / "sql" / f"{name}.sql"
    if file_path.exists():
        return file_path.read_text(encoding="utf-8")

    raise FileNotFoundError(
        f"SQL schema file not found for {name!r}. Searched: {file_path}"
    )

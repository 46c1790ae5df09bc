"""
Import Configuration Module

This module holds the tunable settings of an import run. Defaults come from
environment variables and can be overridden per run from DAG params.

Environment variables:
- IMPORT_TABLESPACE: Tablespace for created indexes (default pg_default)
- IMPORT_SKIP_COLUMNS: Columns left out of INSERT statements (JSON list or
  comma-separated). Compatibility shim for exports where a column named
  ``desc`` could not be loaded; empty by default.
- USE_UNLOGGED_TABLES: Switch tables to UNLOGGED while bulk inserting
- EXPORT_ENCODING: Text encoding of header and unload files
- INSERT_BATCH_SIZE: Rows sent per execute_batch round trip
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Tuple
import json
import logging
import os
import re

from dbexport_pg_import.ddl_generator import DEFAULT_TABLESPACE

logger = logging.getLogger(__name__)

_TRUE_VALUES = ('true', '1', 'yes', 'on')
_FALSE_VALUES = ('false', '0', 'no', 'off')


def validate_sql_identifier(identifier: str, identifier_type: str = "identifier") -> str:
    """
    Validate SQL identifiers that are interpolated into DDL.

    Identifiers must:
    - Start with a letter or underscore
    - Contain only alphanumeric characters and underscores
    - Be 63 characters or less (PostgreSQL limit)

    Args:
        identifier: The identifier to validate
        identifier_type: Type description for error messages (e.g., "schema")

    Returns:
        The validated identifier (unchanged if valid)

    Raises:
        ValueError: If the identifier is invalid

    Examples:
        >>> validate_sql_identifier("legacy")
        'legacy'
        >>> validate_sql_identifier("drop; --")  # doctest: +SKIP
        ValueError: Invalid identifier 'drop; --': must start with letter or underscore ...
    """
    if not identifier:
        raise ValueError(f"Invalid {identifier_type}: cannot be empty")

    if len(identifier) > 63:
        raise ValueError(
            f"Invalid {identifier_type}: exceeds maximum length of 63 characters "
            f"(got {len(identifier)} characters)"
        )

    if not re.match(r'^[a-zA-Z_][a-zA-Z0-9_]*$', identifier):
        raise ValueError(
            f"Invalid {identifier_type} '{identifier}': must start with letter or underscore "
            "and contain only alphanumeric characters and underscores"
        )

    return identifier


def parse_bool(value: Any, default: bool = False) -> bool:
    """Interpret an env-var or param value as a boolean."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot interpret '{value}' as a boolean")


def expand_list_param(raw) -> List[str]:
    """
    Expand and normalize a list parameter from various input formats.

    Handles:
    - List of strings: ["desc", "notes"]
    - JSON string: '["desc", "notes"]'
    - Comma-separated string: "desc,notes"
    - List with comma-separated items: ["desc,notes"]

    Args:
        raw: Raw parameter value from DAG params or the environment

    Returns:
        Normalized list of strings
    """
    if raw is None:
        return []

    if isinstance(raw, str):
        raw = raw.strip()
        if not raw:
            return []

        # Try JSON parsing first
        try:
            parsed = json.loads(raw)
            if isinstance(parsed, list):
                raw = parsed
            else:
                raw = [str(parsed)]
        except json.JSONDecodeError:
            raw = [item.strip() for item in raw.split(',') if item.strip()]

    if isinstance(raw, (list, tuple)):
        expanded = []
        for item in raw:
            if isinstance(item, str):
                if ',' in item:
                    expanded.extend([part.strip() for part in item.split(',') if part.strip()])
                elif item.strip():
                    expanded.append(item.strip())
        return expanded

    # Unsupported type - log warning to help debug configuration issues
    logger.warning(
        "expand_list_param received unsupported type %s; returning empty list.",
        type(raw).__name__,
    )
    return []


@dataclass(frozen=True)
class ImportConfig:
    """Settings for one import run."""

    tablespace: str = DEFAULT_TABLESPACE
    skip_columns: Tuple[str, ...] = field(default_factory=tuple)
    use_unlogged_tables: bool = True
    encoding: str = 'utf-8'
    batch_size: int = 1000

    def __post_init__(self):
        validate_sql_identifier(self.tablespace, "tablespace")
        if self.batch_size < 1:
            raise ValueError(f"Invalid batch size {self.batch_size}: must be at least 1")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'ImportConfig':
        """Build a config from environment variables, falling back to defaults."""
        env = os.environ if environ is None else environ
        return cls(
            tablespace=env.get('IMPORT_TABLESPACE', DEFAULT_TABLESPACE),
            skip_columns=tuple(expand_list_param(env.get('IMPORT_SKIP_COLUMNS', ''))),
            use_unlogged_tables=parse_bool(env.get('USE_UNLOGGED_TABLES'), default=True),
            encoding=env.get('EXPORT_ENCODING', 'utf-8'),
            batch_size=int(env.get('INSERT_BATCH_SIZE', '1000')),
        )

    @classmethod
    def from_params(
        cls,
        params: Mapping[str, Any],
        environ: Optional[Mapping[str, str]] = None,
    ) -> 'ImportConfig':
        """
        Build a config from DAG params layered over the environment defaults.

        Params that are missing or None keep the environment value.
        """
        config = cls.from_env(environ)
        overrides: Dict[str, Any] = {}

        if params.get('tablespace'):
            overrides['tablespace'] = params['tablespace']
        if params.get('skip_columns') is not None:
            overrides['skip_columns'] = tuple(expand_list_param(params['skip_columns']))
        if params.get('use_unlogged_tables') is not None:
            overrides['use_unlogged_tables'] = parse_bool(params['use_unlogged_tables'])
        if params.get('encoding'):
            overrides['encoding'] = params['encoding']
        if params.get('batch_size') is not None:
            overrides['batch_size'] = int(params['batch_size'])

        return replace(config, **overrides)

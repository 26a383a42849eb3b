"""Environment variable access and path resolution.

This module resolves the ledger database path and the per-verb runtime
context (where config, data and logs live).

Path Resolution Order:
1. Explicit LIFESEED_LEDGER_DB environment variable
2. Shared data directory (LIFESEED_DATA_DIR/ledger.db)
3. Current directory (./ledger.db)

Context Resolution:
- resolve_context(verb, config_override) - Map verb to resource locations
- RuntimeContext - Paths and defaults per verb
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DB_NAME = "ledger"
VALID_VERBS = ("serve", "run", "deploy")


@dataclass
class RuntimeContext:
    """Runtime context for a lifeseed deployment.

    Contexts are determined by command verb, not auto-detection.
    Each verb has specific paths and defaults.

    Attributes:
        verb: Command verb (serve, run, deploy)
        data_dir: Data directory for the ledger database and blobs
        config_dir: Configuration directory
        log_dir: Log directory (None for container/deploy)
    """
    verb: str
    data_dir: Path
    config_dir: Path
    log_dir: Optional[Path]

    def get_db_path(self, db_name: str = DB_NAME) -> Path:
        """Return database file path for given context."""
        return self.data_dir / f"{db_name}.db"

    def get_config_path(self) -> Path:
        """Return config file path for given context."""
        return self.config_dir / "config.toml"

    def get_log_path(self, filename: str) -> Optional[Path]:
        """Return log file path for given context (if log_dir exists)."""
        if self.log_dir:
            return self.log_dir / filename
        return None

    @classmethod
    def from_config(cls, config_path: Path, verb: str = "run") -> "RuntimeContext":
        """Create RuntimeContext from explicit config file path.

        Args:
            config_path: Path to config.toml file
            verb: Command verb (defaults to "run")

        Returns:
            RuntimeContext with config_dir taken from the config location
            and the remaining paths from the verb defaults
        """
        base = resolve_context(verb)
        return cls(
            verb=verb,
            data_dir=base.data_dir,
            config_dir=config_path.parent,
            log_dir=base.log_dir,
        )


def resolve_context(
    verb: str,
    config_override: Optional[Path] = None
) -> RuntimeContext:
    """Map verb to resource locations.

    Args:
        verb: Command verb (serve, run, deploy)
        config_override: Optional explicit config path

    Returns:
        RuntimeContext with paths and defaults

    Raises:
        ValueError: If verb is not one of: serve, run, deploy

    Examples:
        >>> ctx = resolve_context("serve")
        >>> ctx.data_dir
        PosixPath('/var/lib/lifeseed')

        >>> ctx = resolve_context("deploy")
        >>> ctx.log_dir is None
        True
    """
    if verb not in VALID_VERBS:
        raise ValueError(
            f"Invalid verb: {verb}. Must be one of: {', '.join(VALID_VERBS)}"
        )

    if config_override:
        return RuntimeContext.from_config(config_override, verb)

    if verb == "serve":
        return RuntimeContext(
            verb="serve",
            data_dir=Path("/var/lib/lifeseed"),
            config_dir=Path("/etc/lifeseed"),
            log_dir=Path("/var/log/lifeseed"),
        )

    if verb == "run":
        return RuntimeContext(
            verb="run",
            data_dir=Path.home() / ".local/share/lifeseed",
            config_dir=Path.home() / ".config/lifeseed",
            log_dir=Path.home() / ".local/state/lifeseed/logs",
        )

    return RuntimeContext(
        verb="deploy",
        data_dir=Path("/data"),
        config_dir=Path("/config"),
        log_dir=None,  # Container logs to stdout only
    )


def get_env(key: str, default: str | None = None) -> str | None:
    """Get environment variable.

    Args:
        key: Environment variable name
        default: Default value if not found

    Returns:
        Environment variable value or default
    """
    return os.environ.get(key, default)


def get_db_path() -> Path:
    """Resolve the ledger database path.

    Resolution order:
    1. LIFESEED_LEDGER_DB
    2. LIFESEED_DATA_DIR/ledger.db
    3. ./ledger.db

    Returns:
        Path to database file
    """
    explicit = get_env("LIFESEED_LEDGER_DB")
    if explicit:
        return Path(explicit)

    data_dir = get_env("LIFESEED_DATA_DIR")
    if data_dir:
        return Path(data_dir) / f"{DB_NAME}.db"

    return Path(f"./{DB_NAME}.db")

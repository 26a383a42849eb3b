"""Configuration management for lifeseed.

Configuration is loaded from TOML files with support for multiple
deployment contexts (serve, run, deploy).

Configuration Resolution Order:
1. Environment variables (highest priority)
2. TOML config file
3. Resource profile defaults
4. Built-in defaults

TOML layout:

    [runtime]
    resource_profile = "standard"     # or "embedded"
    log_level = "info"
    log_to_file = false               # also write {log_dir}/lifeseed.log

    [ledger]
    bootstrap_first_tree = true       # first tree ever planted is trusted
    root_names = ["phoenix"]          # names planted as trust anchors
    steward_ids = ["uid-of-steward"]  # may post GROWTH to the genesis tree

    [storage]
    blob_dir = "/var/lib/lifeseed/blobs"
    public_base_url = "https://cdn.example.org/lifeseed"

    [paths]
    data_dir = "/var/lib/lifeseed"
    log_dir = "/var/log/lifeseed"
"""

import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from .host.environment import DB_NAME, RuntimeContext, get_db_path, resolve_context

logger = logging.getLogger(__name__)

GENESIS_OWNER_ID = "GENESIS_SYSTEM"


def load_toml_config(config_path: Path) -> dict[str, Any]:
    """Load configuration from TOML file.

    Args:
        config_path: Path to config.toml file

    Returns:
        Dictionary with configuration sections

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config file is invalid TOML
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "rb") as f:
        try:
            return tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML in {config_path}: {e}") from e


def _split_env_list(value: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class ResourceProfile:
    """Resource profile settings.

    Profiles are operator-declared, not hardware-detected.
    """

    PROFILES = {
        "embedded": {
            "page_size": 6,
            "max_append_retries": 3,
            "busy_timeout": 2.0,
            "log_level": "warning",
        },
        "standard": {
            "page_size": 12,
            "max_append_retries": 5,
            "busy_timeout": 5.0,
            "log_level": "info",
        },
    }

    @classmethod
    def get_profile(cls, name: str) -> dict[str, Any]:
        """Get resource profile settings.

        Args:
            name: Profile name (embedded or standard)

        Returns:
            Dictionary with profile settings

        Raises:
            ValueError: If profile name is unknown
        """
        if name not in cls.PROFILES:
            raise ValueError(
                f"Unknown resource profile: {name}. "
                f"Available: {list(cls.PROFILES.keys())}"
            )
        return cls.PROFILES[name].copy()


class Settings:
    """Ledger settings with TOML configuration support.

    Settings are passed explicitly to get_ledger() and the services; there is
    no process-wide settings singleton.

    Database Path Resolution:
    - If database_path is given, it is used directly
    - Else LIFESEED_LEDGER_DB / LIFESEED_DATA_DIR (see get_db_path)
    - Else [paths].data_dir from TOML
    - Else ./ledger.db
    """

    def __init__(
        self,
        database_path: Optional[str | Path] = None,
        config_path: Optional[Path] = None,
        verb: str = "run",
    ):
        """Initialize settings.

        Args:
            database_path: Path to the ledger database file. If None,
                resolved from the environment and TOML.
            config_path: Optional explicit path to config.toml
            verb: Deployment verb (serve, run, deploy) for config resolution
        """
        self._verb = verb
        self._config: dict[str, Any] = {}
        self.context: RuntimeContext = resolve_context(verb, config_override=config_path)

        if config_path is None:
            config_path = self.context.get_config_path()
        self.config_path = config_path

        if config_path.exists():
            try:
                self._config = load_toml_config(config_path)
            except ValueError as e:
                # Continue with defaults
                logger.warning("Failed to load config from %s: %s", config_path, e)

        self._apply_config()

        if database_path is not None:
            self.database_path = Path(database_path)
        else:
            self.database_path = self._resolve_database_path()

    def _apply_config(self):
        """Apply TOML configuration to settings (env var > TOML > profile)."""
        runtime_config = self._config.get("runtime", {})
        resource_profile = os.environ.get(
            "LIFESEED_RESOURCE_PROFILE",
            runtime_config.get("resource_profile", "standard")
        )
        self.resource_profile = resource_profile

        self.log_to_file = False

        for key, value in ResourceProfile.get_profile(resource_profile).items():
            setattr(self, key, value)

        # TOML runtime overrides (only if env var not set)
        for key, value in runtime_config.items():
            if key == "resource_profile":
                continue
            if f"LIFESEED_{key.upper()}" not in os.environ:
                setattr(self, key, value)

        if "LIFESEED_LOG_LEVEL" in os.environ:
            self.log_level = os.environ["LIFESEED_LOG_LEVEL"]
        if "LIFESEED_LOG_TO_FILE" in os.environ:
            self.log_to_file = _env_flag(os.environ["LIFESEED_LOG_TO_FILE"])
        if "LIFESEED_MAX_APPEND_RETRIES" in os.environ:
            self.max_append_retries = int(os.environ["LIFESEED_MAX_APPEND_RETRIES"])
        if "LIFESEED_PAGE_SIZE" in os.environ:
            self.page_size = int(os.environ["LIFESEED_PAGE_SIZE"])

        # Trust anchoring (env var > TOML > default)
        ledger_config = self._config.get("ledger", {})
        self.genesis_owner_id = ledger_config.get("genesis_owner_id", GENESIS_OWNER_ID)

        if "LIFESEED_BOOTSTRAP_FIRST_TREE" in os.environ:
            self.bootstrap_first_tree = _env_flag(os.environ["LIFESEED_BOOTSTRAP_FIRST_TREE"])
        else:
            self.bootstrap_first_tree = bool(ledger_config.get("bootstrap_first_tree", True))

        if "LIFESEED_ROOT_NAMES" in os.environ:
            root_names = _split_env_list(os.environ["LIFESEED_ROOT_NAMES"])
        else:
            root_names = tuple(ledger_config.get("root_names", ("phoenix",)))
        self.root_names = tuple(name.strip().lower() for name in root_names)

        if "LIFESEED_STEWARD_IDS" in os.environ:
            self.steward_ids = _split_env_list(os.environ["LIFESEED_STEWARD_IDS"])
        else:
            self.steward_ids = tuple(ledger_config.get("steward_ids", ()))

        # Paths first; blob storage defaults under the resolved data_dir
        paths_config = self._config.get("paths", {})
        data_dir_env = os.environ.get("LIFESEED_DATA_DIR")
        if data_dir_env:
            self.data_dir = Path(data_dir_env)
        elif paths_config.get("data_dir"):
            self.data_dir = Path(paths_config["data_dir"])
        else:
            self.data_dir = self.context.data_dir

        log_dir_env = os.environ.get("LIFESEED_LOG_DIR")
        if log_dir_env:
            self.context.log_dir = Path(log_dir_env)
        elif paths_config.get("log_dir"):
            self.context.log_dir = Path(paths_config["log_dir"])

        # Blob storage (env var > TOML > data_dir default)
        storage_config = self._config.get("storage", {})
        self.blob_dir = Path(os.environ.get(
            "LIFESEED_BLOB_DIR",
            storage_config.get("blob_dir", str(self.data_dir / "blobs"))
        ))
        self.public_base_url = os.environ.get(
            "LIFESEED_PUBLIC_BASE_URL",
            storage_config.get("public_base_url")
        )

    def _resolve_database_path(self) -> Path:
        if "LIFESEED_LEDGER_DB" in os.environ or "LIFESEED_DATA_DIR" in os.environ:
            return get_db_path()
        paths_config = self._config.get("paths", {})
        if paths_config.get("data_dir"):
            return Path(paths_config["data_dir"]) / f"{DB_NAME}.db"
        return get_db_path()

    def is_root_name(self, name: str) -> bool:
        """Return True if a tree name is a configured trust anchor."""
        return name.strip().lower() in self.root_names

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value.

        Args:
            key: Configuration key
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        return getattr(self, key, default)

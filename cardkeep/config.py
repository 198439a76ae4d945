# cardkeep — configuration
# Override paths and server settings via cardkeep.yaml, environment or CLI args.

import os
import yaml
from pathlib import Path
from dataclasses import dataclass, fields
from typing import Optional

from .errors import ConfigError

CONFIG_PATH = Path(__file__).parent.parent / "config" / "cardkeep.yaml"


@dataclass
class Config:
    """Runtime configuration for cardkeep."""

    # Storage
    db_path: str = "~/.local/share/cardkeep/cardkeep.db"
    backup_dir: str = "~/.local/share/cardkeep/backups"
    # Raise PersistenceFailed instead of only logging failed writes
    strict_persistence: bool = False

    # Local API
    host: str = "127.0.0.1"
    port: int = 3000
    api_secret: str = ""  # empty = mutating routes are open

    # Behavior
    log_level: str = "INFO"
    default_sort: str = "updatedAt"
    default_order: str = "desc"

    def resolve_paths(self):
        """Apply environment overrides and expand ~."""
        env_db = os.environ.get("CARDKEEP_DB")
        if env_db:
            self.db_path = env_db
        env_secret = os.environ.get("CARDKEEP_API_SECRET")
        if env_secret:
            self.api_secret = env_secret

        self.db_path = str(Path(self.db_path).expanduser())
        self.backup_dir = str(Path(self.backup_dir).expanduser())

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Config":
        """Load config from YAML file, falling back to defaults.

        A missing file means defaults; a file that exists but is not a YAML
        mapping raises ConfigError. Unknown keys are ignored.
        """
        cfg_path = Path(path) if path else CONFIG_PATH
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigError(f"Cannot read config {cfg_path}: {e}") from e
            if not isinstance(data, dict):
                raise ConfigError(f"Config {cfg_path} must be a mapping, got {type(data).__name__}")
            known = {f.name for f in fields(cls)}
            cfg = cls(**{k: v for k, v in data.items() if k in known})
        else:
            cfg = cls()
        cfg.resolve_paths()
        return cfg

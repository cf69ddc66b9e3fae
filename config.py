"""Application-wide configuration defaults and helpers."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# Base directory for resolving relative paths.
BASE_DIR = Path(__file__).resolve().parent

APP_NAME = "intrinsic"


def _to_bool(value: Optional[str], default: bool = False) -> bool:
    """Parse truthy environment values like '1' or 'true'."""
    if value is None:
        return default
    if not isinstance(value, str):
        value = str(value)
    return value.strip().lower() in {"1", "true", "yes", "on"}


def default_database_path() -> Path:
    """``$XDG_DATA_HOME/intrinsic/intrinsic.db``, falling back to ``~/.local/share``."""
    data_home = os.getenv("XDG_DATA_HOME")
    base = Path(data_home) if data_home else Path.home() / ".local" / "share"
    return base / APP_NAME / f"{APP_NAME}.db"


@dataclass
class Config:
    """Runtime configuration loaded from environment variables."""

    debug: bool = False
    database_path: Path = BASE_DIR / "data" / "intrinsic.db"
    sqlite_echo: bool = False
    prefer_ttm: bool = False
    output_dir: Path = Path("exports")

    @classmethod
    def from_env(cls) -> "Config":
        """Build a configuration instance using environment overrides."""
        db_override = os.getenv("INTRINSIC_DB_PATH")
        db_path = Path(db_override).expanduser() if db_override else default_database_path()
        output_dir = Path(os.getenv("OUTPUT_DIR", "exports")).expanduser()

        return cls(
            debug=_to_bool(os.getenv("INTRINSIC_DEBUG")),
            database_path=db_path,
            sqlite_echo=_to_bool(os.getenv("SQLITE_ECHO")),
            prefer_ttm=_to_bool(os.getenv("INTRINSIC_TTM")),
            output_dir=output_dir,
        )

    @property
    def database_uri(self) -> str:
        return f"sqlite:///{self.database_path}"

    def ensure_directories(self) -> None:
        """Create directories needed for runtime artifacts."""
        self.database_path.parent.mkdir(parents=True, exist_ok=True)
        self.output_dir.mkdir(parents=True, exist_ok=True)

from __future__ import annotations

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from identity_resolution.errors import ConfigurationError
from identity_resolution.steps.clustering import DEFAULT_MAX_CLUSTER_SIZE, DEFAULT_NAME_ZIP_MAX_GROUP


class ClusteringSettings(BaseModel):
    # Corpus dependent; zero or negative values are rejected by the clusterer itself.
    max_cluster_size: int = DEFAULT_MAX_CLUSTER_SIZE
    name_zip_max_group: int = Field(default=DEFAULT_NAME_ZIP_MAX_GROUP, ge=2)
    first_name_prefix_length: int = Field(default=3, ge=1)


class StoreSettings(BaseModel):
    path: Path = Path("./data/identity.sqlite3")
    batch_size: int = Field(default=100, ge=1)
    retries: int = Field(default=3, ge=0)
    retry_backoff_seconds: float = Field(default=0.5, ge=0.0)

    @field_validator("path", mode="before")
    @classmethod
    def _expand_path(cls, value: str | Path) -> Path:
        return Path(value).expanduser()


class LoggingSettings(BaseModel):
    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.upper()


class Settings(BaseModel):
    clustering: ClusteringSettings = ClusteringSettings()
    store: StoreSettings = StoreSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def load(cls, path: Path) -> "Settings":
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")
        try:
            with path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh)
            return cls.model_validate(raw or {})
        except (yaml.YAMLError, ValidationError) as exc:
            raise ConfigurationError(f"Invalid config {path}: {exc}") from exc


def find_config(explicit_path: Optional[Path]) -> Optional[Path]:
    if explicit_path:
        return explicit_path
    cwd = Path.cwd()
    for candidate in (cwd / "config.yaml", cwd / "config.yml"):
        if candidate.exists():
            return candidate
    return None


def load_settings(explicit_path: Optional[Path] = None) -> Settings:
    path = find_config(explicit_path)
    if path is None:
        return Settings()
    return Settings.load(path)

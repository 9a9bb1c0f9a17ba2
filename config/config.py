"""Configuration management for Hermes."""
import os
import yaml
from pathlib import Path
from typing import Optional, Literal
from pydantic import BaseModel, ConfigDict, Field


class S3Config(BaseModel):
    """S3-specific configuration."""
    bucket: str = ""
    prefix: str = ""  # Key prefix inside the bucket
    region: Optional[str] = None  # Auto-detected if None
    aws_access_key_id: Optional[str] = None  # Uses environment/IAM role if None
    aws_secret_access_key: Optional[str] = None
    aws_session_token: Optional[str] = None
    endpoint_url: Optional[str] = None  # For S3-compatible services (MinIO, etc.)


class StorageLayerConfig(BaseModel):
    """Where tables and router state live."""
    backend: Literal["local", "s3"] = "local"
    base_dir: str = "./data"
    s3: Optional[S3Config] = Field(default_factory=S3Config)


class PathConfig(BaseModel):
    """Path structure, relative to the storage root."""
    tables_dir: str = "tables"  # One Parquet file per table + catalog
    state_file: str = "state/router_state.json"  # Key-value state document


class RoutingSettings(BaseModel):
    """Batch and watcher tuning."""
    batch_size: int = Field(default=20, ge=1, description="Records routed per chunk")
    batch_pause_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Pause between chunks (0 disables). Never applied after the last chunk."
    )
    watch_poll_seconds: float = Field(default=5.0, gt=0.0, description="Watcher polling interval")
    first_data_position: int = Field(
        default=2,
        ge=2,
        description="First row routed by run-existing (row 1 is the header)"
    )


class HermesConfig(BaseModel):
    """Root configuration for Hermes."""
    storage: StorageLayerConfig = Field(default_factory=StorageLayerConfig)
    paths: PathConfig = Field(default_factory=PathConfig)
    routing: RoutingSettings = Field(default_factory=RoutingSettings)

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class RoutingConfig(BaseModel):
    """
    Persisted routing configuration: which table to watch, which field routes.

    Passed explicitly into every routing operation; an absent configuration is
    represented by None, never by a default instance.
    """
    model_config = ConfigDict(frozen=True)

    source_table_id: str = Field(..., min_length=1)
    designated_field_index: int = Field(..., ge=1, description="1-based column index")


def load_config(config_path: Optional[str] = None) -> HermesConfig:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, looks for:
            1. HERMES_CONFIG environment variable
            2. ./config/config.yaml
            3. ~/.hermes/config.yaml

    Returns:
        HermesConfig instance
    """
    if config_path is None:
        config_path = os.environ.get("HERMES_CONFIG")

        if config_path is None:
            candidates = [
                Path("./config/config.yaml"),
                Path.home() / ".hermes" / "config.yaml",
            ]
            for candidate in candidates:
                if candidate.exists():
                    config_path = str(candidate)
                    break

    if config_path is None:
        raise FileNotFoundError(
            "No config file found. Set HERMES_CONFIG or create config/config.yaml"
        )

    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        yaml_data = yaml.safe_load(f) or {}

    return HermesConfig(**yaml_data)


def save_example_config(output_path: str = "./config/config.example.yaml") -> Path:
    """
    Save an example configuration file.

    Args:
        output_path: Where to save the example config

    Returns:
        Path of the written file
    """
    example = {
        "storage": {
            "backend": "local",
            "base_dir": "./data",
        },
        "paths": {
            "tables_dir": "tables",
            "state_file": "state/router_state.json",
        },
        "routing": {
            "batch_size": 20,
            "batch_pause_seconds": 1.0,
            "watch_poll_seconds": 5.0,
        },
        "log_level": "INFO",
    }

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w') as f:
        yaml.dump(example, f, default_flow_style=False, sort_keys=False)

    return output_path

"""
Tests for configuration loading and the CLI wiring
==================================================
"""

import json

import pytest
import yaml
from pydantic import ValidationError

from config.config import HermesConfig, RoutingConfig, load_config, save_example_config
from routing.configuration import RoutingConfigRepository
from routing.errors import ConfigurationMissing, ConfigurationUnavailable
from routing.factory import create_router_from_config
from scripts.run_router import main
from storage.kv_store import (
    KEY_DESIGNATED_FIELD_INDEX,
    KEY_SOURCE_TABLE_ID,
    InMemoryKeyValueStore,
    KeyValueStoreError,
)
from storage.tables import ParquetTableBackend


class TestHermesConfig:
    """Tests for YAML configuration."""

    def test_defaults(self):
        """Test default settings."""
        config = HermesConfig()
        assert config.storage.backend == "local"
        assert config.routing.batch_size == 20
        assert config.routing.batch_pause_seconds == 1.0
        assert config.paths.state_file == "state/router_state.json"

    def test_load_from_file(self, temp_dir):
        """Test loading an explicit YAML file."""
        path = temp_dir / "config.yaml"
        path.write_text(yaml.dump({
            "storage": {"base_dir": str(temp_dir / "data")},
            "routing": {"batch_size": 5, "batch_pause_seconds": 0},
            "log_level": "DEBUG",
        }))
        config = load_config(str(path))
        assert config.routing.batch_size == 5
        assert config.log_level == "DEBUG"

    def test_load_from_env(self, temp_dir, monkeypatch):
        """Test HERMES_CONFIG is honoured."""
        path = temp_dir / "env.yaml"
        path.write_text("routing:\n  batch_size: 7\n")
        monkeypatch.setenv("HERMES_CONFIG", str(path))
        assert load_config().routing.batch_size == 7

    def test_missing_file(self, temp_dir):
        """Test a missing explicit file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_config(str(temp_dir / "nope.yaml"))

    def test_invalid_batch_size(self):
        """Test batch_size must be positive."""
        with pytest.raises(ValidationError):
            HermesConfig(routing={"batch_size": 0})

    def test_save_example_config(self, temp_dir):
        """Test the example config loads back."""
        path = save_example_config(str(temp_dir / "example.yaml"))
        assert load_config(str(path)).routing.batch_size == 20

    def test_factory_builds_parquet_service(self, temp_dir):
        """Test the factory wires local Parquet tables."""
        config = HermesConfig(storage={"base_dir": str(temp_dir)})
        service = create_router_from_config(config)
        assert isinstance(service.table_backend, ParquetTableBackend)
        assert service.show_configuration() is None


class TestRoutingConfigRepository:
    """Tests for persisted routing configuration."""

    def test_round_trip(self):
        """Test save then load returns the same value."""
        repo = RoutingConfigRepository(InMemoryKeyValueStore())
        repo.save(RoutingConfig(source_table_id="abc", designated_field_index=2))
        assert repo.load() == RoutingConfig(source_table_id="abc", designated_field_index=2)

    def test_absent(self):
        """Test an empty store is a distinct missing state."""
        repo = RoutingConfigRepository(InMemoryKeyValueStore())
        assert repo.load() is None
        with pytest.raises(ConfigurationMissing):
            repo.require()

    def test_partial_is_absent(self):
        """Test only one of the two entries counts as not configured."""
        repo = RoutingConfigRepository(InMemoryKeyValueStore({KEY_SOURCE_TABLE_ID: "abc"}))
        assert repo.load() is None

    def test_invalid_index_is_absent(self):
        """Test a non-numeric or zero index is ignored."""
        for bad in ("x", "0"):
            store = InMemoryKeyValueStore({KEY_SOURCE_TABLE_ID: "abc", KEY_DESIGNATED_FIELD_INDEX: bad})
            assert RoutingConfigRepository(store).load() is None

    def test_store_failure_wrapped(self):
        """Test key-value store errors surface as ConfigurationUnavailable."""

        class OfflineStore(InMemoryKeyValueStore):
            def get(self, key):
                raise KeyValueStoreError("offline")

            def set(self, key, value):
                raise KeyValueStoreError("offline")

        repo = RoutingConfigRepository(OfflineStore())
        with pytest.raises(ConfigurationUnavailable):
            repo.load()
        with pytest.raises(ConfigurationUnavailable):
            repo.save(RoutingConfig(source_table_id="abc", designated_field_index=2))

    def test_frozen(self):
        """Test RoutingConfig is immutable."""
        config = RoutingConfig(source_table_id="abc", designated_field_index=2)
        with pytest.raises(ValidationError):
            config.designated_field_index = 3


class TestCli:
    """Tests for scripts/run_router.py."""

    @pytest.fixture
    def config_path(self, temp_dir):
        path = temp_dir / "config.yaml"
        path.write_text(yaml.dump({
            "storage": {"base_dir": str(temp_dir / "data")},
            "routing": {"batch_pause_seconds": 0},
        }))
        return str(path)

    def test_full_flow(self, config_path, temp_dir, capsys):
        """Test import-csv, setup, run-existing, show-config, reset."""
        csv_path = temp_dir / "responses.csv"
        csv_path.write_text(
            "Timestamp,Email Address,Department\n"
            "t1,a@x.com,Sales\n"
            "t2,b@x.com,Ops\n"
        )

        assert main(["--config", config_path, "import-csv", str(csv_path)]) == 0
        table_id = capsys.readouterr().out.strip()

        assert main(["--config", config_path, "setup", table_id, "3"]) == 0
        capsys.readouterr()

        assert main(["--config", config_path, "run-existing"]) == 0
        stats = json.loads(capsys.readouterr().out)
        assert stats["routed"] == 2

        assert main(["--config", config_path, "show-config"]) == 0
        assert json.loads(capsys.readouterr().out)["processed_count"] == 2

        assert main(["--config", config_path, "reset"]) == 1
        assert main(["--config", config_path, "reset", "--yes"]) == 0
        capsys.readouterr()
        assert main(["--config", config_path, "show-config"]) == 1

    def test_unconfigured_exit_code(self, config_path):
        """Test commands needing configuration exit with 2."""
        assert main(["--config", config_path, "run-existing"]) == 2

    def test_defaults_when_no_config_file(self, temp_dir, monkeypatch, capsys):
        """Test a missing default config falls back to defaults with a stderr notice."""
        monkeypatch.delenv("HERMES_CONFIG", raising=False)
        monkeypatch.setenv("HOME", str(temp_dir))
        monkeypatch.chdir(temp_dir)

        assert main(["show-config"]) == 1
        captured = capsys.readouterr()
        assert "Using defaults" in captured.err
        assert "Not configured" in captured.out

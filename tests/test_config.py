from pathlib import Path

import pytest

from identity_resolution.config import Settings, find_config, load_settings
from identity_resolution.errors import ConfigurationError
from identity_resolution.runners import LocalResolutionPipeline


def test_defaults_without_config_file(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)

    settings = load_settings()

    assert find_config(None) is None
    assert settings.clustering.max_cluster_size == 20
    assert settings.clustering.name_zip_max_group == 5
    assert settings.store.batch_size == 100
    assert settings.store.retries == 3
    assert settings.logging.level == "INFO"


def test_loads_yaml_from_working_directory(tmp_path, monkeypatch) -> None:
    (tmp_path / "config.yaml").write_text(
        "clustering:\n"
        "  max_cluster_size: 8\n"
        "store:\n"
        "  path: ~/identity/test.sqlite3\n"
        "  batch_size: 25\n"
        "logging:\n"
        "  level: debug\n",
        encoding="utf-8",
    )
    monkeypatch.chdir(tmp_path)

    settings = load_settings()

    assert settings.clustering.max_cluster_size == 8
    assert settings.clustering.first_name_prefix_length == 3
    assert settings.store.batch_size == 25
    assert settings.store.path == Path("~/identity/test.sqlite3").expanduser()
    assert settings.logging.level == "DEBUG"


def test_invalid_values_raise_configuration_error(tmp_path) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text("store:\n  batch_size: 0\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        Settings.load(path)
    with pytest.raises(ConfigurationError):
        load_settings(tmp_path / "missing.yaml")


def test_cluster_cap_below_one_fails_at_pipeline_construction() -> None:
    settings = Settings.model_validate({"clustering": {"max_cluster_size": 0}})

    with pytest.raises(ConfigurationError):
        LocalResolutionPipeline(settings)

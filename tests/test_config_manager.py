from __future__ import annotations

from pathlib import Path

import pytest

from nexus_bridge.exceptions import ConfigurationError
from nexus_bridge.models.config import BridgeConfig
from nexus_bridge.storage.config_manager import ConfigManager


def test_save_and_load_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "config.ini"
    ConfigManager(path).save_new_config({"api_key": "secret", "max_workers": 6})

    config = ConfigManager(path).load_config()
    assert config.api_key == "secret"
    assert config.max_workers == 6
    assert config.download_retries == 3
    assert config.fusion_weights() == {
        "depth_first": 2.0,
        "kahn": 2.0,
        "position": 1.5,
        "manifest": 0.5,
    }


def test_cli_options_override_file(tmp_path: Path) -> None:
    path = tmp_path / "config.ini"
    ConfigManager(path).save_new_config({"api_key": "secret"})
    config = ConfigManager(path).load_config({"max_workers": 12, "auto_continue": True})
    assert config.max_workers == 12
    assert config.auto_continue is True


def test_missing_keys_are_migrated(tmp_path: Path) -> None:
    path = tmp_path / "config.ini"
    path.write_text("[DEFAULT]\napi_key = abc\n", encoding="utf-8")
    config = ConfigManager(path).load_config()
    assert config.retry_workers == 4
    assert "retry_workers" in path.read_text(encoding="utf-8")


def test_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        ConfigManager(tmp_path / "absent.ini").load_config()


def test_invalid_values_raise(tmp_path: Path) -> None:
    path = tmp_path / "config.ini"
    path.write_text("[DEFAULT]\nmax_workers = 500\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        ConfigManager(path).load_config()


@pytest.mark.parametrize("profile", ["", "../evil", "a/b"])
def test_profile_names_are_validated(profile: str) -> None:
    with pytest.raises(ValueError):
        BridgeConfig(profile=profile)


def test_weights_must_be_positive() -> None:
    with pytest.raises(ValueError):
        BridgeConfig(weight_depth_first=0, weight_kahn=0, weight_position=0, weight_manifest=0)


@pytest.mark.parametrize("retry_workers", [0, 5, 64])
def test_retry_workers_are_capped(retry_workers: int) -> None:
    with pytest.raises(ValueError):
        BridgeConfig(retry_workers=retry_workers)

"""Tests for config loading, normalization and section lookup."""

from __future__ import annotations

from pathlib import Path

import yaml

from config.controller import ConfigController, load_section
from vision.walls import WallConfig


def _reset_singletons() -> None:
    ConfigController._instance = None


def _write_config(tmp_path: Path, default: str, override: str | None = None) -> Path:
    config_dir = tmp_path / "config"
    config_dir.mkdir(parents=True, exist_ok=True)
    (config_dir / "default.yaml").write_text(default, encoding="utf-8")
    if override is not None:
        (config_dir / "override.yaml").write_text(override, encoding="utf-8")
    return config_dir


def test_legacy_depth_scale_key_is_mapped(tmp_path: Path, monkeypatch) -> None:
    _write_config(tmp_path, "depth_scale_factor: 0.005\n")
    monkeypatch.chdir(tmp_path)
    _reset_singletons()

    assert ConfigController.get_instance().get_section("depth")["scale_factor"] == 0.005


def test_invalid_scale_factor_falls_back_to_default(tmp_path: Path, monkeypatch) -> None:
    _write_config(tmp_path, "depth:\n  scale_factor: -1\n  patch_radius: 3\n")
    monkeypatch.chdir(tmp_path)
    _reset_singletons()

    depth_cfg = ConfigController.get_instance().get_section("depth")
    assert "scale_factor" not in depth_cfg
    assert depth_cfg["patch_radius"] == 3


def test_override_is_deep_merged(tmp_path: Path, monkeypatch) -> None:
    _write_config(
        tmp_path,
        "walls:\n  warning_distance_m: 1.5\n  sub_bands: 5\n",
        override="walls:\n  warning_distance_m: 2.0\n",
    )
    monkeypatch.chdir(tmp_path)
    _reset_singletons()

    walls = load_section("walls")
    assert walls == {"warning_distance_m": 2.0, "sub_bands": 5}
    assert WallConfig.from_config().warning_distance_m == 2.0


def test_non_mapping_section_is_ignored(tmp_path: Path, monkeypatch) -> None:
    _write_config(tmp_path, "speech: loud\n")
    monkeypatch.chdir(tmp_path)
    _reset_singletons()

    assert load_section("speech") == {}


def test_missing_config_yields_empty_sections(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    _reset_singletons()

    assert load_section("guidance") == {}
    assert ConfigController._instance is None


def test_save_config_archives_previous_override(tmp_path: Path, monkeypatch) -> None:
    config_dir = _write_config(tmp_path, "{}\n", override="speech:\n  max_queue: 4\n")
    monkeypatch.chdir(tmp_path)
    _reset_singletons()

    controller = ConfigController.get_instance()
    controller.set_config({"speech": {"max_queue": 2}})

    assert (config_dir / "override_0001.yaml").exists()
    saved = yaml.safe_load((config_dir / "override.yaml").read_text(encoding="utf-8"))
    assert saved["speech"] == {"max_queue": 2}
    assert controller.get_section("speech") == {"max_queue": 2}

"""Tests for simulation configuration loading."""

import pytest

from vsm_config import SimulationConfig, load_config


def test_load_config_from_path(tmp_path):
    config_path = tmp_path / "sim.yaml"
    config_path.write_text(
        """
work_item_count: 25
speed: 2.0
max_ticks: 500
seed: 7
"""
    )
    config = load_config(str(config_path))
    assert config == SimulationConfig(work_item_count=25, speed=2.0, max_ticks=500, seed=7)


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "sim.yaml"
    config_path.write_text("work_item_count: 3\n")
    monkeypatch.setenv("VSM_SIM_CONFIG", str(config_path))

    config = load_config()
    assert config.work_item_count == 3
    assert config.speed == 1.0


def test_missing_config_gives_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("VSM_SIM_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)
    assert load_config() == SimulationConfig()


def test_empty_config_file_gives_defaults(tmp_path):
    config_path = tmp_path / "sim.yaml"
    config_path.write_text("")
    assert load_config(str(config_path)) == SimulationConfig()


def test_out_of_range_values_are_corrected():
    config = SimulationConfig(work_item_count=-4, speed=0.1)
    assert config.work_item_count == 0
    assert config.speed == 0.25


def test_unknown_key_is_rejected(tmp_path):
    config_path = tmp_path / "sim.yaml"
    config_path.write_text("workers: 3\n")
    with pytest.raises(TypeError):
        load_config(str(config_path))

from pathlib import Path

import pytest

from dambreak.utils.config import config_from_dict, default_config, load_config

CONFIG_DIR = Path(__file__).resolve().parents[1] / "configs"


def test_defaults_match_the_scenario():
    cfg = default_config()
    assert cfg.name == "DamBreakGate"
    assert cfg.domain.tank_size == [1.60, 0.67, 0.40]
    assert cfg.domain.size == pytest.approx([1.60, 0.67, 1.10])
    assert cfg.particles.deltap == 0.015
    assert cfg.particles.wall_offset == cfg.particles.deltap
    assert (cfg.gate.t_start, cfg.gate.t_end, cfg.gate.rate, cfg.gate.axis) == (0.2, 0.6, 4.0, 2)
    assert cfg.fluid.wet_bed is False
    assert cfg.simulation.gravity == [0.0, 0.0, -9.81]


def test_derived_quantities():
    cfg = default_config()
    assert cfg.particles.slength == pytest.approx(1.3 * 0.015)
    assert cfg.particles.influence_radius == pytest.approx(2.0 * 1.3 * 0.015)
    assert cfg.particles.bcoeff == pytest.approx(1000.0 * 20.0**2 / 7.0)


def test_shipped_configs_load():
    cfg = load_config(CONFIG_DIR / "default.yaml")
    assert cfg == default_config()
    wet = load_config(CONFIG_DIR / "wet_bed.yaml")
    assert wet.fluid.wet_bed is True
    assert wet.particles.deltap == 0.015


def test_load_partial_yaml(tmp_path):
    path = tmp_path / "scenario.yaml"
    path.write_text("particles:\n  deltap: 0.02\n  wall_offset: 0.01\ngate:\n  t_end: 0.8\n", encoding="utf-8")
    cfg = load_config(path)
    assert cfg.particles.deltap == 0.02
    assert cfg.particles.wall_offset == 0.01
    assert cfg.gate.t_end == 0.8
    assert cfg.gate.t_start == 0.2


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert load_config(path) == default_config()


@pytest.mark.parametrize(
    "raw",
    [
        {"particles": {"deltap": 0.0}},
        {"particles": {"deltap": -0.01}},
        {"particles": {"deltap": 0.5}},
        {"domain": {"tank_size": [1.6, 0.0, 0.4]}},
        {"domain": {"tank_size": [1.6, 0.67]}},
        {"gate": {"t_start": 0.6, "t_end": 0.2}},
        {"gate": {"axis": 3}},
        {"obstacle": {"size": [0.12, -0.1]}},
        {"fluid": {"wet_bed": True, "wet_bed_depth": 0.0}},
        {"simulation": {"dt": 0.0}},
    ],
)
def test_invalid_configs_fail_fast(raw):
    with pytest.raises(ValueError):
        config_from_dict(raw)

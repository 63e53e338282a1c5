"""Configuration helpers for the dam break with gate scenario."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List

import yaml


@dataclass
class DomainConfig:
    origin: List[float]
    tank_size: List[float]
    headroom: float

    @property
    def size(self) -> List[float]:
        """Simulation domain: the tank plus free space above it."""
        sx, sy, sz = self.tank_size
        return [sx, sy, sz + self.headroom]


@dataclass
class ParticleConfig:
    deltap: float
    wall_offset: float
    rest_density: float
    gamma: float
    sound_speed: float
    smoothing_factor: float
    kernel_radius: float

    @property
    def slength(self) -> float:
        return self.smoothing_factor * self.deltap

    @property
    def influence_radius(self) -> float:
        return self.kernel_radius * self.slength

    @property
    def bcoeff(self) -> float:
        # Tait equation of state stiffness
        return self.rest_density * self.sound_speed**2 / self.gamma


@dataclass
class GateConfig:
    x: float
    t_start: float
    t_end: float
    rate: float
    axis: int


@dataclass
class ObstacleConfig:
    origin: List[float]
    size: List[float]


@dataclass
class FluidConfig:
    length: float
    height: float
    wet_bed: bool
    wet_bed_depth: float


@dataclass
class SimulationConfig:
    dt: float
    tend: float
    gravity: List[float]
    timer_tick: float


@dataclass
class ScenarioConfig:
    name: str
    domain: DomainConfig
    particles: ParticleConfig
    gate: GateConfig
    obstacle: ObstacleConfig
    fluid: FluidConfig
    simulation: SimulationConfig


def _as_domain(data: Dict[str, Any]) -> DomainConfig:
    return DomainConfig(
        origin=[float(v) for v in data.get("origin", [0.0, 0.0, 0.0])],
        tank_size=[float(v) for v in data.get("tank_size", [1.60, 0.67, 0.40])],
        headroom=float(data.get("headroom", 0.7)),
    )


def _as_particles(data: Dict[str, Any]) -> ParticleConfig:
    deltap = float(data.get("deltap", 0.015))
    wall_offset = data.get("wall_offset")
    return ParticleConfig(
        deltap=deltap,
        wall_offset=deltap if wall_offset is None else float(wall_offset),
        rest_density=float(data.get("rest_density", 1000.0)),
        gamma=float(data.get("gamma", 7.0)),
        sound_speed=float(data.get("sound_speed", 20.0)),
        smoothing_factor=float(data.get("smoothing_factor", 1.3)),
        kernel_radius=float(data.get("kernel_radius", 2.0)),
    )


def _as_gate(data: Dict[str, Any]) -> GateConfig:
    return GateConfig(
        x=float(data.get("x", 0.4)),
        t_start=float(data.get("t_start", 0.2)),
        t_end=float(data.get("t_end", 0.6)),
        rate=float(data.get("rate", 4.0)),
        axis=int(data.get("axis", 2)),
    )


def _as_obstacle(data: Dict[str, Any]) -> ObstacleConfig:
    return ObstacleConfig(
        origin=[float(v) for v in data.get("origin", [0.9, 0.24])],
        size=[float(v) for v in data.get("size", [0.12, 0.12])],
    )


def _as_fluid(data: Dict[str, Any]) -> FluidConfig:
    return FluidConfig(
        length=float(data.get("length", 0.4)),
        height=float(data.get("height", 0.4)),
        wet_bed=bool(data.get("wet_bed", False)),
        wet_bed_depth=float(data.get("wet_bed_depth", 0.03)),
    )


def _as_sim(data: Dict[str, Any]) -> SimulationConfig:
    return SimulationConfig(
        dt=float(data.get("dt", 1.0e-4)),
        tend=float(data.get("tend", 10.0)),
        gravity=[float(v) for v in data.get("gravity", [0.0, 0.0, -9.81])],
        timer_tick=float(data.get("timer_tick", 0.002)),
    )


def validate_config(cfg: ScenarioConfig) -> ScenarioConfig:
    """Reject geometry that would silently produce degenerate particle sets."""

    deltap = cfg.particles.deltap
    if deltap <= 0.0:
        raise ValueError(f"particles.deltap must be positive, got {deltap}")
    if cfg.particles.wall_offset < 0.0:
        raise ValueError("particles.wall_offset must not be negative")
    if cfg.particles.rest_density <= 0.0:
        raise ValueError("particles.rest_density must be positive")
    if len(cfg.domain.origin) != 3 or len(cfg.domain.tank_size) != 3:
        raise ValueError("domain.origin and domain.tank_size need three components")
    if min(cfg.domain.tank_size) <= 0.0:
        raise ValueError(f"domain.tank_size must be positive, got {cfg.domain.tank_size}")
    if deltap >= min(cfg.domain.tank_size):
        raise ValueError(
            f"particles.deltap ({deltap}) must be smaller than the tank extent {cfg.domain.tank_size}"
        )
    if cfg.domain.headroom < 0.0:
        raise ValueError("domain.headroom must not be negative")
    if len(cfg.obstacle.origin) != 2 or len(cfg.obstacle.size) != 2:
        raise ValueError("obstacle.origin and obstacle.size need two (x, y) components")
    if min(cfg.obstacle.size) <= 0.0:
        raise ValueError("obstacle.size must be positive")
    if cfg.fluid.length <= 0.0 or cfg.fluid.height <= 0.0:
        raise ValueError("fluid.length and fluid.height must be positive")
    if cfg.fluid.wet_bed and cfg.fluid.wet_bed_depth <= 0.0:
        raise ValueError("fluid.wet_bed_depth must be positive when wet_bed is enabled")
    if cfg.gate.t_end <= cfg.gate.t_start:
        raise ValueError("gate.t_end must be later than gate.t_start")
    if cfg.gate.axis not in (0, 1, 2):
        raise ValueError(f"gate.axis must be 0, 1 or 2, got {cfg.gate.axis}")
    if cfg.simulation.dt <= 0.0:
        raise ValueError("simulation.dt must be positive")
    return cfg


def config_from_dict(raw: Dict[str, Any] | None) -> ScenarioConfig:
    raw = raw or {}
    cfg = ScenarioConfig(
        name=str(raw.get("name", "DamBreakGate")),
        domain=_as_domain(raw.get("domain", {})),
        particles=_as_particles(raw.get("particles", {})),
        gate=_as_gate(raw.get("gate", {})),
        obstacle=_as_obstacle(raw.get("obstacle", {})),
        fluid=_as_fluid(raw.get("fluid", {})),
        simulation=_as_sim(raw.get("simulation", {})),
    )
    return validate_config(cfg)


def default_config() -> ScenarioConfig:
    return config_from_dict({})


def load_config(path: str | Path) -> ScenarioConfig:
    """Parse a YAML config file into strongly typed dataclasses."""

    with open(Path(path), "r", encoding="utf-8") as stream:
        raw = yaml.safe_load(stream)

    return config_from_dict(raw)

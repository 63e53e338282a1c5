"""Scenario problems: particle generation, buffer packing and boundary motion."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol

import numpy as np

from dambreak.sim.buffers import BufferList, Hasher, allocate_buffers, pack_buffers
from dambreak.sim.grid import CellHasher
from dambreak.sim.moving_boundary import MovingBoundaryState, advance_ramp
from dambreak.sim.particles import (
    ParticleClasses,
    ParticleType,
    ScenarioRegions,
    build_particle_classes,
    build_regions,
)
from dambreak.utils.config import ScenarioConfig


class Problem(Protocol):
    name: str
    hasher: Hasher
    classes: Optional[ParticleClasses]
    mb_states: List[MovingBoundaryState]

    def generate_particles(self) -> int:
        ...

    def pack_buffers(self, buffers: BufferList) -> None:
        ...

    def boundary_kinematics(self, t: float, dt: float, index: int) -> MovingBoundaryState:
        ...


class DamBreakGate:
    """Dam break released by a gate lifting out of the tank, with a fixed obstacle."""

    def __init__(self, config: ScenarioConfig, hasher: Optional[Hasher] = None) -> None:
        self.config = config
        self.name = config.name
        self.hasher = hasher if hasher is not None else CellHasher.for_config(config)
        self.classes: Optional[ParticleClasses] = None
        self.regions: Optional[ScenarioRegions] = None

        r0 = config.particles.wall_offset
        gate = config.gate
        self.mb_states: List[MovingBoundaryState] = [
            MovingBoundaryState(
                origin=np.array([gate.x + 2 * r0, 0.0, 0.0]),
                ptype=ParticleType.GATE,
                t_start=gate.t_start,
                t_end=gate.t_end,
                rate=gate.rate,
                axis=gate.axis,
            )
        ]
        # Initialise the values the callback owns.
        self.boundary_kinematics(0.0, 0.0, 0)

    def generate_particles(self) -> int:
        self.regions = build_regions(self.config, self.mb_states[0].origin)
        self.classes = build_particle_classes(self.config, self.regions)
        return self.classes.total

    def pack_buffers(self, buffers: BufferList) -> None:
        if self.classes is None:
            raise RuntimeError("generate_particles() must run before pack_buffers()")
        pack_buffers(self.classes, buffers, self.hasher, self.config.particles.rest_density)

    def boundary_kinematics(self, t: float, dt: float, index: int) -> MovingBoundaryState:
        return advance_ramp(self.mb_states[index], t, dt)

    def release_memory(self) -> None:
        self.classes = None
        self.regions = None


PROBLEMS: Dict[str, Callable[..., Problem]] = {
    "DamBreakGate": DamBreakGate,
}


def make_problem(name: str, config: ScenarioConfig, **kwargs) -> Problem:
    try:
        factory = PROBLEMS[name]
    except KeyError:
        raise ValueError(f"Unknown problem '{name}', expected one of {sorted(PROBLEMS)}") from None
    return factory(config, **kwargs)


@dataclass
class ScenarioState:
    problem: Problem
    buffers: BufferList


def build_scenario_state(config: ScenarioConfig, device: str = "cuda", problem: str = "DamBreakGate") -> ScenarioState:
    """Generate the particles, size the buffers from the count and pack them."""

    prob = make_problem(problem, config)
    count = prob.generate_particles()
    buffers = allocate_buffers(count, device=device)
    prob.pack_buffers(buffers)
    return ScenarioState(problem=prob, buffers=buffers)

"""Particle classes of the dam break scenario and the builder that seeds them."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, Dict, Iterator, List, Sequence, Tuple

import numpy as np

from dambreak.sim.geometry import Cube, Particles, Rect, as_vec3, coincident_mask
from dambreak.utils.config import ScenarioConfig

# Fluid types occupy the low bits, the other particle types are shifted above them.
MAX_FLUID_BITS = 2


class ParticleType(IntEnum):
    FLUID = 0
    BOUNDARY = 1 << MAX_FLUID_BITS
    GATE = 4 << MAX_FLUID_BITS


class ParticleClass(IntEnum):
    """Particle classes in packing order; the solver relies on this order."""

    BOUNDARY = 0
    GATE = 1
    OBSTACLE = 2
    FLUID = 3

    @property
    def label(self) -> str:
        return self.name.capitalize()


# (particle type, object number) written to the info buffer for each class.
CLASS_INFO: Dict[ParticleClass, Tuple[ParticleType, int]] = {
    ParticleClass.BOUNDARY: (ParticleType.BOUNDARY, 0),
    ParticleClass.GATE: (ParticleType.GATE, 0),
    ParticleClass.OBSTACLE: (ParticleType.BOUNDARY, 1),
    ParticleClass.FLUID: (ParticleType.FLUID, 0),
}


@dataclass
class ScenarioRegions:
    box: Cube
    gate: Rect
    obstacle: Cube
    fluid: Cube
    wet_bed: List[Cube] = field(default_factory=list)

    @property
    def fluid_regions(self) -> List[Cube]:
        return [self.fluid, *self.wet_bed]


@dataclass
class ParticleClasses:
    boundary: Particles
    gate: Particles
    obstacle: Particles
    fluid: Particles
    dropped: Dict[ParticleClass, int] = field(default_factory=dict)

    def __getitem__(self, cls: ParticleClass) -> Particles:
        return getattr(self, cls.name.lower())

    def __iter__(self) -> Iterator[Tuple[ParticleClass, Particles]]:
        for cls in ParticleClass:
            yield cls, self[cls]

    def counts(self) -> Dict[ParticleClass, int]:
        return {cls: len(parts) for cls, parts in self}

    @property
    def total(self) -> int:
        return sum(self.counts().values())


def build_regions(cfg: ScenarioConfig, gate_origin: Sequence[float]) -> ScenarioRegions:
    """Lay out the tank, gate, obstacle and fluid regions in world coordinates.

    ``gate_origin`` is the gate offset relative to the domain origin, as held by
    the gate's moving boundary state.
    """

    origin = as_vec3(cfg.domain.origin)
    lx, ly, lz = cfg.domain.tank_size
    r0 = cfg.particles.wall_offset
    dp = cfg.particles.deltap

    box = Cube(origin, (lx, 0.0, 0.0), (0.0, ly, 0.0), (0.0, 0.0, lz))

    gate_pos = origin + as_vec3(gate_origin)
    gate = Rect(gate_pos, (0.0, ly, 0.0), (0.0, 0.0, lz))

    ox, oy = cfg.obstacle.origin
    olx, oly = cfg.obstacle.size
    obstacle = Cube(
        origin + (ox, oy, r0),
        (olx, 0.0, 0.0),
        (0.0, oly, 0.0),
        (0.0, 0.0, lz - r0),
    )

    fluid = Cube(
        origin + (r0, r0, r0),
        (cfg.fluid.length, 0.0, 0.0),
        (0.0, ly - 2 * r0, 0.0),
        (0.0, 0.0, cfg.fluid.height - r0),
    )

    wet_bed: List[Cube] = []
    if cfg.fluid.wet_bed:
        depth = (0.0, 0.0, cfg.fluid.wet_bed_depth)
        full_width = (0.0, ly - 2 * r0, 0.0)
        # Between the gate and the obstacle.
        x0 = gate_pos[0] - origin[0] + dp
        wet_bed.append(Cube(origin + (x0, r0, r0), (ox - r0 - x0, 0.0, 0.0), full_width, depth))
        # Between the obstacle and the far wall.
        x1 = ox + olx + r0
        wet_bed.append(Cube(origin + (x1, r0, r0), (lx - r0 - x1, 0.0, 0.0), full_width, depth))
        # Either side of the obstacle.
        wet_bed.append(Cube(origin + (ox, dp, r0), (olx, 0.0, 0.0), (0.0, oy - 2 * r0, 0.0), depth))
        y3 = oy + oly + dp
        wet_bed.append(
            Cube(origin + (ox, y3, r0), (olx, 0.0, 0.0), (0.0, ly - oy - oly - 2 * r0, 0.0), depth)
        )

    return ScenarioRegions(box=box, gate=gate, obstacle=obstacle, fluid=fluid, wet_bed=wet_bed)


def _reserve_and_fill(tasks: List[Tuple[int, Callable[[], Particles]]]) -> Particles:
    """Run fill tasks into storage sized up front from their exact counts."""

    total = sum(count for count, _ in tasks)
    out = Particles.empty(total)
    start = 0
    for count, fill in tasks:
        block = fill()
        out.positions[start : start + count] = block.positions
        out.masses[start : start + count] = block.masses
        start += count
    return out


def build_particle_classes(cfg: ScenarioConfig, regions: ScenarioRegions) -> ParticleClasses:
    """Fill every region and return the four disjoint particle classes.

    Classes are generated in packing order. A particle coinciding with one of an
    earlier class is dropped, so the earlier class owns any shared position.
    """

    r0 = cfg.particles.wall_offset
    dp = cfg.particles.deltap
    rho0 = cfg.particles.rest_density
    tol = 1.0e-3 * dp

    regions.box.set_part_mass(r0, rho0)
    boundary = _reserve_and_fill(
        [(regions.box.border_count(r0, False), lambda: regions.box.fill_border(r0, False))]
    )

    regions.gate.set_mass(ParticleType.GATE)
    gate = _reserve_and_fill([(regions.gate.fill_count(r0, True), lambda: regions.gate.fill(r0, True))])

    regions.obstacle.set_part_mass(r0, rho0)
    obstacle = _reserve_and_fill(
        [(regions.obstacle.border_count(r0, True), lambda: regions.obstacle.fill_border(r0, True))]
    )

    fluid_tasks = []
    for region in regions.fluid_regions:
        region.set_part_mass(dp, rho0)
        fluid_tasks.append((region.fill_count(dp, True), lambda region=region: region.fill(dp, True)))
    fluid = _reserve_and_fill(fluid_tasks)

    generated = {
        ParticleClass.BOUNDARY: boundary,
        ParticleClass.GATE: gate,
        ParticleClass.OBSTACLE: obstacle,
        ParticleClass.FLUID: fluid,
    }
    kept: Dict[ParticleClass, Particles] = {}
    dropped: Dict[ParticleClass, int] = {}
    for cls in ParticleClass:
        parts = generated[cls]
        if kept:
            occupied = np.concatenate([p.positions for p in kept.values()], axis=0)
            clash = coincident_mask(parts.positions, occupied, tol)
            if clash.any():
                dropped[cls] = int(clash.sum())
                print(f"{cls.label} parts: dropped {dropped[cls]} coinciding with earlier classes")
                parts = parts.select(~clash)
        kept[cls] = parts

    return ParticleClasses(
        boundary=kept[ParticleClass.BOUNDARY],
        gate=kept[ParticleClass.GATE],
        obstacle=kept[ParticleClass.OBSTACLE],
        fluid=kept[ParticleClass.FLUID],
        dropped=dropped,
    )

"""Structure-of-arrays particle buffers consumed by the GPU solver.

Slots are class-contiguous in :class:`ParticleClass` order and the id stored in
the info buffer equals the slot index. Per-material dispatch on the solver side
relies on both properties.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterator

import warp as wp

from dambreak.kernels.particles import init_particles_kernel
from dambreak.sim.geometry import Particles
from dambreak.sim.particles import CLASS_INFO, ParticleClasses

# (particles, pos buffer, hash buffer, first slot) -> None
Hasher = Callable[[Particles, wp.array, wp.array, int], None]


class BufferKind(Enum):
    POS = "pos"
    HASH = "hash"
    VEL = "vel"
    INFO = "info"


@dataclass
class BufferList:
    """Device buffers, all of the same length.

    - ``pos``: cell-local position, particle mass in ``w``
    - ``hash``: cell hash
    - ``vel``: velocity, rest density in ``w``
    - ``info``: (particle type, object number, particle id)
    """

    pos: wp.array
    hash: wp.array
    vel: wp.array
    info: wp.array
    _write_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        lengths = {kind: self.get(kind).shape[0] for kind in BufferKind}
        if len(set(lengths.values())) != 1:
            raise ValueError(f"Buffer lengths differ: {lengths}")

    @property
    def count(self) -> int:
        return int(self.pos.shape[0])

    @property
    def device(self):
        return self.pos.device

    def get(self, kind: BufferKind) -> wp.array:
        return getattr(self, kind.value)

    @contextmanager
    def exclusive_write(self) -> Iterator["BufferList"]:
        """Hold the buffers for a single writer; a second writer is an error."""

        if not self._write_lock.acquire(blocking=False):
            raise RuntimeError("Particle buffers are already being written")
        try:
            yield self
        finally:
            self._write_lock.release()


def allocate_buffers(count: int, device: str = "cuda") -> BufferList:
    """Allocate zeroed buffers for ``count`` particles."""

    return BufferList(
        pos=wp.zeros(count, dtype=wp.vec4, device=device),
        hash=wp.zeros(count, dtype=wp.uint32, device=device),
        vel=wp.zeros(count, dtype=wp.vec4, device=device),
        info=wp.zeros(count, dtype=wp.vec3i, device=device),
    )


def pack_buffers(
    classes: ParticleClasses,
    buffers: BufferList,
    hasher: Hasher,
    rest_density: float,
) -> int:
    """Copy the particle classes into ``buffers`` and return the slots written."""

    total = classes.total
    if buffers.count != total:
        raise ValueError(
            f"Buffers hold {buffers.count} particles but {total} were generated; "
            "size them from generate_particles()"
        )

    with buffers.exclusive_write():
        start = 0
        for cls, parts in classes:
            count = len(parts)
            print(f"{cls.label} parts: {count}")
            if count == 0:
                continue
            particle_type, object_id = CLASS_INFO[cls]
            wp.launch(
                init_particles_kernel,
                dim=count,
                inputs=[buffers.vel, buffers.info, float(rest_density), int(particle_type), object_id, start],
                device=buffers.device,
            )
            hasher(parts, buffers.pos, buffers.hash, start)
            start += count
            print(f"{cls.label} part mass: {parts.masses[-1]}")

    return start

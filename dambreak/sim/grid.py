"""Uniform cell grid used to hash particles for the neighbor search."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np
import warp as wp

from dambreak.kernels.particles import localpos_and_hash_kernel
from dambreak.sim.geometry import Particles
from dambreak.utils.config import ScenarioConfig


@dataclass
class CellHasher:
    origin: Sequence[float]
    size: Sequence[float]
    cell_radius: float

    def __post_init__(self) -> None:
        # Cells are never smaller than the kernel support.
        size = np.asarray(self.size, dtype=np.float64)
        self.grid_size = np.maximum(np.floor(size / self.cell_radius).astype(np.int64), 1)
        self.cell_size = size / self.grid_size
        self._origin = np.asarray(self.origin, dtype=np.float64)

    @classmethod
    def for_config(cls, cfg: ScenarioConfig) -> "CellHasher":
        return cls(
            origin=tuple(cfg.domain.origin),
            size=tuple(cfg.domain.size),
            cell_radius=cfg.particles.influence_radius,
        )

    @property
    def nr_cells(self) -> int:
        return int(np.prod(self.grid_size))

    def __call__(self, particles: Particles, pos: wp.array, hashes: wp.array, offset: int) -> None:
        """Write cell-local positions (mass in ``w``) and cell hashes from ``offset`` on."""

        count = len(particles)
        if count == 0:
            return
        device = pos.device
        points = wp.array(particles.positions.astype(np.float64), dtype=wp.vec3d, device=device)
        masses = wp.array(particles.masses.astype(np.float32), dtype=float, device=device)
        wp.launch(
            localpos_and_hash_kernel,
            dim=count,
            inputs=[
                points,
                masses,
                wp.vec3d(*map(float, self._origin)),
                wp.vec3d(*map(float, self.cell_size)),
                wp.vec3i(*map(int, self.grid_size)),
                offset,
                pos,
                hashes,
            ],
            device=device,
        )

    def world_positions(self, pos: np.ndarray, hashes: np.ndarray) -> np.ndarray:
        """Rebuild world coordinates from host copies of the pos and hash buffers."""

        hashes = np.asarray(hashes, dtype=np.int64)
        nx, ny, _ = self.grid_size
        cells = np.stack([hashes % nx, (hashes // nx) % ny, hashes // (nx * ny)], axis=1)
        return self._origin + (cells + 0.5) * self.cell_size + np.asarray(pos)[:, :3]

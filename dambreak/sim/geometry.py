"""Region descriptors that seed particles on regular lattices.

Every region uses the same lattice convention: an edge of length ``L`` is
split into ``n = int(L / dx)`` equal divisions, so the effective spacing
``L / n`` is never below ``dx`` and the lattice reaches both ends of the edge.
An edge shorter than ``dx`` has no divisions and collapses to a single layer
on the origin side.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Tuple

import numpy as np


def as_vec3(v: Sequence[float]) -> np.ndarray:
    arr = np.asarray(v, dtype=np.float64).reshape(-1)
    if arr.shape != (3,):
        raise ValueError(f"Expected a 3-component vector, got shape {arr.shape}")
    return arr


@dataclass
class Particles:
    """Host-side particle records: positions and the mass assigned at fill time."""

    positions: np.ndarray  # (n, 3) float64
    masses: np.ndarray  # (n,) float64

    def __len__(self) -> int:
        return int(self.positions.shape[0])

    @staticmethod
    def empty(count: int = 0) -> "Particles":
        return Particles(positions=np.empty((count, 3)), masses=np.empty(count))

    @staticmethod
    def concatenate(parts: Iterable["Particles"]) -> "Particles":
        parts = list(parts)
        if not parts:
            return Particles.empty()
        return Particles(
            positions=np.concatenate([p.positions for p in parts], axis=0),
            masses=np.concatenate([p.masses for p in parts]),
        )

    def select(self, mask: np.ndarray) -> "Particles":
        return Particles(positions=self.positions[mask], masses=self.masses[mask])


def _axis_indices(divisions: int, include_ends: bool) -> np.ndarray:
    if include_ends:
        return np.arange(divisions + 1)
    return np.arange(1, divisions)


def _lattice_indices(ranges: List[np.ndarray]) -> np.ndarray:
    grids = np.meshgrid(*ranges, indexing="ij")
    return np.stack([g.reshape(-1) for g in grids], axis=1)


class Region:
    """Oriented lattice region spanned by an origin and one edge vector per axis."""

    def __init__(self, origin: Sequence[float], edges: Sequence[Sequence[float]]) -> None:
        self.origin = as_vec3(origin)
        self.edges = np.stack([as_vec3(e) for e in edges])
        self.mass = 0.0

    def set_part_mass(self, dx: float, rho: float) -> float:
        """Assign the mass of a particle occupying a ``dx`` cube of density ``rho``."""

        self.mass = float(rho) * float(dx) ** 3
        return self.mass

    def set_mass(self, mass: float) -> float:
        """Assign an explicit per-particle value (e.g. a particle type tag)."""

        self.mass = float(mass)
        return self.mass

    def divisions(self, dx: float) -> np.ndarray:
        if dx <= 0.0:
            raise ValueError(f"spacing must be positive, got {dx}")
        lengths = np.linalg.norm(self.edges, axis=1)
        return np.array([int(length / dx) for length in lengths], dtype=np.int64)

    def _positions(self, indices: np.ndarray, divisions: np.ndarray) -> np.ndarray:
        steps = np.zeros_like(self.edges)
        nonzero = divisions > 0
        steps[nonzero] = self.edges[nonzero] / divisions[nonzero, None]
        return self.origin + indices.astype(np.float64) @ steps

    def _wrap(self, positions: np.ndarray) -> Particles:
        return Particles(positions=positions, masses=np.full(len(positions), self.mass))

    def _fill(self, dx: float, include_ends: bool) -> Particles:
        divisions = self.divisions(dx)
        ranges = [_axis_indices(int(n), include_ends) for n in divisions]
        indices = _lattice_indices(ranges)
        return self._wrap(self._positions(indices, divisions))

    def _fill_count(self, dx: float, include_ends: bool) -> int:
        return int(np.prod([len(_axis_indices(int(n), include_ends)) for n in self.divisions(dx)]))

    def _border(self, dx: float, closed_top: bool) -> Particles:
        divisions = self.divisions(dx)
        indices = _lattice_indices([np.arange(n + 1) for n in divisions])
        at_end = (indices == 0) | (indices == divisions)
        if closed_top:
            on_border = at_end.any(axis=1)
        else:
            # Last axis only contributes its lower layer.
            on_border = at_end[:, :-1].any(axis=1) | (indices[:, -1] == 0)
        return self._wrap(self._positions(indices[on_border], divisions))

    def _border_count(self, dx: float, closed_top: bool) -> int:
        divisions = self.divisions(dx)
        total = int(np.prod(divisions + 1))
        inner = [max(int(n) - 1, 0) for n in divisions]
        if not closed_top:
            inner[-1] = int(divisions[-1])
        return total - int(np.prod(inner))


class Rect(Region):
    """Plane parallelogram with corner ``origin`` and edges ``vx``, ``vy``."""

    def __init__(self, origin: Sequence[float], vx: Sequence[float], vy: Sequence[float]) -> None:
        super().__init__(origin, [vx, vy])

    def fill(self, dx: float, fill_edges: bool = True) -> Particles:
        """Fill the plane; without ``fill_edges`` the four edge rows are skipped."""

        return self._fill(dx, fill_edges)

    def fill_count(self, dx: float, fill_edges: bool = True) -> int:
        return self._fill_count(dx, fill_edges)

    def fill_border(self, dx: float) -> Particles:
        """Perimeter only; each corner is emitted once."""

        return self._border(dx, closed_top=True)

    def border_count(self, dx: float) -> int:
        return self._border_count(dx, closed_top=True)


class Cube(Region):
    """Parallelepiped with corner ``origin`` and edges ``vx``, ``vy``, ``vz``.

    ``vz`` is the vertical edge: ``fill_border`` can leave the face opposite to
    the origin along ``vz`` open, which is how tanks are built.
    """

    def __init__(
        self,
        origin: Sequence[float],
        vx: Sequence[float],
        vy: Sequence[float],
        vz: Sequence[float],
    ) -> None:
        super().__init__(origin, [vx, vy, vz])

    def fill(self, dx: float, fill_faces: bool = True) -> Particles:
        """Fill the volume; without ``fill_faces`` the six outer layers are skipped."""

        return self._fill(dx, fill_faces)

    def fill_count(self, dx: float, fill_faces: bool = True) -> int:
        return self._fill_count(dx, fill_faces)

    def fill_border(self, dx: float, fill_top_face: bool = True) -> Particles:
        """Fill the surface only.

        A lattice point is on the border when it lies on a side wall, on the
        bottom face or, with ``fill_top_face``, on the top face. Shared edges and
        corners belong to the lattice once, so they are never duplicated. An open
        top still keeps the upper rim of the side walls.
        """

        return self._border(dx, closed_top=fill_top_face)

    def border_count(self, dx: float, fill_top_face: bool = True) -> int:
        return self._border_count(dx, closed_top=fill_top_face)

    def volume(self) -> float:
        vx, vy, vz = self.edges
        return float(abs(np.dot(np.cross(vx, vy), vz)))


_NEIGHBOR_OFFSETS = list(itertools.product((-1, 0, 1), repeat=3))


def coincident_mask(points: np.ndarray, occupied: np.ndarray, tol: float) -> np.ndarray:
    """Flag the rows of ``points`` lying within ``tol`` of a row of ``occupied``.

    ``occupied`` is bucketed into cells of edge ``tol``; a point within ``tol``
    of an occupied row lies in the same or an adjacent cell, so only those
    27 cells need a distance check.
    """

    if tol <= 0.0:
        raise ValueError(f"tolerance must be positive, got {tol}")
    mask = np.zeros(len(points), dtype=bool)
    if len(points) == 0 or len(occupied) == 0:
        return mask

    occupied = np.asarray(occupied, dtype=np.float64)
    points = np.asarray(points, dtype=np.float64)
    buckets: Dict[Tuple[int, int, int], List[int]] = {}
    for row, key in enumerate(map(tuple, np.floor(occupied / tol).astype(np.int64).tolist())):
        buckets.setdefault(key, []).append(row)

    for i, (cx, cy, cz) in enumerate(np.floor(points / tol).astype(np.int64).tolist()):
        for ox, oy, oz in _NEIGHBOR_OFFSETS:
            near = buckets.get((cx + ox, cy + oy, cz + oz))
            if near and (np.linalg.norm(occupied[near] - points[i], axis=1) <= tol).any():
                mask[i] = True
                break
    return mask

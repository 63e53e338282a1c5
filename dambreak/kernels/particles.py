"""Warp kernels that write the packed particle buffers."""

from __future__ import annotations

import warp as wp


@wp.func
def calc_grid_pos(p: wp.vec3d, origin: wp.vec3d, cell_size: wp.vec3d, grid_size: wp.vec3i) -> wp.vec3i:
    gx = wp.clamp(int(wp.floor((p[0] - origin[0]) / cell_size[0])), 0, grid_size[0] - 1)
    gy = wp.clamp(int(wp.floor((p[1] - origin[1]) / cell_size[1])), 0, grid_size[1] - 1)
    gz = wp.clamp(int(wp.floor((p[2] - origin[2]) / cell_size[2])), 0, grid_size[2] - 1)
    return wp.vec3i(gx, gy, gz)


@wp.func
def calc_grid_hash(grid_pos: wp.vec3i, grid_size: wp.vec3i) -> wp.uint32:
    return wp.uint32((grid_pos[2] * grid_size[1] + grid_pos[1]) * grid_size[0] + grid_pos[0])


@wp.kernel
def localpos_and_hash_kernel(
    points: wp.array(dtype=wp.vec3d),
    masses: wp.array(dtype=float),
    origin: wp.vec3d,
    cell_size: wp.vec3d,
    grid_size: wp.vec3i,
    offset: int,
    pos: wp.array(dtype=wp.vec4),
    hashes: wp.array(dtype=wp.uint32),
):
    """Store each point relative to the center of its cell, mass in ``w``.

    The offset is taken in double precision; only the small local value is
    narrowed to float.
    """
    i = wp.tid()
    p = points[i]
    gp = calc_grid_pos(p, origin, cell_size, grid_size)
    half = wp.float64(0.5)
    center = wp.vec3d(
        origin[0] + (wp.float64(gp[0]) + half) * cell_size[0],
        origin[1] + (wp.float64(gp[1]) + half) * cell_size[1],
        origin[2] + (wp.float64(gp[2]) + half) * cell_size[2],
    )
    local = p - center
    pos[offset + i] = wp.vec4(wp.float32(local[0]), wp.float32(local[1]), wp.float32(local[2]), masses[i])
    hashes[offset + i] = calc_grid_hash(gp, grid_size)


@wp.kernel
def init_particles_kernel(
    vel: wp.array(dtype=wp.vec4),
    info: wp.array(dtype=wp.vec3i),
    rest_density: float,
    particle_type: int,
    object_id: int,
    offset: int,
):
    i = wp.tid()
    vel[offset + i] = wp.vec4(0.0, 0.0, 0.0, rest_density)
    info[offset + i] = wp.vec3i(particle_type, object_id, offset + i)

import numpy as np
import pytest

from dambreak.sim.buffers import BufferKind, BufferList, allocate_buffers, pack_buffers
from dambreak.sim.geometry import Particles
from dambreak.sim.grid import CellHasher
from dambreak.sim.particles import (
    ParticleClass,
    ParticleClasses,
    ParticleType,
    build_particle_classes,
    build_regions,
)


@pytest.fixture
def classes(coarse_config):
    cfg = coarse_config
    regions = build_regions(cfg, (cfg.gate.x + 2 * cfg.particles.wall_offset, 0.0, 0.0))
    return build_particle_classes(cfg, regions)


@pytest.fixture
def hasher(coarse_config):
    return CellHasher.for_config(coarse_config)


def packed(classes, hasher, device):
    buffers = allocate_buffers(classes.total, device=device)
    written = pack_buffers(classes, buffers, hasher, 1000.0)
    return buffers, written


def test_pack_fills_every_slot(classes, hasher, device):
    buffers, written = packed(classes, hasher, device)
    assert written == classes.total == buffers.count
    info = buffers.info.numpy()
    np.testing.assert_array_equal(info[:, 2], np.arange(classes.total))


def test_pack_is_class_contiguous(classes, hasher, device):
    buffers, _ = packed(classes, hasher, device)
    info = buffers.info.numpy()
    start = 0
    expected = {
        ParticleClass.BOUNDARY: (ParticleType.BOUNDARY, 0),
        ParticleClass.GATE: (ParticleType.GATE, 0),
        ParticleClass.OBSTACLE: (ParticleType.BOUNDARY, 1),
        ParticleClass.FLUID: (ParticleType.FLUID, 0),
    }
    for cls, parts in classes:
        block = info[start : start + len(parts)]
        assert np.all(block[:, 0] == int(expected[cls][0]))
        assert np.all(block[:, 1] == expected[cls][1])
        start += len(parts)
    assert start == len(info)


def test_pack_velocity_and_mass(classes, hasher, device):
    buffers, _ = packed(classes, hasher, device)
    vel = buffers.vel.numpy()
    assert np.all(vel[:, :3] == 0.0)
    np.testing.assert_allclose(vel[:, 3], 1000.0)

    masses = np.concatenate([parts.masses for _, parts in classes])
    np.testing.assert_allclose(buffers.pos.numpy()[:, 3], masses, rtol=1e-6)


def test_pack_positions_round_trip_through_the_hash(classes, hasher, device):
    buffers, _ = packed(classes, hasher, device)
    hashes = buffers.hash.numpy()
    assert hashes.max() < hasher.nr_cells

    world = hasher.world_positions(buffers.pos.numpy(), hashes)
    expected = np.concatenate([parts.positions for _, parts in classes])
    np.testing.assert_allclose(world, expected, atol=1e-5)

    local = np.abs(buffers.pos.numpy()[:, :3])
    assert np.all(local <= 0.5 * hasher.cell_size + 1e-5)


def test_pack_reports_counts_and_masses(classes, hasher, device, capsys):
    packed(classes, hasher, device)
    out = capsys.readouterr().out
    for cls, parts in classes:
        assert f"{cls.label} parts: {len(parts)}" in out
        assert f"{cls.label} part mass:" in out


def test_pack_rejects_missized_buffers(classes, hasher, device):
    buffers = allocate_buffers(classes.total + 1, device=device)
    with pytest.raises(ValueError, match="generate_particles"):
        pack_buffers(classes, buffers, hasher, 1000.0)
    # Nothing was written.
    assert not buffers.info.numpy().any()


def test_pack_needs_exclusive_access(classes, hasher, device):
    buffers = allocate_buffers(classes.total, device=device)
    with buffers.exclusive_write():
        with pytest.raises(RuntimeError):
            pack_buffers(classes, buffers, hasher, 1000.0)
    assert pack_buffers(classes, buffers, hasher, 1000.0) == classes.total


def test_pack_handles_empty_classes(hasher, device, capsys):
    fluid = Particles(np.array([[0.1, 0.1, 0.1], [0.2, 0.1, 0.1]]), np.full(2, 0.5))
    boundary = Particles(np.array([[0.0, 0.0, 0.0]]), np.full(1, 0.25))
    classes = ParticleClasses(boundary=boundary, gate=Particles.empty(), obstacle=Particles.empty(), fluid=fluid)
    buffers, written = packed(classes, hasher, device)
    assert written == 3
    info = buffers.info.numpy()
    np.testing.assert_array_equal(info[:, 0], [int(ParticleType.BOUNDARY), 0, 0])
    np.testing.assert_array_equal(info[:, 2], [0, 1, 2])
    assert "Gate parts: 0" in capsys.readouterr().out


def test_buffer_accessors(device):
    buffers = allocate_buffers(4, device=device)
    assert buffers.get(BufferKind.POS) is buffers.pos
    assert buffers.get(BufferKind.HASH) is buffers.hash
    assert buffers.get(BufferKind.VEL) is buffers.vel
    assert buffers.get(BufferKind.INFO) is buffers.info
    assert buffers.count == 4


def test_buffer_lengths_must_agree(device):
    small = allocate_buffers(2, device=device)
    large = allocate_buffers(3, device=device)
    with pytest.raises(ValueError):
        BufferList(pos=small.pos, hash=small.hash, vel=large.vel, info=small.info)


def test_hasher_grid_covers_the_domain(coarse_config):
    hasher = CellHasher.for_config(coarse_config)
    assert np.all(hasher.cell_size >= coarse_config.particles.influence_radius)
    np.testing.assert_allclose(hasher.grid_size * hasher.cell_size, coarse_config.domain.size)


def test_hasher_keeps_local_offsets_far_from_the_origin(device):
    hasher = CellHasher(origin=(1000.0, 1000.0, 1000.0), size=(1.0, 1.0, 1.0), cell_radius=0.1)
    points = np.array(
        [
            [1000.0123456789, 1000.5432109876, 1000.9999999],
            [1000.25, 1000.0000001, 1000.3333333333],
        ]
    )
    particles = Particles(positions=points, masses=np.ones(len(points)))
    buffers = allocate_buffers(len(points), device=device)
    hasher(particles, buffers.pos, buffers.hash, 0)

    pos = buffers.pos.numpy()
    hashes = buffers.hash.numpy().astype(np.int64)
    nx, ny, _ = hasher.grid_size
    cells = np.stack([hashes % nx, (hashes // nx) % ny, hashes // (nx * ny)], axis=1)
    centers = hasher._origin + (cells + 0.5) * hasher.cell_size
    np.testing.assert_allclose(pos[:, :3], points - centers, rtol=0.0, atol=1e-7)
    np.testing.assert_allclose(hasher.world_positions(pos, hashes), points, rtol=0.0, atol=1e-6)

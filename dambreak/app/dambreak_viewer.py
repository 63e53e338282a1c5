"""Entry point that builds the dam break scenario and drives the gate."""

from __future__ import annotations

import argparse
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import numpy as np
import warp as wp

try:  # pragma: no cover - heavy UI dependency, optional for tests
    import pyvista as pv
except Exception:  # pragma: no cover - viewer is optional at test time
    pv = None

from dambreak.sim.grid import CellHasher
from dambreak.sim.particles import ParticleClass
from dambreak.sim.problem import ScenarioState, build_scenario_state
from dambreak.utils.config import ScenarioConfig, load_config

CLASS_COLORS = {
    ParticleClass.BOUNDARY: "lightgray",
    ParticleClass.GATE: "orange",
    ParticleClass.OBSTACLE: "firebrick",
    ParticleClass.FLUID: "deepskyblue",
}


@dataclass
class GateRuntime:
    state: ScenarioState
    config: ScenarioConfig
    max_frames: Optional[int] = None

    plotter: Optional["pv.Plotter"] = field(default=None, init=False)
    gate_cloud: Optional["pv.PolyData"] = field(default=None, init=False)

    t: float = field(default=0.0, init=False)
    _frame_count: int = field(default=0, init=False)

    def __post_init__(self) -> None:
        problem = self.state.problem
        hasher = problem.hasher if isinstance(problem.hasher, CellHasher) else CellHasher.for_config(self.config)
        buffers = self.state.buffers
        self.world = hasher.world_positions(buffers.pos.numpy(), buffers.hash.numpy())
        counts = problem.classes.counts()
        offsets = np.cumsum([0] + [counts[cls] for cls in ParticleClass])
        self.slices = {cls: slice(int(offsets[cls]), int(offsets[cls + 1])) for cls in ParticleClass}

    @property
    def substeps(self) -> int:
        sim = self.config.simulation
        return max(1, int(round(sim.timer_tick / sim.dt)))

    def advance(self) -> None:
        """Advance one output tick, calling the gate kinematics every step."""

        dt = self.config.simulation.dt
        problem = self.state.problem
        for _ in range(self.substeps):
            problem.boundary_kinematics(self.t, dt, 0)
            self.t += dt
        self._frame_count += 1

    def gate_positions(self) -> np.ndarray:
        disp = self.state.problem.mb_states[0].disp
        return self.world[self.slices[ParticleClass.GATE]] + disp

    def report(self) -> None:
        gate = self.state.problem.mb_states[0]
        print(f"t={self.t:.4f} gate vel={gate.vel[gate.axis]:.4f} disp={gate.disp[gate.axis]:.4f}")

    def run_headless(self) -> None:
        frames = self.max_frames or int(self.config.simulation.tend / self.config.simulation.timer_tick)
        while self._frame_count < frames:
            self.advance()
            if self._frame_count % 50 == 0:
                self.report()
        self.report()

    def run(self) -> None:
        """Launch the PyVista-based viewer; close the window to stop."""
        if pv is None:
            raise RuntimeError(
                "PyVista is not available. Install it with 'pip install pyvista'."
            )

        self.plotter = pv.Plotter(window_size=(1280, 720))
        for cls, color in CLASS_COLORS.items():
            points = self.world[self.slices[cls]]
            if len(points) == 0:
                continue
            cloud = pv.PolyData(points)
            if cls is ParticleClass.GATE:
                self.gate_cloud = cloud
            self.plotter.add_mesh(cloud, color=color, point_size=4, render_points_as_spheres=True)

        self.plotter.camera_position = "iso"
        self.plotter.show(interactive_update=True, auto_close=False)

        print("Starting simulation loop...")
        target_dt = 1.0 / 60.0

        try:
            while True:
                frame_start = time.perf_counter()
                self.advance()

                if self.gate_cloud is not None:
                    self.gate_cloud.points = self.gate_positions()
                self.plotter.update()

                if self._frame_count % 60 == 0:
                    self.report()

                if self.max_frames and self._frame_count >= self.max_frames:
                    break

                elapsed = time.perf_counter() - frame_start
                sleep_time = target_dt - elapsed
                if sleep_time > 0:
                    time.sleep(sleep_time)

                if not self.plotter.window_size:
                    break

        except KeyboardInterrupt:
            print("\nInterrupted by user")

        self.plotter.close()
        print(f"Simulation ended after {self._frame_count} frames")


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the dam break with gate scenario")
    parser.add_argument("--config", default="configs/default.yaml", help="Path to YAML config")
    parser.add_argument("--device", default="cuda", help="Target device (cuda|cpu)")
    parser.add_argument("--frames", type=int, default=None, help="Optional frame limit")
    parser.add_argument("--no-view", action="store_true", help="Run without the PyVista window")
    return parser.parse_args(argv)


def build_state(cfg: ScenarioConfig, device: str) -> ScenarioState:
    if not wp.is_device_available(device):
        raise RuntimeError(f"Requested device '{device}' is not available.")

    return build_scenario_state(cfg, device=device)


def main(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    cfg = load_config(Path(args.config))
    state = build_state(cfg, args.device)
    print(f"{cfg.name}: {state.buffers.count} particles on {args.device}")
    p = cfg.particles
    print(
        f"deltap={p.deltap} rho0={p.rest_density} gamma={p.gamma} c0={p.sound_speed} "
        f"B={p.bcoeff:.1f} gravity={tuple(cfg.simulation.gravity)}"
    )
    runtime = GateRuntime(state, cfg, max_frames=args.frames)
    if args.no_view:
        runtime.run_headless()
    else:
        runtime.run()


if __name__ == "__main__":
    main()

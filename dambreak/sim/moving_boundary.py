"""Prescribed-motion boundaries and their per-step kinematics."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from dambreak.sim.particles import ParticleType


@dataclass
class MovingBoundaryState:
    """Kinematic state of one moving boundary, mutated once per time step.

    ``vel`` is the current velocity and ``disp`` the displacement accumulated
    since the start of the simulation. The boundary moves along ``axis`` while
    ``t_start <= t < t_end``.
    """

    origin: np.ndarray
    ptype: ParticleType
    t_start: float
    t_end: float
    rate: float
    axis: int = 2
    vel: np.ndarray = field(default_factory=lambda: np.zeros(3))
    disp: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def is_active(self, t: float) -> bool:
        return self.t_start <= t < self.t_end


def advance_ramp(state: MovingBoundaryState, t: float, dt: float) -> MovingBoundaryState:
    """Linear velocity ramp ``rate * (t - t_start)`` inside the active window.

    The displacement is integrated with the caller's ``dt`` and kept once the
    window closes. ``t`` is used as given: an earlier ``t`` than the previous
    call neither resets nor rolls back the displacement.
    """

    if state.is_active(t):
        state.vel = np.zeros(3)
        state.vel[state.axis] = state.rate * (t - state.t_start)
        state.disp = state.disp + state.vel * dt
    else:
        state.vel = np.zeros(3)
    return state

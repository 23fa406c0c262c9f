"""Leg Stepper - Tri-quartic Bezier tip trajectory for one leg

Each walking leg follows a closed step cycle built from three quartic Bezier
curves: a primary and a secondary swing curve (tip in the air) and a stance
curve (tip on the ground). Control nodes are placed so that position, velocity
and acceleration are continuous at every curve boundary.

Step cycle (side view):

                   swing_1 | swing_2
                      .-'''●'''-.          ● apex at default tip position
                   .-'           '-.
        swing    ●'                 '●   stance origin
        origin    '-._    stance   _.-'
                      '--.......--'        (dips by step depth)

The stepper holds no reference to the walk controller. Gait timing and
trajectory settings are handed in on every update.
"""

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, List, Optional

import numpy as np

from bezier_curves import quartic_bezier
from gait_timing import GaitTiming, StepState, calculate_delta_t

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Settings and trace records
# -----------------------------------------------------------------------------

class StanceScaling(Enum):
    """When the stance stride is scaled by actual / nominal stance length."""
    FIRST_STEP = auto()   # Only the shortened startup stance
    ALWAYS = auto()       # Startup stance, and the final stance while stopping


@dataclass(frozen=True)
class TrajectorySettings:
    """Per-tick trajectory parameters shared by every leg (read-only).

    Attributes:
        swing_height: Swing apex height above the swing origin (mm)
        stance_depth: Depth of the stance dip below the stance origin (mm)
        stance_scaling: Stance stride scaling policy
        stopping: True while the walk controller is bringing the legs to rest
    """
    swing_height: float
    stance_depth: float
    stance_scaling: StanceScaling = StanceScaling.FIRST_STEP
    stopping: bool = False


@dataclass(frozen=True)
class TrajectorySample:
    """One trajectory update of one leg, handed to an installed trace hook."""
    leg_id: int
    step_state: StepState
    iteration: int
    parameter: float
    origin: np.ndarray
    position: np.ndarray
    target: np.ndarray


TraceHook = Callable[[TrajectorySample], None]


# -----------------------------------------------------------------------------
# Leg Stepper
# -----------------------------------------------------------------------------

class LegStepper:
    """Step cycle state and tip trajectory of a single leg.

    Attributes:
        leg_id: Leg index the stepper drives
        phase: Current phase within the step cycle
        phase_offset: Phase this leg starts its cycle at
        step_state: Current trajectory regime
        stride_vector: Planar tip displacement over one stance (mm)
        default_tip_position: Resting tip position the cycle is centred on
        current_tip_position: Tip position produced by the last update
        tip_velocity: Tip velocity over the last update (mm/s)
        at_correct_phase: Leg is phased correctly for the current walk state
        completed_first_step: Leg has finished its startup step
    """

    def __init__(self, leg_id: int, identity_tip_position: np.ndarray, phase_offset: int = 0):
        self.leg_id = leg_id
        self.phase_offset = phase_offset
        self.trace_hook: Optional[TraceHook] = None
        self.reset(identity_tip_position)

    def reset(self, identity_tip_position: np.ndarray) -> None:
        """Return the stepper to rest at the given tip position."""
        tip = np.array(identity_tip_position, dtype=float)
        self.phase = 0
        self.step_state = StepState.STANCE
        self.stride_vector = np.zeros(2)
        self.default_tip_position = tip.copy()
        self.current_tip_position = tip.copy()
        self.tip_velocity = np.zeros(3)
        self.swing_origin_tip_position = tip.copy()
        self.stance_origin_tip_position = tip.copy()
        self.swing_1_nodes: List[np.ndarray] = [tip.copy() for _ in range(5)]
        self.swing_2_nodes: List[np.ndarray] = [tip.copy() for _ in range(5)]
        self.stance_nodes: List[np.ndarray] = [tip.copy() for _ in range(5)]
        self.swing_delta_t = 0.0
        self.stance_delta_t = 0.0
        self.swing_progress = -1.0
        self.stance_progress = -1.0
        self.swing_height = 0.0
        self.at_correct_phase = False
        self.completed_first_step = False
        self._swung = False

    def park(self) -> None:
        """Hold the leg at phase 0 in stance, ready for the next startup."""
        self.phase = 0
        self.step_state = StepState.STANCE
        self.at_correct_phase = False
        self.completed_first_step = False
        self._swung = False
        self.tip_velocity = np.zeros(3)
        self.swing_progress = -1.0
        self.stance_progress = -1.0

    def shift_default_tip_position(self, new_default: np.ndarray) -> None:
        """Move the default tip position, keeping the tip's offset from it."""
        new_default = np.array(new_default, dtype=float)
        offset = self.default_tip_position - self.current_tip_position
        self.default_tip_position = new_default
        self.current_tip_position = new_default - offset

    def _stride_3d(self) -> np.ndarray:
        return np.array([self.stride_vector[0], self.stride_vector[1], 0.0])

    # -------------------------------------------------------------------------
    # Control nodes
    # -------------------------------------------------------------------------

    def generate_swing_control_nodes(self, swing_height: float) -> None:
        """Place the primary and secondary swing nodes around the current stance nodes."""
        st = self.stance_nodes
        scaler = self.stance_delta_t / self.swing_delta_t if self.swing_delta_t > 0.0 else 0.0
        n = [np.zeros(3) for _ in range(5)]
        m = [np.zeros(3) for _ in range(5)]

        # Horizontal plane
        n[0] = self.swing_origin_tip_position.copy()
        n[1] = n[0] + scaler * (st[4] - st[3])
        n[2] = n[1] + (n[1] - n[0])
        n[4] = self.default_tip_position.copy()
        n[3] = (n[2] + n[4]) / 2.0

        m[0] = n[4].copy()
        m[1] = m[0] + (m[0] - n[3])
        m[3] = st[0] + scaler * (st[0] - st[1])
        m[2] = m[3] + (m[3] - st[0])
        m[4] = st[0].copy()

        # Vertical plane
        n[0][2] = self.swing_origin_tip_position[2]
        n[1][2] = n[0][2] + scaler * (st[4][2] - st[3][2])
        n[4][2] = n[0][2] + swing_height
        n[2][2] = n[0][2] + 2.0 * scaler * (st[4][2] - st[3][2])
        n[3][2] = n[4][2]

        m[0][2] = n[4][2]
        m[1][2] = m[0][2]
        m[2][2] = st[0][2] + 2.0 * scaler * (st[0][2] - st[1][2])
        m[3][2] = st[0][2] + scaler * (st[0][2] - st[1][2])
        m[4][2] = st[0][2]

        self.swing_1_nodes = n
        self.swing_2_nodes = m

    def generate_stance_control_nodes(self, stride: np.ndarray, stance_depth: float) -> None:
        """Evenly spaced stance nodes from the stance origin towards origin - stride."""
        origin = self.stance_origin_tip_position
        st = [np.zeros(3) for _ in range(5)]

        # Horizontal plane (constant velocity)
        st[0] = origin.copy()
        st[4] = origin - stride
        st[1] = st[4] + 0.75 * (st[0] - st[4])
        st[2] = st[4] + 0.5 * (st[0] - st[4])
        st[3] = st[4] + 0.25 * (st[0] - st[4])

        # Vertical plane
        st[0][2] = origin[2]
        st[4][2] = self.default_tip_position[2]
        st[2][2] = st[0][2] - stance_depth
        st[1][2] = (st[0][2] + st[2][2]) / 2.0
        st[3][2] = (st[4][2] + st[2][2]) / 2.0

        self.stance_nodes = st

    # -------------------------------------------------------------------------
    # Trajectory update
    # -------------------------------------------------------------------------

    def _swing_point(self, s: float) -> np.ndarray:
        # s in [0, 2]: first unit on the primary curve, second on the secondary
        if s <= 1.0:
            return quartic_bezier(self.swing_1_nodes, s)
        return quartic_bezier(self.swing_2_nodes, s - 1.0)

    def _stance_start(self, timing: GaitTiming) -> int:
        # Startup stance runs from the leg's own offset, every later one from swing end
        if not self.completed_first_step and not self._swung:
            return self.phase_offset
        return timing.swing_end

    def _stance_ratio(self, timing: GaitTiming, stance_length: int,
                      settings: TrajectorySettings) -> float:
        nominal = timing.stance_length
        if not self.completed_first_step:
            return stance_length / nominal
        if settings.stance_scaling == StanceScaling.ALWAYS and settings.stopping:
            # Stopping strides shrink the way the startup stance of this leg did
            startup = (timing.swing_start - self.phase_offset) % timing.phase_length
            if 0 < startup < nominal:
                return startup / nominal
        return 1.0

    def update_position(self, timing: GaitTiming, settings: TrajectorySettings) -> None:
        """Advance the tip along the step cycle by one tick."""
        self.swing_height = settings.swing_height
        if self.step_state == StepState.SWING:
            delta, iteration, parameter, origin, target = self._update_swing(timing, settings)
        elif self.step_state == StepState.STANCE:
            delta, iteration, parameter, origin, target = self._update_stance(timing, settings)
        else:
            self.tip_velocity = np.zeros(3)
            self.swing_progress = -1.0
            self.stance_progress = -1.0
            return

        self.current_tip_position = self.current_tip_position + delta
        self.tip_velocity = delta / timing.tick_period

        if self.trace_hook is not None:
            self.trace_hook(TrajectorySample(
                leg_id=self.leg_id,
                step_state=self.step_state,
                iteration=iteration,
                parameter=parameter,
                origin=origin.copy(),
                position=self.current_tip_position.copy(),
                target=target.copy(),
            ))

    def _update_swing(self, timing: GaitTiming, settings: TrajectorySettings):
        swing_length = timing.swing_length
        self.swing_delta_t = calculate_delta_t(timing, StepState.SWING, swing_length)
        iteration = self.phase - timing.swing_start + 1
        self._swung = True

        if iteration == 1:
            self.swing_origin_tip_position = self.current_tip_position.copy()

        s = min(2.0, iteration * self.swing_delta_t)
        if s > 1.0:
            # Next stance is laid out now so the secondary curve can land on it
            stride = self._stride_3d()
            self.stance_delta_t = calculate_delta_t(timing, StepState.STANCE, timing.stance_length)
            self.stance_origin_tip_position = self.default_tip_position + 0.5 * stride
            self.generate_stance_control_nodes(stride, settings.stance_depth)
        self.generate_swing_control_nodes(settings.swing_height)

        delta = self._swing_point(s) - self._swing_point(max(0.0, s - self.swing_delta_t))
        self.swing_progress = iteration / swing_length
        self.stance_progress = -1.0
        return delta, iteration, s, self.swing_origin_tip_position, self.swing_2_nodes[4]

    def _update_stance(self, timing: GaitTiming, settings: TrajectorySettings):
        pl = timing.phase_length
        stance_start = self._stance_start(timing)
        stance_length = (timing.swing_start - stance_start) % pl
        self.stance_delta_t = calculate_delta_t(timing, StepState.STANCE, stance_length)
        iteration = (self.phase - stance_start + pl) % pl + 1

        if iteration == 1:
            self.stance_origin_tip_position = self.current_tip_position.copy()

        stride = self._stride_3d() * self._stance_ratio(timing, stance_length, settings)
        self.generate_stance_control_nodes(stride, settings.stance_depth)

        t = min(1.0, iteration * self.stance_delta_t)
        delta = (quartic_bezier(self.stance_nodes, t)
                 - quartic_bezier(self.stance_nodes, max(0.0, t - self.stance_delta_t)))
        self.stance_progress = iteration / stance_length if stance_length else 1.0
        self.swing_progress = -1.0
        return delta, iteration, t, self.stance_origin_tip_position, self.stance_nodes[4]

    def __repr__(self) -> str:
        return (f"LegStepper({self.leg_id}, phase={self.phase}, {self.step_state.name}, "
                f"tip=({self.current_tip_position[0]:.1f}, {self.current_tip_position[1]:.1f}, "
                f"{self.current_tip_position[2]:.1f}))")

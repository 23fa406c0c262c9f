#----------------------------------------------------------------------------------------------------------------------
#    walk_controller.py - Body velocity shaping and leg coordination for periodic walking gaits
#----------------------------------------------------------------------------------------------------------------------
"""
Walk Controller

Architecture:
    - WalkController: one update_walk() call per control tick
        ├── Shapes commanded velocity (acceleration and curvature rate limits)
        ├── Robot state machine: STOPPED → STARTING → MOVING → STOPPING → STOPPED
        ├── Leg coordination: phase advance, startup/stopping synchronisation
        └── LegStepper (×N): tri-quartic Bezier tip trajectory per leg
    - next_walk_state(), next_step_state(): pure transition functions

Coordinate System (Body Frame):
    - X: forward, Y: left, Z: up (mm)
    - Positive angular velocity turns the body counter-clockwise seen from above

Usage:
    model = build_hexapod_model()
    walker = WalkController(model, WalkConfig(), gait_preset('tripod'))
    while running:
        walker.update_walk(np.array([0.5, 0.0]), 0.0)
        send_tips([leg.local_tip_position for leg in model])
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterable, List, Optional, Sequence

import numpy as np

from gait_timing import GaitTiming, StepState, compute_gait_timing
from leg_stepper import LegStepper, TraceHook, TrajectorySettings
from robot_model import LegState, RobotModel
from walk_config import GaitConfig, WalkConfig
from workspace_geometry import WorkspaceGeometry, compute_workspace

logger = logging.getLogger(__name__)

# Allowed overshoot of normalised inputs before they are rejected
INPUT_TOLERANCE = 0.01


class WalkState(Enum):
    """Robot level walk state machine."""
    STOPPED = auto()
    STARTING = auto()  # Legs moving into their phase offsets
    MOVING = auto()
    STOPPING = auto()  # Legs finishing their last step


class SpeedOutOfRange(ValueError):
    """Normalised velocity or curvature input outside [-1, 1]."""


@dataclass
class Pose:
    """Body pose estimate integrated from commanded velocities (mm, rad)."""
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    yaw: float = 0.0


#----------------------------------------------------------------------------------------------------------------------
# State transitions
#----------------------------------------------------------------------------------------------------------------------

def next_walk_state(state: WalkState,
                    commanded_speed: float,
                    legs_in_correct_phase: int,
                    legs_completed_first_step: int,
                    num_legs: int) -> WalkState:
    """Robot state after this tick's velocity command."""
    if state == WalkState.STOPPED and commanded_speed != 0.0:
        return WalkState.STARTING
    if (state == WalkState.STARTING
            and legs_in_correct_phase == num_legs
            and legs_completed_first_step == num_legs):
        return WalkState.MOVING
    if state == WalkState.MOVING and commanded_speed == 0.0:
        return WalkState.STOPPING
    if state == WalkState.STOPPING and legs_in_correct_phase == num_legs:
        return WalkState.STOPPED
    return state


def next_step_state(step_state: StepState, phase: int, timing: GaitTiming) -> StepState:
    """Leg trajectory regime for the given phase."""
    if step_state == StepState.FORCE_STANCE:
        return StepState.STANCE
    if step_state == StepState.FORCE_STOP:
        return StepState.FORCE_STOP
    if timing.in_swing_window(phase):
        return StepState.SWING
    return StepState.STANCE


def perp(v: np.ndarray) -> np.ndarray:
    """Planar vector rotated +90 degrees."""
    return np.array([-v[1], v[0]])


#----------------------------------------------------------------------------------------------------------------------
# Walk Controller
#----------------------------------------------------------------------------------------------------------------------

class WalkController:
    """Turns normalised body velocity commands into tip positions for every walking leg."""

    def __init__(self, model: RobotModel,
                 walk_config: Optional[WalkConfig] = None,
                 gait_config: Optional[GaitConfig] = None):
        self.model = model
        self.walk_config = walk_config or WalkConfig()
        self.gait_config = gait_config or GaitConfig()
        num_legs = len(model)

        if not 0 <= self.walk_config.reference_leg < num_legs:
            raise ValueError(f"Reference leg {self.walk_config.reference_leg} outside 0..{num_legs - 1}")

        self.geometry: WorkspaceGeometry = compute_workspace(
            model.legs,
            step_clearance=self.walk_config.step_clearance,
            body_clearance=self.walk_config.body_clearance,
            leg_span_scale=self.walk_config.leg_span_scale,
            step_curvature_allowance=self.walk_config.step_curvature_allowance,
        )

        self.leg_steppers: List[LegStepper] = [
            LegStepper(i, self.geometry.identity_tip_positions[i]) for i in range(num_legs)
        ]
        self.timing: GaitTiming = self._build_timing(self.gait_config)
        self._apply_phase_offsets()

        self.walk_state = WalkState.STOPPED
        self.local_centre_velocity = np.zeros(2)
        self.angular_velocity = 0.0
        self._legs_in_correct_phase = 0
        self._legs_completed_first_step = 0
        self.odometry = Pose(z=self.geometry.body_height)

        for leg, stepper in zip(model, self.leg_steppers):
            leg.apply_local_ik(stepper.current_tip_position)

    # ------------------------------------------------------------------
    # Gait parameters
    # ------------------------------------------------------------------

    def _build_timing(self, gait_config: GaitConfig) -> GaitTiming:
        if len(gait_config.offset_multiplier) != len(self.model):
            raise ValueError(f"Gait '{gait_config.gait_type}' has {len(gait_config.offset_multiplier)} "
                             f"offset multipliers, robot has {len(self.model)} legs")
        timing = compute_gait_timing(
            gait_config.stance_phase,
            gait_config.swing_phase,
            gait_config.step_frequency,
            self.walk_config.time_delta,
            phase_offset=gait_config.phase_offset,
            offset_multipliers=gait_config.offset_multiplier,
        )
        logger.info("Gait %s: phase length %d, swing %d..%d, step frequency %.3f Hz",
                    gait_config.gait_type, timing.phase_length, timing.swing_start,
                    timing.swing_end, timing.step_frequency)
        return timing

    def _apply_phase_offsets(self) -> None:
        for stepper, offset in zip(self.leg_steppers, self.timing.phase_offsets):
            stepper.phase_offset = offset

    def set_gait_params(self, gait_config: GaitConfig) -> None:
        """Replace the gait. Only allowed while the robot is stopped."""
        if self.walk_state != WalkState.STOPPED:
            raise RuntimeError(f"Cannot change gait while {self.walk_state.name}")
        timing = self._build_timing(gait_config)
        self.gait_config = gait_config
        self.timing = timing
        self._apply_phase_offsets()

    @property
    def max_acceleration(self) -> float:
        """Configured acceleration limit, or the one that keeps the last leg to
        swing within its footprint before its first swing."""
        if self.walk_config.max_acceleration is not None:
            return self.walk_config.max_acceleration
        t = (self.timing.phase_length - self.timing.swing_length * 0.5) * self.timing.tick_period
        return 2.0 * self.geometry.workspace_radius / (t * t)

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def update_walk(self, linear_velocity_input: Sequence[float], curvature_input: float,
                    delta_z: Optional[Sequence[float]] = None) -> None:
        """Advance the walk by one tick.

        Args:
            linear_velocity_input: Normalised planar body velocity, magnitude <= 1
            curvature_input: Normalised turning curvature in [-1, 1]
            delta_z: Optional per-leg vertical tip correction (mm), subtracted from the tip height
        """
        linear_input = np.asarray(linear_velocity_input, dtype=float)
        if np.linalg.norm(linear_input) > 1.0 + INPUT_TOLERANCE:
            raise SpeedOutOfRange(f"Linear velocity input {linear_input.tolist()} exceeds 1")
        if abs(curvature_input) > 1.0 + INPUT_TOLERANCE:
            raise SpeedOutOfRange(f"Curvature input {curvature_input} exceeds 1")

        timing = self.timing
        dt = timing.tick_period
        on_ground_ratio = timing.on_ground_ratio

        if self.walk_state != WalkState.STOPPING:
            target_velocity = (linear_input * 2.0 * self.geometry.workspace_radius
                               * timing.step_frequency / on_ground_ratio)
        else:
            target_velocity = np.zeros(2)
        normal_speed = float(np.linalg.norm(target_velocity))

        # Speed refers to the outermost leg so turning on the spot keeps a meaningful speed
        target_angular = curvature_input * normal_speed / self.geometry.stance_radius
        dif = target_angular - self.angular_velocity
        if abs(dif) > 0.0:
            self.angular_velocity += dif * min(1.0, self.walk_config.max_curvature_speed * dt / abs(dif))

        central_velocity = target_velocity * (1.0 - abs(curvature_input))
        central_acceleration = central_velocity - self.local_centre_velocity
        accel_norm = float(np.linalg.norm(central_acceleration))
        if accel_norm > 0.0:
            self.local_centre_velocity = (self.local_centre_velocity
                                          + central_acceleration * min(1.0, self.max_acceleration * dt / accel_norm))

        self._transition(normal_speed)

        for leg, stepper in zip(self.model, self.leg_steppers):
            tip_xy = leg.local_tip_position[:2]
            stepper.stride_vector = (on_ground_ratio
                                     * (self.local_centre_velocity + self.angular_velocity * perp(tip_xy))
                                     / timing.step_frequency)
            self._coordinate_leg(stepper, timing)

        for stepper in self.leg_steppers:
            stepper.step_state = next_step_state(stepper.step_state, stepper.phase, timing)

        settings = TrajectorySettings(
            swing_height=self.walk_config.step_clearance * self.geometry.max_body_height,
            stance_depth=self.walk_config.step_depth * self.geometry.max_body_height,
            stance_scaling=self.walk_config.stance_scaling,
            stopping=self.walk_state == WalkState.STOPPING,
        )
        for i, (leg, stepper) in enumerate(zip(self.model, self.leg_steppers)):
            if leg.state != LegState.WALKING:
                continue
            if self.walk_state != WalkState.STOPPED:
                stepper.update_position(timing, settings)
            tip = stepper.current_tip_position.copy()
            if delta_z is not None:
                tip[2] -= delta_z[i]
            leg.apply_local_ik(tip)

        self._update_odometry(dt)

    def _transition(self, normal_speed: float) -> None:
        num_legs = len(self.leg_steppers)
        new_state = next_walk_state(self.walk_state, normal_speed, self._legs_in_correct_phase,
                                    self._legs_completed_first_step, num_legs)
        if new_state == self.walk_state:
            return

        if new_state == WalkState.STARTING:
            for stepper in self.leg_steppers:
                stepper.phase = stepper.phase_offset - 1
        elif new_state == WalkState.MOVING:
            self._legs_in_correct_phase = 0
            self._legs_completed_first_step = 0
        elif new_state == WalkState.STOPPED:
            self._legs_in_correct_phase = 0

        logger.info("Walk state %s -> %s", self.walk_state.name, new_state.name)
        self.walk_state = new_state

    def _coordinate_leg(self, stepper: LegStepper, timing: GaitTiming) -> None:
        pl = timing.phase_length
        num_legs = len(self.leg_steppers)

        if self.walk_state == WalkState.STARTING:
            stepper.phase = (stepper.phase + 1) % pl

            if self._legs_in_correct_phase == num_legs:
                if timing.is_swing_end(stepper.phase) and not stepper.completed_first_step:
                    stepper.completed_first_step = True
                    self._legs_completed_first_step += 1

            # A leg offset into mid-swing holds its stance until the swing window closes
            if not stepper.at_correct_phase:
                if timing.swing_start < stepper.phase_offset < timing.swing_end:
                    if timing.is_swing_end(stepper.phase):
                        stepper.at_correct_phase = True
                        self._legs_in_correct_phase += 1
                    else:
                        stepper.step_state = StepState.FORCE_STANCE
                else:
                    stepper.at_correct_phase = True
                    self._legs_in_correct_phase += 1

        elif self.walk_state == WalkState.STOPPING:
            is_reference = stepper.leg_id == self.walk_config.reference_leg
            if not stepper.at_correct_phase:
                stepper.phase = (stepper.phase + 1) % pl
                # Reference leg finishes once it is back at phase 0 after its last step
                if is_reference and stepper.step_state == StepState.FORCE_STOP and stepper.phase == 0:
                    stepper.at_correct_phase = True
                    self._legs_in_correct_phase += 1
                    stepper.step_state = StepState.STANCE

            # A leg stops at its next swing end once its stride has decayed to zero
            if not np.any(stepper.stride_vector) and timing.is_swing_end(stepper.phase):
                stepper.step_state = StepState.FORCE_STOP
                if not is_reference and not stepper.at_correct_phase:
                    stepper.at_correct_phase = True
                    self._legs_in_correct_phase += 1

        elif self.walk_state == WalkState.MOVING:
            stepper.phase = (stepper.phase + 1) % pl
            stepper.at_correct_phase = False

        elif self.walk_state == WalkState.STOPPED:
            stepper.park()

    def _update_odometry(self, dt: float) -> None:
        c, s = math.cos(self.odometry.yaw), math.sin(self.odometry.yaw)
        vx, vy = self.local_centre_velocity * dt
        self.odometry.x += c * vx - s * vy
        self.odometry.y += s * vx + c * vy
        self.odometry.yaw += self.angular_velocity * dt
        self.odometry.z = self.geometry.body_height

    # ------------------------------------------------------------------
    # Posing, manual legs, tracing, reset
    # ------------------------------------------------------------------

    def shift_default_tip_position(self, leg_id: int, new_default: Sequence[float]) -> None:
        """Move the resting tip position a leg's step cycle is centred on.

        Posing code calls this when it changes the stance. The tip keeps its
        offset from the default, so a walking leg carries on mid-step.
        """
        leg = self.model[leg_id]
        stepper = self.leg_steppers[leg_id]
        stepper.shift_default_tip_position(np.asarray(new_default, dtype=float))
        leg.apply_local_ik(stepper.current_tip_position)

    def update_manual(self, leg_id: int, tip_velocity: Sequence[float]) -> None:
        """Move a MANUAL leg's tip by tip_velocity (mm/s, body frame) for one tick."""
        leg = self.model[leg_id]
        if leg.state != LegState.MANUAL:
            raise ValueError(f"Leg {leg.name} is not in manual mode")
        stepper = self.leg_steppers[leg_id]
        velocity = np.asarray(tip_velocity, dtype=float)
        stepper.current_tip_position = stepper.current_tip_position + velocity * self.timing.tick_period
        stepper.tip_velocity = velocity
        leg.apply_local_ik(stepper.current_tip_position)

    def set_trace_hook(self, hook: Optional[TraceHook], leg_ids: Optional[Iterable[int]] = None) -> None:
        """Install (or with None remove) a trajectory trace hook on the given legs (default all)."""
        targets = set(range(len(self.leg_steppers)) if leg_ids is None else leg_ids)
        for stepper in self.leg_steppers:
            if stepper.leg_id in targets:
                stepper.trace_hook = hook

    def reset(self) -> None:
        """Stop immediately and return every leg to its identity tip position."""
        self.walk_state = WalkState.STOPPED
        self.local_centre_velocity = np.zeros(2)
        self.angular_velocity = 0.0
        self._legs_in_correct_phase = 0
        self._legs_completed_first_step = 0
        self.odometry = Pose(z=self.geometry.body_height)
        for leg, stepper in zip(self.model, self.leg_steppers):
            stepper.reset(self.geometry.identity_tip_positions[leg.index])
            leg.apply_local_ik(stepper.current_tip_position)
        logger.info("Walk controller reset")

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def phase_length(self) -> int:
        return self.timing.phase_length

    @property
    def swing_start(self) -> int:
        return self.timing.swing_start

    @property
    def swing_end(self) -> int:
        return self.timing.swing_end

    @property
    def stance_start(self) -> int:
        return self.timing.stance_start

    @property
    def stance_end(self) -> int:
        return self.timing.stance_end

    @property
    def step_frequency(self) -> float:
        return self.timing.step_frequency

    @property
    def workspace_radius(self) -> float:
        return self.geometry.workspace_radius

    @property
    def stance_radius(self) -> float:
        return self.geometry.stance_radius

    @property
    def max_body_height(self) -> float:
        return self.geometry.max_body_height

    @property
    def body_clearance(self) -> float:
        return self.geometry.body_clearance

    def status_string(self) -> str:
        """Short status for logging/display."""
        phases = ' '.join(f"{s.phase:3d}{s.step_state.name[:2]}" for s in self.leg_steppers)
        v = self.local_centre_velocity
        return (f"{self.walk_state.name:8s} v=({v[0]:6.1f},{v[1]:6.1f}) w={self.angular_velocity:+.3f} "
                f"[{phases}]")

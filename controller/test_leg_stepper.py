"""
test_leg_stepper.py - Tests for the tri-quartic Bezier step cycle.

Tests validate:
- Closed trajectory under zero stride
- Step in place lifts to the swing height and returns to the default tip
- Position, velocity and acceleration continuity across curve boundaries
- Stance stride travel and startup stride scaling
- FORCE_STOP freezes the tip
- Default tip shifting and trace records
"""

import numpy as np
import pytest

from bezier_curves import quartic_bezier, quartic_bezier_dot, quartic_bezier_dot_dot
from gait_timing import StepState, compute_gait_timing
from leg_stepper import LegStepper, StanceScaling, TrajectorySettings
from walk_controller import next_step_state

DEFAULT_TIP = np.array([226.0, 168.0, -92.0])

# 1:1 at 1.25 Hz / 20 ms: 40 tick cycle, 20 tick (even) swing
TIMING = compute_gait_timing(1, 1, 1.25, 0.02)
SETTINGS = TrajectorySettings(swing_height=21.0, stance_depth=0.0)


def make_stepper(completed=True):
    stepper = LegStepper(0, DEFAULT_TIP)
    stepper.completed_first_step = completed
    stepper.phase = TIMING.phase_length - 1   # first tick lands on phase 0
    return stepper


def step(stepper, timing=TIMING, settings=SETTINGS, ticks=1):
    """Advance phase and trajectory the way the walk controller does."""
    for _ in range(ticks):
        stepper.phase = (stepper.phase + 1) % timing.phase_length
        stepper.step_state = next_step_state(stepper.step_state, stepper.phase, timing)
        stepper.update_position(timing, settings)


# ============================================================================
# Closed trajectory
# ============================================================================

@pytest.mark.parametrize("depth", [0.0, 4.0])
def test_zero_stride_trajectory_is_closed(depth):
    settings = TrajectorySettings(swing_height=21.0, stance_depth=depth)
    stepper = make_stepper()
    for _ in range(3):
        step(stepper, settings=settings, ticks=TIMING.phase_length)
        assert np.allclose(stepper.current_tip_position, DEFAULT_TIP, atol=1e-9)


def test_closed_with_odd_swing_length():
    timing = compute_gait_timing(1, 1, 1.0, 0.02)   # 25 tick swing
    stepper = LegStepper(0, DEFAULT_TIP)
    stepper.completed_first_step = True
    stepper.phase = timing.phase_length - 1
    step(stepper, timing=timing, ticks=2 * timing.phase_length)
    assert np.allclose(stepper.current_tip_position, DEFAULT_TIP, atol=1e-9)


def test_step_in_place_reaches_swing_height():
    stepper = make_stepper()
    heights = []
    for _ in range(TIMING.phase_length):
        step(stepper)
        heights.append(stepper.current_tip_position[2])
        if stepper.step_state == StepState.STANCE:
            assert stepper.current_tip_position[2] == pytest.approx(DEFAULT_TIP[2])
    assert max(heights) == pytest.approx(DEFAULT_TIP[2] + SETTINGS.swing_height)
    # Apex is at the default tip position in the horizontal plane
    apex_phase = TIMING.swing_start + TIMING.swing_length // 2 - 1
    assert heights[apex_phase] == pytest.approx(max(heights))


# ============================================================================
# Continuity
# ============================================================================

@pytest.mark.parametrize("stride", [(30.0, 10.0), (-25.0, 0.0), (0.0, 0.0)])
@pytest.mark.parametrize("height, depth", [(21.0, 0.0), (0.0, 3.0), (35.0, 5.0)])
def test_step_cycle_is_c2_continuous(stride, height, depth):
    settings = TrajectorySettings(swing_height=height, stance_depth=depth)
    stepper = make_stepper()
    stepper.stride_vector = np.array(stride)

    # Run into steady state and stop on the last swing tick
    step(stepper, settings=settings, ticks=3 * TIMING.phase_length - 1)
    assert stepper.phase == TIMING.phase_length - 2
    step(stepper, settings=settings)
    assert stepper.step_state == StepState.SWING

    s1, s2, st = stepper.swing_1_nodes, stepper.swing_2_nodes, stepper.stance_nodes
    sw_dt, st_dt = stepper.swing_delta_t, stepper.stance_delta_t

    # Position
    assert np.allclose(quartic_bezier(s1, 1.0), quartic_bezier(s2, 0.0))
    assert np.allclose(quartic_bezier(s2, 1.0), quartic_bezier(st, 0.0))
    assert np.allclose(quartic_bezier(st, 1.0), quartic_bezier(s1, 0.0))

    # Velocity (per tick)
    assert np.allclose(quartic_bezier_dot(s1, 1.0), quartic_bezier_dot(s2, 0.0))
    assert np.allclose(quartic_bezier_dot(s2, 1.0) * sw_dt, quartic_bezier_dot(st, 0.0) * st_dt)
    assert np.allclose(quartic_bezier_dot(st, 1.0) * st_dt, quartic_bezier_dot(s1, 0.0) * sw_dt)

    # Acceleration (per tick squared)
    assert np.allclose(quartic_bezier_dot_dot(s1, 1.0), quartic_bezier_dot_dot(s2, 0.0))
    assert np.allclose(quartic_bezier_dot_dot(s2, 1.0) * sw_dt**2, quartic_bezier_dot_dot(st, 0.0) * st_dt**2)
    assert np.allclose(quartic_bezier_dot_dot(st, 1.0) * st_dt**2, quartic_bezier_dot_dot(s1, 0.0) * sw_dt**2)


# ============================================================================
# Stance
# ============================================================================

def test_stance_travels_one_stride():
    stepper = make_stepper()
    stepper.stride_vector = np.array([40.0, 0.0])
    step(stepper, ticks=TIMING.phase_length)      # settle into steady state
    start = stepper.current_tip_position.copy()
    assert np.allclose(start[:2], DEFAULT_TIP[:2] + [20.0, 0.0])
    step(stepper, ticks=TIMING.stance_length)
    assert np.allclose(stepper.current_tip_position[:2], start[:2] - [40.0, 0.0])
    assert stepper.tip_velocity[0] < 0.0


def test_startup_stance_is_scaled():
    timing = compute_gait_timing(1, 1, 1.25, 0.02)
    stepper = LegStepper(0, DEFAULT_TIP, phase_offset=10)
    stepper.stride_vector = np.array([40.0, 0.0])
    stepper.phase = 9
    step(stepper, timing=timing, ticks=timing.swing_start - 10)
    # Ten of twenty stance ticks: half a stride
    assert stepper.current_tip_position[0] == pytest.approx(DEFAULT_TIP[0] - 20.0)
    assert stepper.stance_progress == pytest.approx(1.0)


def test_always_scaling_shrinks_stopping_stride():
    stepper = LegStepper(0, DEFAULT_TIP, phase_offset=10)
    stepper.completed_first_step = True
    stepper.stride_vector = np.array([40.0, 0.0])
    stepper.phase = TIMING.phase_length - 1
    first = TrajectorySettings(swing_height=21.0, stance_depth=0.0,
                               stance_scaling=StanceScaling.FIRST_STEP, stopping=True)
    always = TrajectorySettings(swing_height=21.0, stance_depth=0.0,
                                stance_scaling=StanceScaling.ALWAYS, stopping=True)
    step(stepper, settings=first, ticks=TIMING.stance_length)
    assert stepper.current_tip_position[0] == pytest.approx(DEFAULT_TIP[0] - 40.0)

    stepper.reset(DEFAULT_TIP)
    stepper.phase_offset = 10
    stepper.completed_first_step = True
    stepper.stride_vector = np.array([40.0, 0.0])
    stepper.phase = TIMING.phase_length - 1
    step(stepper, settings=always, ticks=TIMING.stance_length)
    assert stepper.current_tip_position[0] == pytest.approx(DEFAULT_TIP[0] - 20.0)


def test_force_stop_freezes_tip():
    stepper = make_stepper()
    stepper.stride_vector = np.array([30.0, 0.0])
    step(stepper, ticks=5)
    frozen = stepper.current_tip_position.copy()
    stepper.step_state = StepState.FORCE_STOP
    step(stepper, ticks=10)
    assert stepper.step_state == StepState.FORCE_STOP
    assert np.array_equal(stepper.current_tip_position, frozen)
    assert not np.any(stepper.tip_velocity)


# ============================================================================
# Default tip, reset, tracing
# ============================================================================

def test_shift_default_keeps_offset():
    stepper = make_stepper()
    stepper.stride_vector = np.array([30.0, 0.0])
    step(stepper, ticks=7)
    offset = stepper.current_tip_position - stepper.default_tip_position
    new_default = DEFAULT_TIP + np.array([5.0, -3.0, 10.0])
    stepper.shift_default_tip_position(new_default)
    assert np.allclose(stepper.default_tip_position, new_default)
    assert np.allclose(stepper.current_tip_position - new_default, offset)


def test_reset_and_park():
    stepper = make_stepper()
    stepper.stride_vector = np.array([30.0, 0.0])
    step(stepper, ticks=30)
    stepper.park()
    assert stepper.phase == 0
    assert stepper.step_state == StepState.STANCE
    assert not stepper.completed_first_step
    stepper.reset(DEFAULT_TIP)
    assert np.array_equal(stepper.current_tip_position, DEFAULT_TIP)
    assert not np.any(stepper.stride_vector)


def test_trace_hook_receives_samples():
    samples = []
    stepper = make_stepper()
    stepper.trace_hook = samples.append
    step(stepper, ticks=TIMING.phase_length)
    assert len(samples) == TIMING.phase_length
    assert samples[0].step_state == StepState.STANCE
    assert samples[0].iteration == 1
    assert samples[-1].step_state == StepState.SWING
    assert samples[-1].parameter == pytest.approx(2.0)
    assert np.allclose(samples[-1].position, samples[-1].target)
    assert all(s.leg_id == 0 for s in samples)

"""
test_workspace_geometry.py - Tests for footprint and body height computation.

Tests validate:
- Default hexapod geometry (body height, footprint, stance radius)
- Identity tip positions sit below the body along each leg's stance yaw
- A shallow hip limit leaves the tibia to set the footprint radius
- Overlapping footprints shrink the workspace radius
- Infeasible parameter combinations are rejected
"""

import math

import numpy as np
import pytest

from robot_model import FEMUR_LENGTH_MM, TIBIA_LENGTH_MM, LegModel, build_hexapod_model, LEG_LF, LEG_LM, LEG_RM
from workspace_geometry import FOOTPRINT_DOWNSCALE, GeometryInfeasible, compute_workspace


def default_workspace(**kwargs):
    params = dict(step_clearance=0.1, body_clearance=None, leg_span_scale=1.0,
                  step_curvature_allowance=0.7)
    params.update(kwargs)
    return compute_workspace(build_hexapod_model().legs, **params)


# ============================================================================
# Default geometry
# ============================================================================

def test_default_geometry():
    ws = default_workspace()
    assert ws.max_body_height == pytest.approx(212.62, abs=0.05)
    assert ws.body_clearance == pytest.approx(0.433, abs=0.001)
    assert ws.workspace_radius == pytest.approx(50.0, abs=0.2)
    assert ws.stance_radius == pytest.approx(282.0, abs=0.5)
    assert len(ws.identity_tip_positions) == 6
    assert len(ws.footprint_radii) == 6


def test_identity_tips_below_body_along_stance_yaw():
    model = build_hexapod_model()
    ws = compute_workspace(model.legs, step_clearance=0.1)
    for leg, tip in zip(model, ws.identity_tip_positions):
        assert tip[2] == pytest.approx(-ws.body_height)
        direction = tip[:2] - leg.root_offset[:2]
        assert math.atan2(direction[1], direction[0]) == pytest.approx(leg.stance_yaw)
    # Left and right middle legs mirror each other
    lm = ws.identity_tip_positions[LEG_LM]
    rm = ws.identity_tip_positions[LEG_RM]
    assert np.allclose(lm, rm * np.array([1.0, -1.0, 1.0]))
    assert ws.identity_tip_positions[LEG_LF][0] > 0.0


def test_explicit_body_clearance():
    ws = default_workspace(body_clearance=0.5)
    assert ws.body_clearance == 0.5
    assert ws.body_height == pytest.approx(0.5 * ws.max_body_height)


def test_leg_span_scale_moves_tips_out():
    near = default_workspace()
    far = default_workspace(leg_span_scale=1.2)
    assert far.stance_radius > near.stance_radius


def test_tibia_limited_reach_bounds_footprint():
    # Femur can only drop 0.3 rad, so at 90% body height the tibia sets the reach
    legs = build_hexapod_model().legs
    for leg in legs:
        leg.hip_lift_limits = (-0.3, 1.4)
        leg.yaw_limit = 1.5
    ws = compute_workspace(legs, step_clearance=0.1, body_clearance=0.9)

    femur_drop = FEMUR_LENGTH_MM * math.sin(0.3)
    max_height = femur_drop + TIBIA_LENGTH_MM
    extra = 0.9 * max_height - femur_drop
    tibia_radius = math.sqrt(TIBIA_LENGTH_MM ** 2 - extra ** 2)

    assert ws.max_body_height == pytest.approx(max_height)
    assert tibia_radius == pytest.approx(62.96, abs=0.01)
    for radius in ws.footprint_radii:
        assert radius == pytest.approx(FOOTPRINT_DOWNSCALE * tibia_radius)


# ============================================================================
# Overlap
# ============================================================================

def test_overlapping_footprints_shrink_workspace():
    legs = [
        LegModel(index=0, root_offset=np.array([0.0, 10.0, 0.0]), stance_yaw=0.0),
        LegModel(index=1, root_offset=np.array([0.0, -10.0, 0.0]), stance_yaw=0.0),
    ]
    ws = compute_workspace(legs, step_clearance=0.1)
    # Tips are 20 mm apart, so the shared radius ends up at half the distance
    assert ws.workspace_radius == pytest.approx(10.0)
    assert ws.workspace_radius < min(ws.footprint_radii)


def test_coincident_legs_are_infeasible():
    legs = [
        LegModel(index=0, root_offset=np.array([0.0, 0.0, 0.0]), stance_yaw=0.0),
        LegModel(index=1, root_offset=np.array([0.0, 0.0, 0.0]), stance_yaw=0.0),
    ]
    with pytest.raises(GeometryInfeasible):
        compute_workspace(legs, step_clearance=0.1)


# ============================================================================
# Infeasible parameters
# ============================================================================

@pytest.mark.parametrize("step_clearance", [-0.1, 1.0, 1.5])
def test_step_clearance_out_of_range(step_clearance):
    with pytest.raises(GeometryInfeasible):
        default_workspace(step_clearance=step_clearance)


@pytest.mark.parametrize("body_clearance", [-0.2, 1.0, 1.3])
def test_body_clearance_out_of_range(body_clearance):
    with pytest.raises(GeometryInfeasible):
        default_workspace(body_clearance=body_clearance)


def test_step_clearance_above_twice_femur():
    legs = [LegModel(index=0, root_offset=np.zeros(3), stance_yaw=0.0, femur_length=20.0)]
    with pytest.raises(GeometryInfeasible):
        compute_workspace(legs, step_clearance=0.9)


def test_geometry_infeasible_is_value_error():
    assert issubclass(GeometryInfeasible, ValueError)
    with pytest.raises(ValueError):
        compute_workspace([], step_clearance=0.1)

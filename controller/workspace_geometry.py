"""
workspace_geometry.py - Reachable stepping area of each leg.

Derives, once per parameter set, the quantities the walk controller needs to
plan steps:

    max_body_height       Highest the body can sit above the ground with every
                          leg still able to reach it (minimum over legs)
    body_clearance        Chosen body height as a ratio of max_body_height
    identity_tip_position Default standing tip position of each leg
    footprint_radius      Radius of the circle each tip may step within
    workspace_radius      Smallest footprint, shrunk so no two circles overlap
    stance_radius         Distance from body centre to the outermost tip

Top view of one leg's footprint (the tip steps within the circle):

        root ●─── hip ───●──── horizontal reach ────┤
                                        ( identity )
                                        (    ●     )  footprint_radius
                                        (          )

Raises GeometryInfeasible when the legs cannot support the requested step
clearance or body height.
"""

import logging
import math
from dataclasses import dataclass
from itertools import combinations
from typing import Optional, Sequence, Tuple

import numpy as np

from robot_model import LegModel

logger = logging.getLogger(__name__)

# Shrink factor applied to the reachable circle to leave margin for posing
FOOTPRINT_DOWNSCALE = 0.8


class GeometryInfeasible(ValueError):
    """Robot geometry cannot satisfy the requested walk parameters."""


@dataclass(frozen=True)
class WorkspaceGeometry:
    """Result of the workspace computation (mm)."""
    max_body_height: float
    body_clearance: float
    identity_tip_positions: Tuple[np.ndarray, ...]
    footprint_radii: Tuple[float, ...]
    workspace_radius: float
    stance_radius: float

    @property
    def body_height(self) -> float:
        return self.body_clearance * self.max_body_height


def _leg_max_body_height(leg: LegModel) -> float:
    f, t = leg.femur_length, leg.tibia_length
    min_knee = max(0.0, leg.knee_bend_limits[0])
    max_hip_drop = min(-leg.hip_lift_limits[0],
                       math.pi / 2.0 - math.atan2(t * math.sin(min_knee), f + t * math.cos(min_knee)))
    knee = min(max(math.pi / 2.0 - max_hip_drop, min_knee), leg.knee_bend_limits[1])
    return f * math.sin(max_hip_drop) + t * math.sin(max_hip_drop + knee)


def _yaw_sector_radius(reach: float, yaw_limit: float) -> float:
    """Largest circle centred on the footprint that stays inside the yaw sector.

    Solves cot^2(theta)*r^2 + 2*R*r - R^2 = 0 for the positive root.
    """
    if yaw_limit >= math.pi / 2.0:
        return reach / 2.0
    cot = 1.0 / math.tan(yaw_limit)
    a = cot * cot
    b = 2.0 * reach
    c = -reach * reach
    if abs(a) < 1e-12:
        return reach / 2.0
    return (-b + math.sqrt(b * b - 4.0 * a * c)) / (2.0 * a)


def compute_workspace(legs: Sequence[LegModel],
                      step_clearance: float,
                      body_clearance: Optional[float] = None,
                      leg_span_scale: float = 1.0,
                      step_curvature_allowance: float = 0.7) -> WorkspaceGeometry:
    """Compute footprints, stance and body height for a set of legs.

    Args:
        legs: Leg geometry, ordered by leg id
        step_clearance: Swing apex height as a ratio of max body height, in [0, 1)
        body_clearance: Body height ratio in [0, 1); None derives it from leg length
        leg_span_scale: Scale applied to each leg's horizontal reach
        step_curvature_allowance: Extra body height per unit step clearance

    Returns:
        WorkspaceGeometry
    """
    if not legs:
        raise GeometryInfeasible("No legs to compute a workspace for")

    max_body_height = min(_leg_max_body_height(leg) for leg in legs)
    if max_body_height <= 0.0:
        raise GeometryInfeasible(f"Legs cannot lift the body (max body height {max_body_height:.2f} mm)")

    if not 0.0 <= step_clearance < 1.0:
        raise GeometryInfeasible(f"Step clearance {step_clearance} outside [0, 1)")
    if any(step_clearance * max_body_height > 2.0 * leg.femur_length for leg in legs):
        raise GeometryInfeasible(
            f"Step clearance {step_clearance * max_body_height:.1f} mm exceeds twice the femur length")

    if body_clearance is None:
        min_leg_length = min(leg.min_leg_length for leg in legs)
        body_clearance = min_leg_length / max_body_height + step_curvature_allowance * step_clearance
    if not 0.0 <= body_clearance < 1.0:
        raise GeometryInfeasible(f"Body clearance {body_clearance:.3f} outside [0, 1)")

    body_height = body_clearance * max_body_height
    identity_tips = []
    footprints = []
    for leg in legs:
        f, t = leg.femur_length, leg.tibia_length
        max_len = leg.max_leg_length
        max_hip_drop = -leg.hip_lift_limits[0]

        leg_drop = math.asin(min(1.0, body_height / max_len))
        if leg_drop > max_hip_drop:
            # Femur at its lowest, tibia takes up the remaining height
            extra = body_height - f * math.sin(max_hip_drop)
            if extra > t:
                raise GeometryInfeasible(f"Leg {leg.name} cannot reach the ground at body height {body_height:.1f} mm")
            rad = math.sqrt(t * t - extra * extra)
            horizontal = f * math.cos(max_hip_drop) + rad
        else:
            horizontal = math.sqrt(max(0.0, max_len * max_len - body_height * body_height))
            rad = math.inf
        horizontal *= leg_span_scale

        rad = min(rad, _yaw_sector_radius(horizontal, leg.yaw_limit))

        lowest = max(0.0, body_clearance - step_curvature_allowance * step_clearance) * max_body_height
        if lowest < leg.min_leg_length:
            rad = min(rad, (horizontal - math.sqrt(leg.min_leg_length ** 2 - lowest ** 2)) / 2.0)

        if rad <= 0.0:
            raise GeometryInfeasible(f"Leg {leg.name} has no room to step (footprint radius {rad:.2f} mm)")

        foot_spread = leg.hip_length + horizontal - rad
        offset = np.array([foot_spread * math.cos(leg.stance_yaw), foot_spread * math.sin(leg.stance_yaw), -body_height])
        identity_tips.append(leg.root_offset + offset)
        footprints.append(rad * FOOTPRINT_DOWNSCALE)

    workspace_radius = min(footprints)
    if len(identity_tips) > 1:
        min_gap = min(float(np.linalg.norm(a[:2] - b[:2])) - 2.0 * workspace_radius
                      for a, b in combinations(identity_tips, 2))
        if min_gap < 0.0:
            workspace_radius += 0.5 * min_gap
            logger.debug("Footprints overlap by %.2f mm, workspace radius reduced to %.2f mm",
                         -min_gap, workspace_radius)
    if workspace_radius <= 0.0:
        raise GeometryInfeasible("Leg footprints overlap completely; no workspace left")

    stance_radius = max(float(np.linalg.norm(tip[:2])) for tip in identity_tips)

    logger.info("Workspace: max body height %.1f mm, body clearance %.3f, workspace radius %.1f mm, "
                "stance radius %.1f mm", max_body_height, body_clearance, workspace_radius, stance_radius)

    return WorkspaceGeometry(
        max_body_height=max_body_height,
        body_clearance=body_clearance,
        identity_tip_positions=tuple(identity_tips),
        footprint_radii=tuple(footprints),
        workspace_radius=workspace_radius,
        stance_radius=stance_radius,
    )

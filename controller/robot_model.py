"""
robot_model.py - Robot leg geometry as seen by the walk controller.

This module describes the legs the walk controller drives: link lengths, joint
limits, where each leg is mounted and which way it points when standing. It is
the boundary to the kinematics stage. The walk controller hands every leg a
desired tip position through LegModel.apply_local_ik(); solving joint angles
for that position is the job of an injected solver and is not done here.

Coordinate System (Body Frame):
    X: Forward is positive
    Y: Left is positive
    Z: Up is positive (ground is below the body, tips have negative Z)

Leg Kinematic Chain:

        (root)●─────────●(femur joint)
              hip         \\
                           \\ femur
                            \\
                             ●(tibia joint)
                             │
                             │ tibia
                             │
                             ●(tip)

    knee bend 0 = femur and tibia in line (leg fully extended)
    hip lift  0 = femur horizontal, negative = femur dropped below horizontal
"""

import math
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Callable, List, Optional, Sequence

import numpy as np

# -----------------------------------------------------------------------------
# Robot Geometry Constants (MARS hexapod)
# -----------------------------------------------------------------------------

# Link lengths (mm)
COXA_LENGTH_MM   = 41.70
FEMUR_LENGTH_MM  = 80.00
TIBIA_LENGTH_MM  = 133.78

NUM_LEGS = 6

# Leg indices
LEG_LF, LEG_LM, LEG_LR = 0, 1, 2
LEG_RF, LEG_RM, LEG_RR = 3, 4, 5

LEG_NAMES = ["LF", "LM", "LR", "RF", "RM", "RR"]

# Coxa origin offsets in body frame (mm)
# Canonical order: LF, LM, LR, RF, RM, RR
ROOT_OFFSET_X = [ 88.1630,   0.0000, -88.1630,  88.1630,   0.0000, -88.1630]
ROOT_OFFSET_Y = [ 65.5959,  86.0000,  65.5959, -65.5959, -86.0000, -65.5959]

# Joint limits (rad)
HIP_LIFT_LIMITS = (-1.40, 1.40)     # femur pitch about horizontal
KNEE_BEND_LIMITS = (0.0, 2.60)      # tibia bend relative to femur
YAW_LIMIT_AROUND_STANCE = 0.50      # coxa yaw either side of stance yaw


class LegState(Enum):
    """Who owns the tip position of a leg."""
    WALKING = auto()   # Driven by the walk controller
    MANUAL = auto()    # Driven by tip velocity input (leg manipulation)


TipSolver = Callable[["LegModel", np.ndarray], Optional[np.ndarray]]


@dataclass
class LegModel:
    """Geometry and current tip position of one leg (mm, rad, body frame).

    Attributes:
        index: Leg index (0-5)
        root_offset: Coxa axis position in body frame
        stance_yaw: Direction the leg points when standing (rad from +X)
        hip_length, femur_length, tibia_length: Link lengths
        hip_lift_limits: (min, max) femur pitch
        knee_bend_limits: (min, max) tibia bend
        yaw_limit: Allowed coxa yaw either side of stance_yaw
        solver: Optional IK callable(leg, tip) returning the achieved tip (or None)
    """
    index: int
    root_offset: np.ndarray
    stance_yaw: float
    hip_length: float = COXA_LENGTH_MM
    femur_length: float = FEMUR_LENGTH_MM
    tibia_length: float = TIBIA_LENGTH_MM
    hip_lift_limits: tuple = HIP_LIFT_LIMITS
    knee_bend_limits: tuple = KNEE_BEND_LIMITS
    yaw_limit: float = YAW_LIMIT_AROUND_STANCE
    solver: Optional[TipSolver] = None
    state: LegState = LegState.WALKING
    name: str = field(init=False)
    local_tip_position: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self):
        self.name = LEG_NAMES[self.index] if 0 <= self.index < NUM_LEGS else f"L{self.index}"
        self.root_offset = np.asarray(self.root_offset, dtype=float)

    def _leg_length(self, knee_bend: float) -> float:
        # femur joint to tip distance (law of cosines, bend 0 = straight)
        f, t = self.femur_length, self.tibia_length
        return math.sqrt(f**2 + t**2 + 2.0 * f * t * math.cos(knee_bend))

    @property
    def max_leg_length(self) -> float:
        """Femur joint to tip distance at the smallest allowed knee bend."""
        return self._leg_length(max(0.0, self.knee_bend_limits[0]))

    @property
    def min_leg_length(self) -> float:
        """Femur joint to tip distance at the largest allowed knee bend."""
        return self._leg_length(self.knee_bend_limits[1])

    def apply_local_ik(self, tip_position: np.ndarray) -> np.ndarray:
        """Hand a desired tip position to the kinematics stage.

        Returns the tip position the leg actually reached, which becomes the
        leg's local_tip_position.
        """
        tip_position = np.asarray(tip_position, dtype=float)
        achieved = None
        if self.solver is not None:
            achieved = self.solver(self, tip_position)
        self.local_tip_position = np.array(tip_position if achieved is None else achieved, dtype=float)
        return self.local_tip_position


class RobotModel:
    """Ordered collection of legs, indexed by leg id."""

    def __init__(self, legs: Sequence[LegModel]):
        self.legs: List[LegModel] = list(legs)
        for i, leg in enumerate(self.legs):
            if leg.index != i:
                raise ValueError(f"Leg {leg.name} has index {leg.index}, expected {i}")

    def __len__(self) -> int:
        return len(self.legs)

    def __iter__(self):
        return iter(self.legs)

    def __getitem__(self, leg_id: int) -> LegModel:
        return self.legs[leg_id]


def build_hexapod_model(solver: Optional[TipSolver] = None) -> RobotModel:
    """Build the default six-legged model from the geometry constants.

    Each leg's stance yaw points straight out from the body centre through its
    coxa mount.
    """
    legs = []
    for i in range(NUM_LEGS):
        x, y = ROOT_OFFSET_X[i], ROOT_OFFSET_Y[i]
        legs.append(LegModel(
            index=i,
            root_offset=np.array([x, y, 0.0]),
            stance_yaw=math.atan2(y, x),
            solver=solver,
        ))
    return RobotModel(legs)

"""
gait_timing.py - Step cycle timing derived from gait ratios.

The walk controller advances every leg by one integer phase per control tick.
This module turns the user facing gait description (stance:swing ratio, step
frequency, per-leg offset multipliers) into integer phase windows:

    phase:   0 ............ swing_start ............ phase_length
             |<--- stance --->|<-------- swing -------->|
             stance_start     stance_end/swing_start     swing_end (== 0 mod phase_length)

phase_length is quantised so that it is an even multiple of the base cycle
length (stance_ratio + swing_ratio) and the step frequency is back-corrected to
match the quantised cycle. GaitTiming instances are immutable; a change of gait
parameters builds a new instance which replaces the old one in a single step.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum, auto
from typing import Sequence, Tuple


class StepState(Enum):
    """Trajectory regime of a single leg."""
    SWING = auto()         # Tip in the air, following the two swing curves
    STANCE = auto()        # Tip on the ground, following the stance curve
    FORCE_STANCE = auto()  # Held in stance during STARTING (offset fell inside the swing window)
    FORCE_STOP = auto()    # Tip frozen during STOPPING after the final step


def round_half_up(value: float) -> int:
    """Round to nearest integer, halves away from zero (Python's round() is banker's)."""
    if value >= 0.0:
        return int(math.floor(value + 0.5))
    return -int(math.floor(-value + 0.5))


@dataclass(frozen=True)
class GaitTiming:
    """Integer phase windows of the step cycle (read-only)."""
    tick_period: float
    stance_ratio: int
    swing_ratio: int
    normaliser: int
    phase_length: int
    step_frequency: float
    stance_start: int
    stance_end: int
    swing_start: int
    swing_end: int
    phase_offsets: Tuple[int, ...]

    @property
    def base_phase_length(self) -> int:
        return self.stance_ratio + self.swing_ratio

    @property
    def swing_length(self) -> int:
        return self.swing_end - self.swing_start

    @property
    def stance_length(self) -> int:
        """Nominal stance length (ticks) of a full step cycle."""
        return (self.swing_start - self.swing_end) % self.phase_length

    @property
    def on_ground_ratio(self) -> float:
        return (self.phase_length - self.swing_length) / self.phase_length

    def in_swing_window(self, phase: int) -> bool:
        return self.swing_start <= phase < self.swing_end

    def is_swing_end(self, phase: int) -> bool:
        """True if phase is the (wrapped) end of the swing window."""
        return phase % self.phase_length == self.swing_end % self.phase_length


def compute_gait_timing(stance_ratio: int,
                        swing_ratio: int,
                        step_frequency: float,
                        tick_period: float,
                        phase_offset: float = 0.0,
                        offset_multipliers: Sequence[int] = ()) -> GaitTiming:
    """Quantise the step cycle to whole control ticks.

    Args:
        stance_ratio: Stance share of the base cycle (e.g. 1 for tripod)
        swing_ratio: Swing share of the base cycle (e.g. 1 for tripod)
        step_frequency: Desired step frequency (Hz)
        tick_period: Control loop period (s)
        phase_offset: Base offset between stepping legs, in base cycle units
        offset_multipliers: Per-leg multiple of phase_offset

    Returns:
        GaitTiming with phase_length an even multiple of stance_ratio + swing_ratio
    """
    if int(stance_ratio) != stance_ratio or int(swing_ratio) != swing_ratio:
        raise ValueError(f"Gait ratios must be whole numbers (stance={stance_ratio}, swing={swing_ratio})")
    stance_ratio = int(stance_ratio)
    swing_ratio = int(swing_ratio)
    if stance_ratio <= 0 or swing_ratio <= 0:
        raise ValueError(f"Gait ratios must be positive (stance={stance_ratio}, swing={swing_ratio})")
    if step_frequency <= 0.0:
        raise ValueError(f"Step frequency must be positive, got {step_frequency}")
    if tick_period <= 0.0:
        raise ValueError(f"Tick period must be positive, got {tick_period}")
    if phase_offset < 0.0:
        raise ValueError(f"Phase offset must not be negative, got {phase_offset}")

    base_phase_length = stance_ratio + swing_ratio

    # Ticks per half cycle, rounded to a whole multiple of the swing ratio so the
    # swing window covers an integer number of ticks
    half_cycle_ticks = 1.0 / (2.0 * step_frequency * tick_period)
    normaliser = max(1, round_half_up(half_cycle_ticks / swing_ratio))
    if (normaliser * base_phase_length) % 2:
        normaliser = 2 * max(1, round_half_up(half_cycle_ticks / swing_ratio / 2.0))

    phase_length = normaliser * base_phase_length
    corrected_frequency = 1.0 / (phase_length * tick_period)

    stance_start = 0
    stance_end = stance_ratio * normaliser
    swing_start = stance_end
    swing_end = phase_length

    offset = int(phase_offset * normaliser)
    phase_offsets = tuple((offset * int(m)) % phase_length for m in offset_multipliers)

    return GaitTiming(
        tick_period=tick_period,
        stance_ratio=stance_ratio,
        swing_ratio=swing_ratio,
        normaliser=normaliser,
        phase_length=phase_length,
        step_frequency=corrected_frequency,
        stance_start=stance_start,
        stance_end=stance_end,
        swing_start=swing_start,
        swing_end=swing_end,
        phase_offsets=phase_offsets,
    )


def calculate_delta_t(timing: GaitTiming, state: StepState, length: int) -> float:
    """Per-tick increment of the Bezier time parameter for a segment of `length` phases.

    Swing covers parameter range [0, 2] split over the primary and secondary
    curves; stance covers [0, 1].
    """
    # Not rounded to even: an odd swing splits its two curves mid-tick (LegStepper._swing_point)
    iterations = round_half_up(length / timing.phase_length / (timing.step_frequency * timing.tick_period))
    iterations = max(1, iterations)
    if state == StepState.SWING:
        return 2.0 / iterations
    return 1.0 / iterations

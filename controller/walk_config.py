"""
walk_config.py - Configuration loading and persistence for the walk controller.

Handles controller.ini parsing, defaults, gait presets and saving.

INI layout:
    [ui]    verbose
    [walk]  body, trajectory and velocity shaping parameters (WalkConfig)
    [gait]  step pattern and timing (GaitConfig)

Lists are comma separated. An empty value for an optional key means unset.
"""

from __future__ import annotations
import os
import logging
import configparser
from dataclasses import dataclass, field
from typing import Optional, List

from leg_stepper import StanceScaling

logger = logging.getLogger(__name__)


def _get_config_path() -> str:
    """Return path to controller.ini relative to this module."""
    if '__file__' in globals():
        return os.path.join(os.path.dirname(__file__), 'controller.ini')
    return 'controller.ini'


# -----------------------------------------------------------------------------
# Default configuration values
# -----------------------------------------------------------------------------
@dataclass
class WalkConfig:
    time_delta: float = 0.02              # Control tick period (s)
    step_clearance: float = 0.1           # Swing apex, ratio of max body height
    step_depth: float = 0.0               # Stance dip, ratio of max body height
    body_clearance: Optional[float] = None  # Body height ratio; None derives it
    leg_span_scale: float = 1.0
    step_curvature_allowance: float = 0.7
    max_acceleration: Optional[float] = None  # mm/s^2; None derives it from the gait
    max_curvature_speed: float = 0.4      # rad/s^2 limit on angular velocity change
    reference_leg: int = 0                # Leg that closes the stopping sequence
    stance_scaling: StanceScaling = StanceScaling.FIRST_STEP


@dataclass
class GaitConfig:
    gait_type: str = 'tripod'
    stance_phase: int = 1
    swing_phase: int = 1
    phase_offset: float = 1.0
    offset_multiplier: List[int] = field(default_factory=lambda: [0, 1, 0, 1, 0, 1])
    step_frequency: float = 1.0           # Hz


@dataclass
class ControllerConfig:
    """Master configuration container."""
    verbose: bool = False
    walk: WalkConfig = field(default_factory=WalkConfig)
    gait: GaitConfig = field(default_factory=GaitConfig)


# -----------------------------------------------------------------------------
# Gait presets
# -----------------------------------------------------------------------------
GAIT_PRESETS = {
    # name: (stance_phase, swing_phase, phase_offset, offset_multiplier)
    'tripod': (1, 1, 1.0, [0, 1, 0, 1, 0, 1]),
    'ripple': (2, 1, 1.0, [0, 2, 1, 1, 0, 2]),
    'wave':   (5, 1, 1.0, [2, 1, 0, 5, 4, 3]),
}


def gait_preset(name: str, step_frequency: float = 1.0) -> GaitConfig:
    """Return the GaitConfig for a named gait (tripod, ripple, wave)."""
    key = name.strip().lower()
    if key not in GAIT_PRESETS:
        raise ValueError(f"Unknown gait '{name}' (expected one of {', '.join(GAIT_PRESETS)})")
    stance, swing, offset, multipliers = GAIT_PRESETS[key]
    return GaitConfig(gait_type=key, stance_phase=stance, swing_phase=swing,
                      phase_offset=offset, offset_multiplier=list(multipliers),
                      step_frequency=step_frequency)


# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------
def _parse_int_list(s: str) -> List[int]:
    """Parse 'a, b, c' string into a list of ints."""
    return [int(p.strip()) for p in s.split(',') if p.strip()]


def _fmt_list(values: List[int]) -> str:
    return ', '.join(str(int(v)) for v in values)


def _get_optional_float(cfg: configparser.ConfigParser, section: str, key: str,
                        default: Optional[float]) -> Optional[float]:
    if key not in cfg[section]:
        return default
    raw = cfg[section][key].strip()
    if raw == '' or raw.lower() == 'none':
        return None
    return float(raw)


def _fmt_optional(value: Optional[float]) -> str:
    return '' if value is None else repr(float(value))


# -----------------------------------------------------------------------------
# Load configuration
# -----------------------------------------------------------------------------
def load_config(config_path: Optional[str] = None) -> ControllerConfig:
    """Load configuration from controller.ini file.

    Returns a ControllerConfig dataclass with all values populated.
    Missing sections and keys use defaults; a missing file yields defaults.
    Raises ValueError naming the offending key for malformed values.
    """
    cfg = ControllerConfig()

    if config_path is None:
        config_path = _get_config_path()

    parser = configparser.ConfigParser()
    if not parser.read(config_path):
        logger.warning("Config file %s not found, using defaults", config_path)
        return cfg

    section, key = '', ''
    try:
        # UI section
        section = 'ui'
        if section in parser:
            key = 'verbose'
            cfg.verbose = parser.getboolean(section, key, fallback=cfg.verbose)

        # Walk section
        section = 'walk'
        if section in parser:
            w = cfg.walk
            for key in ('time_delta', 'step_clearance', 'step_depth', 'leg_span_scale',
                        'step_curvature_allowance', 'max_curvature_speed'):
                setattr(w, key, parser.getfloat(section, key, fallback=getattr(w, key)))
            key = 'body_clearance'
            w.body_clearance = _get_optional_float(parser, section, key, w.body_clearance)
            key = 'max_acceleration'
            w.max_acceleration = _get_optional_float(parser, section, key, w.max_acceleration)
            key = 'reference_leg'
            w.reference_leg = parser.getint(section, key, fallback=w.reference_leg)
            key = 'stance_scaling'
            if key in parser[section]:
                w.stance_scaling = StanceScaling[parser[section][key].strip().upper()]

        # Gait section
        section = 'gait'
        if section in parser:
            g = cfg.gait
            key = 'gait_type'
            if key in parser[section]:
                # A named gait supplies the pattern; explicit keys below override it
                g = gait_preset(parser[section][key], g.step_frequency)
            key = 'stance_phase'
            g.stance_phase = parser.getint(section, key, fallback=g.stance_phase)
            key = 'swing_phase'
            g.swing_phase = parser.getint(section, key, fallback=g.swing_phase)
            key = 'phase_offset'
            g.phase_offset = parser.getfloat(section, key, fallback=g.phase_offset)
            key = 'step_frequency'
            g.step_frequency = parser.getfloat(section, key, fallback=g.step_frequency)
            key = 'offset_multiplier'
            if key in parser[section]:
                g.offset_multiplier = _parse_int_list(parser[section][key])
            cfg.gait = g

    except (ValueError, KeyError) as e:
        raise ValueError(f"Invalid value for [{section}] {key} in {config_path}: {e}") from e

    logger.info("Loaded config %s (gait %s, %.2f Hz)", config_path, cfg.gait.gait_type, cfg.gait.step_frequency)
    return cfg


# -----------------------------------------------------------------------------
# Save configuration
# -----------------------------------------------------------------------------
def save_config(cfg: ControllerConfig, config_path: Optional[str] = None) -> bool:
    """Write cfg to controller.ini, keeping unrelated sections of an existing file."""
    if config_path is None:
        config_path = _get_config_path()

    parser = configparser.ConfigParser()
    parser.read(config_path)
    try:
        for section in ('ui', 'walk', 'gait'):
            if section not in parser:
                parser.add_section(section)

        parser.set('ui', 'verbose', str(cfg.verbose))

        w = cfg.walk
        parser.set('walk', 'time_delta', repr(float(w.time_delta)))
        parser.set('walk', 'step_clearance', repr(float(w.step_clearance)))
        parser.set('walk', 'step_depth', repr(float(w.step_depth)))
        parser.set('walk', 'body_clearance', _fmt_optional(w.body_clearance))
        parser.set('walk', 'leg_span_scale', repr(float(w.leg_span_scale)))
        parser.set('walk', 'step_curvature_allowance', repr(float(w.step_curvature_allowance)))
        parser.set('walk', 'max_acceleration', _fmt_optional(w.max_acceleration))
        parser.set('walk', 'max_curvature_speed', repr(float(w.max_curvature_speed)))
        parser.set('walk', 'reference_leg', str(int(w.reference_leg)))
        parser.set('walk', 'stance_scaling', w.stance_scaling.name.lower())

        g = cfg.gait
        parser.set('gait', 'gait_type', g.gait_type)
        parser.set('gait', 'stance_phase', str(int(g.stance_phase)))
        parser.set('gait', 'swing_phase', str(int(g.swing_phase)))
        parser.set('gait', 'phase_offset', repr(float(g.phase_offset)))
        parser.set('gait', 'offset_multiplier', _fmt_list(g.offset_multiplier))
        parser.set('gait', 'step_frequency', repr(float(g.step_frequency)))

        with open(config_path, 'w') as f:
            parser.write(f)
        return True
    except (IOError, OSError, configparser.Error) as e:
        logger.warning("Failed to save config %s: %s", config_path, e)
        return False


# -----------------------------------------------------------------------------
# Module exports
# -----------------------------------------------------------------------------
__all__ = [
    'WalkConfig', 'GaitConfig', 'ControllerConfig',
    'GAIT_PRESETS', 'gait_preset',
    'load_config', 'save_config',
]

#----------------------------------------------------------------------------------------------------------------------
#    bezier_curves.py - Bezier curve evaluation for tip trajectories and joint interpolation
#----------------------------------------------------------------------------------------------------------------------
"""
Bezier curve utilities for the walk controller.

The step cycle is built from quartic (5 control node) curves: two for the swing
period and one for the stance period. Cubic (4 control node) curves are provided
for simple point-to-point joint interpolation used by posing code.

Control nodes may be any sequence of equally sized numpy vectors (2D, 3D, ...).
All functions return numpy arrays.

Usage:
    nodes = [np.array([0.0, 0.0, 0.0]), ...]   # 5 nodes
    p = quartic_bezier(nodes, 0.5)
    v = quartic_bezier_dot(nodes, 0.5)         # d/dt, scale by dt/dtime for velocity
"""

from typing import Sequence

import numpy as np


#----------------------------------------------------------------------------------------------------------------------
# Quartic curves (step cycle)
#----------------------------------------------------------------------------------------------------------------------

def quartic_bezier(nodes: Sequence[np.ndarray], t: float) -> np.ndarray:
    """Point on a quartic Bezier curve defined by 5 control nodes."""
    s = 1.0 - t
    return (s**4 * np.asarray(nodes[0], dtype=float)
            + 4.0 * t * s**3 * np.asarray(nodes[1], dtype=float)
            + 6.0 * t**2 * s**2 * np.asarray(nodes[2], dtype=float)
            + 4.0 * t**3 * s * np.asarray(nodes[3], dtype=float)
            + t**4 * np.asarray(nodes[4], dtype=float))


def quartic_bezier_dot(nodes: Sequence[np.ndarray], t: float) -> np.ndarray:
    """First derivative (w.r.t. t) of a quartic Bezier curve.

    The derivative of a degree-n curve is a degree n-1 curve over the node
    differences, scaled by n.
    """
    s = 1.0 - t
    p = [np.asarray(n, dtype=float) for n in nodes]
    return 4.0 * (s**3 * (p[1] - p[0])
                  + 3.0 * t * s**2 * (p[2] - p[1])
                  + 3.0 * t**2 * s * (p[3] - p[2])
                  + t**3 * (p[4] - p[3]))


def quartic_bezier_dot_dot(nodes: Sequence[np.ndarray], t: float) -> np.ndarray:
    """Second derivative (w.r.t. t) of a quartic Bezier curve."""
    s = 1.0 - t
    p = [np.asarray(n, dtype=float) for n in nodes]
    return 12.0 * (s**2 * (p[2] - 2.0 * p[1] + p[0])
                   + 2.0 * t * s * (p[3] - 2.0 * p[2] + p[1])
                   + t**2 * (p[4] - 2.0 * p[3] + p[2]))


#----------------------------------------------------------------------------------------------------------------------
# Cubic curves (joint interpolation)
#----------------------------------------------------------------------------------------------------------------------

def cubic_bezier(nodes: Sequence, t: float) -> np.ndarray:
    """Point on a cubic Bezier curve defined by 4 control nodes.

    Nodes may be scalars (a single joint position) or vectors.
    """
    s = 1.0 - t
    p = [np.asarray(n, dtype=float) for n in nodes]
    return s**3 * p[0] + 3.0 * t * s**2 * p[1] + 3.0 * t**2 * s * p[2] + t**3 * p[3]


def cubic_bezier_dot(nodes: Sequence, t: float) -> np.ndarray:
    """First derivative (w.r.t. t) of a cubic Bezier curve."""
    s = 1.0 - t
    p = [np.asarray(n, dtype=float) for n in nodes]
    return 3.0 * (s**2 * (p[1] - p[0]) + 2.0 * t * s * (p[2] - p[1]) + t**2 * (p[3] - p[2]))

#!/usr/bin/env python3
#----------------------------------------------------------------------------------------------------------------------
#    walk_demo.py
#----------------------------------------------------------------------------------------------------------------------
# Entry point: runs the walk controller against the default hexapod model at a fixed tick.
# Walks with the commanded velocity/curvature for --duration seconds, then stops and
# waits for the legs to settle.
#----------------------------------------------------------------------------------------------------------------------

import argparse
import logging
import signal
import sys
import time

import numpy as np

from robot_model import LEG_NAMES, build_hexapod_model
from walk_config import gait_preset, load_config
from walk_controller import WalkController, WalkState

logger = logging.getLogger("walk_demo")

_running = True


def _main_sigterm_handler(signum, frame):
    """Stop the tick loop on SIGTERM."""
    global _running
    logger.info("Signal %d received, stopping", signum)
    _running = False


def _parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Hexapod walk controller demo")
    parser.add_argument("--config", default=None, help="Path to controller.ini")
    parser.add_argument("--gait", default=None, help="Gait preset (tripod, ripple, wave)")
    parser.add_argument("--vx", type=float, default=0.5, help="Normalised forward velocity")
    parser.add_argument("--vy", type=float, default=0.0, help="Normalised left velocity")
    parser.add_argument("--curvature", type=float, default=0.0, help="Normalised curvature")
    parser.add_argument("--duration", type=float, default=5.0, help="Walking time (s)")
    parser.add_argument("--realtime", action="store_true", help="Sleep between ticks")
    parser.add_argument("--trace-leg", type=int, default=None, help="Log trajectory samples of one leg")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def run(argv=None) -> int:
    args = _parse_args(argv)
    cfg = load_config(args.config)

    logging.basicConfig(
        level=logging.DEBUG if (args.verbose or cfg.verbose) else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )

    gait = gait_preset(args.gait, cfg.gait.step_frequency) if args.gait else cfg.gait
    model = build_hexapod_model()
    walker = WalkController(model, cfg.walk, gait)

    if args.trace_leg is not None:
        walker.set_trace_hook(
            lambda s: logger.debug("%s %-6s it=%3d t=%.3f pos=(%.1f, %.1f, %.1f)",
                                   LEG_NAMES[s.leg_id], s.step_state.name, s.iteration, s.parameter,
                                   *s.position),
            [args.trace_leg])

    dt = cfg.walk.time_delta
    command = np.array([args.vx, args.vy])
    walk_ticks = int(round(args.duration / dt))
    # Stopping takes at most a couple of step cycles
    settle_ticks = 4 * walker.phase_length
    tick = 0

    while _running and tick < walk_ticks + settle_ticks:
        if tick < walk_ticks:
            walker.update_walk(command, args.curvature)
        else:
            walker.update_walk(np.zeros(2), 0.0)
            if walker.walk_state == WalkState.STOPPED:
                break
        if tick % walker.phase_length == 0:
            logger.info("tick %5d %s", tick, walker.status_string())
        tick += 1
        if args.realtime:
            time.sleep(dt)

    pose = walker.odometry
    logger.info("Finished after %d ticks in %s, odometry x=%.1f mm y=%.1f mm yaw=%.3f rad",
                tick, walker.walk_state.name, pose.x, pose.y, pose.yaw)
    for leg in model:
        tip = leg.local_tip_position
        logger.info("  %s tip (%.1f, %.1f, %.1f)", leg.name, tip[0], tip[1], tip[2])
    return 0


if __name__ == "__main__":
    signal.signal(signal.SIGTERM, _main_sigterm_handler)
    try:
        sys.exit(run())
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(130)

#!/usr/bin/env python3
"""
flightctl - Main Entry Point

Runs QGroundControl plans on MAVLink vehicles and generates formation plans.
"""

import argparse
import signal
import sys
import threading
import time
import logging
from pathlib import Path
from typing import List, Optional

from . import __version__
from .config import Config, set_config
from .mission.generate import CircleMission, LineMission, SquareMission
from .orchestrator import (
    CallbackSink,
    CancellationToken,
    LoggingSink,
    MissionRun,
    RunRecorder,
    TeeSink,
    TelemetryLogger,
)
from .utils.logger import setup_logging

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        prog="flightctl",
        description="flightctl - MAVLink mission runner"
    )

    parser.add_argument(
        "-c", "--config",
        type=str,
        default=None,
        help="Path to configuration file (YAML)"
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )

    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Log file path"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    # ==================== run ====================

    run = commands.add_parser("run", help="Run a plan on a vehicle")
    run.add_argument(
        "-v", "--vehicle",
        type=str,
        default=None,
        help="Connection URI of the vehicle (e.g. udp://:14540)"
    )
    run.add_argument(
        "-p", "--plan",
        type=str,
        required=True,
        help="QGroundControl .plan file"
    )
    run.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds to wait for an autopilot (default: 3)"
    )
    run.add_argument(
        "--serve",
        action="store_true",
        help="Serve the run status over HTTP"
    )
    run.add_argument(
        "--port",
        type=int,
        default=None,
        help="Status API port (default: 8080)"
    )
    run.add_argument(
        "--telemetry-log",
        type=str,
        default=None,
        metavar="DIR",
        help="Write a CSV telemetry log into DIR"
    )

    # ==================== generate ====================

    generate = commands.add_parser("generate", help="Generate formation plans")
    generate.add_argument(
        "-p", "--path",
        type=str,
        required=True,
        help="Directory to save the plan files"
    )
    shapes = generate.add_subparsers(dest="shape", required=True)

    circle = shapes.add_parser("circle", help="Circle of N vehicles")
    circle.add_argument("-c", "--count", type=int, required=True,
                        help="Number of vehicles used to create the circle")
    circle.add_argument("-r", "--radius", type=float, required=True,
                        help="Radius of the circle in meters")

    square = shapes.add_parser("square", help="Square of 4 vehicles")
    square.add_argument("-w", "--width", type=float, required=True,
                        help="Side of the square in meters")

    line = shapes.add_parser("line", help="Line of 3 vehicles")
    line.add_argument("-w", "--width", type=float, required=True,
                      help="Length of the line in meters")
    line.add_argument("-a", "--angle", type=float, default=0.0,
                      help="Angle of the line in radians from east")

    for shape in (circle, square, line):
        shape.add_argument("--slat", type=float, required=True, help="Start latitude")
        shape.add_argument("--slon", type=float, required=True, help="Start longitude")
        shape.add_argument("--tlat", type=float, required=True, help="Shape latitude")
        shape.add_argument("--tlon", type=float, required=True, help="Shape longitude")
        shape.add_argument("--talt", type=float, required=True,
                           help="Shape altitude in meters above home")
        shape.add_argument("--hold", type=float, default=0.0,
                           help="Seconds to hold the shape")

    return parser.parse_args(argv)


def run_command(args, config: Config) -> int:
    """Run a plan and watch its progress"""
    target = args.vehicle or config.link.target
    timeout = args.timeout if args.timeout is not None else config.link.discovery_timeout_s

    recorder = RunRecorder()
    sink = TeeSink(LoggingSink(), recorder)
    cancel = CancellationToken()

    try:
        run = MissionRun(target, args.plan, sink, timeout, config=config, cancel=cancel)
    except ValueError as e:
        logger.error(f"Cannot run {args.plan}: {e}")
        return 1
    run.state_machine.on_transition(lambda old, new: recorder.set_state(new.name))

    # Progress watch after mission start
    finished = threading.Event()

    def on_progress(current: int, total: int):
        if total > 0 and current >= total:
            finished.set()

    sink.add(CallbackSink(on_progress=on_progress))

    telemetry = None
    telemetry_dir = args.telemetry_log or config.interface.telemetry_log_dir
    if telemetry_dir:
        telemetry = TelemetryLogger(telemetry_dir)
        telemetry.start(Path(args.plan).stem)
        sink.add(telemetry)

    if args.serve or config.interface.rest_enabled:
        from .server.api import create_api_server
        port = args.port or config.interface.rest_port
        create_api_server(recorder, port, config.interface.rest_host)

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, cancelling run...")
        cancel.cancel()

    previous_handlers = {
        signum: signal.signal(signum, signal_handler)
        for signum in (signal.SIGINT, signal.SIGTERM)
    }

    try:
        outcome = run.run()
        if not outcome.success:
            recorder.set_outcome(False, outcome.stage, str(outcome.reason))
            logger.error(f"Run failed: {outcome.reason}")
            return 1

        recorder.set_outcome(True)
        try:
            _watch_progress(finished, cancel, config.execution.watch_timeout_s)
        finally:
            outcome.release()
        return 0
    finally:
        for signum, handler in previous_handlers.items():
            if handler is not None:
                signal.signal(signum, handler)
        if telemetry:
            telemetry.stop()


def _watch_progress(finished: threading.Event, cancel: CancellationToken,
                    watch_timeout_s: float):
    """Keep relaying progress until the last item, cancel or timeout"""
    logger.info("Mission started, watching progress (Ctrl+C to stop)")
    deadline = time.monotonic() + watch_timeout_s if watch_timeout_s else None

    while not finished.is_set():
        if cancel.cancelled:
            logger.info("Stopped watching mission")
            return
        if deadline is not None and time.monotonic() >= deadline:
            logger.warning(f"Mission not finished after {watch_timeout_s:g}s, detaching")
            return
        finished.wait(0.5)

    logger.info("Mission finished")


def generate_command(args) -> int:
    """Write formation plans to disk"""
    common = dict(
        start_lat=args.slat,
        start_lon=args.slon,
        target_lat=args.tlat,
        target_lon=args.tlon,
        target_alt=args.talt,
        hold_sec=args.hold,
    )

    try:
        if args.shape == "circle":
            mission = CircleMission(args.count, args.radius, **common)
        elif args.shape == "square":
            mission = SquareMission(args.width, **common)
        else:
            mission = LineMission(args.width, args.angle, **common)

        paths = mission.write_mission_to_disk(args.path)
    except (ValueError, NotADirectoryError) as e:
        logger.error(f"Cannot generate {args.shape} plans: {e}")
        return 1

    logger.info(f"Generated {len(paths)} {args.shape} plans in {args.path}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    args = parse_args(argv)

    # Load configuration
    config = Config.load(args.config)

    # Setup logging
    if args.verbose:
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, str(config.interface.log_level).upper(), logging.INFO)
    setup_logging(level=log_level, log_file=args.log_file or config.interface.log_file or None)

    set_config(config)
    logger.debug(f"flightctl {__version__} starting")

    if args.command == "run":
        return run_command(args, config)
    return generate_command(args)


if __name__ == "__main__":
    sys.exit(main())

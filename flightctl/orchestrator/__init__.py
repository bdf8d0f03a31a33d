"""
Orchestrator module

Discovery, readiness, mission loading and execution of a single mission run.
"""

from .cancel import CancellationToken
from .errors import (
    RunError,
    ConnectionFailed,
    DiscoveryTimedOut,
    RateConfigFailed,
    ReadinessTimedOut,
    ImportFailed,
    EmptyMission,
    UploadFailed,
    ArmFailed,
    StartFailed,
    RunCancelled,
)
from .handle import VehicleHandle
from .sink import (
    ReportingSink,
    CallbackSink,
    ChannelSink,
    LoggingSink,
    TeeSink,
    RunRecorder,
)
from .state import RunState, RunStateMachine
from .telemetry import TelemetryLogger
from .discovery import DiscoveryCoordinator
from .readiness import ReadinessGate
from .loader import MissionLoader
from .execution import ExecutionController
from .runner import MissionRun, RunOutcome, run_mission

__all__ = [
    'CancellationToken',
    # Errors
    'RunError',
    'ConnectionFailed',
    'DiscoveryTimedOut',
    'RateConfigFailed',
    'ReadinessTimedOut',
    'ImportFailed',
    'EmptyMission',
    'UploadFailed',
    'ArmFailed',
    'StartFailed',
    'RunCancelled',
    # Sinks
    'ReportingSink',
    'CallbackSink',
    'ChannelSink',
    'LoggingSink',
    'TeeSink',
    'RunRecorder',
    'TelemetryLogger',
    # Stages
    'VehicleHandle',
    'RunState',
    'RunStateMachine',
    'DiscoveryCoordinator',
    'ReadinessGate',
    'MissionLoader',
    'ExecutionController',
    'MissionRun',
    'RunOutcome',
    'run_mission',
]

"""
Mission run orchestration

Sequences discovery, readiness, mission loading and execution into one
operation with a single outcome.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from ..config import Config
from ..link.base import VehicleLink
from ..link.mavlink_link import MavlinkLink
from ..mission.importer import PlanImporter
from .cancel import CancellationToken
from .discovery import DEFAULT_DISCOVERY_TIMEOUT, DiscoveryCoordinator
from .errors import RunCancelled, RunError
from .execution import ExecutionController
from .handle import VehicleHandle
from .loader import MissionLoader
from .readiness import ReadinessGate
from .sink import ReportingSink
from .state import RunState, RunStateMachine

logger = logging.getLogger(__name__)


@dataclass
class RunOutcome:
    """
    Result of one mission run

    On success the handle is still open and owned by the caller, so
    mission progress keeps flowing to the sink until it is released.
    """
    success: bool
    reason: Optional[RunError] = None
    handle: Optional[VehicleHandle] = None
    uploaded_items: int = 0

    @classmethod
    def succeeded(cls, handle: VehicleHandle, uploaded_items: int) -> 'RunOutcome':
        return cls(success=True, handle=handle, uploaded_items=uploaded_items)

    @classmethod
    def failure(cls, reason: RunError) -> 'RunOutcome':
        return cls(success=False, reason=reason)

    @property
    def stage(self) -> Optional[str]:
        return self.reason.stage if self.reason else None

    def release(self):
        """Release the vehicle handle of a successful run"""
        if self.handle is not None:
            self.handle.release()


def link_from_config(config: Config) -> MavlinkLink:
    """Build the default MAVLink link from configuration"""
    return MavlinkLink(
        source_system=config.link.source_system,
        source_component=config.link.source_component,
        command_timeout_s=config.link.command_timeout_s,
        command_retries=config.link.command_retries,
        item_timeout_s=config.link.item_timeout_s,
        upload_timeout_s=config.link.upload_timeout_s,
    )


class MissionRun:
    """
    One mission run

    Stages run strictly in order, each short-circuiting on failure.
    The link is closed on every failure and cancel path.
    """

    def __init__(self, target: str, plan_path: Union[str, Path], sink: ReportingSink,
                 discovery_timeout: float = DEFAULT_DISCOVERY_TIMEOUT,
                 link: Optional[VehicleLink] = None,
                 importer: Optional[PlanImporter] = None,
                 config: Optional[Config] = None,
                 cancel: Optional[CancellationToken] = None):
        if not target or not target.strip():
            raise ValueError("connection target must not be empty")
        if discovery_timeout is None or discovery_timeout <= 0:
            raise ValueError("discovery timeout must be positive")

        self.config = config or Config()
        self.target = target
        self.plan_path = plan_path
        self.sink = sink
        self.discovery_timeout = discovery_timeout
        self.cancel = cancel or CancellationToken()
        self.link = link or link_from_config(self.config)
        self.importer = importer
        self.state_machine = RunStateMachine()

    @property
    def state(self) -> RunState:
        return self.state_machine.state

    def run(self) -> RunOutcome:
        """
        Execute the run

        Returns:
            RunOutcome; failures carry the originating RunError
        """
        handle = None
        # Cancelling aborts link waits in progress
        unregister = self.cancel.register(self.link.interrupt)
        try:
            self._enter(RunState.DISCOVERING, "discovery")
            handle = DiscoveryCoordinator(
                self.link, self.sink, self.discovery_timeout, self.cancel
            ).discover(self.target)

            self._enter(RunState.READINESS, "readiness")
            ReadinessGate(
                self.sink,
                position_rate_hz=self.config.readiness.position_rate_hz,
                poll_interval_s=self.config.readiness.poll_interval_s,
                max_wait_s=self.config.readiness.max_wait_s,
                cancel=self.cancel,
            ).wait_ready(handle)

            self._enter(RunState.LOADING, "load")
            uploaded = MissionLoader(self.sink, self.importer).load(self.plan_path, handle)

            self._enter(RunState.EXECUTING, "execution")
            ExecutionController(
                self.sink,
                abort_on_arm_failure=self.config.execution.abort_on_arm_failure,
            ).execute(handle)

        except RunError as e:
            self._release(handle)
            if self.cancel.cancelled and not isinstance(e, RunCancelled):
                self.sink.log("Run cancelled")
                e = RunCancelled(f"cancelled during {e.stage}: {e.detail}", stage=e.stage)
            if isinstance(e, RunCancelled):
                self.state_machine.transition_to(RunState.CANCELLED)
            else:
                self.state_machine.transition_to(RunState.FAILED)
            logger.error(f"Mission run failed during {e.stage}: {e}")
            return RunOutcome.failure(e)

        except BaseException:
            self._release(handle)
            self.state_machine.transition_to(RunState.FAILED)
            raise

        finally:
            unregister()

        self.state_machine.transition_to(RunState.COMPLETED)
        logger.info("Mission run complete")
        return RunOutcome.succeeded(handle, uploaded)

    def _enter(self, state: RunState, stage: str):
        if self.cancel.cancelled:
            self.sink.log("Run cancelled")
            raise RunCancelled(f"cancelled before {stage}", stage=stage)
        self.state_machine.transition_to(state)

    def _release(self, handle: Optional[VehicleHandle]):
        if handle is not None:
            handle.release()
        else:
            self.link.close()


def run_mission(target: str, plan_path: Union[str, Path], sink: ReportingSink,
                discovery_timeout: float = DEFAULT_DISCOVERY_TIMEOUT, *,
                link: Optional[VehicleLink] = None,
                importer: Optional[PlanImporter] = None,
                config: Optional[Config] = None,
                cancel: Optional[CancellationToken] = None) -> RunOutcome:
    """
    Run a plan file on the first autopilot found at target

    Args:
        target: Connection URI (e.g. "udp://:14540")
        plan_path: QGroundControl .plan file
        sink: Receiver of log/position/progress/complete events
        discovery_timeout: Seconds to wait for an autopilot
        link: Vehicle link (default: MavlinkLink from config)
        importer: Plan importer (default: QgcPlanImporter)
        config: Configuration (default: built-in defaults)
        cancel: Cancellation token

    Returns:
        RunOutcome

    Raises:
        ValueError: Empty target or non-positive timeout
    """
    return MissionRun(target, plan_path, sink, discovery_timeout,
                      link=link, importer=importer, config=config, cancel=cancel).run()

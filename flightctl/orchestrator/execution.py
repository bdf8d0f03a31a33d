"""
Execution Controller

Arms the vehicle, subscribes to mission progress and starts the mission.
"""

import logging

from ..link.base import LinkError
from ..mission.models import MissionProgress
from .errors import ArmFailed, StartFailed
from .handle import VehicleHandle
from .sink import ReportingSink

logger = logging.getLogger(__name__)


class ExecutionController:
    """
    arm -> subscribe progress -> start mission

    An arm failure is only logged unless abort_on_arm_failure is set.
    complete() is reported once the start request is accepted.
    """

    def __init__(self, sink: ReportingSink, abort_on_arm_failure: bool = False):
        self.sink = sink
        self.abort_on_arm_failure = abort_on_arm_failure

    def execute(self, handle: VehicleHandle) -> bool:
        """
        Run the execution sequence

        Returns:
            True if arming succeeded

        Raises:
            ArmFailed: Arm refused and abort_on_arm_failure is set
            StartFailed: Mission start refused
        """
        armed = True
        self.sink.log("Arming system")
        try:
            handle.arm()
        except LinkError as e:
            armed = False
            self.sink.log(f"Arm Failed: {e}")
            if self.abort_on_arm_failure:
                raise ArmFailed(str(e))
            logger.warning(f"Arming failed, continuing: {e}")
        self.sink.log("Arming complete")

        handle.subscribe_mission_progress(self._relay_progress)

        self.sink.log("Starting Mission")
        try:
            handle.start_mission()
        except LinkError as e:
            self.sink.log(f"Mission start failed: {e}")
            raise StartFailed(str(e))

        self.sink.complete()
        return armed

    def _relay_progress(self, progress: MissionProgress):
        self.sink.progress(progress.current, progress.total)

"""
Mission Loader

Imports a plan file and uploads its items to the vehicle.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from ..link.base import LinkError
from ..mission.importer import PlanImporter, PlanImportError, QgcPlanImporter
from .errors import EmptyMission, ImportFailed, UploadFailed
from .handle import VehicleHandle
from .sink import ReportingSink

logger = logging.getLogger(__name__)


class MissionLoader:
    """Import + emptiness check + single upload"""

    def __init__(self, sink: ReportingSink, importer: Optional[PlanImporter] = None):
        self.sink = sink
        self.importer = importer or QgcPlanImporter()

    def load(self, plan_path: Union[str, Path], handle: VehicleHandle) -> int:
        """
        Import plan_path and upload it

        Returns:
            Number of uploaded items

        Raises:
            ImportFailed: Plan could not be imported
            EmptyMission: Plan has no items
            UploadFailed: Vehicle did not accept the upload
        """
        self.sink.log("Pulling mission data from plan file")
        try:
            plan = self.importer.import_plan(plan_path)
        except PlanImportError as e:
            self.sink.log(f"Failed to import mission: {e}")
            raise ImportFailed(str(e))

        if plan.is_empty:
            self.sink.log("Mission is empty")
            raise EmptyMission()

        self.sink.log("Uploading mission to system")
        try:
            handle.upload_mission(plan.items)
        except LinkError as e:
            self.sink.log(f"Failed to upload mission to system: {e}")
            raise UploadFailed(str(e))

        self.sink.log("Successfully uploaded mission")
        logger.info(f"Uploaded {len(plan)} items from {plan_path}")
        return len(plan)

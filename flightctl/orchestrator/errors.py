"""
Run errors

Every stage failure is a RunError subclass carrying the stage it came from
and the detail reported by the link or importer.
"""


class RunError(Exception):
    """
    Base class of mission run failures

    Attributes:
        stage: Name of the stage that failed
        detail: Link / importer detail
    """

    stage = "run"
    summary = "Mission run failed"

    def __init__(self, detail: str = "", stage: str = None):
        if stage is not None:
            self.stage = stage
        self.detail = detail
        super().__init__(f"{self.summary}: {detail}" if detail else self.summary)


class ConnectionFailed(RunError):
    """The link could not be opened"""
    stage = "discovery"
    summary = "Connection failed"


class DiscoveryTimedOut(RunError):
    """No autopilot system appeared in time"""
    stage = "discovery"
    summary = "No autopilot discovered"


class RateConfigFailed(RunError):
    """Position telemetry rate could not be set"""
    stage = "readiness"
    summary = "Failed to connect to system"


class ReadinessTimedOut(RunError):
    """Vehicle health checks never passed"""
    stage = "readiness"
    summary = "Vehicle not ready"


class ImportFailed(RunError):
    """Plan file could not be imported"""
    stage = "load"
    summary = "Plan import failed"


class EmptyMission(RunError):
    """Plan contains no mission items"""
    stage = "load"
    summary = "Mission is empty"


class UploadFailed(RunError):
    """Mission upload was not accepted"""
    stage = "load"
    summary = "Mission upload failed"


class ArmFailed(RunError):
    """Arming was refused (fatal only when configured)"""
    stage = "execution"
    summary = "Arm failed"


class StartFailed(RunError):
    """Mission start was refused"""
    stage = "execution"
    summary = "Mission start failed"


class RunCancelled(RunError):
    """The run was cancelled by the caller"""
    summary = "Run cancelled"

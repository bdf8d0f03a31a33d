"""
Run telemetry recording
"""

import logging
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Optional

from .sink import ReportingSink

logger = logging.getLogger(__name__)


class TelemetryLogger(ReportingSink):
    """
    Run telemetry recorder for post-flight analysis.

    Writes every sink event as one CSV row:
        time_s, event, lat, lon, alt, current, total, message
    """

    COLUMNS = ["time_s", "event", "lat", "lon", "alt", "current", "total", "message"]

    def __init__(self, log_dir: str = None):
        """
        Initialize telemetry logger.

        Args:
            log_dir: Directory for run logs (default: ~/.flightctl/logs)
        """
        if log_dir is None:
            log_dir = Path.home() / ".flightctl" / "logs"
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.log_file: Optional[Path] = None
        self._file = None
        self._start_time: float = 0.0
        self._rows: int = 0
        self._lock = threading.Lock()

    @property
    def is_logging(self) -> bool:
        """Check if currently logging."""
        return self._file is not None

    @property
    def rows(self) -> int:
        return self._rows

    def start(self, run_name: str = None) -> Path:
        """
        Start a new telemetry log.

        Args:
            run_name: Optional name for the filename (e.g. plan file stem)

        Returns:
            Path to the log file
        """
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        if run_name:
            safe_name = "".join(c if c.isalnum() or c in "-_" else "_" for c in run_name)
            filename = f"run_{timestamp}_{safe_name}.csv"
        else:
            filename = f"run_{timestamp}.csv"

        with self._lock:
            self.log_file = self.log_dir / filename
            self._file = open(self.log_file, 'w', buffering=1)  # Line buffering
            self._start_time = time.time()
            self._rows = 0

            self._file.write("# flightctl run log\n")
            self._file.write(f"# Started: {datetime.now().isoformat()}\n")
            self._file.write(f"# Run: {_single_line(run_name or 'None')}\n")
            self._file.write(",".join(self.COLUMNS) + "\n")

        logger.info(f"Telemetry log started: {self.log_file}")
        return self.log_file

    def _write(self, event: str, lat: str = "", lon: str = "", alt: str = "",
               current: str = "", total: str = "", message: str = ""):
        with self._lock:
            if self._file is None:
                return
            elapsed = time.time() - self._start_time
            if message:
                message = '"' + _single_line(message).replace('"', '""') + '"'
            values = [f"{elapsed:.3f}", event, lat, lon, alt, current, total, message]
            self._file.write(",".join(values) + "\n")
            self._rows += 1

    def log(self, message: str):
        self._write("log", message=message)

    def position(self, lat: float, lon: float, alt: float):
        self._write("position", lat=f"{lat:.7f}", lon=f"{lon:.7f}", alt=f"{alt:.2f}")

    def progress(self, current: int, total: int):
        self._write("progress", current=str(current), total=str(total))

    def complete(self):
        self._write("complete")

    def stop(self):
        """Stop logging and close file."""
        with self._lock:
            if self._file is None:
                return
            self._file.write(f"# Ended: {datetime.now().isoformat()}\n")
            self._file.write(f"# Total rows: {self._rows}\n")
            self._file.close()
            self._file = None
        logger.info(f"Telemetry log stopped: {self._rows} rows")


def _single_line(text: str) -> str:
    # One row per event
    return " ".join(text.splitlines())

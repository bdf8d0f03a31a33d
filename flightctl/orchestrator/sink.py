"""
Reporting sinks

Receivers of the events produced by a mission run: log lines, position
updates, mission progress and the single completion signal. Methods may be
called from the caller thread and from the link's I/O thread, so every
implementation here is thread-safe.
"""

import logging
import queue
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class ReportingSink(ABC):
    """Caller-supplied event receiver"""

    @abstractmethod
    def log(self, message: str):
        """Human readable progress line"""
        pass

    @abstractmethod
    def position(self, lat: float, lon: float, alt: float):
        """Position update (degrees, degrees, meters above home)"""
        pass

    @abstractmethod
    def progress(self, current: int, total: int):
        """Mission progress update"""
        pass

    @abstractmethod
    def complete(self):
        """Mission started; delivered at most once"""
        pass


class CallbackSink(ReportingSink):
    """
    Sink wrapping plain callables

    Missing callables are skipped. complete() reaches its callable at
    most once.
    """

    def __init__(self,
                 on_log: Optional[Callable[[str], Any]] = None,
                 on_position: Optional[Callable[[float, float, float], Any]] = None,
                 on_progress: Optional[Callable[[int, int], Any]] = None,
                 on_complete: Optional[Callable[[], Any]] = None):
        self._on_log = on_log
        self._on_position = on_position
        self._on_progress = on_progress
        self._on_complete = on_complete
        self._completed = False
        self._lock = threading.Lock()

    def log(self, message: str):
        if self._on_log:
            self._on_log(message)

    def position(self, lat: float, lon: float, alt: float):
        if self._on_position:
            self._on_position(lat, lon, alt)

    def progress(self, current: int, total: int):
        if self._on_progress:
            self._on_progress(current, total)

    def complete(self):
        with self._lock:
            if self._completed:
                return
            self._completed = True
        if self._on_complete:
            self._on_complete()


class ChannelSink(ReportingSink):
    """
    Sink with one FIFO queue per event kind

    Consumers read from .logs, .positions, .progresses and .completions
    (or use drain()).
    """

    def __init__(self):
        self.logs: "queue.Queue[str]" = queue.Queue()
        self.positions: "queue.Queue[Tuple[float, float, float]]" = queue.Queue()
        self.progresses: "queue.Queue[Tuple[int, int]]" = queue.Queue()
        self.completions: "queue.Queue[bool]" = queue.Queue()
        self._completed = False
        self._lock = threading.Lock()

    def log(self, message: str):
        self.logs.put(message)

    def position(self, lat: float, lon: float, alt: float):
        self.positions.put((lat, lon, alt))

    def progress(self, current: int, total: int):
        self.progresses.put((current, total))

    def complete(self):
        with self._lock:
            if self._completed:
                return
            self._completed = True
        self.completions.put(True)

    @staticmethod
    def drain(channel: queue.Queue) -> list:
        """Return everything currently queued on a channel"""
        items = []
        while True:
            try:
                items.append(channel.get_nowait())
            except queue.Empty:
                return items


class LoggingSink(ReportingSink):
    """Sink writing every event through the logging module"""

    def __init__(self, name: str = "flightctl.run", position_level: int = logging.DEBUG):
        self._logger = logging.getLogger(name)
        self._position_level = position_level

    def log(self, message: str):
        self._logger.info(message)

    def position(self, lat: float, lon: float, alt: float):
        self._logger.log(self._position_level,
                         f"Position: lat={lat:.7f} lon={lon:.7f} alt={alt:.1f}m")

    def progress(self, current: int, total: int):
        self._logger.info(f"Mission progress: {current}/{total}")

    def complete(self):
        self._logger.info("Mission complete")


class TeeSink(ReportingSink):
    """Fan events out to several sinks in order"""

    def __init__(self, *sinks: ReportingSink):
        self.sinks: List[ReportingSink] = list(sinks)

    def add(self, sink: ReportingSink):
        self.sinks.append(sink)

    def log(self, message: str):
        for sink in self.sinks:
            sink.log(message)

    def position(self, lat: float, lon: float, alt: float):
        for sink in self.sinks:
            sink.position(lat, lon, alt)

    def progress(self, current: int, total: int):
        for sink in self.sinks:
            sink.progress(current, total)

    def complete(self):
        for sink in self.sinks:
            sink.complete()


class RunRecorder(ReportingSink):
    """
    Sink keeping a status snapshot of the current run

    Backs the REST status API. The run state and outcome are set by the
    caller through set_state() / set_outcome().
    """

    MAX_LOGS = 1000

    def __init__(self):
        self._lock = threading.Lock()
        self._started = time.time()
        self._state = "IDLE"
        self._position: Optional[Dict[str, float]] = None
        self._progress: Optional[Dict[str, int]] = None
        self._completed = False
        self._outcome: Optional[Dict[str, Any]] = None
        self._logs: List[Dict[str, Any]] = []
        self._log_offset = 0    # index of self._logs[0]

    def log(self, message: str):
        with self._lock:
            self._logs.append({'time': time.time(), 'message': message})
            if len(self._logs) > self.MAX_LOGS:
                dropped = len(self._logs) - self.MAX_LOGS
                del self._logs[:dropped]
                self._log_offset += dropped

    def position(self, lat: float, lon: float, alt: float):
        with self._lock:
            self._position = {'lat': lat, 'lon': lon, 'alt': alt, 'time': time.time()}

    def progress(self, current: int, total: int):
        with self._lock:
            self._progress = {'current': current, 'total': total}

    def complete(self):
        with self._lock:
            self._completed = True

    def set_state(self, state: str):
        with self._lock:
            self._state = state

    def set_outcome(self, success: bool, stage: str = None, reason: str = None):
        with self._lock:
            self._outcome = {'success': success, 'stage': stage, 'reason': reason}

    @property
    def completed(self) -> bool:
        with self._lock:
            return self._completed

    def get_status(self) -> Dict[str, Any]:
        """Snapshot of the run"""
        with self._lock:
            return {
                'state': self._state,
                'uptime': time.time() - self._started,
                'position': dict(self._position) if self._position else None,
                'progress': dict(self._progress) if self._progress else None,
                'completed': self._completed,
                'outcome': dict(self._outcome) if self._outcome else None,
                'log_count': self._log_offset + len(self._logs),
            }

    def get_logs(self, since: int = 0) -> Tuple[List[Dict[str, Any]], int]:
        """
        Log entries from index since onwards

        Returns:
            Tuple of (entries, next index to ask for)
        """
        with self._lock:
            start = max(since - self._log_offset, 0)
            entries = [dict(e) for e in self._logs[start:]]
            return entries, self._log_offset + len(self._logs)

"""
Tests for the mission run orchestration
"""

import threading
import time

import pytest

from flightctl.link.base import LinkError
from flightctl.orchestrator.cancel import CancellationToken
from flightctl.orchestrator.errors import (
    DiscoveryTimedOut,
    EmptyMission,
    ImportFailed,
    RunCancelled,
    StartFailed,
)
from flightctl.orchestrator.runner import MissionRun, RunOutcome, run_mission
from flightctl.orchestrator.state import RunState

from conftest import FakeLink, plan_document, simple_item


class ExplodingLink(FakeLink):
    def health_all_ok(self, system):
        raise RuntimeError("telemetry thread died")


class StallingUploadLink(FakeLink):
    """Vehicle that never finishes the mission upload"""

    def upload_mission(self, system, items):
        self.calls.append("upload_mission")
        if self.interrupted.wait(5.0):
            raise LinkError("CANCELLED", "link interrupted")
        raise LinkError("TIMEOUT", "mission upload timed out")


class TestRunScenarios:
    """End to end runs against a scripted link"""

    def test_successful_run(self, sink, fast_config, three_item_plan, sample_positions):
        link = FakeLink(positions=sample_positions, progress=[(1, 3), (2, 3), (3, 3)])

        outcome = run_mission("udp://:14540", three_item_plan, sink,
                              link=link, config=fast_config)

        assert outcome.success
        assert outcome.reason is None
        assert outcome.uploaded_items == 3
        assert sink.logs == [
            "Waiting to discover system...",
            "Discovered autopilot",
            "Setting up Position monitoring",
            "Vehicle is ready",
            "Pulling mission data from plan file",
            "Uploading mission to system",
            "Successfully uploaded mission",
            "Arming system",
            "Arming complete",
            "Starting Mission",
        ]
        assert len(sink.of("position")) == 2
        assert sink.of("progress")[-1] == (3, 3)
        assert sink.of("complete") == [()]

    def test_success_hands_handle_to_caller(self, fake_link, sink, fast_config, three_item_plan):
        outcome = run_mission("udp://:14540", three_item_plan, sink,
                              link=fake_link, config=fast_config)

        assert fake_link.close_count == 0
        assert not outcome.handle.released

        fake_link.emit_progress(2, 3)
        assert sink.of("progress") == [(2, 3)]

        outcome.release()
        assert fake_link.close_count == 1

    def test_no_system(self, sink, fast_config, three_item_plan):
        link = FakeLink(systems=[])

        outcome = run_mission("udp://:14540", three_item_plan, sink, 0.2,
                              link=link, config=fast_config)

        assert not outcome.success
        assert isinstance(outcome.reason, DiscoveryTimedOut)
        assert outcome.stage == "discovery"
        assert sink.logs == ["Waiting to discover system..."]
        assert sink.of("position") == []
        assert sink.of("progress") == []
        assert "set_position_rate" not in link.calls
        assert link.close_count == 1

    def test_empty_plan(self, fake_link, sink, fast_config, empty_plan):
        outcome = run_mission("udp://:14540", empty_plan, sink,
                              link=fake_link, config=fast_config)

        assert isinstance(outcome.reason, EmptyMission)
        assert "upload_mission" not in fake_link.calls
        assert "arm" not in fake_link.calls
        assert fake_link.close_count == 1

    def test_import_failure(self, fake_link, sink, fast_config, tmp_path):
        outcome = run_mission("udp://:14540", tmp_path / "nope.plan", sink,
                              link=fake_link, config=fast_config)

        assert isinstance(outcome.reason, ImportFailed)
        assert outcome.stage == "load"

    def test_non_utf8_plan_is_an_import_failure(self, fake_link, sink, fast_config, tmp_path):
        path = tmp_path / "binary.plan"
        path.write_bytes(b"\xff\xfe\x00garbage")

        outcome = run_mission("udp://:14540", path, sink, link=fake_link, config=fast_config)

        assert isinstance(outcome.reason, ImportFailed)
        assert "upload_mission" not in fake_link.calls
        assert fake_link.close_count == 1

    def test_infinite_coordinate_is_an_import_failure(self, fake_link, sink, fast_config,
                                                      write_plan):
        path = write_plan(plan_document([simple_item(16, float("inf"), 8.5, 10.0)]))

        outcome = run_mission("udp://:14540", path, sink, link=fake_link, config=fast_config)

        assert isinstance(outcome.reason, ImportFailed)
        assert outcome.stage == "load"

    def test_start_failure(self, sink, fast_config, three_item_plan):
        link = FakeLink(start_error=LinkError("DENIED"))

        outcome = run_mission("udp://:14540", three_item_plan, sink,
                              link=link, config=fast_config)

        assert isinstance(outcome.reason, StartFailed)
        assert sink.of("complete") == []
        assert link.close_count == 1

    def test_arm_failure_still_starts(self, sink, fast_config, three_item_plan):
        link = FakeLink(arm_error=LinkError("DENIED", "safety switch"))

        outcome = run_mission("udp://:14540", three_item_plan, sink,
                              link=link, config=fast_config)

        assert outcome.success
        assert "start_mission" in link.calls

    def test_arm_failure_aborts_when_configured(self, sink, fast_config, three_item_plan):
        fast_config.execution.abort_on_arm_failure = True
        link = FakeLink(arm_error=LinkError("DENIED"))

        outcome = run_mission("udp://:14540", three_item_plan, sink,
                              link=link, config=fast_config)

        assert not outcome.success
        assert "start_mission" not in link.calls


class TestMissionRun:
    """State machine, validation and resource handling"""

    def test_invalid_arguments_touch_nothing(self, fake_link, sink, three_item_plan):
        with pytest.raises(ValueError):
            run_mission("", three_item_plan, sink, link=fake_link)
        with pytest.raises(ValueError):
            run_mission("udp://:14540", three_item_plan, sink, 0, link=fake_link)

        assert fake_link.calls == []

    def test_state_progression(self, fake_link, sink, fast_config, three_item_plan):
        run = MissionRun("udp://:14540", three_item_plan, sink,
                         link=fake_link, config=fast_config)
        states = []
        run.state_machine.on_transition(lambda old, new: states.append(new))

        run.run()

        assert states == [
            RunState.DISCOVERING,
            RunState.READINESS,
            RunState.LOADING,
            RunState.EXECUTING,
            RunState.COMPLETED,
        ]

    def test_failed_state(self, fake_link, sink, fast_config, empty_plan):
        run = MissionRun("udp://:14540", empty_plan, sink,
                         link=fake_link, config=fast_config)

        run.run()

        assert run.state == RunState.FAILED

    def test_cancelled_before_start(self, fake_link, sink, fast_config, three_item_plan):
        cancel = CancellationToken()
        cancel.cancel()
        run = MissionRun("udp://:14540", three_item_plan, sink,
                         link=fake_link, config=fast_config, cancel=cancel)

        outcome = run.run()

        assert isinstance(outcome.reason, RunCancelled)
        assert run.state == RunState.CANCELLED
        assert "connect" not in fake_link.calls
        assert fake_link.close_count == 1

    def test_cancel_interrupts_upload(self, sink, fast_config, three_item_plan):
        link = StallingUploadLink()
        cancel = CancellationToken()
        timer = threading.Timer(0.2, cancel.cancel)
        timer.start()

        started = time.monotonic()
        try:
            outcome = run_mission("udp://:14540", three_item_plan, sink,
                                  link=link, config=fast_config, cancel=cancel)
        finally:
            timer.cancel()

        assert time.monotonic() - started < 2.0
        assert isinstance(outcome.reason, RunCancelled)
        assert outcome.stage == "load"
        assert "interrupt" in link.calls
        assert "arm" not in link.calls
        assert sink.logs[-1] == "Run cancelled"
        assert link.close_count == 1

    def test_successful_run_leaves_link_uninterrupted(self, fake_link, sink, fast_config,
                                                      three_item_plan):
        cancel = CancellationToken()

        outcome = run_mission("udp://:14540", three_item_plan, sink,
                              link=fake_link, config=fast_config, cancel=cancel)
        cancel.cancel()

        assert outcome.success
        assert "interrupt" not in fake_link.calls
        outcome.release()

    def test_unexpected_error_propagates_and_releases(self, sink, fast_config, three_item_plan):
        link = ExplodingLink()

        with pytest.raises(RuntimeError):
            run_mission("udp://:14540", three_item_plan, sink, link=link, config=fast_config)

        assert link.close_count == 1

    def test_outcome_failure_has_no_handle(self):
        outcome = RunOutcome.failure(EmptyMission())

        assert outcome.handle is None
        assert outcome.stage == "load"
        outcome.release()

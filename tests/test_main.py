"""
Tests for the command line entry point
"""

import pytest

from flightctl import main as cli
from flightctl.orchestrator.runner import MissionRun

from conftest import FakeLink


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(cli, "setup_logging", lambda **kwargs: None)
    monkeypatch.setattr(cli, "set_config", lambda config: None)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "test.yaml"
    path.write_text(
        "readiness:\n"
        "  poll_interval_s: 0.01\n"
        "execution:\n"
        "  watch_timeout_s: 0.2\n"
    )
    return str(path)


def use_link(monkeypatch, link):
    """Make MissionRun use link instead of a MAVLink connection"""
    original = MissionRun.__init__

    def init(self, *args, **kwargs):
        kwargs["link"] = link
        original(self, *args, **kwargs)

    monkeypatch.setattr(MissionRun, "__init__", init)


class TestGenerate:
    """Test the generate command"""

    def test_circle(self, tmp_path):
        code = cli.main(["generate", "-p", str(tmp_path), "circle", "-c", "5", "-r", "20",
                         "--slat", "47.3977", "--slon", "8.5456",
                         "--tlat", "47.3990", "--tlon", "8.5470", "--talt", "15", "--hold", "3"])

        assert code == 0
        assert sorted(p.name for p in tmp_path.glob("*.plan")) == [f"plan_{i}.plan" for i in range(5)]

    def test_square_into_missing_directory(self, tmp_path):
        code = cli.main(["generate", "-p", str(tmp_path / "missing"), "square", "-w", "10",
                         "--slat", "0", "--slon", "0", "--tlat", "0", "--tlon", "0", "--talt", "10"])

        assert code == 1

    def test_invalid_shape_parameters(self, tmp_path):
        code = cli.main(["generate", "-p", str(tmp_path), "line", "-w", "10",
                         "--slat", "0", "--slon", "0", "--tlat", "0", "--tlon", "0", "--talt", "0"])

        assert code == 1
        assert list(tmp_path.iterdir()) == []

    def test_requires_shape(self, tmp_path):
        with pytest.raises(SystemExit):
            cli.main(["generate", "-p", str(tmp_path)])


class TestRun:
    """Test the run command against a scripted link"""

    def test_successful_run(self, monkeypatch, config_file, three_item_plan):
        link = FakeLink(progress=[(1, 3), (3, 3)])
        use_link(monkeypatch, link)

        code = cli.main(["-c", config_file, "run", "-v", "udp://:14540", "-p", str(three_item_plan)])

        assert code == 0
        assert "start_mission" in link.calls
        assert link.close_count == 1

    def test_failed_run(self, monkeypatch, config_file, empty_plan):
        link = FakeLink()
        use_link(monkeypatch, link)

        code = cli.main(["-c", config_file, "run", "-p", str(empty_plan)])

        assert code == 1
        assert link.target == "udp://:14540"

    def test_telemetry_log(self, monkeypatch, config_file, three_item_plan, tmp_path):
        link = FakeLink(progress=[(3, 3)])
        use_link(monkeypatch, link)
        log_dir = tmp_path / "logs"

        code = cli.main(["-c", config_file, "run", "-p", str(three_item_plan),
                         "--telemetry-log", str(log_dir)])

        assert code == 0
        logs = list(log_dir.glob("run_*_mission.csv"))
        assert len(logs) == 1
        assert ",complete," in logs[0].read_text()

    @pytest.mark.parametrize("timeout", ["0", "-1"])
    def test_invalid_timeout(self, monkeypatch, config_file, three_item_plan, tmp_path, timeout):
        link = FakeLink()
        use_link(monkeypatch, link)
        log_dir = tmp_path / "logs"

        code = cli.main(["-c", config_file, "run", "-p", str(three_item_plan),
                         "--timeout", timeout, "--telemetry-log", str(log_dir)])

        assert code == 1
        assert link.calls == []
        assert not log_dir.exists()

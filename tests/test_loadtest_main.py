from unittest import mock

import pytest

from torrentwire.loadtest_config import LoadTestConfig, TorrentConfig
from torrentwire.loadtest_main import (
    format_final_report,
    format_interval_report,
    main,
    monitor_statistics,
    run,
)
from torrentwire.loadtest_requests import LoadTestState, Statistics


def test_interval_report_lines():
    report = format_interval_report(
        {"requests": 3.0, "responses_announce": 1.5, "responses_error": 0.5}
    )
    lines = report.splitlines()
    assert lines[0] == "Requests out: 3.00/second"
    assert lines[1] == "Responses in: 2.00/second"
    assert lines[2] == "  - Announce responses: 1.50"
    assert lines[-1] == "  - Error responses:   0.50"
    assert len(lines) == 7


def test_final_report_contains_average_and_duration():
    config = LoadTestConfig(duration=10)
    report = format_final_report(10, [1.0, 3.0], config)
    assert "Test ran for 10 seconds." in report
    assert "Average responses per second: 2.00" in report
    assert "duration=10" in report


def test_monitor_statistics_reports_and_resets_counters(capsys):
    state = LoadTestState(
        info_hashes=(b"a" * 20,), statistics=Statistics(), pareto_shape=2.0
    )
    state.statistics.add("requests", 10)
    state.statistics.add("responses_announce", 5)
    config = LoadTestConfig(duration=5)

    with mock.patch("torrentwire.loadtest_main.sleep") as fake_sleep, mock.patch(
        "torrentwire.loadtest_main.monotonic", side_effect=[0.0, 5.0]
    ):
        report = monitor_statistics(state, config)

    assert fake_sleep.call_count == 1
    out = capsys.readouterr().out
    assert "Requests out: 2.00/second" in out
    assert "Responses in: 1.00/second" in out
    assert "Test ran for 5 seconds." in report
    assert "Average responses per second: 1.00" in report
    assert state.statistics.requests == 0
    assert state.statistics.responses_announce == 0


def test_run_rejects_zero_weights():
    config = LoadTestConfig(torrents=TorrentConfig(weight_announce=0, weight_scrape=0))
    with pytest.raises(ValueError):
        run(config)


def test_main_reports_bad_config(tmp_path, capsys):
    path = tmp_path / "config.toml"
    path.write_text("[torrents]\nweight_announce = 0\nweight_scrape = 0\n")
    assert main(["--config", str(path)]) == 1
    assert "weight" in capsys.readouterr().err


def test_main_reports_missing_file(tmp_path, capsys):
    assert main(["--config", str(tmp_path / "missing.toml")]) == 1
    assert capsys.readouterr().err.startswith("Error:")
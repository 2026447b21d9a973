"""Tests for the aggregation and logging helpers."""

import pytest
from loguru import logger

from blkarbs_probes import (
    LockFailure,
    Probe,
    Result,
    Segment,
    log_results,
    print_summary,
    summarize,
)
from blkarbs_probes import _report

pytestmark = pytest.mark.usefixtures("clean_registry")


@pytest.fixture
def sample_results() -> list[Result]:
    return [
        Result("main", 150, (Segment("func1", 100), Segment("func2", 50))),
        Result("main", 170, (Segment("func1", 110), Segment("func2", 60))),
        Result("idle", 0),
    ]


@pytest.fixture
def info_messages():
    messages: list[str] = []
    handler_id = logger.add(messages.append, level="INFO", format="{message}")
    yield messages
    logger.remove(handler_id)


class TestSummarize:
    def test_groups_by_name_in_first_seen_order(self, sample_results):
        summary = summarize(sample_results)
        assert list(summary) == ["main", "idle"]
        assert list(summary["main"]["segments"]) == ["func1", "func2"]

    def test_totals_and_averages(self, sample_results):
        main = summarize(sample_results)["main"]
        assert main["count"] == 2
        assert main["total_duration"] == 320
        assert main["avg_duration"] == 160

        func1 = main["segments"]["func1"]
        assert func1["count"] == 2
        assert func1["total_duration"] == 210
        assert func1["avg_duration"] == 105
        assert func1["percent"] == pytest.approx(210 * 100 / 320)

    def test_zero_total_percent_is_zero(self):
        summary = summarize([Result("instant", 0, (Segment("x", 0),))])
        assert summary["instant"]["segments"]["x"]["percent"] == 0.0

    def test_empty_input(self):
        assert summarize([]) == {}


class TestLogging:
    def test_log_results_emits_one_line_per_result(self, sample_results):
        messages: list[str] = []
        handler_id = logger.add(messages.append, level="INFO", format="{message}")
        try:
            log_results(sample_results)
        finally:
            logger.remove(handler_id)

        assert [m.strip() for m in messages] == [str(r) for r in sample_results]

    def test_log_results_defaults_to_registry(self):
        with Probe("registered") as probe:
            probe.add_point("x")

        messages: list[str] = []
        handler_id = logger.add(messages.append, level="INFO", format="{message}")
        try:
            log_results()
        finally:
            logger.remove(handler_id)

        assert any(m.startswith("registered: total=") for m in messages)

    def test_log_results_empty_registry(self, info_messages):
        log_results()
        assert [m.strip() for m in info_messages] == ["No probe results recorded"]

    def test_print_summary(self, sample_results, info_messages):
        print_summary(sample_results, title="Sample")

        lines = [m.rstrip("\n") for m in info_messages]
        assert any(line.strip() == "Sample" for line in lines)
        main_row = next(line for line in lines if line.startswith("main "))
        assert main_row.split() == ["main", "2", "320ns", "160ns"]
        func1_row = next(line for line in lines if line.startswith("  func1 "))
        assert func1_row.split() == ["func1", "2", "210ns", "105ns", "65.6%"]
        idle_row = next(line for line in lines if line.startswith("idle "))
        assert idle_row.split() == ["idle", "1", "0ns", "0ns"]
        assert lines[-3].split() == ["PROBES", "3"]

    def test_print_summary_defaults_to_registry(self, info_messages):
        Probe("a").stop()
        Probe("b").stop()
        print_summary()

        lines = [m.rstrip("\n") for m in info_messages]
        assert [line.split()[:2] for line in lines if line.startswith(("a ", "b "))] == [
            ["a", "1"],
            ["b", "1"],
        ]

    def test_fetch_failure_is_logged_and_skipped(self, monkeypatch, warning_messages):
        def locked(clear: bool = False) -> list[Result]:
            raise LockFailure("lock busy")

        monkeypatch.setattr(_report, "fetch_results", locked)

        print_summary()
        log_results()

        assert sum("Skipping probe report" in m for m in warning_messages) == 2

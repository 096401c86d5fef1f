import json
import pytest
import pandas as pd

from pingmux.engine.models import Response
from pingmux.metrics.results_handler import ResultsHandler


@pytest.fixture
def results_file(tmp_path):
    return tmp_path / "results" / "pmping_results.jsonl"


@pytest.fixture
def results_handler(results_file) -> ResultsHandler:
    return ResultsHandler(results_file)


@pytest.fixture
def sample_rounds():
    """Two rounds: host-a always answers, host-b once, nowhere never resolves."""
    return [
        [
            Response("host-a", pkg_loss=0.0, rtt_min=1.0, rtt_mean=2.0, rtt_max=3.0),
            Response("host-b", pkg_loss=1.0, rtt_min=500, rtt_mean=500, rtt_max=500),
            Response("nowhere", error="Failed to resolve 'nowhere'"),
        ],
        [
            Response("host-a", pkg_loss=0.5, rtt_min=4.0, rtt_mean=4.0, rtt_max=4.0),
            Response("host-b", pkg_loss=0.0, rtt_min=0.5, rtt_mean=1.0, rtt_max=1.5),
            Response("nowhere", error="Failed to resolve 'nowhere'"),
        ],
    ]


@pytest.fixture
def filled_handler(results_handler, sample_rounds) -> ResultsHandler:
    for round_number, responses in enumerate(sample_rounds, start=1):
        results_handler.record_round(round_number, responses)
    return results_handler


def test_initialization(results_file):
    handler = ResultsHandler(results_file)
    assert handler.results_file == results_file.resolve()
    assert isinstance(handler.results_df, pd.DataFrame)
    assert handler.results_df.empty
    assert list(handler.results_df.columns) == ResultsHandler.COLUMNS


def test_record_round(filled_handler):
    df = filled_handler.results_df
    assert len(df) == 6
    assert list(df["round"]) == [1, 1, 1, 2, 2, 2]
    assert list(df["target"][:3]) == ["host-a", "host-b", "nowhere"]


def test_record_empty_round(results_handler):
    results_handler.record_round(1, [])
    assert results_handler.results_df.empty


def test_get_table(filled_handler):
    table = filled_handler.get_table(round_number=1)

    assert "host-a" in table
    assert "nowhere" in table
    assert "Failed to resolve" in table
    assert "round" not in table


def test_get_table_empty(results_handler):
    assert results_handler.get_table() == "No results collected."
    assert results_handler.get_table(round_number=3) == "No results collected."


def test_get_summary(filled_handler):
    summary = filled_handler.get_summary()

    assert list(summary.index) == ["host-a", "host-b", "nowhere"]
    assert list(summary["rounds"]) == [2, 2, 2]
    assert summary.loc["host-a", "pkg_loss"] == pytest.approx(0.25)
    assert summary.loc["host-a", "rtt_min"] == pytest.approx(1.0)
    assert summary.loc["host-a", "rtt_mean"] == pytest.approx(3.0)
    assert summary.loc["host-a", "rtt_max"] == pytest.approx(4.0)
    # the lost round only repeats the timeout and is left out
    assert summary.loc["host-b", "rtt_max"] == pytest.approx(1.5)
    assert summary.loc["nowhere", "errors"] == 2
    assert pd.isna(summary.loc["nowhere", "rtt_mean"])


def test_get_summary_empty(results_handler):
    assert results_handler.get_summary().empty


def test_all_answered(results_handler, sample_rounds):
    assert not results_handler.all_answered()

    results_handler.record_round(1, sample_rounds[0][:2])
    # host-b lost everything so far
    assert not results_handler.all_answered()
    results_handler.record_round(2, sample_rounds[1][:2])
    assert results_handler.all_answered()

    results_handler.record_round(3, sample_rounds[1][2:])
    assert not results_handler.all_answered()


def test_save_results(filled_handler, results_file):
    saved = filled_handler.save_results()

    assert saved == results_file.resolve()
    lines = results_file.read_text().strip().splitlines()
    assert len(lines) == 6
    first = json.loads(lines[0])
    assert first["target"] == "host-a"
    assert first["round"] == 1
    assert first["error"] is None


def test_save_without_file(sample_rounds):
    handler = ResultsHandler()
    handler.record_round(1, sample_rounds[0])
    assert handler.save_results() is None


def test_save_failure(tmp_path, sample_rounds):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    handler = ResultsHandler(blocker / "results.jsonl")
    handler.record_round(1, sample_rounds[0])

    with pytest.raises(RuntimeError, match="Error saving results"):
        handler.save_results()

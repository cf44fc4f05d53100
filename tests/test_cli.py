"""Command-line workflow tests: argument parsing helpers and end-to-end runs on small CSVs."""

import pandas as pd
import pytest

from forecaster_src.data_utils import macro_series
from forecaster_src.file_utils import append_metrics_csv_row, forecasts_frame, write_report
from forecaster_src.forecasting_utils import BenchmarkMethod, BenchmarkSpec, ETSSpec, fit_model
from forecaster_src.main import SUMMARY_HEADER, _slug, main, setup_cli_parser
from forecaster_src.parsing_utils import (
    parse_intervals_arg, parse_models, split_model_list, validate_frequency, validate_log_level
)
from forecaster_src.series_utils import Frequency
from backtesting.metrics_aggregation import AccuracyReport, Regime


def _write_csv(path, series, key=None, drop=None):
    frame = pd.DataFrame({
        "date": series.index.to_timestamp().strftime("%Y-%m-%d"),
        "value": series.values,
    })
    if drop is not None:
        frame = frame.drop(index=drop)
    if key is not None:
        frame.insert(0, "region", key)
    frame.to_csv(path, index=False)
    return frame


def test_parse_intervals():
    assert parse_intervals_arg("95,80,80") == [80, 95]
    assert parse_intervals_arg("abc") == [95]
    assert parse_intervals_arg("0,150") == [95]
    assert parse_intervals_arg(None, default="80,95") == [80, 95]


def test_model_list_keeps_ets_commas():
    assert split_model_list("ets=ETS(A,Ad,N), SNAIVE,,") == ["ets=ETS(A,Ad,N)", "SNAIVE"]
    registry = parse_models("ets=ETS(M,A,M),snaive,stl+ETS(A,Ad,N)")
    assert registry.names() == ["ets", "SNAIVE", "STL(additive) + ETS(A,Ad,N)"]
    assert isinstance(registry["ets"], ETSSpec)
    assert parse_models("  ") is None
    with pytest.raises(ValueError):
        parse_models("NAIVE,naive")


def test_frequency_and_log_level_validation():
    assert validate_frequency("quarterly") == Frequency.QUARTERLY
    with pytest.raises(ValueError):
        validate_frequency("W")
    assert validate_log_level("debug") == "DEBUG"
    with pytest.raises(ValueError):
        validate_log_level("LOUD")


def test_parser_defaults():
    args = setup_cli_parser().parse_args([])
    assert args.series_csv is None
    assert args.macro_column == "realgdp"
    assert args.summary_metric == "RMSE"
    assert not args.no_cv and not args.figures


def test_slug():
    assert _slug("New South Wales") == "New_South_Wales"
    assert _slug("///") == "series"


def test_forecasts_frame_and_report_files(tmp_path, quarterly_series):
    fc = fit_model("naive", BenchmarkSpec(BenchmarkMethod.NAIVE), quarterly_series).forecast(3, levels=[80])
    frame = forecasts_frame({"naive": fc}, key="cement")
    assert list(frame.columns) == ["series", "period", "model", "mean", "lower_80", "upper_80"]
    assert list(frame["period"]) == ["2002Q1", "2002Q2", "2002Q3"]

    report = AccuracyReport()
    report.add_metrics("naive", Regime.TEST, {"RMSE": 1.0})
    paths = write_report(report, tmp_path / "out")
    assert all(p.exists() for p in paths.values())


def test_summary_rows_append(tmp_path):
    path = tmp_path / "summary.csv"
    append_metrics_csv_row(path, {"series": "a", "n_obs": 40, "unexpected": 1}, SUMMARY_HEADER)
    append_metrics_csv_row(path, {"series": "b", "n_obs": 36}, SUMMARY_HEADER)
    frame = pd.read_csv(path)
    assert list(frame.columns) == SUMMARY_HEADER
    assert list(frame["series"]) == ["a", "b"]


def test_cli_end_to_end(tmp_path, quarterly_series):
    csv_path = tmp_path / "cement.csv"
    _write_csv(csv_path, quarterly_series)
    out = tmp_path / "out"

    code = main([
        "--series-csv", str(csv_path), "--frequency", "Q", "--models", "SNAIVE,DRIFT,NAIVE",
        "--transform", "log", "--test-size", "8", "--horizon", "4", "--intervals", "80,95",
        "--no-cv", "--figures", "--output-dir", str(out), "--log-level", "WARNING",
    ])
    assert code == 0

    report = pd.read_csv(out / "accuracy_report.csv")
    assert set(report["model"]) == {"SNAIVE", "DRIFT", "NAIVE"}
    assert set(report["regime"]) == {"training", "test"}

    forecasts = pd.read_csv(out / "forecasts.csv")
    assert len(forecasts) == 12
    assert {"lower_80", "upper_95"} <= set(forecasts.columns)
    assert (forecasts["period"].iloc[:4] == ["2002Q1", "2002Q2", "2002Q3", "2002Q4"]).all()

    diagnostics = pd.read_csv(out / "diagnostics.csv")
    assert set(diagnostics["model"]) == {"SNAIVE", "DRIFT", "NAIVE"}

    for name in ("series", "season", "subseries", "lags", "decomposition", "holdout_forecasts", "forecasts"):
        assert (out / "figures" / f"{name}.png").exists()

    summary = pd.read_csv(out / "summary.csv")
    assert summary.loc[0, "n_obs"] == 40
    assert summary.loc[0, "best_model"] in {"SNAIVE", "DRIFT", "NAIVE"}
    assert summary.loc[0, "best_metric"] == "RMSE (test)"


def test_cli_rejects_irregular_series_but_keeps_going(tmp_path, quarterly_series):
    regular = _write_csv(tmp_path / "a.csv", quarterly_series, key="north")
    gappy = _write_csv(tmp_path / "b.csv", quarterly_series, key="south", drop=[10])
    csv_path = tmp_path / "regions.csv"
    pd.concat([regular, gappy]).to_csv(csv_path, index=False)
    out = tmp_path / "out"

    code = main([
        "--series-csv", str(csv_path), "--key-col", "region", "--models", "SNAIVE,DRIFT",
        "--transform", "none", "--no-cv", "--output-dir", str(out), "--log-level", "ERROR",
    ])
    assert code == 1
    assert (out / "north" / "accuracy_report.csv").exists()
    assert not (out / "south").exists()
    summary = pd.read_csv(out / "summary.csv")
    assert list(summary["series"]) == ["north"]


def test_cli_missing_file(tmp_path):
    assert main(["--series-csv", str(tmp_path / "absent.csv"), "--output-dir", str(tmp_path)]) == 2


def test_cli_unknown_column(tmp_path, quarterly_series):
    csv_path = tmp_path / "cement.csv"
    _write_csv(csv_path, quarterly_series)
    code = main(["--series-csv", str(csv_path), "--value-col", "volume", "--output-dir", str(tmp_path / "out")])
    assert code == 1


def test_macro_series_fallback():
    gdp = macro_series("realgdp")
    assert gdp.frequency == Frequency.QUARTERLY
    assert str(gdp.start) == "1959Q1"
    assert len(gdp) == 203
    with pytest.raises(KeyError):
        macro_series("no_such_column")

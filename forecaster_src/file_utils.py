# forecaster_src/file_utils.py

import csv
import pandas as pd
from pathlib import Path
from typing import List, Optional, Dict, Any, Mapping
import logging

logger = logging.getLogger(__name__)


def ensure_dir(path: Path) -> None:
    """
    Create directory if it doesn't exist, including all parent directories.

    Parameters
    ----------
    path : Path
        Directory path to create

    Notes
    -----
    No error is raised if the directory already exists.
    """
    Path(path).mkdir(parents=True, exist_ok=True)


def resolve_path(path_str: str, base_dir: Path) -> Path:
    """
    Resolve a path string relative to a base directory if not absolute.

    Parameters
    ----------
    path_str : str
        Path string to resolve
    base_dir : Path
        Base directory for relative path resolution

    Returns
    -------
    Path
        Resolved path

    Examples
    --------
    >>> resolve_path("data/file.csv", Path("/project"))
    PosixPath('/project/data/file.csv')
    >>> resolve_path("/absolute/path.csv", Path("/project"))
    PosixPath('/absolute/path.csv')
    """
    path = Path(path_str)
    return path if path.is_absolute() else (Path(base_dir) / path)


def append_metrics_csv_row(csv_path: Optional[Path],
                           row: Dict[str, Any],
                           header: List[str]) -> None:
    """
    Append a single row to a CSV, creating the header on first write.

    Used to collect one summary line per evaluated series across runs.
    Keys of ``row`` missing from ``header`` are dropped.

    Parameters
    ----------
    csv_path : Optional[Path]
        Path to the CSV file (None to skip writing)
    row : Dict[str, Any]
        Values to write
    header : List[str]
        Column names for the CSV
    """
    if csv_path is None:
        return

    csv_path = Path(csv_path)
    csv_path.parent.mkdir(parents=True, exist_ok=True)
    exists = csv_path.exists()

    with csv_path.open("a", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=header, extrasaction="ignore")
        if not exists:
            writer.writeheader()
        writer.writerow(row)


def forecasts_frame(forecasts: Mapping[str, Any], key: Optional[str] = None) -> pd.DataFrame:
    """
    Stack per-model forecasts into one long table.

    Parameters
    ----------
    forecasts : Mapping[str, Forecast]
        Model name -> forecast
    key : str, optional
        Series key added as a leading ``series`` column

    Returns
    -------
    pd.DataFrame
        Columns: [series,] period, model, mean, lower_L, upper_L...
    """
    frames = []
    for fc in forecasts.values():
        frame = fc.to_frame().reset_index()
        frame["period"] = frame["period"].astype(str)
        frames.append(frame)
    if not frames:
        return pd.DataFrame(columns=["period", "model", "mean"])
    out = pd.concat(frames, ignore_index=True)
    if key is not None:
        out.insert(0, "series", key)
    return out


def write_forecasts_csv(forecasts: Mapping[str, Any], path: Path, key: Optional[str] = None) -> Path:
    """Write per-model forecasts (mean and interval bounds) to CSV."""
    path = Path(path)
    ensure_dir(path.parent)
    frame = forecasts_frame(forecasts, key=key)
    frame.to_csv(path, index=False)
    logger.info("Wrote %d forecast rows to %s", len(frame), path)
    return path


def write_diagnostics_csv(diagnostics: Optional[pd.DataFrame], path: Path, key: Optional[str] = None) -> Optional[Path]:
    """Write a residual diagnostics table to CSV; nothing is written when it is empty."""
    if diagnostics is None or diagnostics.empty:
        logger.warning("No residual diagnostics to write to %s", path)
        return None
    path = Path(path)
    ensure_dir(path.parent)
    frame = diagnostics.copy()
    if key is not None:
        frame.insert(0, "series", key)
    frame.to_csv(path, index=False)
    logger.info("Wrote residual diagnostics to %s", path)
    return path


def write_report(report, output_dir: Path, stem: str = "accuracy_report") -> Dict[str, Path]:
    """
    Export an AccuracyReport as CSV (plus failure table) and JSON.

    Parameters
    ----------
    report : AccuracyReport
        Report to export
    output_dir : Path
        Destination directory (created if missing)
    stem : str
        File name stem

    Returns
    -------
    Dict[str, Path]
        Paths keyed by 'csv', 'failures' and 'json'
    """
    output_dir = Path(output_dir)
    ensure_dir(output_dir)
    csv_path = report.to_csv(output_dir / f"{stem}.csv")
    json_path = output_dir / f"{stem}.json"
    report.to_json(json_path)
    return {
        "csv": csv_path,
        "failures": output_dir / f"{stem}_failures.csv",
        "json": json_path,
    }

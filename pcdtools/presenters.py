"""Output presentation helpers for colorization runs.

Separates printing/formatting logic from core pipeline orchestration.
"""
from __future__ import annotations

from typing import Iterable

from cloud_colorization.domain.model import RunReport
from cloud_colorization.infrastructure.pts_io import LoadStats


def percent(part: int, whole: int) -> str:
    if whole == 0:
        return "n/a"
    return f"{100.0 * part / whole:.1f}%"


def print_load_stats(stats: Iterable[LoadStats]) -> None:
    """Print one line per loaded source."""
    print("\nLoaded sources:")
    for s in stats:
        layout = ""
        if s.layout is not None:
            layout = f", {s.layout.columns} columns"
            if s.layout.dummy_count:
                layout += f" ({s.layout.dummy_count} ignored)"
        print(f"  {s.path}: {s.loaded} points{layout}, {s.skipped} skipped")


def print_run_summary(report: RunReport) -> None:
    """Print formatted summary of a colorization run."""
    if report.sources:
        print_load_stats(report.sources)
    print("\nColorization Results")
    print(f"Target points: {report.target_points}")
    print(f"Colored points: {report.colored_points}")
    print(f"Matched: {report.matched} ({percent(report.matched, report.target_points)})")
    print(f"Unmatched: {report.unmatched}")
    if report.mean_matched_sq_distance is not None:
        print(f"Mean squared distance (matched): {report.mean_matched_sq_distance:.6f}")
    if report.timings:
        stages = ", ".join(f"{k} {v:.2f}s" for k, v in report.timings.items())
        print(f"Timings: {stages}")
    print(f"Output: {report.output_path}")

"""Aggregation and loguru rendering of probe Results."""

from collections.abc import Sequence
from typing import Any

from beartype import beartype
from loguru import logger

from blkarbs_probes._core import RegistryError, Result, fetch_results, format_duration


def _resolve(results: Sequence[Result] | None) -> list[Result] | None:
    if results is not None:
        return list(results)
    try:
        return fetch_results()
    except RegistryError as exc:
        logger.warning(f"Skipping probe report: {exc}")
        return None


@beartype
def summarize(results: Sequence[Result]) -> dict[str, dict[str, Any]]:
    """Aggregate Results per probe name.

    Names and segment labels keep first-seen order. Durations are nanoseconds.

    Returns:
        Dictionary mapping probe names to a dict with keys:
        count, total_duration, avg_duration, segments. ``segments`` maps each
        label to count, total_duration, avg_duration, percent (share of the
        probe's total time).
    """
    summary: dict[str, dict[str, Any]] = {}
    for result in results:
        entry = summary.setdefault(
            result.name, {"count": 0, "total_duration": 0, "segments": {}}
        )
        entry["count"] += 1
        entry["total_duration"] += result.total_duration
        for segment in result.segments:
            stats = entry["segments"].setdefault(
                segment.label, {"count": 0, "total_duration": 0}
            )
            stats["count"] += 1
            stats["total_duration"] += segment.duration

    for entry in summary.values():
        total = entry["total_duration"]
        entry["avg_duration"] = total // entry["count"]
        for stats in entry["segments"].values():
            stats["avg_duration"] = stats["total_duration"] // stats["count"]
            stats["percent"] = stats["total_duration"] * 100 / total if total > 0 else 0.0

    return summary


@beartype
def log_results(results: Sequence[Result] | None = None) -> None:
    """Log one line per Result (defaults to the process-wide Registry)."""
    resolved = _resolve(results)
    if resolved is None:
        return
    if not resolved:
        logger.info("No probe results recorded")
        return
    for result in resolved:
        logger.info(str(result))


@beartype
def print_summary(
    results: Sequence[Result] | None = None,
    title: str = "EXECUTION PROBES",
) -> None:
    """Print a formatted table of per-probe and per-segment timings.

    Args:
        results: Results to summarize (default: the process-wide Registry)
        title: Header title for the summary table
    """
    resolved = _resolve(results)
    if resolved is None:
        return
    summary = summarize(resolved)

    logger.info("")
    logger.info("=" * 90)
    logger.info(f"{title:^90}")
    logger.info("=" * 90)
    logger.info(f"{'Probe / Segment':<40} {'Calls':>10} {'Total':>14} {'Average':>14} {'Share':>8}")
    logger.info("-" * 90)

    for name, entry in summary.items():
        logger.info(
            f"{name:<40} {entry['count']:>10} "
            f"{format_duration(entry['total_duration']):>14} "
            f"{format_duration(entry['avg_duration']):>14} {'':>8}"
        )
        for label, stats in entry["segments"].items():
            logger.info(
                f"{'  ' + label:<40} {stats['count']:>10} "
                f"{format_duration(stats['total_duration']):>14} "
                f"{format_duration(stats['avg_duration']):>14} "
                f"{stats['percent']:>7.1f}%"
            )

    logger.info("=" * 90)
    logger.info(f"{'PROBES':^40} {len(resolved):>10}")
    logger.info("=" * 90)
    logger.info("")

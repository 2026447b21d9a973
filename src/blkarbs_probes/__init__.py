"""blkarbs-probes: Checkpoint timing probes with a process-wide result registry.

Provides:
- Probe: Records elapsed time between named points of one code path
- probed: Decorator running each call of a function inside its own Probe
- Result: Immutable, printable, serializable summary of a finished Probe
- Registry: Thread-safe store every finished Probe registers into
- fetch_results / clear_results: Query the process-wide Registry
- summarize / log_results / print_summary: Aggregate and log Results via loguru

Usage:
    from blkarbs_probes import Probe, fetch_results

    probe = Probe("job_a")
    load()
    probe.add_point("load")
    compute()
    probe.add_point("compute")
    probe.stop()

    for result in fetch_results():
        print(result)   # job_a: total=20.153ms [load: 10.071ms, compute: 10.082ms]
"""

from blkarbs_probes._core import (
    Checkpoint,
    Clock,
    LockFailure,
    Probe,
    Registry,
    RegistryError,
    Result,
    Segment,
    clear_results,
    fetch_results,
    format_duration,
    get_registry,
    probed,
)
from blkarbs_probes._report import log_results, print_summary, summarize

__all__ = [
    "Checkpoint",
    "Clock",
    "LockFailure",
    "Probe",
    "Registry",
    "RegistryError",
    "Result",
    "Segment",
    "clear_results",
    "fetch_results",
    "format_duration",
    "get_registry",
    "log_results",
    "print_summary",
    "probed",
    "summarize",
]

__version__ = "0.1.0"

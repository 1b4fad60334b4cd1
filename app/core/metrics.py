"""
Simple in-memory metrics for Prometheus exposition.
Thread-safe counters.
"""
import threading
from typing import Dict

# name -> help text, in exposition order
COUNTERS = {
    "requests_total": "Total HTTP requests",
    "pipeline_enqueued_total": "Pipeline runs submitted to the queue",
    "pipeline_completed_total": "Pipeline runs completed",
    "pipeline_failed_total": "Pipeline runs failed in the worker harness",
    "pipeline_fix_runs_total": "Pipeline runs that entered the fix stage",
    "sandbox_jobs_started_total": "Sandbox jobs started",
    "sandbox_jobs_exited_total": "Sandbox jobs that exited",
    "sandbox_jobs_error_total": "Sandbox jobs that could not run",
}


class Metrics:
    """Thread-safe metrics collection."""

    def __init__(self):
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = {name: 0 for name in COUNTERS}
        self._counters.update({"requests_2xx": 0, "requests_4xx": 0, "requests_5xx": 0})

    def inc(self, name: str, value: int = 1) -> None:
        """Increment a counter."""
        with self._lock:
            if name not in self._counters:
                self._counters[name] = 0
            self._counters[name] += value

    def get(self, name: str) -> int:
        """Get a counter value."""
        with self._lock:
            return self._counters.get(name, 0)

    def get_all(self) -> Dict[str, int]:
        """Get all counter values."""
        with self._lock:
            return self._counters.copy()

    def to_prometheus(self) -> str:
        """Export metrics in Prometheus text format."""
        lines = []
        counters = self.get_all()

        for name, help_text in COUNTERS.items():
            metric = f"forge_{name}"
            lines.append(f"# HELP {metric} {help_text}")
            lines.append(f"# TYPE {metric} counter")
            lines.append(f"{metric} {counters.get(name, 0)}")

        # Requests by status class
        lines.append("# HELP forge_requests_by_status HTTP requests by status class")
        lines.append("# TYPE forge_requests_by_status counter")
        for status in ("2xx", "4xx", "5xx"):
            lines.append(f'forge_requests_by_status{{status="{status}"}} {counters[f"requests_{status}"]}')

        return "\n".join(lines) + "\n"


# Process-wide counters; pure accounting, no behaviour depends on them
metrics = Metrics()

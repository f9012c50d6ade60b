from dataclasses import dataclass, field


@dataclass
class MetricBucket:
    total: int = 0
    executed: int = 0
    latency_total_ms: float = 0.0
    failures: dict[str, int] = field(default_factory=dict)

    def record(self, duration_ms: float, failure_kind: str | None) -> None:
        self.total += 1
        if failure_kind is None:
            self.executed += 1
        else:
            self.failures[failure_kind] = self.failures.get(failure_kind, 0) + 1
        self.latency_total_ms += duration_ms

    def snapshot(self) -> dict[str, object]:
        avg = self.latency_total_ms / self.total if self.total else 0.0
        return {
            "total": self.total,
            "executed": self.executed,
            "failed": self.total - self.executed,
            "failures": dict(self.failures),
            "avg_latency_ms": round(avg, 2),
        }


class DrawMetrics:
    def __init__(self) -> None:
        self.manual = MetricBucket()
        self.scheduled = MetricBucket()
        self.sweeps = 0

    def record_draw(self, duration_ms: float, automated: bool, failure_kind: str | None = None) -> None:
        bucket = self.scheduled if automated else self.manual
        bucket.record(duration_ms, failure_kind)

    def record_sweep(self) -> None:
        self.sweeps += 1

    def snapshot(self) -> dict[str, object]:
        return {
            "manual": self.manual.snapshot(),
            "scheduled": self.scheduled.snapshot(),
            "sweeps": self.sweeps,
        }


@dataclass
class PathStats:
    count: int = 0
    errors: int = 0
    latency_total_ms: float = 0.0

    def snapshot(self) -> dict[str, object]:
        return {
            "count": self.count,
            "errors": self.errors,
            "avg_latency_ms": self.latency_total_ms / self.count if self.count else 0.0,
        }


class RequestMetrics:
    """HTTP counters kept by the tracing middleware."""

    def __init__(self) -> None:
        self.total = PathStats()
        self.by_path: dict[str, PathStats] = {}

    def record(self, path: str, duration_ms: float, failed: bool) -> None:
        for stats in (self.total, self.by_path.setdefault(path, PathStats())):
            stats.count += 1
            stats.latency_total_ms += duration_ms
            if failed:
                stats.errors += 1

    def snapshot(self) -> dict[str, object]:
        total = self.total.snapshot()
        return {
            "requests_total": total["count"],
            "errors_total": total["errors"],
            "avg_latency_ms": total["avg_latency_ms"],
            "by_path": {path: stats.snapshot() for path, stats in self.by_path.items()},
        }


draw_metrics = DrawMetrics()
request_metrics = RequestMetrics()

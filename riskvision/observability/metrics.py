"""Lightweight in-process metrics for RiskVision.

Request counters and latency percentiles plus LLM call outcomes per provider,
kept in memory and served from ``/api/metrics``.
"""

from __future__ import annotations

from collections import defaultdict, deque
from threading import Lock


def _percentile(sorted_values: list[float], p: float) -> float:
    if not sorted_values:
        return 0.0
    idx = int((len(sorted_values) - 1) * p)
    return round(sorted_values[idx], 2)


class InMemoryMetrics:
    def __init__(self, latency_window: int = 2000) -> None:
        self._lock = Lock()
        self._requests_total = 0
        self._status_counts: dict[str, int] = defaultdict(int)
        self._path_counts: dict[str, int] = defaultdict(int)
        self._latencies_ms: deque[float] = deque(maxlen=latency_window)
        self._llm_calls: dict[str, dict[str, int]] = defaultdict(lambda: {"ok": 0, "error": 0})
        self._llm_latencies_ms: deque[float] = deque(maxlen=latency_window)
        self._risks_generated = 0

    def observe_request(self, path: str, status_code: int, duration_ms: float) -> None:
        bucket = f"{status_code // 100}xx"
        with self._lock:
            self._requests_total += 1
            self._status_counts[bucket] += 1
            self._path_counts[path] += 1
            self._latencies_ms.append(float(duration_ms))

    def observe_llm_call(self, provider: str, ok: bool, duration_ms: float) -> None:
        with self._lock:
            self._llm_calls[provider]["ok" if ok else "error"] += 1
            self._llm_latencies_ms.append(float(duration_ms))

    def observe_risks_generated(self, count: int) -> None:
        with self._lock:
            self._risks_generated += count

    def snapshot(self) -> dict:
        with self._lock:
            latencies = sorted(self._latencies_ms)
            llm_latencies = sorted(self._llm_latencies_ms)

            return {
                "requests_total": self._requests_total,
                "status_counts": dict(self._status_counts),
                "path_counts": dict(self._path_counts),
                "latency_ms": {
                    "samples": len(latencies),
                    "p50": _percentile(latencies, 0.50),
                    "p95": _percentile(latencies, 0.95),
                    "p99": _percentile(latencies, 0.99),
                },
                "llm": {
                    "calls": {provider: dict(counts) for provider, counts in self._llm_calls.items()},
                    "latency_ms": {
                        "samples": len(llm_latencies),
                        "p50": _percentile(llm_latencies, 0.50),
                        "p95": _percentile(llm_latencies, 0.95),
                    },
                    "risks_generated": self._risks_generated,
                },
            }


metrics = InMemoryMetrics()

"""Invocation tracing and latency accounting."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone


@dataclass(slots=True)
class InvocationRecord:
    call_id: str
    timestamp_utc: str
    provider: str
    attempts: int
    rate_limited_attempts: int
    latency_ms: float
    outcome: str
    error: str | None = None


class InvocationLog:
    """In-memory record of external calls for operational dashboards."""

    def __init__(self, *, max_records: int = 1000) -> None:
        self._records: dict[str, InvocationRecord] = {}
        self._max_records = max_records

    def record(
        self,
        *,
        provider: str,
        attempts: int,
        rate_limited_attempts: int,
        latency_ms: float,
        outcome: str,
        error: BaseException | None = None,
    ) -> InvocationRecord:
        call_id = str(uuid.uuid4())
        record = InvocationRecord(
            call_id=call_id,
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            provider=provider,
            attempts=attempts,
            rate_limited_attempts=rate_limited_attempts,
            latency_ms=latency_ms,
            outcome=outcome,
            error=None if error is None else f"{type(error).__name__}: {error}",
        )
        self._records[call_id] = record
        if len(self._records) > self._max_records:
            oldest = next(iter(self._records))
            del self._records[oldest]
        return record

    def get(self, call_id: str) -> InvocationRecord:
        record = self._records.get(call_id)
        if record is None:
            raise KeyError(f"Invocation not found: {call_id}")
        return record

    def list_recent(self, limit: int = 20) -> list[InvocationRecord]:
        return list(self._records.values())[-limit:]

    def summary(self, provider: str | None = None) -> dict[str, float | int]:
        """Aggregate attempt and latency metrics, optionally for one provider."""
        records = [
            record
            for record in self._records.values()
            if provider is None or record.provider == provider
        ]
        total = len(records)
        if total == 0:
            return {
                "total_calls": 0,
                "failed_calls": 0,
                "total_attempts": 0,
                "rate_limited_attempts": 0,
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
            }

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        return {
            "total_calls": total,
            "failed_calls": sum(1 for record in records if record.outcome != "ok"),
            "total_attempts": sum(record.attempts for record in records),
            "rate_limited_attempts": sum(record.rate_limited_attempts for record in records),
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
        }


class Timer:
    """Simple context timer used around fan-out and model calls."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0

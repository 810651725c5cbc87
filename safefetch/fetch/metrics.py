"""Metrics collection for the request execution engine."""

from dataclasses import dataclass, field


@dataclass
class FetchMetrics:
    """Counters for one client instance.

    Tracks calls, attempts, retries, responses by status and failures by
    error kind.
    """

    calls_total: int = 0
    attempts_total: int = 0
    retries_total: int = 0
    responses_total: dict[int, int] = field(default_factory=dict)
    failures_total: dict[str, int] = field(default_factory=dict)
    duration_ms_total: float = 0.0

    def record_attempt(self) -> None:
        """Record one transport attempt."""
        self.attempts_total += 1

    def record_retry(self) -> None:
        """Record a scheduled retry."""
        self.retries_total += 1

    def record_response(self, status_code: int) -> None:
        """Record a raw response obtained from the transport.

        Args:
            status_code: HTTP status code.
        """
        self.responses_total[status_code] = self.responses_total.get(status_code, 0) + 1

    def record_call(self, duration_ms: float, error_kind: str | None = None) -> None:
        """Record a finished call.

        Args:
            duration_ms: Wall time of the call in milliseconds.
            error_kind: Name of the normalized error, None on success.
        """
        self.calls_total += 1
        self.duration_ms_total += duration_ms
        if error_kind is not None:
            self.failures_total[error_kind] = self.failures_total.get(error_kind, 0) + 1

    def to_dict(self) -> dict[str, int | float | dict[str, int] | dict[int, int]]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        return {
            "calls_total": self.calls_total,
            "attempts_total": self.attempts_total,
            "retries_total": self.retries_total,
            "responses_total": dict(self.responses_total),
            "failures_total": dict(self.failures_total),
            "duration_ms_total": self.duration_ms_total,
        }

    @property
    def avg_duration_ms(self) -> float:
        """Average call duration in milliseconds."""
        if self.calls_total == 0:
            return 0.0
        return self.duration_ms_total / self.calls_total

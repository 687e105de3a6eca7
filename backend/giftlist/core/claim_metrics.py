from collections import Counter
from dataclasses import dataclass, field


@dataclass
class OutcomeBucket:
    total: int = 0
    latency_total_ms: float = 0.0
    outcomes: Counter = field(default_factory=Counter)

    def record(self, outcome: str, duration_ms: float) -> None:
        self.total += 1
        self.outcomes[outcome] += 1
        self.latency_total_ms += duration_ms

    def snapshot(self) -> dict[str, object]:
        avg = self.latency_total_ms / self.total if self.total else 0.0
        return {
            "total": self.total,
            "avg_latency_ms": round(avg, 2),
            "outcomes": dict(self.outcomes),
        }


class ClaimMetrics:
    def __init__(self) -> None:
        self.claims = OutcomeBucket()
        self.releases = OutcomeBucket()

    def record(self, desired_bought: bool, outcome: str, duration_ms: float) -> None:
        bucket = self.claims if desired_bought else self.releases
        bucket.record(outcome, duration_ms)

    def reset(self) -> None:
        self.claims = OutcomeBucket()
        self.releases = OutcomeBucket()

    def snapshot(self) -> dict[str, dict[str, object]]:
        return {
            "claim": self.claims.snapshot(),
            "release": self.releases.snapshot(),
        }


claim_metrics = ClaimMetrics()

from __future__ import annotations
from prometheus_client import Counter, Histogram

candidate_attempts_total = Counter(
    "candidate_attempts_total", "Generation attempts per candidate outcome", ["outcome", "reason"],
)
candidate_evictions_total = Counter(
    "candidate_evictions_total", "Candidates removed from the pool", ["kind"],
)
generation_exhausted_total = Counter("generation_exhausted_total", "Requests where every candidate failed")
generation_aborted_total = Counter("generation_aborted_total", "Requests aborted by the failure policy", ["reason"])
discovery_refresh_total = Counter("discovery_refresh_total", "Discovery refreshes", ["result"])
store_write_failures_total = Counter("store_write_failures_total", "Failed candidate pool writes")

candidate_attempt_latency = Histogram(
    "candidate_attempt_latency_seconds",
    "Time spent in a single generation attempt",
    ["outcome"],
)

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

registry = CollectorRegistry()

PLANS_GENERATED = Counter(
    "metroops_plans_generated_total", "Induction plans generated", ["status"], registry=registry
)
PLAN_SECONDS = Histogram(
    "metroops_plan_generation_seconds", "Time spent generating an induction plan", registry=registry
)
COPILOT_REQUESTS = Counter(
    "metroops_copilot_requests_total", "Copilot requests by parsed intent", ["intent"], registry=registry
)
PEAK_OFFERS = Counter(
    "metroops_peak_offers_total", "Peak-shift offers by outcome", ["outcome"], registry=registry
)
UPSTREAM_FAILURES = Counter(
    "metroops_upstream_failures_total", "Failed calls to the induction service", ["endpoint"], registry=registry
)


def text_metrics() -> tuple[bytes, str]:
    return generate_latest(registry), CONTENT_TYPE_LATEST

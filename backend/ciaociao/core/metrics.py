from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, generate_latest


provider_calls_total = Counter(
    "provider_calls_total",
    "Provider fetch attempts by outcome.",
    ["source_id", "outcome"],
)

provider_gate_rejections_total = Counter(
    "provider_gate_rejections_total",
    "Provider calls skipped before reaching the network.",
    ["source_id", "reason"],
)

price_resolutions_total = Counter(
    "price_resolutions_total",
    "Resolved price requests by method.",
    ["asset", "currency", "method"],
)

price_exhaustions_total = Counter(
    "price_exhaustions_total",
    "Price requests that ended without live data or usable history.",
    ["asset", "currency"],
)

provider_circuit_state = Gauge(
    "provider_circuit_state",
    "Circuit breaker state per provider (0=closed, 1=half_open, 2=open).",
    ["source_id"],
)

_CIRCUIT_STATE_VALUES = {"closed": 0, "half_open": 1, "open": 2}


def observe_circuit_state(source_id: str, state: str) -> None:
    provider_circuit_state.labels(source_id=source_id).set(_CIRCUIT_STATE_VALUES.get(state, 2))


def render_metrics() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST

"""Explain an induction decision from demand, conflicts and stabling inputs."""

from __future__ import annotations

import math
from typing import Any, Dict, List, Optional, Sequence

from metroops.model.types import (
    AIExplanation,
    Alternative,
    ConstraintStatus,
    ExplanationFactor,
    Tradeoff,
)

__all__ = ["explain_decision", "explain_payload"]

HIGH_DEMAND = 70.0


def _clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def _demand(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value) if math.isfinite(value) else 0.0


def explain_decision(
    train_id: Optional[str],
    decision: Optional[str],
    stabling_bay: Optional[str] = None,
    conflicts: Optional[Sequence[Any]] = None,
    predicted_demand: Any = None,
) -> AIExplanation:
    train_id = train_id.strip() if isinstance(train_id, str) else ""
    decision = decision.strip() if isinstance(decision, str) else ""
    if not train_id or not decision:
        raise ValueError("Missing required fields: train_id and induction_decision")
    bay = stabling_bay.strip() if isinstance(stabling_bay, str) else ""
    conflicts = list(conflicts) if isinstance(conflicts, (list, tuple)) else []
    demand = _demand(predicted_demand)
    n = len(conflicts)

    demand_impact = "positive" if demand > HIGH_DEMAND else "neutral"
    factors = [
        ExplanationFactor(
            "Predicted Demand", 0.4, demand_impact,
            f"Forecast demand is {demand:g}. Higher demand favors assignment to high-capacity service.",
        ),
        ExplanationFactor(
            "Operational Conflicts", 0.35, "negative" if n else "neutral",
            f"{n} conflicts require resolution (routing/schedule/maintenance)." if n
            else "No blocking conflicts identified.",
        ),
        ExplanationFactor(
            "Stabling Bay Alignment", 0.25, "positive" if bay else "neutral",
            f"Preferred stabling bay {bay} meets turnaround and positioning needs." if bay
            else "No stabling bay preference provided.",
        ),
    ]

    constraints: List[ConstraintStatus] = []
    for i, c in enumerate(conflicts):
        kind = c.get("type") if isinstance(c, dict) else None
        constraints.append(ConstraintStatus(kind if isinstance(kind, str) else f"conflict_{i + 1}", False, "hard"))

    confidence = _clamp(0.8 - 0.05 * n + (0.05 if demand_impact == "positive" else 0.0), 0.5, 0.95)

    return AIExplanation(
        train_id=train_id,
        decision=decision,
        factors=factors,
        constraints=constraints,
        tradeoffs=[
            Tradeoff(
                "Service Capacity",
                _clamp(demand, 0.0, 100.0),
                _clamp(100.0 - demand, 0.0, 100.0),
                "Balancing forecast demand coverage with operational feasibility.",
            )
        ],
        confidence=round(confidence, 4),
        alternatives=[
            Alternative(
                "adjust_schedule",
                max(0.0, round(0.7 - 0.1 * n, 4)),
                "Resolve timing/route conflicts before induction." if n
                else "Schedule can be optimized for demand peaks.",
            ),
            Alternative(
                "choose_alternate_bay",
                0.4 if bay else 0.6,
                "Current bay is acceptable; alternates may reduce shunting." if bay
                else "Selecting a specific bay may reduce deadheading.",
            ),
        ],
    )


def explain_payload(body: Dict[str, Any]) -> AIExplanation:
    """``explain_decision`` over a request body using the dashboard's keys."""
    return explain_decision(
        body.get("train_id"),
        body.get("induction_decision"),
        body.get("stabling_bay"),
        body.get("conflicts"),
        body.get("predicted_demand"),
    )

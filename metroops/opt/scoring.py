"""Factor scores for nightly train induction.

Every factor is normalised to [0, 1] and combined with fixed weights:

======================  ======
factor                  weight
======================  ======
fitness certificates    0.40
open job cards          0.25
mileage balance         0.20
branding SLA            0.10
cleaning availability   0.05
======================  ======
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from metroops.model.types import BrandingSLA, CleaningSlot, JobCard, Train

__all__ = [
    "FACTOR_WEIGHTS",
    "fitness_score",
    "job_card_score",
    "fleet_mileage_stats",
    "mileage_score",
    "branding_score",
    "cleaning_score",
    "is_off_peak",
    "composite_score",
]

FACTOR_WEIGHTS: Dict[str, float] = {
    "fitness": 0.4,
    "job_cards": 0.25,
    "mileage": 0.2,
    "branding": 0.1,
    "cleaning": 0.05,
}

# Certificate share of the fitness factor; full marks at 30+ days of validity.
CERTIFICATE_WEIGHTS: Tuple[Tuple[str, float], ...] = (
    ("rolling_stock_expiry", 0.4),
    ("signalling_expiry", 0.3),
    ("telecom_expiry", 0.3),
)
FULL_VALIDITY_DAYS = 30.0

SEVERITY_PENALTY: Dict[str, float] = {"critical": 0.5, "high": 0.3, "medium": 0.1}

NO_BRANDING_SCORE = 0.5


def fitness_score(train: Train, now: datetime) -> float:
    score = 0.0
    for attr, weight in CERTIFICATE_WEIGHTS:
        expiry: datetime = getattr(train.fitness, attr)
        if expiry > now:
            days_valid = (expiry - now).total_seconds() / 86400.0
            score += min(days_valid / FULL_VALIDITY_DAYS, 1.0) * weight
    return score


def job_card_score(train_id: str, job_cards: Iterable[JobCard]) -> float:
    score = 1.0
    for jc in job_cards:
        if jc.train_id == train_id and jc.is_open:
            score -= SEVERITY_PENALTY.get(jc.severity, 0.0)
    return max(score, 0.0)


def fleet_mileage_stats(trains: List[Train]) -> Tuple[float, float]:
    """Mean and population standard deviation of fleet odometers."""
    if not trains:
        return 0.0, 0.0
    odo = pd.Series([t.odo_km for t in trains], dtype="float64")
    return float(odo.mean()), float(odo.std(ddof=0))


def mileage_score(odo_km: float, mean: float, std: float) -> float:
    if std == 0:
        return 1.0
    return max(0.0, 1.0 - abs(odo_km - mean) / (2.0 * std))


def branding_score(sla: Optional[BrandingSLA]) -> float:
    if sla is None:
        return NO_BRANDING_SCORE
    return min(sla.compliance, 1.0)


def is_off_peak(hour: int) -> bool:
    return hour < 6 or hour > 22


def cleaning_score(slots: Iterable[CleaningSlot]) -> float:
    available = [s for s in slots if s.status == "available"]
    if not available:
        return 0.0
    off_peak = [s for s in available if is_off_peak(s.start.hour)]
    return len(off_peak) / len(available)


def composite_score(factors: Dict[str, float]) -> float:
    return sum(factors[name] * weight for name, weight in FACTOR_WEIGHTS.items())

"""Nightly induction planning engine (rule-based baseline).

Ranks the fleet with the weighted factor scores from
:mod:`metroops.opt.scoring` and assigns each train to revenue service,
standby or the inspection bay line (IBL) under the run/standby limits of
:class:`~metroops.model.types.OptimizationConfig`.

Inputs
------
- trains, job_cards, branding_slas, cleaning_slots, stabling_bays,
  trip_blocks: in-memory fleet state for the service night
- config: objective weights (recorded on the plan) and assignment limits

Outputs
-------
- InductionPlan: ranked decisions with bay and turnout, conflicts raised by
  the fitness/job-card/branding checks, plan metrics and a per-train
  explanation of the factors behind each decision

The real optimiser is an external service; this engine is the local
fallback the dashboard can run without it.
"""

from __future__ import annotations

import argparse
import json
import logging
import random
import time
from datetime import datetime, time as dtime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from metroops.model.types import (
    AIExplanation,
    Alternative,
    BrandingSLA,
    CleaningSlot,
    Conflict,
    ConstraintStatus,
    ExplanationFactor,
    InductionPlan,
    JobCard,
    OptimizationConfig,
    PlanMetrics,
    StablingBay,
    Tradeoff,
    Train,
    TrainDecision,
    TripBlock,
    to_utc,
)
from metroops.opt import scoring

__all__ = ["InductionEngine", "engine_from_payload", "MODEL_VERSION"]

logger = logging.getLogger(__name__)

MODEL_VERSION = "1.0.0"

REVENUE_THRESHOLD = 0.8
MAINTENANCE_THRESHOLD = 0.3
BRANDING_RISK_THRESHOLD = 0.8
SHUNT_MOVES_PER_TRAIN = 2

TURNOUT_BASE = dtime(5, 30)
TURNOUT_PREP_MIN = {"revenue": 15, "standby": 30, "IBL": 60}

FITNESS_CONFLICT = "Fitness certificate expires during service window"
JOBCARD_CONFLICT = "Open critical job cards"
BRANDING_CONFLICT = "Branding SLA at risk"


class InductionEngine:
    def __init__(
        self,
        config: OptimizationConfig,
        trains: List[Train],
        job_cards: Optional[List[JobCard]] = None,
        branding_slas: Optional[List[BrandingSLA]] = None,
        cleaning_slots: Optional[List[CleaningSlot]] = None,
        stabling_bays: Optional[List[StablingBay]] = None,
        trip_blocks: Optional[List[TripBlock]] = None,
        *,
        now: Optional[datetime] = None,
    ) -> None:
        self.config = config
        self.trains = list(trains)
        self.job_cards = list(job_cards or [])
        self.branding_slas = list(branding_slas or [])
        self.cleaning_slots = list(cleaning_slots or [])
        self.stabling_bays = list(stabling_bays or [])
        self.trip_blocks = list(trip_blocks or [])
        self.now = now or datetime.now(timezone.utc)
        if self.now.tzinfo is None:
            self.now = self.now.replace(tzinfo=timezone.utc)

        self._by_id = {t.id: t for t in self.trains}
        self._sla = {s.train_id: s for s in self.branding_slas}
        self._mileage_mean, self._mileage_std = scoring.fleet_mileage_stats(self.trains)
        self._cleaning = scoring.cleaning_score(self.cleaning_slots)

    # ---------- scoring ----------
    def factor_scores(self, train: Train) -> Dict[str, float]:
        return {
            "fitness": scoring.fitness_score(train, self.now),
            "job_cards": scoring.job_card_score(train.id, self.job_cards),
            "mileage": scoring.mileage_score(train.odo_km, self._mileage_mean, self._mileage_std),
            "branding": scoring.branding_score(self._sla.get(train.id)),
            "cleaning": self._cleaning,
        }

    def compute_scores(self) -> Dict[str, float]:
        return {t.id: scoring.composite_score(self.factor_scores(t)) for t in self.trains}

    # ---------- checks ----------
    def open_cards(self, train_id: str) -> List[JobCard]:
        return [jc for jc in self.job_cards if jc.train_id == train_id and jc.is_open]

    def has_critical_job_cards(self, train_id: str) -> bool:
        return any(jc.is_open_critical for jc in self.job_cards if jc.train_id == train_id)

    def has_fitness_conflict(self, train: Train) -> bool:
        return train.fitness.any_expired(self.now)

    def has_branding_conflict(self, train_id: str) -> bool:
        sla = self._sla.get(train_id)
        return sla is not None and sla.compliance < BRANDING_RISK_THRESHOLD

    def bay_capacity_available(self) -> bool:
        return any(b.has_room for b in self.stabling_bays)

    # ---------- plan ----------
    def generate_plan(self) -> InductionPlan:
        t_start = time.perf_counter()
        scores = self.compute_scores()
        # Stable sort keeps input order among equal scores.
        ranked = sorted(self.trains, key=lambda t: scores[t.id], reverse=True)

        limits = self.config.constraints
        free = {b.id: b.capacity - b.occupied for b in self.stabling_bays}
        counts = {"revenue": 0, "standby": 0, "IBL": 0}
        decisions: List[TrainDecision] = []
        conflicts: List[Conflict] = []

        for train in ranked:
            score = scores[train.id]
            critical = self.has_critical_job_cards(train.id)
            if score > REVENUE_THRESHOLD and counts["revenue"] < limits.max_run:
                action, reason = "revenue", "High fitness score, no critical job cards, good mileage balance"
            elif score < MAINTENANCE_THRESHOLD or critical:
                action, reason = "IBL", "Low fitness score or critical job cards require maintenance"
            elif counts["standby"] < limits.max_standby:
                action, reason = "standby", "Available for standby service"
            else:
                action, reason = "IBL", "No standby slots available, assigned to maintenance"
            counts[action] += 1

            notes: List[str] = []
            if self.has_fitness_conflict(train):
                notes.append(FITNESS_CONFLICT)
                conflicts.append(Conflict(
                    id=f"fitness_{train.id}",
                    type="fitness",
                    severity="high",
                    description=f"{train.id}: {self._fitness_description(train)}",
                    affected_trains=[train.id],
                ))
            if critical:
                notes.append(JOBCARD_CONFLICT)
                conflicts.append(Conflict(
                    id=f"jobcard_{train.id}",
                    type="jobcard",
                    severity="high",
                    description=f"{train.id}: {self._job_card_description(train)}",
                    affected_trains=[train.id],
                ))
            if self.has_branding_conflict(train.id):
                notes.append(BRANDING_CONFLICT)
                conflicts.append(Conflict(
                    id=f"branding_{train.id}",
                    type="branding",
                    severity="medium",
                    description=f"{train.id}: {self._branding_description(train)}",
                    affected_trains=[train.id],
                ))

            decisions.append(TrainDecision(
                train_id=train.id,
                action=action,
                score=score,
                reason=reason,
                constraints=notes,
                confidence=min(score, 1.0),
                bay_assignment=self._assign_bay(free),
                estimated_turnout=self._turnout(action),
                trip_assignments=[tb.trip_id for tb in self.trip_blocks if tb.train_id == train.id and tb.status == "scheduled"],
            ))

        plan = InductionPlan(
            id=f"plan_{int(self.now.timestamp() * 1000)}",
            model_version=MODEL_VERSION,
            objective_weights=self.config.weights,
            seed=(self.config.seed if self.config.seed is not None else random.random()),
            generated_at=self.now.isoformat(),
            decisions=decisions,
            conflicts=conflicts,
            metrics=self._metrics(decisions),
            objective_value=float(sum(scores.values())),
            status="optimal" if decisions else "infeasible",
            explanations=[self.explain(self._by_id[d.train_id], d) for d in decisions],
        )
        logger.info(
            "Induction plan %s: %d revenue, %d standby, %d IBL, %d conflicts in %.3fs",
            plan.id, counts["revenue"], counts["standby"], counts["IBL"], len(conflicts), time.perf_counter() - t_start,
        )
        return plan

    def _assign_bay(self, free: Dict[str, int]) -> Optional[str]:
        candidates = [b for b in self.stabling_bays if free.get(b.id, 0) > 0]
        if not candidates:
            return None
        best = min(candidates, key=lambda b: b.shunt_cost)
        free[best.id] -= 1
        return best.id

    def _turnout(self, action: str) -> str:
        service_date = self.config.service_date or self.now.date()
        base = datetime.combine(service_date, TURNOUT_BASE, tzinfo=self.now.tzinfo)
        return (base + timedelta(minutes=TURNOUT_PREP_MIN[action])).isoformat()

    def _metrics(self, decisions: List[TrainDecision]) -> PlanMetrics:
        revenue = [d for d in decisions if d.action == "revenue"]
        if revenue:
            odo = pd.Series([self._by_id[d.train_id].odo_km for d in revenue], dtype="float64")
            spread = float(odo.std(ddof=0))
        else:
            spread = 0.0
        branded = [self._sla[d.train_id].compliance for d in revenue if d.train_id in self._sla]
        return PlanMetrics(
            total_shunting=SHUNT_MOVES_PER_TRAIN * sum(1 for d in decisions if d.bay_assignment),
            mileage_variance=spread,
            branding_compliance=(sum(branded) / len(branded)) if branded else 1.0,
            constraint_violations=sum(len(d.constraints) for d in decisions),
        )

    # ---------- explanations ----------
    def explain(self, train: Train, decision: TrainDecision) -> AIExplanation:
        factors = [
            ExplanationFactor("Fitness Certificates", scoring.FACTOR_WEIGHTS["fitness"],
                              self._fitness_impact(train), self._fitness_description(train)),
            ExplanationFactor("Job Card Status", scoring.FACTOR_WEIGHTS["job_cards"],
                              "negative" if self.has_critical_job_cards(train.id) else "positive",
                              self._job_card_description(train)),
            ExplanationFactor("Mileage Balance", scoring.FACTOR_WEIGHTS["mileage"],
                              self._mileage_impact(train), self._mileage_description(train)),
            ExplanationFactor("Branding SLA", scoring.FACTOR_WEIGHTS["branding"],
                              self._branding_impact(train), self._branding_description(train)),
            ExplanationFactor("Cleaning Availability", scoring.FACTOR_WEIGHTS["cleaning"],
                              *self._cleaning_status()),
        ]
        constraints = [
            ConstraintStatus("Fitness certificates valid", train.fitness.all_valid(self.now), "hard"),
            ConstraintStatus("No critical job cards", not self.has_critical_job_cards(train.id), "hard"),
            ConstraintStatus("Bay capacity available", self.bay_capacity_available(), "soft"),
        ]
        tradeoffs: List[Tradeoff] = []
        if decision.action == "revenue":
            tradeoffs.append(Tradeoff("Service availability", 1.0, 0.5, "Revenue service provides maximum passenger capacity"))
        elif decision.action == "standby":
            tradeoffs.append(Tradeoff("Operational flexibility", 0.8, 0.3, "Standby provides flexibility for disruptions"))
        alternatives: List[Alternative] = []
        if decision.action != "revenue":
            alternatives.append(Alternative("revenue", decision.score * 0.8, "Could enter revenue service but with lower confidence"))
        if decision.action != "standby":
            alternatives.append(Alternative("standby", decision.score * 0.6, "Could be held on standby for flexibility"))
        return AIExplanation(
            train_id=train.id,
            decision=decision.action,
            factors=factors,
            constraints=constraints,
            tradeoffs=tradeoffs,
            confidence=decision.confidence,
            alternatives=alternatives,
        )

    def _fitness_impact(self, train: Train) -> str:
        return "positive" if train.fitness.all_valid(self.now) else "negative"

    def _fitness_description(self, train: Train) -> str:
        days = train.fitness.days_to_expiry(self.now)
        if days > 7:
            return f"All fitness certificates valid for {int(days)} days"
        if days > 0:
            return f"Fitness certificates expire in {int(days)} days - requires attention"
        return "Fitness certificates expired - cannot enter service"

    def _job_card_description(self, train: Train) -> str:
        open_cards = self.open_cards(train.id)
        critical = [jc for jc in open_cards if jc.severity == "critical"]
        if critical:
            return f"{len(critical)} critical job cards open - requires maintenance"
        if open_cards:
            return f"{len(open_cards)} open job cards, none critical"
        return "No open job cards - ready for service"

    def _mileage_impact(self, train: Train) -> str:
        deviation = abs(train.odo_km - self._mileage_mean)
        threshold = self._mileage_mean * 0.1
        if deviation < threshold:
            return "positive"
        if deviation > threshold * 2:
            return "negative"
        return "neutral"

    def _mileage_description(self, train: Train) -> str:
        avg = self._mileage_mean
        deviation = train.odo_km - avg
        if abs(deviation) < avg * 0.05:
            return f"Mileage ({train.odo_km:.0f} km) well balanced with fleet average ({int(avg)} km)"
        if deviation > 0:
            return f"High mileage ({train.odo_km:.0f} km) - {int(deviation)} km above average"
        return f"Low mileage ({train.odo_km:.0f} km) - {int(abs(deviation))} km below average"

    def _branding_impact(self, train: Train) -> str:
        sla = self._sla.get(train.id)
        if sla is None:
            return "neutral"
        if sla.compliance >= 1:
            return "positive"
        if sla.compliance < BRANDING_RISK_THRESHOLD:
            return "negative"
        return "neutral"

    def _branding_description(self, train: Train) -> str:
        sla = self._sla.get(train.id)
        if sla is None:
            return "No branding requirements"
        if sla.compliance >= 1:
            return f"Branding SLA met ({sla.hours_delivered:g}/{sla.min_hours_week:g} hours)"
        return f"Branding SLA at risk - {int(sla.shortfall)} hours shortfall"

    def _cleaning_status(self) -> tuple[str, str]:
        available = sum(1 for s in self.cleaning_slots if s.status == "available")
        if available == 0:
            return "negative", "No cleaning slots available"
        return "positive", f"{available} cleaning slots available"


def engine_from_payload(payload: Dict[str, Any], *, now: Optional[datetime] = None) -> InductionEngine:
    """Build an engine from a dashboard-shaped fleet payload.

    Keys: ``trains``, ``jobCards``, ``brandingSLAs``, ``cleaningSlots``,
    ``stablingBays``, ``tripBlocks`` and ``config``; snake_case works too.
    """
    def rows(*keys: str) -> List[Dict[str, Any]]:
        for k in keys:
            if payload.get(k) is not None:
                return list(payload[k])
        return []

    return InductionEngine(
        OptimizationConfig.from_dict(payload.get("config")),
        [Train.from_dict(r) for r in rows("trains")],
        [JobCard.from_dict(r) for r in rows("jobCards", "job_cards")],
        [BrandingSLA.from_dict(r) for r in rows("brandingSLAs", "branding_slas")],
        [CleaningSlot.from_dict(r) for r in rows("cleaningSlots", "cleaning_slots")],
        [StablingBay.from_dict(r) for r in rows("stablingBays", "stabling_bays")],
        [TripBlock.from_dict(r) for r in rows("tripBlocks", "trip_blocks")],
        now=now,
    )


def _main() -> None:  # pragma: no cover - convenience utility
    parser = argparse.ArgumentParser(description="Generate a nightly induction plan from a fleet JSON file")
    parser.add_argument(
        "--fleet",
        default=Path("data/sample/fleet.json"),
        type=Path,
        help="JSON file with trains, jobCards, brandingSLAs, cleaningSlots, stablingBays",
    )
    parser.add_argument("--now", default=None, help="Evaluate certificates as of this ISO timestamp")
    parser.add_argument("--out", default=None, type=Path, help="Write the plan JSON here instead of stdout")
    args = parser.parse_args()

    payload = json.loads(args.fleet.read_text())
    now = to_utc(args.now) if args.now else None
    plan = engine_from_payload(payload, now=now).generate_plan()
    text = json.dumps(plan.to_dict(), indent=2)
    if args.out:
        args.out.parent.mkdir(parents=True, exist_ok=True)
        args.out.write_text(text)
    else:
        print(text)


if __name__ == "__main__":  # pragma: no cover
    logging.basicConfig(level=logging.INFO)
    _main()

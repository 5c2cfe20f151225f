"""Domain records shared by induction planning, the operations copilot and
rider peak management.

Records are plain dataclasses with light validation in ``__post_init__``.
``from_dict`` accepts either snake_case or the camelCase keys used by the
dashboard, and ``to_dict`` renders camelCase so payloads round-trip with the
frontend unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import pandas as pd

__all__ = [
    "TRAIN_STATUSES",
    "ACTIONS",
    "SEVERITIES",
    "to_utc",
    "wall_clock",
    "FitnessCertificates",
    "Train",
    "JobCard",
    "BrandingSLA",
    "CleaningSlot",
    "StablingBay",
    "TripBlock",
    "OptimizationWeights",
    "OptimizationConstraints",
    "OptimizationConfig",
    "TrainDecision",
    "Conflict",
    "PlanMetrics",
    "ExplanationFactor",
    "ConstraintStatus",
    "Tradeoff",
    "Alternative",
    "AIExplanation",
    "InductionPlan",
    "PlanDiffEntry",
    "PlanDiff",
    "CopilotContext",
    "CopilotRequest",
    "CopilotMetrics",
    "CopilotOption",
    "CopilotResponse",
    "TypicalTravel",
    "ConsentFlags",
    "RiderProfile",
    "PeakShiftOffer",
    "RewardTransaction",
]

TRAIN_STATUSES = ("revenue", "standby", "IBL", "maintenance")
ACTIONS = ("revenue", "standby", "IBL")
SEVERITIES = ("low", "medium", "high", "critical")
JOB_CARD_STATUSES = ("open", "in_progress", "completed")
SLOT_STATUSES = ("available", "occupied", "reserved")
OFFER_STATUSES = ("pending", "accepted", "declined", "expired")
IMPACTS = ("positive", "negative", "neutral")

_MISSING = object()


# ---------- helpers ----------
def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(p[:1].upper() + p[1:] for p in rest)


def _pick(data: Dict[str, Any], name: str, default: Any = _MISSING, *aliases: str) -> Any:
    for key in (name, _camel(name), *aliases):
        if key in data and data[key] is not None:
            return data[key]
    if default is _MISSING:
        raise ValueError(f"missing required field '{_camel(name)}'")
    return default


def _wire(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        if hasattr(value, "to_dict"):
            return value.to_dict()
        return {_camel(f.name): _wire(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {(_camel(k) if isinstance(k, str) else k): _wire(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_wire(v) for v in value]
    return value


def _record_dict(obj: Any) -> Dict[str, Any]:
    return {_camel(f.name): _wire(getattr(obj, f.name)) for f in fields(obj)}


def to_utc(value: Any) -> datetime:
    """Parse an ISO string or datetime into a timezone-aware UTC datetime.

    Naive values are taken to be UTC.
    """
    if value is None:
        raise ValueError("timestamp is required")
    ts = pd.Timestamp(value)
    if pd.isna(ts):
        raise ValueError(f"invalid timestamp: {value!r}")
    ts = ts.tz_localize("UTC") if ts.tzinfo is None else ts.tz_convert("UTC")
    return ts.to_pydatetime()


def wall_clock(value: Any) -> datetime:
    """Parse a timestamp keeping its own offset, for hour-of-day rules."""
    if value is None:
        raise ValueError("timestamp is required")
    ts = pd.Timestamp(value)
    if pd.isna(ts):
        raise ValueError(f"invalid timestamp: {value!r}")
    return ts.to_pydatetime()


def _choice(value: str, allowed: tuple, what: str) -> str:
    if value not in allowed:
        raise ValueError(f"{what} must be one of {allowed}, got {value!r}")
    return value


# ---------- fleet ----------
@dataclass
class FitnessCertificates:
    rolling_stock_expiry: datetime
    signalling_expiry: datetime
    telecom_expiry: datetime
    rolling_stock: bool = True
    signalling: bool = True
    telecom: bool = True

    def __post_init__(self) -> None:
        self.rolling_stock_expiry = to_utc(self.rolling_stock_expiry)
        self.signalling_expiry = to_utc(self.signalling_expiry)
        self.telecom_expiry = to_utc(self.telecom_expiry)

    def expiries(self) -> tuple[datetime, datetime, datetime]:
        return (self.rolling_stock_expiry, self.signalling_expiry, self.telecom_expiry)

    def all_valid(self, now: datetime) -> bool:
        return all(exp > now for exp in self.expiries())

    def any_expired(self, now: datetime) -> bool:
        return any(exp <= now for exp in self.expiries())

    def days_to_expiry(self, now: datetime) -> float:
        return min((exp - now).total_seconds() / 86400.0 for exp in self.expiries())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FitnessCertificates":
        return cls(
            rolling_stock_expiry=_pick(data, "rolling_stock_expiry"),
            signalling_expiry=_pick(data, "signalling_expiry"),
            telecom_expiry=_pick(data, "telecom_expiry"),
            rolling_stock=bool(_pick(data, "rolling_stock", True)),
            signalling=bool(_pick(data, "signalling", True)),
            telecom=bool(_pick(data, "telecom", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _record_dict(self)


@dataclass
class Train:
    """A trainset (4-car consist) as seen by the nightly induction run.

    Attributes
    ----------
    id:
        Fleet identifier, e.g. ``KMRC 007``.
    status:
        Current assignment: revenue, standby, IBL (inspection bay line) or
        maintenance.
    odo_km:
        Odometer reading used for mileage balancing.
    """

    id: str
    train_number: str
    status: str
    odo_km: float
    fitness: FitnessCertificates
    branding_tag: Optional[str] = None
    bay_id: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("train id cannot be empty")
        _choice(self.status, TRAIN_STATUSES, "train status")
        self.odo_km = float(self.odo_km)
        if self.odo_km < 0:
            raise ValueError("odo_km must be non-negative")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Train":
        position = data.get("position") or {}
        tid = str(_pick(data, "id", None, "train_id", "trainId") or "")
        return cls(
            id=tid,
            train_number=str(_pick(data, "train_number", tid)),
            status=str(_pick(data, "status", "standby")),
            odo_km=_pick(data, "odo_km", 0.0, "mileage"),
            fitness=FitnessCertificates.from_dict(_pick(data, "fitness")),
            branding_tag=_pick(data, "branding_tag", None),
            bay_id=_pick(data, "bay_id", None) or position.get("bayId"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _record_dict(self)


@dataclass
class JobCard:
    id: str
    train_id: str
    status: str
    severity: str
    title: str = ""
    system: Optional[str] = None

    def __post_init__(self) -> None:
        _choice(self.status, JOB_CARD_STATUSES, "job card status")
        _choice(self.severity, SEVERITIES, "job card severity")

    @property
    def is_open(self) -> bool:
        return self.status == "open"

    @property
    def is_open_critical(self) -> bool:
        return self.status == "open" and self.severity == "critical"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobCard":
        return cls(
            id=str(_pick(data, "id")),
            train_id=str(_pick(data, "train_id")),
            status=str(_pick(data, "status", "open")),
            severity=str(_pick(data, "severity", None, "priority") or "low"),
            title=str(_pick(data, "title", "")),
            system=_pick(data, "system", None),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _record_dict(self)


@dataclass
class BrandingSLA:
    campaign_id: str
    train_id: str
    min_hours_week: float
    hours_delivered: float
    penalty: float = 0.0

    def __post_init__(self) -> None:
        self.min_hours_week = float(self.min_hours_week)
        self.hours_delivered = float(self.hours_delivered)
        if self.min_hours_week < 0 or self.hours_delivered < 0:
            raise ValueError("branding hours must be non-negative")

    @property
    def compliance(self) -> float:
        # A zero-hour commitment is met by definition.
        if self.min_hours_week == 0:
            return 1.0
        return self.hours_delivered / self.min_hours_week

    @property
    def shortfall(self) -> float:
        return max(0.0, self.min_hours_week - self.hours_delivered)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BrandingSLA":
        return cls(
            campaign_id=str(_pick(data, "campaign_id", "")),
            train_id=str(_pick(data, "train_id")),
            min_hours_week=_pick(data, "min_hours_week"),
            hours_delivered=_pick(data, "hours_delivered", 0.0),
            penalty=float(_pick(data, "penalty", 0.0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _record_dict(self)


@dataclass
class CleaningSlot:
    id: str
    bay: str
    start: datetime
    end: datetime
    status: str = "available"
    depot_id: Optional[str] = None

    def __post_init__(self) -> None:
        self.start = wall_clock(self.start)
        self.end = wall_clock(self.end)
        _choice(self.status, SLOT_STATUSES, "cleaning slot status")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CleaningSlot":
        return cls(
            id=str(_pick(data, "id")),
            bay=str(_pick(data, "bay", "")),
            start=_pick(data, "start"),
            end=_pick(data, "end"),
            status=str(_pick(data, "status", "available")),
            depot_id=_pick(data, "depot_id", None),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _record_dict(self)


@dataclass
class StablingBay:
    id: str
    capacity: int
    occupied: int = 0
    shunt_cost: float = 0.0
    bay_number: str = ""
    depot_id: Optional[str] = None
    train_ids: List[str] = field(default_factory=list)
    adjacency: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.capacity = int(self.capacity)
        self.occupied = int(self.occupied)
        if self.capacity < 0 or self.occupied < 0:
            raise ValueError("bay capacity and occupancy must be non-negative")
        if self.occupied > self.capacity:
            raise ValueError(f"bay {self.id} occupancy {self.occupied} exceeds capacity {self.capacity}")

    @property
    def has_room(self) -> bool:
        return self.occupied < self.capacity

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StablingBay":
        return cls(
            id=str(_pick(data, "id")),
            capacity=_pick(data, "capacity", 1),
            occupied=_pick(data, "occupied", 0),
            shunt_cost=float(_pick(data, "shunt_cost", 0.0)),
            bay_number=str(_pick(data, "bay_number", "")),
            depot_id=_pick(data, "depot_id", None),
            train_ids=list(_pick(data, "train_ids", [])),
            adjacency=list(_pick(data, "adjacency", [])),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _record_dict(self)


@dataclass
class TripBlock:
    trip_id: str
    line: str
    origin: str
    dest: str
    dep_planned: str
    arr_planned: str
    headway: float = 0.0
    train_id: Optional[str] = None
    status: str = "scheduled"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TripBlock":
        return cls(
            trip_id=str(_pick(data, "trip_id")),
            line=str(_pick(data, "line", "")),
            origin=str(_pick(data, "origin", "")),
            dest=str(_pick(data, "dest", "")),
            dep_planned=str(_pick(data, "dep_planned", "")),
            arr_planned=str(_pick(data, "arr_planned", "")),
            headway=float(_pick(data, "headway", 0.0)),
            train_id=_pick(data, "train_id", None),
            status=str(_pick(data, "status", "scheduled")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _record_dict(self)


# ---------- optimisation ----------
@dataclass
class OptimizationWeights:
    feasibility: float = 1.0
    shunting: float = 0.5
    mileage_balance: float = 0.5
    branding: float = 0.3
    cleaning: float = 0.2

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OptimizationWeights":
        d = cls()
        return cls(**{f.name: float(_pick(data, f.name, getattr(d, f.name))) for f in fields(cls)})


@dataclass
class OptimizationConstraints:
    max_run: int = 18
    max_standby: int = 4
    max_maintenance: int = 6
    min_headway: float = 5.0
    max_shunting: int = 20

    def __post_init__(self) -> None:
        if self.max_run < 0 or self.max_standby < 0:
            raise ValueError("max_run and max_standby must be non-negative")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OptimizationConstraints":
        d = cls()
        return cls(
            max_run=int(_pick(data, "max_run", d.max_run)),
            max_standby=int(_pick(data, "max_standby", d.max_standby)),
            max_maintenance=int(_pick(data, "max_maintenance", d.max_maintenance)),
            min_headway=float(_pick(data, "min_headway", d.min_headway)),
            max_shunting=int(_pick(data, "max_shunting", d.max_shunting)),
        )


@dataclass
class OptimizationConfig:
    weights: OptimizationWeights = field(default_factory=OptimizationWeights)
    constraints: OptimizationConstraints = field(default_factory=OptimizationConstraints)
    seed: Optional[float] = None
    service_date: Optional[date] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "OptimizationConfig":
        data = data or {}
        sd = _pick(data, "service_date", None)
        seed = _pick(data, "seed", None)
        return cls(
            weights=OptimizationWeights.from_dict(_pick(data, "weights", {})),
            constraints=OptimizationConstraints.from_dict(_pick(data, "constraints", {})),
            seed=(float(seed) if seed is not None else None),
            service_date=(pd.Timestamp(sd).date() if sd else None),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _record_dict(self)


@dataclass
class TrainDecision:
    train_id: str
    action: str
    score: float
    reason: str
    constraints: List[str] = field(default_factory=list)
    confidence: float = 0.0
    bay_assignment: Optional[str] = None
    estimated_turnout: Optional[str] = None
    trip_assignments: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        _choice(self.action, ACTIONS, "decision action")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrainDecision":
        return cls(
            train_id=str(_pick(data, "train_id")),
            action=str(_pick(data, "action", None, "decision")),
            score=float(_pick(data, "score", 0.0)),
            reason=str(_pick(data, "reason", "")),
            constraints=list(_pick(data, "constraints", [])),
            confidence=float(_pick(data, "confidence", 0.0)),
            bay_assignment=_pick(data, "bay_assignment", None),
            estimated_turnout=_pick(data, "estimated_turnout", None),
            trip_assignments=list(_pick(data, "trip_assignments", [])),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _record_dict(self)


@dataclass
class Conflict:
    id: str
    type: str  # fitness | jobcard | branding
    severity: str  # low | medium | high
    description: str
    affected_trains: List[str] = field(default_factory=list)
    status: str = "open"
    resolution: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Conflict":
        return cls(
            id=str(_pick(data, "id")),
            type=str(_pick(data, "type")),
            severity=str(_pick(data, "severity", "medium")),
            description=str(_pick(data, "description", "")),
            affected_trains=list(_pick(data, "affected_trains", [])),
            status=str(_pick(data, "status", "open")),
            resolution=_pick(data, "resolution", None),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _record_dict(self)


@dataclass
class PlanMetrics:
    total_shunting: int = 0
    mileage_variance: float = 0.0
    branding_compliance: float = 1.0
    constraint_violations: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlanMetrics":
        return cls(
            total_shunting=int(_pick(data, "total_shunting", 0)),
            mileage_variance=float(_pick(data, "mileage_variance", 0.0)),
            branding_compliance=float(_pick(data, "branding_compliance", 1.0)),
            constraint_violations=int(_pick(data, "constraint_violations", 0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _record_dict(self)


@dataclass
class ExplanationFactor:
    factor: str
    weight: float
    impact: str
    description: str

    def __post_init__(self) -> None:
        _choice(self.impact, IMPACTS, "impact")


@dataclass
class ConstraintStatus:
    constraint: str
    satisfied: bool
    severity: str  # hard | soft


@dataclass
class Tradeoff:
    aspect: str
    current: float
    alternative: float
    explanation: str


@dataclass
class Alternative:
    action: str
    score: float
    reason: str


@dataclass
class AIExplanation:
    train_id: str
    decision: str
    factors: List[ExplanationFactor] = field(default_factory=list)
    constraints: List[ConstraintStatus] = field(default_factory=list)
    tradeoffs: List[Tradeoff] = field(default_factory=list)
    confidence: float = 0.0
    alternatives: List[Alternative] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trainId": self.train_id,
            "decision": self.decision,
            "reasoning": {
                "factors": _wire(self.factors),
                "constraints": _wire(self.constraints),
                "tradeoffs": _wire(self.tradeoffs),
            },
            "confidence": self.confidence,
            "alternatives": _wire(self.alternatives),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AIExplanation":
        reasoning = data.get("reasoning") or {}
        return cls(
            train_id=str(_pick(data, "train_id")),
            decision=str(_pick(data, "decision", "")),
            factors=[ExplanationFactor(**f) for f in reasoning.get("factors", [])],
            constraints=[ConstraintStatus(**c) for c in reasoning.get("constraints", [])],
            tradeoffs=[Tradeoff(**t) for t in reasoning.get("tradeoffs", [])],
            confidence=float(_pick(data, "confidence", 0.0)),
            alternatives=[Alternative(**a) for a in data.get("alternatives", [])],
        )


@dataclass
class InductionPlan:
    id: str
    model_version: str
    objective_weights: OptimizationWeights
    seed: float
    generated_at: str
    decisions: List[TrainDecision] = field(default_factory=list)
    conflicts: List[Conflict] = field(default_factory=list)
    metrics: PlanMetrics = field(default_factory=PlanMetrics)
    objective_value: float = 0.0
    status: str = "optimal"
    explanations: List[AIExplanation] = field(default_factory=list)

    def decision_for(self, train_id: str) -> Optional[TrainDecision]:
        for d in self.decisions:
            if d.train_id == train_id:
                return d
        return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InductionPlan":
        return cls(
            id=str(_pick(data, "id")),
            model_version=str(_pick(data, "model_version", "1.0.0")),
            objective_weights=OptimizationWeights.from_dict(_pick(data, "objective_weights", {})),
            seed=float(_pick(data, "seed", 0.0)),
            generated_at=str(_pick(data, "generated_at", "")),
            decisions=[TrainDecision.from_dict(d) for d in _pick(data, "decisions", [])],
            conflicts=[Conflict.from_dict(c) for c in _pick(data, "conflicts", [])],
            metrics=PlanMetrics.from_dict(_pick(data, "metrics", {})),
            objective_value=float(_pick(data, "objective_value", 0.0)),
            status=str(_pick(data, "status", "optimal")),
            explanations=[AIExplanation.from_dict(e) for e in _pick(data, "explanations", [])],
        )

    def to_dict(self) -> Dict[str, Any]:
        return _record_dict(self)


@dataclass
class PlanDiffEntry:
    train_id: str
    old_action: Optional[str]
    new_action: str
    reason: str
    timestamp: str


@dataclass
class PlanDiff:
    plan_id: str
    changes: List[PlanDiffEntry] = field(default_factory=list)
    # Previous decision dicts of the touched trains; None marks a train the
    # diff introduced.
    rollback_data: Dict[str, Optional[Dict[str, Any]]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "planId": self.plan_id,
            "changes": _wire(self.changes),
            "rollbackData": dict(self.rollback_data),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlanDiff":
        return cls(
            plan_id=str(_pick(data, "plan_id")),
            changes=[
                PlanDiffEntry(
                    train_id=str(_pick(c, "train_id")),
                    old_action=_pick(c, "old_action", None),
                    new_action=str(_pick(c, "new_action")),
                    reason=str(_pick(c, "reason", "")),
                    timestamp=str(_pick(c, "timestamp", "")),
                )
                for c in _pick(data, "changes", [])
            ],
            rollback_data=dict(_pick(data, "rollback_data", {})),
        )


# ---------- copilot ----------
@dataclass
class CopilotContext:
    affected_trains: List[str] = field(default_factory=list)
    affected_stations: List[str] = field(default_factory=list)
    time_window_start: Optional[str] = None
    time_window_end: Optional[str] = None
    # Plan rows and schedule trips are passed through as the dashboard
    # sends them.
    current_plan: Optional[List[Dict[str, Any]]] = None
    current_schedule: Optional[List[Dict[str, Any]]] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CopilotContext":
        data = data or {}
        window = data.get("timeWindow") or data.get("time_window") or {}
        return cls(
            affected_trains=[str(t) for t in _pick(data, "affected_trains", [])],
            affected_stations=[str(s) for s in _pick(data, "affected_stations", [])],
            time_window_start=window.get("start"),
            time_window_end=window.get("end"),
            current_plan=_pick(data, "current_plan", None),
            current_schedule=_pick(data, "current_schedule", None),
        )


@dataclass
class CopilotRequest:
    id: str
    prompt: str
    context: CopilotContext = field(default_factory=CopilotContext)
    timestamp: str = ""
    status: str = "pending"


@dataclass
class CopilotMetrics:
    impact: str
    feasibility: float
    estimated_delay: float


@dataclass
class CopilotOption:
    option: str
    description: str
    tradeoffs: List[str] = field(default_factory=list)


@dataclass
class CopilotResponse:
    request_id: str
    intent: str
    changes: List[TrainDecision]
    metrics: CopilotMetrics
    reasoning: str
    alternatives: List[CopilotOption] = field(default_factory=list)
    confidence: float = 0.0
    requires_approval: bool = False
    modified_schedule: Optional[List[Dict[str, Any]]] = None

    def to_dict(self) -> Dict[str, Any]:
        preview: Dict[str, Any] = {
            "changes": _wire(self.changes),
            "metrics": _wire(self.metrics),
            "reasoning": self.reasoning,
        }
        out: Dict[str, Any] = {
            "requestId": self.request_id,
            "intent": self.intent,
            "preview": preview,
            "alternatives": _wire(self.alternatives),
            "confidence": self.confidence,
            "requiresApproval": self.requires_approval,
        }
        if self.modified_schedule is not None:
            # Trips keep the keys the dashboard sent.
            preview["modifiedSchedule"] = self.modified_schedule
            out["modifiedSchedule"] = self.modified_schedule
        return out


# ---------- rider ----------
@dataclass
class TypicalTravel:
    origin: str
    destination: str
    preferred_times: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TypicalTravel":
        return cls(
            origin=str(_pick(data, "origin")),
            destination=str(_pick(data, "destination")),
            preferred_times=[str(t) for t in _pick(data, "preferred_times", [])],
        )


@dataclass
class ConsentFlags:
    peak_shifting: bool = False
    data_analytics: bool = False
    notifications: bool = False


@dataclass
class RiderProfile:
    user_id: str
    hashed_id: str
    typical_travel_times: List[TypicalTravel] = field(default_factory=list)
    flexibility_score: float = 0.5
    reward_points: int = 0
    consent_flags: ConsentFlags = field(default_factory=ConsentFlags)

    def __post_init__(self) -> None:
        if not 0.0 <= self.flexibility_score <= 1.0:
            raise ValueError("flexibility_score must be within [0, 1]")

    def to_dict(self) -> Dict[str, Any]:
        return _record_dict(self)


@dataclass
class PeakShiftOffer:
    id: str
    user_id: str
    original_time: str
    suggested_time: str
    time_shift: int  # minutes, negative = earlier
    reward_points: int
    reason: str
    expires_at: datetime
    status: str = "pending"
    compliance_verified: bool = False

    def __post_init__(self) -> None:
        _choice(self.status, OFFER_STATUSES, "offer status")

    def to_dict(self) -> Dict[str, Any]:
        return _record_dict(self)


@dataclass
class RewardTransaction:
    id: str
    user_id: str
    type: str  # peak_shift | compliance | bonus
    points: int
    description: str
    timestamp: str
    verified: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return _record_dict(self)

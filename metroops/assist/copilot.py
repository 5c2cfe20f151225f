"""Operations copilot: turn operator commands into previewable plan changes.

Two modes:

- ``process_request``: works on the fleet records alone (standby trains with
  valid certificates and no open critical job card are replacements).
- ``process_request_with_plan``: works on the plan rows and trip schedule
  carried in the request context and returns the modified schedule.

Nothing is applied here; every response is a preview that an operator
approves or dismisses.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from metroops.assist.intents import Intent, matches_trip, parse_intent, train_number
from metroops.model.types import (
    BrandingSLA,
    CopilotMetrics,
    CopilotOption,
    CopilotRequest,
    CopilotResponse,
    JobCard,
    StablingBay,
    Train,
    TrainDecision,
    TripBlock,
)

logger = logging.getLogger(__name__)

__all__ = ["COMMANDS", "OperationsCopilot", "ScheduleAction", "modify_schedule", "wants_replacement"]


COMMANDS: List[Dict[str, Any]] = [
    {
        "command": "withdraw",
        "description": "Withdraw a train from service",
        "examples": [
            "Withdraw train 01 due to technical issue",
            "Remove train 05 from service",
            "Take out train 12",
        ],
    },
    {
        "command": "short_turn",
        "description": "Short turn a train at an intermediate station",
        "examples": [
            "Short turn train 03 at Kaloor",
            "Terminate train 07 early at Edapally",
            "Turn back train 15 at Vytilla",
        ],
    },
    {
        "command": "gap_fill",
        "description": "Fill a service gap with standby train",
        "examples": [
            "Fill gap with standby train",
            "Replace missing service",
            "Inject standby train 20",
        ],
    },
    {
        "command": "skip_stop",
        "description": "Skip a station stop",
        "examples": [
            "Skip Muttom due to obstruction",
            "Bypass Town Hall",
            "Miss Elamkulam stop",
        ],
    },
]

_REPLACEMENT_WORDS = ("replace", "substitute", "with replacement")
_INTERMEDIATE = "intermediate station"

_CANCEL_SERVICE = CopilotOption(
    "Cancel service",
    "Cancel the affected trip and adjust headways",
    ["Reduced service frequency", "Potential passenger inconvenience"],
)
_DELAY_WITHDRAWAL = CopilotOption(
    "Delay withdrawal",
    "Wait for next scheduled maintenance window",
    ["Operational risk continues", "May affect other services"],
)
_FIND_REPLACEMENT = CopilotOption(
    "Find replacement",
    "Look for standby train to maintain service",
    ["May require operational adjustments", "Better passenger experience"],
)
_CONTINUE_TO_DESTINATION = CopilotOption(
    "Continue to destination",
    "Maintain full service to original destination",
    ["Operational risk continues", "Potential for further delays"],
)
_CANCEL_TRIP = CopilotOption(
    "Cancel service",
    "Cancel the entire trip",
    ["No service provided", "Passengers need alternative transport"],
)
_ADJUST_HEADWAYS = CopilotOption(
    "Adjust headways",
    "Increase headways on remaining services",
    ["Longer wait times", "Reduced service frequency"],
)
_CANCEL_AFFECTED = CopilotOption(
    "Cancel affected trips",
    "Cancel trips to maintain headways",
    ["Service reduction", "Passenger inconvenience"],
)
_NORMAL_SERVICE = CopilotOption(
    "Continue normal service",
    "Maintain normal stopping pattern",
    ["Operational risk continues", "Potential for further delays"],
)
_TERMINATE_EARLY = CopilotOption(
    "Terminate service early",
    "Terminate service before the affected station",
    ["Reduced service coverage", "Passenger inconvenience"],
)
_CLARIFY = CopilotOption(
    "Clarify request",
    "Provide more specific details about the operational requirement",
    ["Requires additional information", "May delay response"],
)


def wants_replacement(prompt: str) -> bool:
    lower = (prompt or "").lower()
    return any(w in lower for w in _REPLACEMENT_WORDS)


@dataclass
class ScheduleAction:
    action: str  # withdraw | short_turn | gap_fill | skip_stop
    train_id: Optional[str] = None
    station: Optional[str] = None
    reason: Optional[str] = None


def modify_schedule(schedule: Optional[List[Dict[str, Any]]], action: ScheduleAction, *, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Return a new schedule with ``action`` applied; input trips are left untouched."""
    if not isinstance(schedule, list):
        return []
    trips = [dict(t) for t in schedule]
    if action.action == "withdraw":
        return [
            {**t, "status": "Withdrawn", "aiModified": True, "withdrawReason": action.reason or "Operational requirement"}
            if matches_trip(t, action.train_id or "") else t
            for t in trips
        ]
    if action.action == "short_turn":
        return [
            {**t, "destination": action.station, "status": "Short Turn"}
            if matches_trip(t, action.train_id or "") else t
            for t in trips
        ]
    if action.action == "gap_fill":
        start = now or datetime.now(timezone.utc)
        trips.append({
            "date": start.date().isoformat(),
            "trainNumber": action.train_id,
            "trainName": action.train_id,
            "origin": "Depot",
            "destination": "Service",
            "departure": start.strftime("%H:%M"),
            "arrival": (start + timedelta(minutes=30)).strftime("%H:%M"),
            "status": "Gap Fill",
            "aiModified": True,
            "aiAction": "added",
            "addReason": action.reason or "AI optimization",
        })
        return trips
    if action.action == "skip_stop":
        return [{**t, "skipStations": list(t.get("skipStations") or []) + [action.station]} for t in trips]
    return trips


def _plan_row_id(row: Dict[str, Any]) -> Optional[str]:
    return row.get("trainId") or row.get("train_id")


def _is_standby_row(row: Dict[str, Any]) -> bool:
    return row.get("action") == "standby" or row.get("decision") == "standby"


class OperationsCopilot:
    def __init__(
        self,
        trains: List[Train],
        job_cards: List[JobCard],
        branding_slas: Optional[List[BrandingSLA]] = None,
        stabling_bays: Optional[List[StablingBay]] = None,
        trip_blocks: Optional[List[TripBlock]] = None,
        *,
        now: Optional[datetime] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.trains = list(trains)
        self.job_cards = list(job_cards)
        self.branding_slas = list(branding_slas or [])
        self.stabling_bays = list(stabling_bays or [])
        self.trip_blocks = list(trip_blocks or [])
        self._now = now
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def now(self) -> datetime:
        return self._now or self._clock()

    # ------------------------------------------------------------------
    # entry points

    def process_request(self, request: CopilotRequest) -> CopilotResponse:
        intent = parse_intent(request.prompt)
        logger.info("copilot request %s intent=%s trains=%s", request.id, intent.type, intent.trains)
        handlers = {
            "withdraw": self._withdraw,
            "short_turn": self._short_turn,
            "gap_fill": self._gap_fill,
            "inject_standby": self._gap_fill,
            "skip_stop": self._skip_stop,
        }
        handler = handlers.get(intent.type)
        if handler is None:
            return self._generic(request)
        return handler(request, intent)

    def process_request_with_plan(self, request: CopilotRequest) -> CopilotResponse:
        intent = parse_intent(request.prompt)
        logger.info("copilot plan request %s intent=%s trains=%s stations=%s",
                    request.id, intent.type, intent.trains, intent.stations)
        handlers = {
            "withdraw": self._withdraw_with_plan,
            "short_turn": self._short_turn_with_plan,
            "gap_fill": self._gap_fill_with_plan,
            "inject_standby": self._gap_fill_with_plan,
            "skip_stop": self._skip_stop_with_plan,
        }
        handler = handlers.get(intent.type)
        if handler is None:
            return self._generic(request)
        return handler(request, intent)

    # ------------------------------------------------------------------
    # fleet helpers

    def find_train(self, train_id: str) -> Optional[Train]:
        for t in self.trains:
            if train_id in (t.id, t.train_number):
                return t
        number = train_number(train_id)
        if number:
            for t in self.trains:
                if number in t.id or number in t.train_number:
                    return t
        return None

    def is_ready_for_service(self, train: Train) -> bool:
        if not train.fitness.all_valid(self.now()):
            return False
        return not any(jc.train_id == train.id and jc.is_open_critical for jc in self.job_cards)

    def ready_standby(self, exclude: Optional[str] = None) -> List[Train]:
        return [t for t in self.trains if t.status == "standby" and t.id != exclude and self.is_ready_for_service(t)]

    # ------------------------------------------------------------------
    # fleet mode

    def _withdraw(self, request: CopilotRequest, intent: Intent) -> CopilotResponse:
        if not intent.trains:
            return self.error_response(request, "No train specified for withdrawal")
        train = self.find_train(intent.trains[0])
        if train is None:
            return self.error_response(request, f"Train {intent.trains[0]} not found")
        standby = self.ready_standby(exclude=train.id)
        if not standby:
            return self.error_response(request, "No standby trains available for replacement")
        replacement = standby[0]
        changes = [
            _withdrawal(train.id, intent.reason),
            _replacement(replacement.id, train.id),
        ]
        return CopilotResponse(
            request_id=request.id,
            intent=intent.type,
            changes=changes,
            metrics=CopilotMetrics("Service maintained with standby replacement", 0.9, 5),
            reasoning=f"Withdrawing {train.id} and replacing with standby train {replacement.id}. Service continuity maintained.",
            alternatives=[_CANCEL_SERVICE, _DELAY_WITHDRAWAL],
            confidence=0.9,
            requires_approval=True,
        )

    def _short_turn(self, request: CopilotRequest, intent: Intent) -> CopilotResponse:
        if not intent.trains:
            return self.error_response(request, "No train specified for short turn")
        train = self.find_train(intent.trains[0])
        if train is None:
            return self.error_response(request, f"Train {intent.trains[0]} not found")
        station = intent.stations[0] if intent.stations else None
        affected = [tb.trip_id for tb in self.trip_blocks if tb.train_id == train.id and tb.status == "scheduled"]
        resp = self._short_turn_response(request, intent, train.id, station, [_CONTINUE_TO_DESTINATION, _CANCEL_TRIP])
        if affected:
            resp.changes[0].constraints.append(f"Affected trips: {', '.join(affected)}")
        return resp

    def _gap_fill(self, request: CopilotRequest, intent: Intent) -> CopilotResponse:
        standby = self.ready_standby()
        if not standby:
            return self.error_response(request, "No standby trains available for gap filling")
        return self._gap_fill_response(request, intent, standby[0].id, [_ADJUST_HEADWAYS, _CANCEL_AFFECTED])

    def _skip_stop(self, request: CopilotRequest, intent: Intent) -> CopilotResponse:
        if not intent.stations:
            return self.error_response(request, "No station specified for skip stop")
        return self._skip_stop_response(request, intent, intent.stations[0], 1, [_NORMAL_SERVICE, _TERMINATE_EARLY])

    # ------------------------------------------------------------------
    # plan mode

    def _scheduled(self, request: CopilotRequest, train_id: str) -> bool:
        schedule = request.context.current_schedule or []
        return any(matches_trip(t, train_id) for t in schedule)

    def _standby_rows(self, request: CopilotRequest, exclude: Optional[str] = None) -> List[Dict[str, Any]]:
        rows = request.context.current_plan or []
        return [
            r for r in rows
            if _is_standby_row(r) and _plan_row_id(r)
            and not (exclude and matches_trip({"trainNumber": _plan_row_id(r)}, exclude))
        ]

    def _withdraw_with_plan(self, request: CopilotRequest, intent: Intent) -> CopilotResponse:
        if not intent.trains:
            return self.error_response(request, "No train specified for withdrawal")
        train_id = intent.trains[0]
        if not self._scheduled(request, train_id):
            return self.error_response(request, f"Train {train_id} not found in current schedule")

        replace_requested = wants_replacement(request.prompt)
        standby = self._standby_rows(request, exclude=train_id) if replace_requested else []
        schedule = request.context.current_schedule
        now = self.now()

        if standby:
            replacement_id = _plan_row_id(standby[0])
            modified = modify_schedule(schedule, ScheduleAction("withdraw", train_id, reason=intent.reason), now=now)
            changes = [_withdrawal(train_id, intent.reason), _replacement(replacement_id, train_id)]
            impact = "Service maintained with standby replacement"
            reasoning = f"Withdrawing {train_id} and replacing with standby train {replacement_id}. Service continuity maintained."
            delay = 5
        else:
            modified = modify_schedule(schedule, ScheduleAction("withdraw", train_id, reason=intent.reason), now=now)
            changes = [_withdrawal(train_id, intent.reason, ["No standby trains available"] if replace_requested else [])]
            if replace_requested:
                impact = "Service cancelled - no replacement available"
                reasoning = f"Withdrawing {train_id}. No standby trains available for replacement, so service will be cancelled."
            else:
                impact = "Service cancelled - train withdrawn"
                reasoning = f"Withdrawing {train_id} from service. Affected trips will be cancelled and headways adjusted."
            delay = 0

        return CopilotResponse(
            request_id=request.id,
            intent=intent.type,
            changes=changes,
            metrics=CopilotMetrics(impact, 0.9, delay),
            reasoning=reasoning,
            alternatives=[_CANCEL_SERVICE] if replace_requested else [_FIND_REPLACEMENT],
            confidence=0.9,
            requires_approval=True,
            modified_schedule=modified,
        )

    def _short_turn_with_plan(self, request: CopilotRequest, intent: Intent) -> CopilotResponse:
        if not intent.trains:
            return self.error_response(request, "No train specified for short turn")
        train_id = intent.trains[0]
        if not self._scheduled(request, train_id):
            return self.error_response(request, f"Train {train_id} not found in current schedule")
        station = intent.stations[0] if intent.stations else None
        resp = self._short_turn_response(request, intent, train_id, station, [_CONTINUE_TO_DESTINATION])
        resp.modified_schedule = modify_schedule(
            request.context.current_schedule,
            ScheduleAction("short_turn", train_id, station=station or _INTERMEDIATE, reason=intent.reason),
            now=self.now(),
        )
        return resp

    def _gap_fill_with_plan(self, request: CopilotRequest, intent: Intent) -> CopilotResponse:
        standby = self._standby_rows(request)
        if not standby:
            return self.error_response(request, "No standby trains available for gap filling")
        train_id = _plan_row_id(standby[0])
        resp = self._gap_fill_response(request, intent, train_id, [_ADJUST_HEADWAYS])
        resp.modified_schedule = modify_schedule(
            request.context.current_schedule,
            ScheduleAction("gap_fill", train_id, reason=intent.reason),
            now=self.now(),
        )
        return resp

    def _skip_stop_with_plan(self, request: CopilotRequest, intent: Intent) -> CopilotResponse:
        if not intent.stations:
            return self.error_response(request, "No station specified for skip stop")
        station = intent.stations[0]
        # skipping a stop saves a minute of running time
        resp = self._skip_stop_response(request, intent, station, -1, [_NORMAL_SERVICE])
        resp.modified_schedule = modify_schedule(
            request.context.current_schedule,
            ScheduleAction("skip_stop", station=station, reason=intent.reason),
            now=self.now(),
        )
        return resp

    # ------------------------------------------------------------------
    # shared responses

    def _short_turn_response(self, request, intent, train_id, station, alternatives) -> CopilotResponse:
        where = station or _INTERMEDIATE
        change = TrainDecision(
            train_id=train_id,
            action="revenue",
            score=0.7,
            reason=f"Short turn at {where} due to: {intent.reason}",
            constraints=["Modified service pattern"],
            confidence=0.8,
        )
        return CopilotResponse(
            request_id=request.id,
            intent=intent.type,
            changes=[change],
            metrics=CopilotMetrics(f"Service will terminate early at {station or 'designated station'}", 0.8, 2),
            reasoning=f"Short turning {train_id} at {where}. Passengers will need to transfer to next service.",
            alternatives=list(alternatives),
            confidence=0.8,
            requires_approval=True,
        )

    def _gap_fill_response(self, request, intent, train_id, alternatives) -> CopilotResponse:
        change = TrainDecision(
            train_id=train_id,
            action="revenue",
            score=0.8,
            reason=f"Gap fill service due to: {intent.reason}",
            confidence=0.8,
        )
        return CopilotResponse(
            request_id=request.id,
            intent=intent.type,
            changes=[change],
            metrics=CopilotMetrics("Service gap filled with standby train", 0.9, 3),
            reasoning=f"Injecting standby train {train_id} to fill service gap. Headway will be restored.",
            alternatives=list(alternatives),
            confidence=0.9,
            requires_approval=True,
        )

    def _skip_stop_response(self, request, intent, station, delay, alternatives) -> CopilotResponse:
        change = TrainDecision(
            train_id="multiple",
            action="revenue",
            score=0.6,
            reason=f"Skip stop at {station} due to: {intent.reason}",
            constraints=["Modified stopping pattern"],
            confidence=0.7,
        )
        return CopilotResponse(
            request_id=request.id,
            intent=intent.type,
            changes=[change],
            metrics=CopilotMetrics(f"Trains will skip {station} station", 0.8, delay),
            reasoning=f"Skipping {station} station. Passengers at this station will need to use alternative services.",
            alternatives=list(alternatives),
            confidence=0.7,
            requires_approval=True,
        )

    def _generic(self, request: CopilotRequest) -> CopilotResponse:
        return CopilotResponse(
            request_id=request.id,
            intent="generic",
            changes=[],
            metrics=CopilotMetrics("No specific action identified", 0.5, 0),
            reasoning="Could not parse specific operational request. Please provide more details.",
            alternatives=[_CLARIFY],
            confidence=0.3,
            requires_approval=False,
        )

    def error_response(self, request: CopilotRequest, message: str) -> CopilotResponse:
        logger.warning("copilot request %s rejected: %s", request.id, message)
        return CopilotResponse(
            request_id=request.id,
            intent="error",
            changes=[],
            metrics=CopilotMetrics("Error", 0.0, 0),
            reasoning=message,
            alternatives=[],
            confidence=0.0,
            requires_approval=False,
        )


def _withdrawal(train_id: str, reason: str, constraints: Optional[List[str]] = None) -> TrainDecision:
    return TrainDecision(
        train_id=train_id,
        action="standby",
        score=0.0,
        reason=f"Withdrawn due to: {reason}",
        constraints=list(constraints or []),
        confidence=0.9,
    )


def _replacement(train_id: str, withdrawn: str) -> TrainDecision:
    return TrainDecision(
        train_id=train_id,
        action="revenue",
        score=0.8,
        reason=f"Replacement for withdrawn train {withdrawn}",
        confidence=0.8,
    )


def new_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"

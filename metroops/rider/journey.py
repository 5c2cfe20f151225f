"""Single-leg Line 1 trip planner over a fixed timetable."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from metroops.model.network import LINE_1, canonical_station, fare_between

__all__ = [
    "JourneyError",
    "NoServiceError",
    "Stop",
    "TrainRun",
    "Timetable",
    "JourneyStep",
    "Journey",
    "default_timetable",
    "plan_journey",
]

STOP_INTERVAL_MIN = 5


class JourneyError(ValueError):
    """Bad journey request (maps to HTTP 400)."""

    status_code = 400


class NoServiceError(LookupError):
    """No run serves the requested pair (maps to HTTP 404)."""

    status_code = 404


def to_minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def to_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


@dataclass
class Stop:
    station: str
    time: str
    platform: str


@dataclass
class TrainRun:
    train_id: str
    train_name: str
    stops: List[Stop]
    status: str = "revenue"

    def stop_at(self, station: str) -> Optional[Stop]:
        for s in self.stops:
            if s.station == station:
                return s
        return None


@dataclass
class Timetable:
    runs: List[TrainRun] = field(default_factory=list)

    def revenue_runs(self) -> List[TrainRun]:
        return [r for r in self.runs if r.status == "revenue"]


def _run(train_id: str, name: str, start: str, stations: Sequence[str], platform: str) -> TrainRun:
    t0 = to_minutes(start)
    stops = [Stop(s, to_hhmm(t0 + i * STOP_INTERVAL_MIN), platform) for i, s in enumerate(stations)]
    return TrainRun(train_id, name, stops)


def default_timetable() -> Timetable:
    outbound = list(LINE_1)
    inbound = list(reversed(LINE_1))
    return Timetable([
        _run("KMRL-001", "Metro Express 1", "06:00", outbound, "Platform 1"),
        _run("KMRL-002", "Metro Express 2", "06:15", inbound, "Platform 2"),
        _run("KMRL-003", "Metro Express 3", "07:00", outbound, "Platform 1"),
    ])


@dataclass
class JourneyStep:
    type: str
    origin: str
    destination: str
    duration: int
    fare: int
    line: Optional[str] = None
    platform: Optional[str] = None
    departure_time: Optional[str] = None
    arrival_time: Optional[str] = None
    train_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "from": self.origin,
            "to": self.destination,
            "duration": self.duration,
            "fare": self.fare,
            "line": self.line,
            "platform": self.platform,
            "departureTime": self.departure_time,
            "arrivalTime": self.arrival_time,
            "trainId": self.train_id,
        }


@dataclass
class Journey:
    origin: str
    destination: str
    steps: List[JourneyStep]
    total_time: int
    total_fare: int
    departure_time: Optional[str] = None
    arrival_time: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.origin,
            "to": self.destination,
            "steps": [s.to_dict() for s in self.steps],
            "totalTime": self.total_time,
            "totalFare": self.total_fare,
            "departureTime": self.departure_time,
            "arrivalTime": self.arrival_time,
        }


def _candidates(timetable: Timetable, origin: str, destination: str) -> List[TrainRun]:
    runs = []
    for run in timetable.revenue_runs():
        a, b = run.stop_at(origin), run.stop_at(destination)
        if a is None or b is None:
            continue
        # HH:MM strings compare in clock order; the run must reach origin first
        if a.time < b.time:
            runs.append(run)
    return runs


def plan_journey(origin: Optional[str], destination: Optional[str], time: Optional[str] = None,
                 timetable: Optional[Timetable] = None) -> Journey:
    if not origin or not destination:
        raise JourneyError("From and to stations are required")
    if origin == destination:
        raise JourneyError("Departure and arrival stations cannot be the same")
    src, dst = canonical_station(origin), canonical_station(destination)
    if src is None or dst is None:
        raise JourneyError(f"Unknown station: {origin if src is None else destination}")
    if src == dst:
        raise JourneyError("Departure and arrival stations cannot be the same")

    runs = _candidates(timetable or default_timetable(), src, dst)
    if not runs:
        raise NoServiceError("No suitable train found for this route")
    if time:
        try:
            wanted = to_minutes(time)
        except ValueError as e:
            raise JourneyError(f"Invalid time {time!r}, expected HH:MM") from e
        runs.sort(key=lambda r: abs(to_minutes(r.stop_at(src).time) - wanted))

    best = runs[0]
    dep, arr = best.stop_at(src), best.stop_at(dst)
    duration = abs(to_minutes(arr.time) - to_minutes(dep.time))
    fare = fare_between(src, dst)
    step = JourneyStep(
        type="metro",
        origin=src,
        destination=dst,
        duration=duration,
        fare=fare,
        line="Line 1",
        platform=dep.platform,
        departure_time=dep.time,
        arrival_time=arr.time,
        train_id=best.train_id,
    )
    return Journey(src, dst, [step], duration, fare, dep.time, arr.time)

"""Line 1 station order, free-text station lookup and distance fares."""

from __future__ import annotations

import re
from typing import List, Optional

__all__ = ["LINE_1", "station_index", "canonical_station", "find_stations", "fare_between"]

LINE_1: tuple[str, ...] = (
    "Aluva",
    "Pulinchodu",
    "Companypady",
    "Ambattukavu",
    "Muttom",
    "Kalamassery",
    "Cochin University",
    "Pathadipalam",
    "Edapally",
    "Changampuzha Park",
    "Palarivattom",
    "JLN Stadium",
    "Kaloor",
    "Town Hall",
    "Maharaja's College",
    "Ernakulam South",
    "Kadavanthra",
    "Elamkulam",
    "Vytilla",
    "Thykoodam",
)

_INDEX = {name.lower(): i for i, name in enumerate(LINE_1)}

# (max stations travelled, fare in INR)
FARE_BANDS: tuple[tuple[int, int], ...] = ((5, 10), (10, 15), (15, 20))
MAX_FARE = 25


def station_index(name: str) -> int:
    """Position of a station on the line, or -1 when unknown."""
    return _INDEX.get((name or "").strip().lower(), -1)


def canonical_station(name: str) -> Optional[str]:
    i = station_index(name)
    return LINE_1[i] if i >= 0 else None


def find_stations(text: str) -> List[str]:
    """Canonical station names mentioned in ``text``, in order of appearance.

    Longer names win over names they contain.
    """
    found: List[tuple[int, int, str]] = []
    for name in sorted(LINE_1, key=len, reverse=True):
        for m in re.finditer(r"\b" + re.escape(name) + r"\b", text or "", flags=re.IGNORECASE):
            span = (m.start(), m.end())
            if any(s < span[1] and span[0] < e for s, e, _ in found):
                continue
            found.append((span[0], span[1], name))
    return [name for _, _, name in sorted(found)]


def fare_between(origin: str, destination: str) -> int:
    distance = abs(station_index(destination) - station_index(origin))
    for max_stops, fare in FARE_BANDS:
        if distance <= max_stops:
            return fare
    return MAX_FARE

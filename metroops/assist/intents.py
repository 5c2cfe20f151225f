"""Keyword intent classification for operator commands.

Maps prompts such as "Withdraw KMRC 007 due to brake fault" to one of the
copilot intents and pulls out the trains, stations and reason it mentions.
Intents are checked in a fixed order, so "withdraw ... and replace" is a
withdrawal, not a gap fill.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from metroops.model.network import find_stations

__all__ = [
    "Intent",
    "INTENT_RULES",
    "DEFAULT_REASON",
    "parse_intent",
    "extract_train_ids",
    "extract_station_names",
    "extract_reason",
    "train_number",
    "matches_trip",
]

DEFAULT_REASON = "operational requirement"

# (intent, trigger phrases, confidence, entities extracted)
INTENT_RULES = (
    ("withdraw", ("withdraw", "remove", "take out"), 0.9, ("trains",)),
    ("short_turn", ("short turn", "terminate early", "turn back"), 0.9, ("trains", "stations")),
    ("gap_fill", ("gap", "fill", "replace"), 0.8, ("trains",)),
    ("inject_standby", ("inject", "add", "bring in"), 0.8, ("trains",)),
    ("skip_stop", ("skip", "bypass", "miss"), 0.8, ("stations",)),
)

_KMRC_RE = re.compile(r"kmrc[-\s]*(\d+)", re.IGNORECASE)
_TRAIN_RE = re.compile(r"train[-\s]*(\d+)", re.IGNORECASE)
_NUMBER_RE = re.compile(r"\b(\d{2,3})\b")
_REASON_RE = re.compile(r"(?:due to|because|reason:)\s+(.+)", re.IGNORECASE)
_STATION_RE = re.compile(
    r"\b(?:at|from|to|skip|bypass|miss)\s+"
    r"([A-Za-z][A-Za-z'.]*(?:\s+(?!(?:and|for|with|then|train)\b)[A-Za-z][A-Za-z'.]*)*)",
    re.IGNORECASE,
)
_FILLER = {"the", "station", "stop", "service"}


@dataclass
class Intent:
    type: str
    confidence: float
    trains: List[str] = field(default_factory=list)
    stations: List[str] = field(default_factory=list)
    reason: str = DEFAULT_REASON

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "confidence": self.confidence,
            "entities": {"trains": self.trains, "stations": self.stations, "reason": self.reason},
        }


def parse_intent(prompt: str) -> Intent:
    lower = (prompt or "").lower()
    reason = extract_reason(prompt)
    for name, phrases, confidence, entities in INTENT_RULES:
        if any(p in lower for p in phrases):
            return Intent(
                type=name,
                confidence=confidence,
                trains=extract_train_ids(prompt) if "trains" in entities else [],
                stations=extract_station_names(prompt) if "stations" in entities else [],
                reason=reason,
            )
    return Intent(type="generic", confidence=0.5, reason=reason)


def extract_train_ids(prompt: str) -> List[str]:
    """Train ids in the order KMRC-style, Train-style, then bare numbers."""
    text = prompt or ""
    found = [f"KMRC {m.group(1)}" for m in _KMRC_RE.finditer(text)]
    found += [f"Train {m.group(1)}" for m in _TRAIN_RE.finditer(text)]
    found += [m.group(1) for m in _NUMBER_RE.finditer(text)]
    out: List[str] = []
    for tid in found:
        if tid not in out:
            out.append(tid)
    return out


def extract_station_names(prompt: str) -> List[str]:
    head = _strip_reason(prompt or "")
    known = find_stations(head)
    if known:
        return known
    names: List[str] = []
    for m in _STATION_RE.finditer(head):
        words = m.group(1).split()
        while words and words[0].lower() in _FILLER:
            words.pop(0)
        while words and words[-1].lower() in _FILLER:
            words.pop()
        if words:
            names.append(" ".join(words))
    return names


def extract_reason(prompt: str) -> str:
    m = _REASON_RE.search(prompt or "")
    return m.group(1).strip() if m else DEFAULT_REASON


def _strip_reason(prompt: str) -> str:
    m = _REASON_RE.search(prompt)
    return prompt[: m.start()] if m else prompt


def train_number(train_id: str) -> Optional[str]:
    """Numeric part of ``KMRC 007`` / ``Train 07`` / ``07`` style ids."""
    tid = (train_id or "").strip()
    m = re.fullmatch(r"(?:kmrc|train)?[-\s]*(\d+)", tid, flags=re.IGNORECASE)
    return m.group(1) if m else None


def matches_trip(trip: Dict[str, Any], train_id: str) -> bool:
    fields = [str(trip.get("trainNumber") or trip.get("train_number") or ""),
              str(trip.get("trainName") or trip.get("train_name") or "")]
    if train_id in fields:
        return True
    number = train_number(train_id)
    return bool(number) and any(number in f for f in fields if f)

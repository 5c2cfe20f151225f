import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

NOW = datetime(2026, 3, 1, 0, 0, tzinfo=timezone.utc)


def _fitness(days: float) -> dict:
    exp = (NOW + timedelta(days=days)).isoformat()
    return {"rollingStockExpiry": exp, "signallingExpiry": exp, "telecomExpiry": exp}


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def fleet_payload() -> dict:
    """Four trains with equal mileage, no branding and no cleaning slots.

    Scores: T1 0.9 (revenue), T2 0.775 with a critical card (IBL),
    T3 0.7 (standby), T4 0.5 with expired certificates (IBL, standby full).
    """
    return {
        "now": NOW.isoformat(),
        "config": {"constraints": {"maxRun": 18, "maxStandby": 1}},
        "trains": [
            {"id": "T1", "status": "revenue", "odoKm": 100000, "fitness": _fitness(60)},
            {"id": "T2", "status": "revenue", "odoKm": 100000, "fitness": _fitness(60)},
            {"id": "T3", "status": "standby", "odoKm": 100000, "fitness": _fitness(15)},
            {"id": "T4", "status": "standby", "odoKm": 100000, "fitness": _fitness(-1)},
        ],
        "jobCards": [
            {"id": "JC1", "trainId": "T2", "status": "open", "severity": "critical", "title": "Brake fault"},
            {"id": "JC2", "trainId": "T1", "status": "completed", "severity": "critical"},
        ],
        "stablingBays": [
            {"id": "B1", "capacity": 1, "shuntCost": 1.0},
            {"id": "B2", "capacity": 5, "shuntCost": 3.0},
        ],
        "tripBlocks": [
            {"tripId": "TR1", "trainId": "T1", "origin": "Aluva", "dest": "Thykoodam"},
            {"tripId": "TR2", "trainId": "T1", "status": "cancelled"},
        ],
    }

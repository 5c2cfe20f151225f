from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List
import json
import pandas as pd


def append_decision(base: Path, entry: Dict[str, Any]) -> None:
    """Append an operator decision to ``audit_trail.json`` and ``feedback.parquet`` under ``base``."""
    base = Path(base)
    base.mkdir(parents=True, exist_ok=True)
    trail_path = base / "audit_trail.json"
    trail = []
    if trail_path.exists():
        trail = json.loads(trail_path.read_text())
    trail.append(entry)
    trail_path.write_text(json.dumps(trail, indent=2))

    df_new = pd.DataFrame(
        [
            {
                "ts": entry.get("ts"),
                "user": entry.get("user"),
                "request_id": entry.get("request_id"),
                "intent": entry.get("intent"),
                "decision": entry.get("decision"),
                "reason": entry.get("reason"),
                "changes": json.dumps(entry.get("changes")) if entry.get("changes") else None,
            }
        ]
    )
    fb_path = base / "feedback.parquet"
    if fb_path.exists():
        df_all = pd.read_parquet(fb_path)
        df_all = pd.concat([df_all, df_new], ignore_index=True)
    else:
        df_all = df_new
    df_all.to_parquet(fb_path, index=False)


def read_trail(base: Path) -> List[Dict[str, Any]]:
    trail_path = Path(base) / "audit_trail.json"
    if not trail_path.exists():
        return []
    return json.loads(trail_path.read_text())

from __future__ import annotations

import argparse
import json
from pathlib import Path

import requests


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--host", default="127.0.0.1")
    ap.add_argument("--port", type=int, default=8000)
    ap.add_argument("--fleet", type=Path, default=Path("data/sample/fleet.json"))
    ap.add_argument("--prompt", default="Withdraw train 01 due to brake fault")
    args = ap.parse_args()

    base = f"http://{args.host}:{args.port}"
    admin = {"X-User": "smoke", "X-Role": "admin"}

    # Plan
    fleet = json.loads(args.fleet.read_text())
    r = requests.post(f"{base}/induction/plan", json=fleet, headers=admin, timeout=10)
    print("PLAN:", r.status_code)
    plan = r.json().get("data", {}).get("plan", {})
    print(json.dumps([(d["trainId"], d["action"], round(d["score"], 3)) for d in plan.get("decisions", [])], indent=2))

    # Copilot
    schedule = [{"trainNumber": d["trainId"], "trainName": d["trainId"], "status": "Scheduled"} for d in plan.get("decisions", [])]
    body = {"prompt": args.prompt, "context": {"currentPlan": plan.get("decisions", []), "currentSchedule": schedule}}
    r2 = requests.post(f"{base}/ai/copilot", json=body, headers=admin, timeout=10)
    print("COPILOT:", r2.status_code)
    print(json.dumps(r2.json(), indent=2))

    # Journey
    r3 = requests.post(f"{base}/journeys/plan", json={"from": "Aluva", "to": "Kaloor", "time": "06:50"}, timeout=5)
    print("JOURNEY:", r3.status_code)
    print(json.dumps(r3.json(), indent=2))


if __name__ == "__main__":
    main()

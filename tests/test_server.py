import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests
from fastapi.testclient import TestClient

sys.path.append(str(Path(__file__).resolve().parents[1]))
from metroops.api import server
from metroops.config import Settings
from metroops.feedback.audit import read_trail
from metroops.ingest.induction_api import InductionApiClient
from metroops.rider.peak import PeakManagementSystem

ADMIN = {"X-Role": "admin", "X-User": "ops1"}


class HighRoll:
    def random(self):
        return 0.9


@pytest.fixture
def settings(tmp_path):
    return Settings(artifacts_dir=tmp_path)


@pytest.fixture
def client(settings):
    peak = PeakManagementSystem(rng=HighRoll())
    server.app.dependency_overrides[server.get_settings] = lambda: settings
    server.app.dependency_overrides[server.get_peak] = lambda: peak
    yield TestClient(server.app)
    server.app.dependency_overrides.clear()


def _upstream(response=None, error=None):
    session = MagicMock()
    if error is not None:
        session.request.side_effect = error
    else:
        r = MagicMock()
        r.status_code = 200
        r.json.return_value = response
        session.request.return_value = r
    api = InductionApiClient("http://optimizer", session=session)
    server.app.dependency_overrides[server.get_client] = lambda: api
    return session


def test_healthz_and_metrics(client):
    assert client.get("/healthz").json() == {"status": "ok"}
    r = client.get("/metrics")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/plain")


def test_plan_requires_admin(client, fleet_payload):
    assert client.post("/induction/plan", json=fleet_payload).status_code == 403
    assert client.post("/induction/plan", json=fleet_payload, headers={"X-Role": "ADM"}).status_code == 200


def test_generate_and_fetch_plan(client, fleet_payload, settings):
    r = client.post("/induction/plan", json=fleet_payload, headers=ADMIN)
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["date"] == "2026-03-01"
    assert {d["trainId"]: d["action"] for d in data["plan"]["decisions"]}["T1"] == "revenue"
    assert (settings.artifacts_dir / "induction" / "2026-03-01" / "induction_plan.json").exists()

    assert client.get("/induction/plan").json()["data"]["date"] == "2026-03-01"
    assert client.get("/induction/plan", params={"date": "2026-03-01"}).status_code == 200
    assert client.get("/induction/plan", params={"date": "2030-01-01"}).status_code == 404


def test_bad_fleet_payload_is_400(client, fleet_payload):
    fleet_payload["trains"][0]["status"] = "flying"
    assert client.post("/induction/plan", json=fleet_payload, headers=ADMIN).status_code == 400


def test_apply_and_revert(client, fleet_payload):
    assert client.get("/induction/plan").status_code == 404
    client.post("/induction/plan", json=fleet_payload, headers=ADMIN)
    assert client.post("/induction/plan/revert", json={"date": "2026-03-01"}, headers=ADMIN).status_code == 404

    r = client.post(
        "/induction/plan/apply",
        json={"date": "2026-03-01", "changes": [{"trainId": "T3", "action": "revenue", "reason": "gap"}]},
        headers=ADMIN,
    )
    assert r.status_code == 200
    body = r.json()["data"]
    assert body["diff"]["changes"][0]["trainId"] == "T3"
    assert {d["trainId"]: d["action"] for d in body["plan"]["decisions"]}["T3"] == "revenue"

    r = client.post("/induction/plan/revert", json={"date": "2026-03-01"}, headers=ADMIN)
    assert r.status_code == 200
    plan = client.get("/induction/plan").json()["data"]["plan"]
    assert {d["trainId"]: d["action"] for d in plan["decisions"]}["T3"] == "standby"
    assert client.post("/induction/plan/revert", json={"date": "2026-03-01"}, headers=ADMIN).status_code == 404


def test_apply_requires_admin(client):
    r = client.post("/induction/plan/apply", json={"changes": []})
    assert r.status_code == 403


def test_conflicts_from_stored_plan(client, fleet_payload):
    assert client.get("/conflicts").status_code == 503
    client.post("/induction/plan", json=fleet_payload, headers=ADMIN)

    items = client.get("/conflicts/T2").json()["conflicts"]
    assert items[0]["rule"] == "jobcard"
    assert items[0]["status"] == "failed"

    assert client.post("/conflicts", json={"conflictId": "jobcard_T2", "action": "ignore"}).status_code == 400
    r = client.post("/conflicts", json={"conflictId": "jobcard_T2", "action": "resolve"}, headers=ADMIN)
    assert r.json() == {"success": True, "message": "Conflict jobcard_T2 resolved successfully", "updated": True}
    assert client.get("/conflicts/T2").json()["conflicts"] == []
    plan = client.get("/induction/plan").json()["data"]["plan"]
    resolved = next(c for c in plan["conflicts"] if c["id"] == "jobcard_T2")
    assert resolved["resolution"] == "Resolved by ops1"


def test_upstream_success_and_failure(client):
    session = _upstream(response=[{"id": "c1"}])
    assert client.get("/conflicts").json() == [{"id": "c1"}]
    assert session.request.call_args[0][1] == "http://optimizer/api/conflicts"

    _upstream(error=requests.ConnectionError("down"))
    r = client.get("/conflicts")
    assert r.status_code == 500
    assert r.json()["detail"] == "Failed to fetch conflicts"
    assert client.post("/demand/forecast", json={"station": "Aluva"}).status_code == 500
    assert len(client.get("/stations").json()) == 20


def test_stations_fallback_and_training(client):
    stations = client.get("/stations").json()
    assert stations[0] == {"id": 1, "name": "Aluva", "line": "Line 1"}
    assert client.post("/train").status_code == 403
    assert client.post("/train", headers=ADMIN).status_code == 503


def test_explain(client):
    assert client.post("/explain", json={"train_id": "T1"}).status_code == 400
    r = client.post("/explain", json={"train_id": "T1", "induction_decision": "revenue", "predicted_demand": 85})
    assert r.json()["data"]["confidence"] == pytest.approx(0.85)


COPILOT_BODY = {
    "prompt": "Withdraw KMRC 001 and replace with standby due to door fault",
    "context": {
        "currentPlan": [{"trainId": "KMRC-001", "action": "revenue"}, {"trainId": "KMRC-005", "action": "standby"}],
        "currentSchedule": [{"trainNumber": "KMRC-001", "destination": "Thykoodam", "status": "Scheduled"}],
    },
}


def test_copilot(client):
    assert len(client.get("/ai/copilot").json()["data"]) == 4
    assert client.post("/ai/copilot", json=COPILOT_BODY).status_code == 403
    assert client.post("/ai/copilot", json={"prompt": "x"}, headers=ADMIN).status_code == 400

    r = client.post("/ai/copilot", json=COPILOT_BODY, headers=ADMIN)
    data = r.json()["data"]
    assert data["intent"] == "withdraw"
    assert data["requestId"].startswith("req_")
    assert data["modifiedSchedule"][0]["status"] == "Withdrawn"
    assert [c["trainId"] for c in data["preview"]["changes"]] == ["KMRC 001", "KMRC-005"]


def test_copilot_decision_applies_and_audits(client, fleet_payload, settings):
    client.post("/induction/plan", json=fleet_payload, headers=ADMIN)
    bad = client.post("/ai/copilot/decision", json={"requestId": "req_1", "decision": "maybe"}, headers=ADMIN)
    assert bad.status_code == 400

    r = client.post(
        "/ai/copilot/decision",
        json={
            "requestId": "req_1",
            "decision": "apply",
            "intent": "withdraw",
            "changes": [
                {"trainId": "T1", "action": "standby", "reason": "Withdrawn due to: door fault"},
                {"trainId": "multiple", "action": "revenue", "reason": "skip"},
            ],
        },
        headers=ADMIN,
    )
    assert r.status_code == 200
    applied = r.json()["data"]["applied"]
    assert {d["trainId"]: d["action"] for d in applied["plan"]["decisions"]}["T1"] == "standby"
    trail = read_trail(settings.artifacts_dir / "induction" / "2026-03-01")
    assert trail[0]["decision"] == "APPLY"
    assert trail[0]["user"] == "ops1"


def test_peak_management_flow(client):
    assert client.post("/ai/peak-management", json={"action": "dance", "userId": "u1"}).status_code == 400
    assert client.post("/ai/peak-management", json={"action": "analyze_behavior"}).status_code == 400

    r = client.post(
        "/ai/peak-management",
        json={"action": "update_profile", "userId": "u1", "data": {"consentFlags": {"peakShifting": True}}},
    )
    assert r.json()["message"] == "Profile updated successfully"
    bad = client.post(
        "/ai/peak-management",
        json={"action": "update_profile", "userId": "u1", "data": {"consentFlags": {"spam": True}}},
    )
    assert bad.status_code == 400

    trip = {"origin": "Aluva", "destination": "Kaloor", "intendedTime": "2026-03-02T08:00:00+05:30"}
    offer = client.post("/ai/peak-management", json={"action": "analyze_behavior", "userId": "u1", "data": trip}).json()["data"]
    assert offer["timeShift"] == -12

    offers = client.get("/ai/peak-management", params={"userId": "u1", "action": "offers"}).json()["data"]
    assert [o["id"] for o in offers] == [offer["id"]]

    res = client.post(
        "/ai/peak-management",
        json={"action": "respond_to_offer", "userId": "u1", "data": {"offerId": offer["id"], "accepted": True}},
    ).json()["data"]
    assert res["rewardPoints"] == 14

    profile = client.get("/ai/peak-management", params={"userId": "u1", "action": "profile"}).json()["data"]
    assert profile["rewardPoints"] == 14
    rewards = client.get("/ai/peak-management", params={"userId": "u1", "action": "rewards"}).json()["data"]
    assert rewards[0]["type"] == "peak_shift"
    stats = client.get("/ai/peak-management", params={"userId": "u1", "action": "analytics"}).json()["data"]
    assert stats["totalOffers"] == 1
    assert client.get("/ai/peak-management", params={"action": "offers"}).status_code == 400
    assert client.get("/ai/peak-management", params={"userId": "u1", "action": "x"}).status_code == 400


def test_journey_plan(client):
    r = client.post("/journeys/plan", json={"from": "Aluva", "to": "Kaloor", "time": "06:50"})
    assert r.json()["steps"][0]["trainId"] == "KMRL-003"
    assert client.post("/journeys/plan", json={"from": "Aluva", "to": "Atlantis"}).status_code == 400
    assert client.post("/journeys/plan", json={"from": "Aluva"}).status_code == 400


def test_chat_local_and_upstream(client):
    assert client.post("/chat", json={"message": ""}).json()["reply"] == "Please enter a question."
    assert client.post("/chat", json={"message": "my tickets"}).json()["reply"].startswith("Go to Dashboard")
    assert client.post("/chat", json={"message": "hello"}, headers=ADMIN).json()["reply"].startswith("Hi!")

    _upstream(response={"reply": "from upstream"})
    assert client.post("/chat", json={"message": "hello"}).json()["reply"] == "from upstream"
    _upstream(error=requests.Timeout("slow"))
    assert client.post("/chat", json={"message": "fare?"}).json()["reply"].startswith("Fares are shown")


def test_plan_dates_must_be_iso(client, fleet_payload, settings):
    client.post("/induction/plan", json=fleet_payload, headers=ADMIN)
    r = client.post("/ai/copilot/decision", json={"requestId": "req_1", "decision": "DISMISS", "date": "../../escaped"}, headers=ADMIN)
    assert r.status_code == 400
    assert not (settings.artifacts_dir.parent / "escaped").exists()
    assert client.get("/induction/plan", params={"date": "../2026-03-01"}).status_code == 400
    assert client.post("/induction/plan/revert", json={"date": "../../x"}, headers=ADMIN).status_code == 400
    bad_apply = client.post("/induction/plan/apply", json={"date": "2026-13-01", "changes": []}, headers=ADMIN)
    assert bad_apply.status_code == 400

    (settings.artifacts_dir / "induction" / "zz-notes").mkdir()
    (settings.artifacts_dir / "induction" / "zz-notes" / "induction_plan.json").write_text("{}")
    assert client.get("/induction/plan").json()["data"]["date"] == "2026-03-01"


def test_offer_accepted_only_when_true(client):
    client.post(
        "/ai/peak-management",
        json={"action": "update_profile", "userId": "u2", "data": {"consentFlags": {"peakShifting": True}}},
    )
    trip = {"origin": "Aluva", "destination": "Kaloor", "intendedTime": "2026-03-02T08:00:00+05:30"}
    offer = client.post("/ai/peak-management", json={"action": "analyze_behavior", "userId": "u2", "data": trip}).json()["data"]
    res = client.post(
        "/ai/peak-management",
        json={"action": "respond_to_offer", "userId": "u2", "data": {"offerId": offer["id"], "accepted": "false"}},
    ).json()["data"]
    assert "rewardPoints" not in res
    assert res["message"].startswith("No problem")
    profile = client.get("/ai/peak-management", params={"userId": "u2", "action": "profile"}).json()["data"]
    assert profile["rewardPoints"] == 0

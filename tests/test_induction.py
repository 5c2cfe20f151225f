import sys
from datetime import timedelta
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))
from metroops.model.types import BrandingSLA, CleaningSlot, FitnessCertificates, JobCard, Train, wall_clock
from metroops.opt import scoring
from metroops.opt.induction import engine_from_payload


def _train(now, tid="T9", days=60, odo=1000.0):
    exp = now + timedelta(days=days)
    return Train(tid, tid, "standby", odo, FitnessCertificates(exp, exp, exp))


def test_fitness_score_caps_at_thirty_days(now):
    assert scoring.fitness_score(_train(now, days=90), now) == pytest.approx(1.0)
    assert scoring.fitness_score(_train(now, days=15), now) == pytest.approx(0.5)
    assert scoring.fitness_score(_train(now, days=-2), now) == 0.0


def test_job_card_score_penalises_open_cards_only():
    cards = [
        JobCard("a", "T1", "open", "critical"),
        JobCard("b", "T1", "open", "medium"),
        JobCard("c", "T1", "completed", "critical"),
        JobCard("d", "T2", "open", "critical"),
    ]
    assert scoring.job_card_score("T1", cards) == pytest.approx(0.4)
    many = [JobCard(str(i), "T1", "open", "critical") for i in range(3)]
    assert scoring.job_card_score("T1", many) == 0.0


def test_mileage_score_uniform_fleet_scores_one(now):
    mean, std = scoring.fleet_mileage_stats([_train(now, "A", odo=500), _train(now, "B", odo=500)])
    assert std == 0.0
    assert scoring.mileage_score(500, mean, std) == 1.0


def test_mileage_score_decreases_with_deviation(now):
    mean, std = scoring.fleet_mileage_stats([_train(now, "A", odo=0), _train(now, "B", odo=200)])
    assert (mean, std) == (100.0, 100.0)
    assert scoring.mileage_score(100, mean, std) == 1.0
    assert scoring.mileage_score(200, mean, std) == pytest.approx(0.5)


def test_branding_and_cleaning_scores():
    assert scoring.branding_score(None) == 0.5
    assert scoring.branding_score(BrandingSLA("c", "T1", 0, 0)) == 1.0
    assert scoring.branding_score(BrandingSLA("c", "T1", 40, 60)) == 1.0
    assert scoring.branding_score(BrandingSLA("c", "T1", 40, 10)) == pytest.approx(0.25)

    slots = [
        CleaningSlot("s1", "B1", wall_clock("2026-03-01T23:30:00+05:30"), wall_clock("2026-03-02T01:00:00+05:30")),
        CleaningSlot("s2", "B1", wall_clock("2026-03-01T14:00:00+05:30"), wall_clock("2026-03-01T15:00:00+05:30")),
        CleaningSlot("s3", "B1", wall_clock("2026-03-01T02:00:00+05:30"), wall_clock("2026-03-01T03:00:00+05:30"), "occupied"),
    ]
    assert scoring.cleaning_score(slots) == pytest.approx(0.5)
    assert scoring.cleaning_score([]) == 0.0


def test_generate_plan_assigns_actions(fleet_payload, now):
    plan = engine_from_payload(fleet_payload, now=now).generate_plan()
    actions = {d.train_id: d.action for d in plan.decisions}
    assert actions == {"T1": "revenue", "T2": "IBL", "T3": "standby", "T4": "IBL"}
    assert [d.train_id for d in plan.decisions] == ["T1", "T2", "T3", "T4"]
    assert plan.decision_for("T1").score == pytest.approx(0.9)
    assert plan.decision_for("T4").reason == "No standby slots available, assigned to maintenance"
    assert plan.status == "optimal"


def test_generate_plan_conflicts_and_bays(fleet_payload, now):
    plan = engine_from_payload(fleet_payload, now=now).generate_plan()
    assert sorted(c.id for c in plan.conflicts) == ["fitness_T4", "jobcard_T2"]
    bays = {d.train_id: d.bay_assignment for d in plan.decisions}
    assert bays == {"T1": "B1", "T2": "B2", "T3": "B2", "T4": "B2"}
    assert plan.decision_for("T1").estimated_turnout == "2026-03-01T05:45:00+00:00"
    assert plan.decision_for("T4").estimated_turnout == "2026-03-01T06:30:00+00:00"
    assert plan.decision_for("T1").trip_assignments == ["TR1"]
    assert plan.metrics.total_shunting == 8
    assert plan.metrics.constraint_violations == 2


def test_plan_metrics_with_mileage_spread_and_branding(fleet_payload, now):
    fitness = fleet_payload["trains"][0]["fitness"]
    payload = {
        "now": now.isoformat(),
        "config": {"constraints": {"maxRun": 18, "maxStandby": 1}},
        "trains": [
            {"id": "T1", "status": "revenue", "odoKm": 100000, "fitness": fitness},
            {"id": "T2", "status": "revenue", "odoKm": 100200, "fitness": fitness},
        ],
        "brandingSLAs": [
            {"campaignId": "C1", "trainId": "T1", "minHoursWeek": 40, "hoursDelivered": 40},
            {"campaignId": "C2", "trainId": "T2", "minHoursWeek": 40, "hoursDelivered": 30},
        ],
    }
    plan = engine_from_payload(payload, now=now).generate_plan()
    assert plan.decision_for("T1").score == pytest.approx(0.85)
    assert plan.decision_for("T2").score == pytest.approx(0.825)
    assert {d.train_id: d.action for d in plan.decisions} == {"T1": "revenue", "T2": "revenue"}
    assert plan.metrics.mileage_variance == pytest.approx(100.0)
    assert plan.metrics.branding_compliance == pytest.approx(0.875)
    assert plan.metrics.constraint_violations == 1

    assert plan.decision_for("T1").constraints == []
    assert plan.decision_for("T2").constraints == ["Branding SLA at risk"]
    assert [c.id for c in plan.conflicts] == ["branding_T2"]
    assert plan.conflicts[0].description == "T2: Branding SLA at risk - 10 hours shortfall"


def test_generate_plan_explanations(fleet_payload, now):
    plan = engine_from_payload(fleet_payload, now=now).generate_plan()
    assert len(plan.explanations) == 4
    t2 = next(e for e in plan.explanations if e.train_id == "T2")
    job = next(f for f in t2.factors if f.factor == "Job Card Status")
    assert job.impact == "negative"
    assert {a.action for a in t2.alternatives} == {"revenue", "standby"}
    body = plan.to_dict()
    assert body["explanations"][0]["reasoning"]["factors"]


def test_revenue_limit_pushes_to_standby(fleet_payload, now):
    fleet_payload["config"]["constraints"] = {"maxRun": 0, "maxStandby": 4}
    plan = engine_from_payload(fleet_payload, now=now).generate_plan()
    assert plan.decision_for("T1").action == "standby"


def test_empty_fleet_is_infeasible(now):
    plan = engine_from_payload({"trains": []}, now=now).generate_plan()
    assert plan.status == "infeasible"
    assert plan.decisions == []


def test_bad_record_raises(fleet_payload, now):
    fleet_payload["trains"][0]["status"] = "flying"
    with pytest.raises(ValueError):
        engine_from_payload(fleet_payload, now=now)

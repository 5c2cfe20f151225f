import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))
from metroops.assist.chat import EMPTY_PROMPT, MAX_REPLY, answer, clip
from metroops.assist.explain import explain_decision, explain_payload


def test_explanation_for_high_demand_with_conflict():
    e = explain_decision("T1", "revenue", "B1", [{"type": "routing"}], 85)
    assert e.confidence == pytest.approx(0.8)
    assert [f.impact for f in e.factors] == ["positive", "negative", "positive"]
    assert e.constraints[0].constraint == "routing"
    assert e.constraints[0].satisfied is False
    t = e.tradeoffs[0]
    assert (t.current, t.alternative) == (85, 15)
    assert [(a.action, a.score) for a in e.alternatives] == [
        ("adjust_schedule", pytest.approx(0.6)),
        ("choose_alternate_bay", 0.4),
    ]


def test_explanation_defaults():
    e = explain_decision("T1", "standby", conflicts="bogus", predicted_demand="lots")
    assert e.confidence == pytest.approx(0.8)
    assert e.factors[2].description == "No stabling bay preference provided."
    assert e.alternatives[1].score == 0.6
    assert e.tradeoffs[0].current == 0


def test_many_conflicts_clamp_confidence():
    e = explain_decision("T1", "IBL", conflicts=[{}] * 10)
    assert e.confidence == 0.5
    assert e.constraints[-1].constraint == "conflict_10"
    assert e.alternatives[0].score == 0.0


def test_explain_payload_requires_train_and_decision():
    with pytest.raises(ValueError):
        explain_payload({"train_id": "T1"})
    with pytest.raises(ValueError):
        explain_payload({"train_id": "  ", "induction_decision": "revenue"})
    body = explain_payload({"train_id": "T1", "induction_decision": "revenue"}).to_dict()
    assert body["trainId"] == "T1"
    assert len(body["reasoning"]["factors"]) == 3


@pytest.mark.parametrize(
    "text, role, expected",
    [
        ("hello", "admin", "Hi!"),
        ("please explain all sections", "admin", "Overview:"),
        ("how do I run the optimizer", "admin", "Admin -> Induction"),
        ("show depot", "admin", "Admin -> Stabling"),
        ("where are my tickets", "commuter", "Go to Dashboard -> Tickets"),
        ("plan a trip", "commuter", "Use Dashboard -> Plan"),
        ("fare question", "commuter", "Fares are shown"),
        ("what is this", "commuter", "I can help with tickets"),
    ],
)
def test_chat_replies(text, role, expected):
    assert answer(text, role).startswith(expected)


def test_chat_empty_and_clip():
    assert answer("   ") == EMPTY_PROMPT
    assert len(clip("x" * 2000)) == MAX_REPLY
    assert clip(None) == ""

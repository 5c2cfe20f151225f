"""Diff, apply and roll back operator changes against an induction plan."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from metroops.model.types import InductionPlan, PlanDiff, PlanDiffEntry, TrainDecision

__all__ = ["diff_plan", "apply_diff", "revert_diff"]


def diff_plan(plan: InductionPlan, changes: Iterable[TrainDecision], *, now: Optional[datetime] = None) -> PlanDiff:
    """Changes that would alter ``plan``; unchanged actions are dropped."""
    ts = (now or datetime.now(timezone.utc)).isoformat()
    entries: List[PlanDiffEntry] = []
    rollback = {}
    for change in changes:
        current = plan.decision_for(change.train_id)
        if current is not None and current.action == change.action:
            continue
        entries.append(PlanDiffEntry(
            train_id=change.train_id,
            old_action=current.action if current else None,
            new_action=change.action,
            reason=change.reason,
            timestamp=ts,
        ))
        if change.train_id not in rollback:
            rollback[change.train_id] = current.to_dict() if current else None
    return PlanDiff(plan_id=plan.id, changes=entries, rollback_data=rollback)


def apply_diff(plan: InductionPlan, diff: PlanDiff) -> InductionPlan:
    if diff.plan_id != plan.id:
        raise ValueError(f"diff targets plan {diff.plan_id}, not {plan.id}")
    decisions = [replace(d, constraints=list(d.constraints)) for d in plan.decisions]
    index = {d.train_id: i for i, d in enumerate(decisions)}
    for entry in diff.changes:
        if entry.train_id in index:
            d = decisions[index[entry.train_id]]
            decisions[index[entry.train_id]] = replace(d, action=entry.new_action, reason=entry.reason)
        else:
            decisions.append(TrainDecision(
                train_id=entry.train_id,
                action=entry.new_action,
                score=0.0,
                reason=entry.reason,
            ))
            index[entry.train_id] = len(decisions) - 1
    return replace(plan, decisions=decisions)


def revert_diff(plan: InductionPlan, diff: PlanDiff) -> InductionPlan:
    if diff.plan_id != plan.id:
        raise ValueError(f"diff targets plan {diff.plan_id}, not {plan.id}")
    decisions: List[TrainDecision] = []
    for d in plan.decisions:
        if d.train_id not in diff.rollback_data:
            decisions.append(d)
            continue
        previous = diff.rollback_data[d.train_id]
        if previous is not None:
            decisions.append(TrainDecision.from_dict(previous))
    return replace(plan, decisions=decisions)

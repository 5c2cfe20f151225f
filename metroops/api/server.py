from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import json
import logging
import re
import time
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, HTTPException, Header, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from metroops.assist import chat as chat_help
from metroops.assist.copilot import COMMANDS, OperationsCopilot, new_request_id
from metroops.assist.explain import explain_payload
from metroops.config import Settings
from metroops.feedback.audit import append_decision
from metroops.ingest.induction_api import InductionApiClient, InductionApiError, InductionApiNotConfigured
from metroops.model.network import LINE_1
from metroops.model.types import (
    BrandingSLA,
    CopilotContext,
    CopilotRequest,
    InductionPlan,
    JobCard,
    StablingBay,
    Train,
    TrainDecision,
    TripBlock,
    to_utc,
)
from metroops.opt.induction import engine_from_payload
from metroops.opt.plan_diff import apply_diff, diff_plan
from metroops.ops.metrics import COPILOT_REQUESTS, PEAK_OFFERS, PLAN_SECONDS, PLANS_GENERATED, UPSTREAM_FAILURES, text_metrics
from metroops.rider.journey import JourneyError, NoServiceError, plan_journey
from metroops.rider.peak import PeakManagementSystem

logger = logging.getLogger(__name__)
_DATE_DIR = re.compile(r"\d{4}-\d{2}-\d{2}")

_SETTINGS = Settings.from_env()
logging.basicConfig(level=getattr(logging, _SETTINGS.log_level, logging.INFO))

app = FastAPI(title="Metro Operations Decision Support API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=_SETTINGS.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Peak-management state lives for the life of the process.
_PEAK = PeakManagementSystem()


# ---------- Dependencies ----------
def get_settings() -> Settings:
    return _SETTINGS


def get_client(settings: Settings = Depends(get_settings)) -> InductionApiClient:
    return InductionApiClient(settings.induction_api_url, timeout=settings.api_timeout_sec)


def get_peak() -> PeakManagementSystem:
    return _PEAK


# ---------- Filesystem helpers ----------
def _service_date(value: Any) -> str:
    """Normalise a ``YYYY-MM-DD`` service date; anything else is a 400."""
    try:
        return datetime.strptime(str(value), "%Y-%m-%d").date().isoformat()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid date {value!r}, expected YYYY-MM-DD") from e


def _plan_dir(settings: Settings, date: str) -> Path:
    return Path(settings.artifacts_dir) / "induction" / _service_date(date)


def _read_json(path: Path) -> Any:
    if not path.exists():
        return None
    return json.loads(path.read_text())


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2))


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _latest_date(settings: Settings) -> Optional[str]:
    root = Path(settings.artifacts_dir) / "induction"
    if not root.exists():
        return None
    dates = sorted(
        p.name for p in root.iterdir()
        if _DATE_DIR.fullmatch(p.name) and (p / "induction_plan.json").exists()
    )
    return dates[-1] if dates else None


def _load_plan(settings: Settings, date: Optional[str]) -> Tuple[Optional[str], Optional[InductionPlan]]:
    date = date or _latest_date(settings)
    if not date:
        return None, None
    data = _read_json(_plan_dir(settings, date) / "induction_plan.json")
    return date, (InductionPlan.from_dict(data) if data else None)


def _store_plan(settings: Settings, date: str, plan: InductionPlan) -> None:
    """Write the plan for ``date``, keeping the previous version for revert."""
    base = _plan_dir(settings, date)
    cur_p = base / "induction_plan.json"
    if cur_p.exists():
        _write_json(base / "induction_plan_prev.json", _read_json(cur_p))
    _write_json(cur_p, plan.to_dict())


# ---------- RBAC helpers ----------
class Principal(BaseModel):
    user: str
    role: str  # admin | commuter


def _normalize_role(role: Optional[str]) -> str:
    if not role:
        return "commuter"
    return {"ADMIN": "admin", "ADM": "admin"}.get(role.strip().upper(), "commuter")


def get_principal(x_user: Optional[str] = Header(default=None), x_role: Optional[str] = Header(default=None)) -> Principal:
    return Principal(user=(x_user or "anonymous"), role=_normalize_role(x_role))


def require_roles(principal: Principal, allowed: Tuple[str, ...]) -> None:
    if principal.role not in allowed:
        raise HTTPException(status_code=403, detail=f"Role {principal.role} not permitted for this action")


def _upstream(endpoint: str, fn, failure: str) -> Any:
    try:
        return fn()
    except InductionApiNotConfigured as e:
        raise HTTPException(status_code=503, detail=str(e))
    except InductionApiError:
        UPSTREAM_FAILURES.labels(endpoint=endpoint).inc()
        logger.exception("upstream %s failed", endpoint)
        raise HTTPException(status_code=500, detail=failure)


# ---------- Induction ----------
@app.post("/induction/run")
def induction_run(client: InductionApiClient = Depends(get_client)) -> Any:
    return _upstream("induction_run", client.run_induction, "Failed to run induction optimization")


@app.post("/induction/plan")
def induction_plan(
    payload: Dict[str, Any],
    principal: Principal = Depends(get_principal),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    require_roles(principal, ("admin",))
    t0 = time.perf_counter()
    try:
        now = to_utc(payload["now"]) if payload.get("now") else None
        engine = engine_from_payload(payload, now=now)
        plan = engine.generate_plan()
    except (ValueError, TypeError, KeyError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    PLAN_SECONDS.observe(time.perf_counter() - t0)
    PLANS_GENERATED.labels(status=plan.status).inc()
    date = (engine.config.service_date or engine.now.date()).isoformat()
    _store_plan(settings, date, plan)
    return {"success": True, "data": {"date": date, "plan": plan.to_dict()}}


@app.get("/induction/plan")
def get_induction_plan(date: Optional[str] = None, settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    date, plan = _load_plan(settings, date)
    if plan is None:
        raise HTTPException(status_code=404, detail="No induction plan found")
    return {"success": True, "data": {"date": date, "plan": plan.to_dict()}}


class ApplyReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    date: Optional[str] = None
    changes: List[Dict[str, Any]] = Field(default_factory=list)


def _apply_changes(settings: Settings, date: Optional[str], rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    date, plan = _load_plan(settings, date)
    if plan is None:
        raise HTTPException(status_code=404, detail="No induction plan found")
    try:
        changes = [TrainDecision.from_dict(r) for r in rows]
    except (ValueError, TypeError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    # "multiple" marks a network-wide change with no single train to update
    diff = diff_plan(plan, [c for c in changes if c.train_id != "multiple"])
    updated = apply_diff(plan, diff)
    if diff.changes:
        _store_plan(settings, date, updated)
    logger.info("applied %d changes to plan %s (%s)", len(diff.changes), plan.id, date)
    return {"date": date, "diff": diff.to_dict(), "plan": updated.to_dict()}


@app.post("/induction/plan/apply")
def induction_plan_apply(
    body: ApplyReq,
    principal: Principal = Depends(get_principal),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    require_roles(principal, ("admin",))
    return {"success": True, "data": _apply_changes(settings, body.date, body.changes)}


class RevertReq(BaseModel):
    date: str


@app.post("/induction/plan/revert")
def induction_plan_revert(
    body: RevertReq,
    principal: Principal = Depends(get_principal),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    require_roles(principal, ("admin",))
    base = _plan_dir(settings, body.date)
    prev_p = base / "induction_plan_prev.json"
    if not prev_p.exists():
        raise HTTPException(status_code=404, detail="No previous plan found")
    data = _read_json(prev_p)
    _write_json(base / "induction_plan.json", data)
    prev_p.unlink()
    return {"success": True, "data": {"date": body.date, "plan": data}}


# ---------- Conflicts ----------
@app.get("/conflicts")
def list_conflicts(client: InductionApiClient = Depends(get_client)) -> Any:
    return _upstream("conflicts", client.list_conflicts, "Failed to fetch conflicts")


class ConflictActionReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    conflict_id: Optional[str] = Field(default=None, alias="conflictId")
    action: Optional[str] = None
    date: Optional[str] = None


@app.post("/conflicts")
def conflict_action(
    body: ConflictActionReq,
    principal: Principal = Depends(get_principal),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    if body.action != "resolve" or not body.conflict_id:
        raise HTTPException(status_code=400, detail="Invalid action")
    date, plan = _load_plan(settings, body.date)
    updated = False
    if plan is not None:
        for c in plan.conflicts:
            if c.id == body.conflict_id and c.status != "resolved":
                c.status = "resolved"
                c.resolution = f"Resolved by {principal.user}"
                updated = True
        if updated:
            _store_plan(settings, date, plan)
    return {
        "success": True,
        "message": f"Conflict {body.conflict_id} resolved successfully",
        "updated": updated,
    }


@app.get("/conflicts/{train_id}")
def train_conflicts(
    train_id: str,
    date: Optional[str] = None,
    client: InductionApiClient = Depends(get_client),
    settings: Settings = Depends(get_settings),
) -> Any:
    try:
        return client.train_conflicts(train_id)
    except InductionApiNotConfigured:
        pass
    except InductionApiError:
        UPSTREAM_FAILURES.labels(endpoint="train_conflicts").inc()
        logger.warning("upstream conflicts for %s unavailable, using stored plan", train_id)
    _, plan = _load_plan(settings, date)
    items = []
    if plan is not None:
        for c in plan.conflicts:
            if train_id in c.affected_trains and c.status != "resolved":
                items.append({"rule": c.type, "status": "failed", "reason": c.description})
    return {"train_id": train_id, "conflicts": items}


# ---------- Explain / demand / stations / training ----------
@app.post("/explain")
def explain(body: Dict[str, Any]) -> Dict[str, Any]:
    try:
        explanation = explain_payload(body)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "data": explanation.to_dict()}


@app.post("/demand/forecast")
def demand_forecast(body: Dict[str, Any], client: InductionApiClient = Depends(get_client)) -> Any:
    return _upstream("demand_forecast", lambda: client.forecast_demand(body), "Failed to fetch demand forecast")


@app.get("/stations")
def stations(client: InductionApiClient = Depends(get_client)) -> Any:
    try:
        return client.list_stations()
    except InductionApiNotConfigured:
        pass
    except InductionApiError:
        UPSTREAM_FAILURES.labels(endpoint="stations").inc()
        logger.warning("upstream stations unavailable, serving Line 1 list")
    return [{"id": i + 1, "name": name, "line": "Line 1"} for i, name in enumerate(LINE_1)]


@app.post("/train")
def train_model(principal: Principal = Depends(get_principal), client: InductionApiClient = Depends(get_client)) -> Any:
    require_roles(principal, ("admin",))
    return _upstream("train", client.trigger_training, "Failed to trigger training")


# ---------- Copilot ----------
class CopilotReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt: Optional[str] = None
    context: Optional[Dict[str, Any]] = None
    trains: List[Dict[str, Any]] = Field(default_factory=list)
    job_cards: List[Dict[str, Any]] = Field(default_factory=list, alias="jobCards")
    branding_slas: List[Dict[str, Any]] = Field(default_factory=list, alias="brandingSLAs")
    stabling_bays: List[Dict[str, Any]] = Field(default_factory=list, alias="stablingBays")
    trip_blocks: List[Dict[str, Any]] = Field(default_factory=list, alias="tripBlocks")


@app.get("/ai/copilot")
def copilot_commands() -> Dict[str, Any]:
    return {"success": True, "data": COMMANDS}


@app.post("/ai/copilot")
def copilot(body: CopilotReq, principal: Principal = Depends(get_principal)) -> Dict[str, Any]:
    require_roles(principal, ("admin",))
    if not body.prompt or body.context is None:
        raise HTTPException(status_code=400, detail="Missing required fields: prompt and context")
    try:
        bot = OperationsCopilot(
            [Train.from_dict(r) for r in body.trains],
            [JobCard.from_dict(r) for r in body.job_cards],
            [BrandingSLA.from_dict(r) for r in body.branding_slas],
            [StablingBay.from_dict(r) for r in body.stabling_bays],
            [TripBlock.from_dict(r) for r in body.trip_blocks],
        )
        req = CopilotRequest(
            id=new_request_id(),
            prompt=body.prompt,
            context=CopilotContext.from_dict(body.context),
            timestamp=_now_iso(),
        )
    except (ValueError, TypeError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    resp = bot.process_request_with_plan(req)
    COPILOT_REQUESTS.labels(intent=resp.intent).inc()
    return {"success": True, "data": resp.to_dict(), "message": "Copilot request processed successfully"}


class CopilotDecisionReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    request_id: str = Field(alias="requestId")
    decision: str
    intent: Optional[str] = None
    reason: Optional[str] = None
    date: Optional[str] = None
    changes: List[Dict[str, Any]] = Field(default_factory=list)


@app.post("/ai/copilot/decision")
def copilot_decision(
    body: CopilotDecisionReq,
    principal: Principal = Depends(get_principal),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    require_roles(principal, ("admin",))
    dec = (body.decision or "").upper()
    if dec not in ("APPLY", "DISMISS"):
        raise HTTPException(status_code=400, detail="decision must be APPLY or DISMISS")
    applied = None
    date = _service_date(body.date) if body.date else None
    if dec == "APPLY" and body.changes:
        plan_date, plan = _load_plan(settings, date)
        if plan is not None:
            applied = _apply_changes(settings, plan_date, body.changes)
            date = plan_date
    date = date or datetime.now(timezone.utc).date().isoformat()
    entry = {
        "ts": _now_iso(),
        "user": principal.user,
        "role": principal.role,
        "request_id": body.request_id,
        "intent": body.intent,
        "decision": dec,
        "reason": body.reason,
        "changes": body.changes,
    }
    append_decision(_plan_dir(settings, date), entry)
    return {"success": True, "data": {"entry": entry, "applied": applied}}


# ---------- Peak management ----------
class PeakReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: Optional[str] = None
    user_id: Optional[str] = Field(default=None, alias="userId")
    data: Dict[str, Any] = Field(default_factory=dict)


@app.post("/ai/peak-management")
def peak_post(body: PeakReq, peak: PeakManagementSystem = Depends(get_peak)) -> Dict[str, Any]:
    data = body.data or {}
    try:
        if body.action == "analyze_behavior":
            if not body.user_id:
                raise HTTPException(status_code=400, detail="Missing userId")
            offer = peak.analyze_rider_behavior(body.user_id, data)
            PEAK_OFFERS.labels(outcome="offered" if offer else "none").inc()
            return {
                "success": True,
                "data": offer.to_dict() if offer else None,
                "message": "Peak shift offer generated" if offer else "No offer generated",
            }
        if body.action == "respond_to_offer":
            res = peak.process_offer_response(str(data.get("offerId", "")), data.get("accepted") is True)
            if res["success"]:
                PEAK_OFFERS.labels(outcome="accepted" if data.get("accepted") is True else "declined").inc()
            return {"success": True, "data": res}
        if body.action == "verify_compliance":
            res = peak.verify_compliance(str(data.get("offerId", "")), data.get("actualTapInTime"))
            return {"success": True, "data": res}
        if body.action == "update_profile":
            if not body.user_id:
                raise HTTPException(status_code=400, detail="Missing userId")
            peak.update_rider_profile(body.user_id, data)
            return {"success": True, "message": "Profile updated successfully"}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    raise HTTPException(status_code=400, detail="Invalid action")


@app.get("/ai/peak-management")
def peak_get(userId: Optional[str] = None, action: Optional[str] = None, peak: PeakManagementSystem = Depends(get_peak)) -> Dict[str, Any]:
    if not userId:
        raise HTTPException(status_code=400, detail="Missing userId parameter")
    if action == "profile":
        profile = peak.get_rider_profile(userId)
        return {"success": True, "data": profile.to_dict() if profile else None}
    if action == "offers":
        return {"success": True, "data": [o.to_dict() for o in peak.get_active_offers(userId)]}
    if action == "rewards":
        return {"success": True, "data": [t.to_dict() for t in peak.get_reward_history(userId)]}
    if action == "analytics":
        return {"success": True, "data": peak.get_analytics()}
    raise HTTPException(status_code=400, detail="Invalid action")


# ---------- Commuter ----------
class JourneyReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    origin: Optional[str] = Field(default=None, alias="from")
    destination: Optional[str] = Field(default=None, alias="to")
    date: Optional[str] = None
    time: Optional[str] = None


@app.post("/journeys/plan")
def journeys_plan(body: JourneyReq) -> Dict[str, Any]:
    try:
        return plan_journey(body.origin, body.destination, body.time).to_dict()
    except (JourneyError, NoServiceError) as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


class ChatReq(BaseModel):
    message: Optional[str] = None


@app.post("/chat")
def chat(body: ChatReq, principal: Principal = Depends(get_principal), client: InductionApiClient = Depends(get_client)) -> Dict[str, Any]:
    text = (body.message or "").strip()
    if not text:
        return {"reply": chat_help.EMPTY_PROMPT}
    if client.configured:
        try:
            reply = client.chat(text, principal.role)
            if reply is not None:
                return {"reply": chat_help.clip(reply)}
        except InductionApiError:
            UPSTREAM_FAILURES.labels(endpoint="chat").inc()
            logger.warning("upstream chat unavailable, using built-in help")
    return {"reply": chat_help.answer(text, principal.role)}


# Metrics and health
@app.get("/metrics")
def get_metrics() -> Response:
    data, ctype = text_metrics()
    return Response(content=data, media_type=ctype)


@app.get("/healthz")
def healthz() -> Dict[str, Any]:
    return {"status": "ok"}


def _main() -> None:  # pragma: no cover - convenience utility
    import argparse

    import uvicorn

    parser = argparse.ArgumentParser(description="Run the metro operations API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", default=8000, type=int)
    args = parser.parse_args()
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":  # pragma: no cover
    _main()

"""Role-aware help replies for the in-app assistant.

Used when the upstream chat service is not configured or does not answer.
"""

from __future__ import annotations

from typing import Tuple

__all__ = ["MAX_REPLY", "EMPTY_PROMPT", "answer", "clip"]

MAX_REPLY = 800
EMPTY_PROMPT = "Please enter a question."

# (keywords, reply); first match wins
_COMMUTER: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("ticket",), "Go to Dashboard -> Tickets to view or manage your tickets."),
    (("trip", "plan", "route"), "Use Dashboard -> Plan to plan a trip and view suggested routes."),
    (("alert",), "Check Dashboard -> Alerts for service updates and disruptions."),
    (("setting", "account", "profile"), "Open Dashboard -> Settings to update your profile and preferences."),
    (("fare", "price", "payment"),
     "Fares are shown on the trip plan and tickets pages. For issues, contact support via Settings."),
)
_COMMUTER_DEFAULT = "I can help with tickets, trips/plan, alerts, and settings. What do you need?"

_ADMIN: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("induction", "optimizer", "schedule"),
     "Admin -> Induction: run the optimizer, review ranked train decisions, and export results."),
    (("stabling", "depot"), "Admin -> Stabling: view depot schematic, select trains, and simulate shunting moves."),
    (("maintenance", "job card"), "Admin -> Maintenance: review maintenance records and statuses."),
    (("kpi", "metric"), "Admin -> KPI: view performance charts like punctuality and energy usage."),
    (("conflict",), "Admin -> Conflicts: inspect conflicts like fitness or job card issues per train."),
    (("migrate",), "Admin -> Migrate: move or import operational data."),
)
_ADMIN_GREETING = (
    "Hi! I can help with Induction, Conflicts, KPI, Maintenance, Stabling, Migrate, "
    "Tomorrow's Plan, and Users. Ask me about any of these."
)
_ADMIN_OVERVIEW = (
    "Overview: Induction optimizes train run/standby/maintenance; Conflicts shows issues per train; "
    "KPI shows metrics and demand forecast; Maintenance tracks job cards; Stabling manages depot placements; "
    "Migrate moves/imports data; Tomorrow's Plan prepares next-day schedule; Users manages roles."
)
_ADMIN_DEFAULT = (
    "I can guide you through Induction, Stabling, Maintenance, KPI, Conflicts, and Migrate sections. "
    "What would you like to do?"
)


def clip(text: str) -> str:
    return str(text or "")[:MAX_REPLY]


def _admin(q: str) -> str:
    if q in ("hi", "hello") or "hey" in q:
        return _ADMIN_GREETING
    if "explain all" in q or "explainall" in q or ("explain" in q and "all" in q):
        return _ADMIN_OVERVIEW
    for keys, reply in _ADMIN:
        if any(k in q for k in keys):
            return reply
    return _ADMIN_DEFAULT


def _commuter(q: str) -> str:
    for keys, reply in _COMMUTER:
        if any(k in q for k in keys):
            return reply
    return _COMMUTER_DEFAULT


def answer(text: str, role: str = "commuter") -> str:
    q = (text or "").strip().lower()
    if not q:
        return EMPTY_PROMPT
    reply = _admin(q) if role == "admin" else _commuter(q)
    return clip(reply)

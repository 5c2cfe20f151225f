"""Peak-shift incentives: nudge flexible riders off the peak with reward points.

State (profiles, offers, reward transactions) lives in memory on the
``PeakManagementSystem`` instance. Time and randomness are injected so the
whole flow can be replayed deterministically.
"""

from __future__ import annotations

import hashlib
import logging
import math
import random
import uuid
from dataclasses import dataclass, fields
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from metroops.model.types import (
    ConsentFlags,
    PeakShiftOffer,
    RewardTransaction,
    RiderProfile,
    TypicalTravel,
    to_utc,
    wall_clock,
)

logger = logging.getLogger(__name__)

__all__ = ["PeakPolicy", "PeakManagementSystem", "hash_user_id"]


@dataclass
class PeakPolicy:
    # [start, end) hours, wall clock
    morning_peak: Tuple[int, int] = (7, 9)
    evening_peak: Tuple[int, int] = (17, 19)
    morning_shifts: Tuple[int, int] = (-12, 15)
    evening_shifts: Tuple[int, int] = (-10, 12)
    min_flexibility: float = 0.3
    min_shift_minutes: int = 10
    base_points: int = 10
    points_per_5_min: int = 2
    max_points: int = 25
    offer_ttl_minutes: int = 30
    compliance_tolerance_minutes: float = 5.0
    compliance_bonus: float = 0.2
    new_route_bonus: float = 0.2
    variation_bonus_step: float = 0.1
    variation_bonus_cap: float = 0.3
    peak_reduction_per_offer: float = 0.1
    default_flexibility: float = 0.5


def hash_user_id(user_id: str) -> str:
    return hashlib.sha1(user_id.encode("utf-8")).hexdigest()[:12]


class PeakManagementSystem:
    def __init__(
        self,
        policy: Optional[PeakPolicy] = None,
        clock: Optional[Callable[[], datetime]] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.policy = policy or PeakPolicy()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._rng = rng or random.Random()
        self.profiles: Dict[str, RiderProfile] = {}
        self.offers: Dict[str, PeakShiftOffer] = {}
        self.transactions: List[RewardTransaction] = []

    def now(self) -> datetime:
        return to_utc(self._clock())

    # ---------- classification ----------
    def is_peak_time(self, when: datetime) -> bool:
        h = when.hour
        p = self.policy
        return p.morning_peak[0] <= h < p.morning_peak[1] or p.evening_peak[0] <= h < p.evening_peak[1]

    def flexibility(self, profile: RiderProfile, origin: str, destination: str) -> float:
        p = self.policy
        score = profile.flexibility_score
        history = [t for t in profile.typical_travel_times if t.origin == origin and t.destination == destination]
        if history:
            score += min(len(history[0].preferred_times) * p.variation_bonus_step, p.variation_bonus_cap)
        else:
            score += p.new_route_bonus
        return min(score, 1.0)

    def time_shift(self, when: datetime) -> int:
        h = when.hour
        p = self.policy
        if p.morning_peak[0] <= h < p.morning_peak[1]:
            earlier, later = p.morning_shifts
        elif p.evening_peak[0] <= h < p.evening_peak[1]:
            earlier, later = p.evening_shifts
        else:
            return 0
        return earlier if self._rng.random() > 0.5 else later

    def reward_points(self, shift: int) -> int:
        p = self.policy
        bonus = math.floor(abs(shift) / 5) * p.points_per_5_min
        return min(p.base_points + bonus, p.max_points)

    @staticmethod
    def offer_reason(shift: int) -> str:
        direction = "later" if shift > 0 else "earlier"
        return f"Help reduce crowding by traveling {abs(shift)} minutes {direction}. You'll earn reward points!"

    # ---------- profiles ----------
    def get_or_create_profile(self, user_id: str) -> RiderProfile:
        profile = self.profiles.get(user_id)
        if profile is None:
            profile = RiderProfile(
                user_id=user_id,
                hashed_id=hash_user_id(user_id),
                flexibility_score=self.policy.default_flexibility,
            )
            self.profiles[user_id] = profile
        return profile

    def get_rider_profile(self, user_id: str) -> Optional[RiderProfile]:
        return self.profiles.get(user_id)

    def update_rider_profile(self, user_id: str, updates: Dict[str, Any]) -> RiderProfile:
        """Apply partial updates; consent flags are merged into the existing ones.

        Every field is validated before any is applied, so a rejected update
        leaves the profile as it was.
        """
        updates = updates or {}
        consent = updates.get("consentFlags", updates.get("consent_flags"))
        flags: Dict[str, bool] = {}
        if consent is not None:
            known = {f.name for f in fields(ConsentFlags)}
            for key, value in consent.items():
                name = _snake(key)
                if name not in known:
                    raise ValueError(f"unknown consent flag '{key}'")
                flags[name] = bool(value)
        flex = updates.get("flexibilityScore", updates.get("flexibility_score"))
        if flex is not None:
            flex = float(flex)
            if not 0.0 <= flex <= 1.0:
                raise ValueError("flexibility_score must be within [0, 1]")
        travel = updates.get("typicalTravelTimes", updates.get("typical_travel_times"))
        if travel is not None:
            travel = [t if isinstance(t, TypicalTravel) else TypicalTravel.from_dict(t) for t in travel]

        profile = self.get_or_create_profile(user_id)
        for name, value in flags.items():
            setattr(profile.consent_flags, name, value)
        if flex is not None:
            profile.flexibility_score = flex
        if travel is not None:
            profile.typical_travel_times = travel
        logger.info("profile %s updated (%s)", profile.hashed_id, ", ".join(sorted(updates)))
        return profile

    # ---------- offers ----------
    def analyze_rider_behavior(self, user_id: str, trip: Dict[str, Any]) -> Optional[PeakShiftOffer]:
        """Create a peak-shift offer for a planned trip, or None when not eligible."""
        profile = self.get_or_create_profile(user_id)
        intended_raw = trip.get("intendedTime", trip.get("intended_time"))
        intended = wall_clock(intended_raw)
        if not self.is_peak_time(intended):
            return None
        if self.flexibility(profile, str(trip.get("origin", "")), str(trip.get("destination", ""))) < self.policy.min_flexibility:
            return None
        if not profile.consent_flags.peak_shifting:
            return None
        shift = self.time_shift(intended)
        if abs(shift) < self.policy.min_shift_minutes:
            return None

        suggested = intended + timedelta(minutes=shift)
        offer = PeakShiftOffer(
            id=f"offer_{uuid.uuid4().hex[:12]}",
            user_id=user_id,
            original_time=str(intended_raw),
            suggested_time=suggested.isoformat(),
            time_shift=shift,
            reward_points=self.reward_points(shift),
            reason=self.offer_reason(shift),
            expires_at=self.now() + timedelta(minutes=self.policy.offer_ttl_minutes),
        )
        self.offers[offer.id] = offer
        logger.info("offer %s for %s: shift %+d min, %d points", offer.id, profile.hashed_id, shift, offer.reward_points)
        return offer

    def process_offer_response(self, offer_id: str, accepted: bool) -> Dict[str, Any]:
        offer = self.offers.get(offer_id)
        if offer is None:
            return {"success": False, "message": "Offer not found or expired"}
        if offer.status != "pending":
            return {"success": False, "message": "Offer already processed"}
        if self.now() > offer.expires_at:
            offer.status = "expired"
            return {"success": False, "message": "Offer has expired"}
        if not accepted:
            offer.status = "declined"
            return {"success": True, "message": "No problem! Your original travel time is confirmed."}

        offer.status = "accepted"
        profile = self.get_or_create_profile(offer.user_id)
        profile.reward_points += offer.reward_points
        self._record(offer.user_id, "peak_shift", offer.reward_points, f"Peak shift reward: {offer.time_shift} minutes")
        return {
            "success": True,
            "rewardPoints": offer.reward_points,
            "message": f"Thank you! You've earned {offer.reward_points} reward points.",
        }

    def verify_compliance(self, offer_id: str, tap_in: Any) -> Dict[str, Any]:
        offer = self.offers.get(offer_id)
        if offer is None or offer.status != "accepted":
            return {"compliant": False, "message": "No active offer found"}
        if offer.compliance_verified:
            return {"compliant": False, "message": "Compliance already verified"}
        diff_min = abs((to_utc(tap_in) - to_utc(offer.suggested_time)).total_seconds()) / 60.0
        if diff_min > self.policy.compliance_tolerance_minutes:
            return {
                "compliant": False,
                "message": "You arrived outside the suggested time window. No bonus points awarded.",
            }
        bonus = math.floor(offer.reward_points * self.policy.compliance_bonus)
        offer.compliance_verified = True
        profile = self.get_or_create_profile(offer.user_id)
        profile.reward_points += bonus
        self._record(offer.user_id, "compliance", bonus, "Compliance bonus for peak shift")
        return {
            "compliant": True,
            "rewardPoints": bonus,
            "message": f"Excellent! You arrived within the suggested time and earned a {bonus} point compliance bonus.",
        }

    def get_active_offers(self, user_id: str) -> List[PeakShiftOffer]:
        return [o for o in self.offers.values() if o.user_id == user_id and o.status == "pending"]

    def get_reward_history(self, user_id: str) -> List[RewardTransaction]:
        return [t for t in self.transactions if t.user_id == user_id]

    def cleanup_expired_offers(self) -> int:
        now = self.now()
        n = 0
        for offer in self.offers.values():
            if offer.status == "pending" and offer.expires_at < now:
                offer.status = "expired"
                n += 1
        if n:
            logger.info("expired %d pending offers", n)
        return n

    def get_analytics(self) -> Dict[str, float]:
        offers = list(self.offers.values())
        accepted = [o for o in offers if o.status == "accepted"]
        return {
            "totalOffers": len(offers),
            "acceptanceRate": len(accepted) / len(offers) if offers else 0.0,
            "averageTimeShift": sum(abs(o.time_shift) for o in accepted) / len(accepted) if accepted else 0.0,
            "totalRewardPoints": sum(t.points for t in self.transactions),
            "peakReduction": round(len(accepted) * self.policy.peak_reduction_per_offer, 4),
        }

    def _record(self, user_id: str, kind: str, points: int, description: str) -> RewardTransaction:
        tx = RewardTransaction(
            id=f"reward_{uuid.uuid4().hex[:12]}",
            user_id=user_id,
            type=kind,
            points=points,
            description=description,
            timestamp=self.now().isoformat(),
        )
        self.transactions.append(tx)
        return tx


def _snake(key: str) -> str:
    out = []
    for ch in key:
        if ch.isupper():
            out.append("_")
            out.append(ch.lower())
        else:
            out.append(ch)
    return "".join(out)

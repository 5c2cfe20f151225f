import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))
from metroops.rider.peak import PeakManagementSystem, hash_user_id


class FixedClock:
    def __init__(self, start):
        self.current = start

    def __call__(self):
        return self.current

    def advance(self, minutes):
        self.current += timedelta(minutes=minutes)


class StubRng:
    def __init__(self, value):
        self.value = value

    def random(self):
        return self.value


MORNING = "2026-03-02T08:00:00+05:30"


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 3, 2, 2, 0, tzinfo=timezone.utc))


def _system(clock, roll=0.9):
    pms = PeakManagementSystem(clock=clock, rng=StubRng(roll))
    pms.update_rider_profile("rider-1", {"consentFlags": {"peakShifting": True}})
    return pms


def _trip(when=MORNING):
    return {"origin": "Aluva", "destination": "Kaloor", "intendedTime": when}


def test_earlier_shift_offer(clock):
    pms = _system(clock)
    offer = pms.analyze_rider_behavior("rider-1", _trip())
    assert offer.time_shift == -12
    assert offer.reward_points == 14
    assert offer.suggested_time == "2026-03-02T07:48:00+05:30"
    assert offer.original_time == MORNING
    assert offer.expires_at == clock() + timedelta(minutes=30)
    assert "12 minutes earlier" in offer.reason
    assert pms.get_active_offers("rider-1") == [offer]


def test_later_shift_earns_more(clock):
    offer = _system(clock, roll=0.1).analyze_rider_behavior("rider-1", _trip())
    assert offer.time_shift == 15
    assert offer.reward_points == 16


def test_evening_peak_shifts():
    pms = PeakManagementSystem(rng=StubRng(0.9))
    assert pms.time_shift(datetime(2026, 3, 2, 18, 10)) == -10
    assert pms.time_shift(datetime(2026, 3, 2, 12, 0)) == 0
    assert pms.reward_points(60) == 25


@pytest.mark.parametrize(
    "setup, trip",
    [
        ("consent", _trip("2026-03-02T12:00:00+05:30")),
        ("none", _trip()),
        ("rigid", _trip()),
    ],
)
def test_no_offer_when_ineligible(clock, setup, trip):
    pms = PeakManagementSystem(clock=clock, rng=StubRng(0.9))
    if setup == "consent":
        pms.update_rider_profile("rider-1", {"consentFlags": {"peakShifting": True}})
    elif setup == "rigid":
        pms.update_rider_profile("rider-1", {"consentFlags": {"peakShifting": True}, "flexibilityScore": 0.05})
    assert pms.analyze_rider_behavior("rider-1", trip) is None
    assert pms.offers == {}


def test_accept_then_repeat(clock):
    pms = _system(clock)
    offer = pms.analyze_rider_behavior("rider-1", _trip())
    result = pms.process_offer_response(offer.id, True)
    assert result == {
        "success": True,
        "rewardPoints": 14,
        "message": "Thank you! You've earned 14 reward points.",
    }
    assert pms.get_rider_profile("rider-1").reward_points == 14
    assert pms.process_offer_response(offer.id, True)["message"] == "Offer already processed"
    assert [t.type for t in pms.get_reward_history("rider-1")] == ["peak_shift"]


def test_decline_and_unknown_offer(clock):
    pms = _system(clock)
    offer = pms.analyze_rider_behavior("rider-1", _trip())
    assert pms.process_offer_response(offer.id, False)["success"] is True
    assert offer.status == "declined"
    assert pms.process_offer_response("offer_missing", True) == {
        "success": False,
        "message": "Offer not found or expired",
    }


def test_offer_expires(clock):
    pms = _system(clock)
    offer = pms.analyze_rider_behavior("rider-1", _trip())
    clock.advance(31)
    assert pms.process_offer_response(offer.id, True)["message"] == "Offer has expired"
    assert offer.status == "expired"
    assert pms.get_rider_profile("rider-1").reward_points == 0


def test_cleanup_expires_pending_offers(clock):
    pms = _system(clock)
    pms.analyze_rider_behavior("rider-1", _trip())
    pms.analyze_rider_behavior("rider-1", _trip())
    assert pms.cleanup_expired_offers() == 0
    clock.advance(45)
    assert pms.cleanup_expired_offers() == 2
    assert pms.get_active_offers("rider-1") == []


def test_compliance_bonus(clock):
    pms = _system(clock)
    offer = pms.analyze_rider_behavior("rider-1", _trip())
    assert pms.verify_compliance(offer.id, "2026-03-02T07:51:00+05:30") == {
        "compliant": False,
        "message": "No active offer found",
    }
    pms.process_offer_response(offer.id, True)
    late = pms.verify_compliance(offer.id, "2026-03-02T07:40:00+05:30")
    assert late["compliant"] is False
    ok = pms.verify_compliance(offer.id, "2026-03-02T07:51:00+05:30")
    assert ok["compliant"] is True
    assert ok["rewardPoints"] == 2
    assert pms.get_rider_profile("rider-1").reward_points == 16


def test_compliance_bonus_paid_once(clock):
    pms = _system(clock)
    offer = pms.analyze_rider_behavior("rider-1", _trip())
    pms.process_offer_response(offer.id, True)
    assert pms.verify_compliance(offer.id, "2026-03-02T07:51:00+05:30")["compliant"] is True
    for _ in range(4):
        again = pms.verify_compliance(offer.id, "2026-03-02T07:51:00+05:30")
        assert again == {"compliant": False, "message": "Compliance already verified"}
    assert pms.get_rider_profile("rider-1").reward_points == 16
    assert [t.type for t in pms.get_reward_history("rider-1")] == ["peak_shift", "compliance"]


def test_analytics(clock):
    pms = _system(clock)
    assert PeakManagementSystem(clock=clock).get_analytics()["acceptanceRate"] == 0.0
    first = pms.analyze_rider_behavior("rider-1", _trip())
    pms.analyze_rider_behavior("rider-1", _trip())
    pms.process_offer_response(first.id, True)
    stats = pms.get_analytics()
    assert stats["totalOffers"] == 2
    assert stats["acceptanceRate"] == pytest.approx(0.5)
    assert stats["averageTimeShift"] == pytest.approx(12.0)
    assert stats["totalRewardPoints"] == 14
    assert stats["peakReduction"] == pytest.approx(0.1)


def test_profile_updates(clock):
    pms = _system(clock)
    profile = pms.update_rider_profile("rider-1", {"consentFlags": {"notifications": True}})
    assert profile.consent_flags.peak_shifting is True
    assert profile.consent_flags.notifications is True
    profile = pms.update_rider_profile(
        "rider-1", {"typicalTravelTimes": [{"origin": "Aluva", "destination": "Kaloor", "preferredTimes": ["08:00"]}]}
    )
    assert profile.typical_travel_times[0].preferred_times == ["08:00"]
    with pytest.raises(ValueError):
        pms.update_rider_profile("rider-1", {"consentFlags": {"marketing": True}})
    with pytest.raises(ValueError):
        pms.update_rider_profile("rider-1", {"flexibilityScore": 2})


def test_rejected_profile_update_changes_nothing(clock):
    pms = PeakManagementSystem(clock=clock)
    before = pms.get_or_create_profile("rider-2").to_dict()
    with pytest.raises(ValueError):
        pms.update_rider_profile("rider-2", {"consentFlags": {"peakShifting": True}, "flexibilityScore": 2})
    with pytest.raises(ValueError):
        pms.update_rider_profile("rider-2", {"consentFlags": {"peakShifting": True, "marketing": True}})
    with pytest.raises(ValueError):
        pms.update_rider_profile(
            "rider-2", {"flexibilityScore": 0.9, "typicalTravelTimes": [{"origin": "Aluva"}]}
        )
    profile = pms.get_rider_profile("rider-2")
    assert profile.consent_flags.peak_shifting is False
    assert profile.to_dict() == before


def test_hashed_id_is_stable():
    assert hash_user_id("rider-1") == hash_user_id("rider-1")
    assert len(hash_user_id("rider-1")) == 12
    pms = PeakManagementSystem()
    assert pms.get_or_create_profile("rider-1").hashed_id == hash_user_id("rider-1")
    assert pms.get_rider_profile("nobody") is None

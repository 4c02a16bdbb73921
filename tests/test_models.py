from datetime import datetime, timedelta

import pytest

from ubuntu_api.models import Activity, SafeLocation, User, UserTier
from ubuntu_shared import haversine_km


@pytest.mark.parametrize(
    "tier,color,can_vouch,guardian",
    [
        (UserTier.BASIC, "green", False, False),
        (UserTier.VERIFIED_HELPER, "blue", False, False),
        (UserTier.TRUSTED_MENTOR, "gold", True, False),
        (UserTier.COMMUNITY_GUARDIAN, "purple", True, True),
        (9, "gray", True, True),
    ],
)
def test_user_tier_behaviour(tier, color, can_vouch, guardian):
    user = User(phone="+27821234567", display_name="T", tier=int(tier))
    assert user.status_color() == color
    assert user.can_vouch() is can_vouch
    assert user.can_work_with_youth() is can_vouch
    assert user.is_guardian() is guardian


def test_location_opening_hours():
    loc = SafeLocation(is_active=True, opening_hours="08:00", closing_hours="17:30")
    assert loc.is_open(datetime(2026, 10, 18, 8, 0))
    assert loc.is_open(datetime(2026, 10, 18, 17, 30))
    assert not loc.is_open(datetime(2026, 10, 18, 17, 31))
    assert SafeLocation(is_active=True).is_open(datetime(2026, 10, 18, 3, 0))
    assert not SafeLocation(is_active=False).is_open(datetime(2026, 10, 18, 12, 0))


def test_activity_duration_hours():
    start = datetime(2026, 10, 18, 9, 0)
    activity = Activity(actual_start_time=start, actual_end_time=start + timedelta(minutes=90))
    assert activity.duration_hours() == pytest.approx(1.5)
    assert Activity().duration_hours() == 0.0


def test_haversine_distance():
    joburg, pretoria = (-26.2041, 28.0473), (-25.7479, 28.2293)
    distance = haversine_km(*joburg, *pretoria)
    assert 50 < distance < 60
    assert haversine_km(*joburg, *joburg) == 0
    assert haversine_km(*pretoria, *joburg) == pytest.approx(distance)

"""Tests for distance and ETA helpers."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

from decimal import Decimal

from services.maps import estimate_delivery_minutes, haversine_distance, within_radius

KORAMANGALA = (12.9352, 77.6245)
INDIRANAGAR = (12.9784, 77.6408)


def test_same_point_is_zero():
    assert haversine_distance(*KORAMANGALA, *KORAMANGALA) == 0


def test_known_distance():
    d = haversine_distance(*KORAMANGALA, *INDIRANAGAR)
    assert 4.5 < d < 5.5


def test_accepts_decimal_coordinates():
    d = haversine_distance(Decimal("12.9352"), Decimal("77.6245"), *INDIRANAGAR)
    assert d == haversine_distance(*KORAMANGALA, *INDIRANAGAR)


def test_eta_includes_preparation():
    # 10 km at 20 km/h = 30 min travel + 10 min loading
    assert estimate_delivery_minutes(10) == 40
    assert estimate_delivery_minutes(0) == 11


def test_within_radius():
    inside, d = within_radius(KORAMANGALA, INDIRANAGAR, 10)
    assert inside is True
    outside, _ = within_radius(KORAMANGALA, INDIRANAGAR, 2)
    assert outside is False
    assert d > 2

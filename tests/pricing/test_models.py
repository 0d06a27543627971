import logging

import pytest

from ridedispatch.pricing.models import FALLBACK_RIDE_CLASS, RideClass


@pytest.mark.unit
class TestRideClass:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("economy", RideClass.ECONOMY),
            ("Premium", RideClass.PREMIUM),
            (" pool ", RideClass.POOL),
            ("LUXURY", RideClass.LUXURY),
            ("suv", RideClass.SUV),
            (RideClass.PREMIUM, RideClass.PREMIUM),
        ],
    )
    def test_parse(self, raw, expected):
        assert RideClass.parse(raw) == expected

    def test_unknown_falls_back_with_warning(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert RideClass.parse("limousine") == FALLBACK_RIDE_CLASS
        assert "limousine" in caplog.text

    def test_none_falls_back(self):
        assert RideClass.parse(None) == RideClass.ECONOMY

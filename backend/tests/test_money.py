"""Fixed-point money and time helpers."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from partspos.money import afn_to_usd_cents, format_rate, to_rate, usd_to_afn_cents
from partspos.time_utils import days_until, parse_iso_datetime


class TestConversion:
    def test_usd_to_afn_exact(self):
        assert usd_to_afn_cents(3000, Decimal("70")) == 210000

    def test_usd_to_afn_rounds_half_up(self):
        # 1 cent * 70.5 = 70.5 afn cents
        assert usd_to_afn_cents(1, Decimal("70.5")) == 71

    def test_afn_to_usd_rounds_half_up(self):
        # 105 / 70 = 1.5
        assert afn_to_usd_cents(105, Decimal("70")) == 2
        assert afn_to_usd_cents(104, Decimal("70")) == 1

    def test_zero(self):
        assert usd_to_afn_cents(0, Decimal("70")) == 0
        assert afn_to_usd_cents(0, Decimal("70")) == 0


class TestRate:
    @pytest.mark.parametrize("raw,expected", [
        ("70", Decimal("70.0000")),
        (70.25, Decimal("70.2500")),
        ("69.12345", Decimal("69.1235")),
    ])
    def test_to_rate(self, raw, expected):
        assert to_rate(raw) == expected

    @pytest.mark.parametrize("raw", [None, True, "abc", "0", "-1", "NaN"])
    def test_to_rate_rejects(self, raw):
        with pytest.raises(ValueError):
            to_rate(raw)

    def test_format_rate_strips_zeros(self):
        assert format_rate(Decimal("70.0000")) == "70"
        assert format_rate(Decimal("70.2500")) == "70.25"
        assert format_rate(None) is None


class TestTime:
    def test_days_until_fractional(self):
        now = datetime(2026, 1, 1, 12, 0, 0)
        assert days_until(now + timedelta(hours=12), now) == pytest.approx(0.5)
        assert days_until(now - timedelta(days=2), now) == pytest.approx(-2)

    def test_parse_iso_datetime_normalizes_to_utc(self):
        assert parse_iso_datetime("2026-03-01T10:00:00+02:00") == datetime(2026, 3, 1, 8, 0, 0)
        assert parse_iso_datetime("2026-03-01T10:00:00Z") == datetime(2026, 3, 1, 10, 0, 0)
        assert parse_iso_datetime("") is None

"""
Unit tests for the discount engine.
"""
from decimal import Decimal

import pytest

from gcp_boq.config import EngineConfig
from gcp_boq.engine.discounts import compute_discount, sustained_use_percent
from gcp_boq.models.schemas import ResourceSpecification

from conftest import resource_row

BASE = Decimal("100")


def spec(**overrides):
    return ResourceSpecification.from_record(resource_row(**overrides))


def families(result):
    return [
        name for name, amount in (
            ("sustained", result.sustained_use_amount),
            ("committed", result.committed_use_amount),
            ("spot", result.spot_amount),
        )
        if amount != 0
    ]


class TestPricingModels:
    """One discount family per pricing model."""

    @pytest.mark.parametrize("model", ["spot", "preemptible"])
    def test_spot(self, model):
        result = compute_discount(spec(pricing_model=model), BASE)

        assert result.spot_percent == 60
        assert result.spot_amount == Decimal("60")
        assert families(result) == ["spot"]

    def test_cud_one_year(self):
        result = compute_discount(spec(pricing_model="cud-1-year"), BASE)

        assert result.committed_use_percent == 25
        assert result.committed_use_amount == Decimal("25")
        assert families(result) == ["committed"]

    def test_cud_three_year(self):
        result = compute_discount(spec(pricing_model="cud-3-year"), BASE)

        assert result.committed_use_percent == 37
        assert result.total_amount == Decimal("37")
        assert families(result) == ["committed"]

    def test_on_demand_continuous(self):
        result = compute_discount(spec(usage_duration_hours=730), BASE)

        assert result.sustained_use_percent == 30
        assert result.sustained_use_amount == Decimal("30")
        assert families(result) == ["sustained"]

    def test_commitment_never_gets_sustained_use(self):
        """Test long continuous committed usage gets only the commitment discount."""
        result = compute_discount(spec(pricing_model="cud-1-year", usage_duration_hours=730), BASE)

        assert result.sustained_use_percent == 0

    @pytest.mark.parametrize("hours", [0, 100, 183])
    def test_on_demand_short_usage_no_discount(self, hours):
        result = compute_discount(spec(usage_duration_hours=hours), BASE)

        assert result.total_amount == 0
        assert families(result) == []

    @pytest.mark.parametrize("pattern", ["intermittent", "scheduled"])
    def test_non_continuous_no_sustained_use(self, pattern):
        result = compute_discount(spec(usage_duration_hours=730, usage_pattern=pattern), BASE)

        assert result.total_amount == 0

    def test_percentages_from_config(self):
        config = EngineConfig(spot_discount_percent=70)

        result = compute_discount(spec(pricing_model="spot"), BASE, config)

        assert result.spot_amount == Decimal("70")

    def test_zero_base_cost(self):
        assert compute_discount(spec(pricing_model="spot"), Decimal(0)).total_amount == 0


class TestSustainedUseLadder:

    @pytest.mark.parametrize("hours,expected", [
        (183, 0),
        (184, 0),
        (255, 0),
        (256, 5),
        (329, 10),
        (400, 10),
        (548, 25),
        (621, 30),
        (730, 30),
        (10000, 30),
    ])
    def test_steps(self, hours, expected):
        assert sustained_use_percent(hours, "continuous") == expected

    def test_monotonic_and_capped(self):
        """Test the percent never decreases and stays at the cap past 183 + 73 * 6 hours."""
        previous = 0
        for hours in range(0, 1500, 7):
            percent = sustained_use_percent(hours, "continuous")
            assert percent >= previous
            previous = percent

        for hours in (183 + 73 * 6, 1000, 8760):
            assert sustained_use_percent(hours, "continuous") == 30

    def test_fractional_hours(self):
        assert sustained_use_percent(255.9, "continuous") == 0
        assert sustained_use_percent(256.0, "continuous") == 5

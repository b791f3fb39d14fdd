"""
Discount engine.

Exactly one rule applies per resource, chosen by pricing model:

    spot / preemptible   spot discount
    cud-1-year           committed-use discount (1 year)
    cud-3-year           committed-use discount (3 years)
    on-demand / other    sustained-use ladder for continuous usage

Discounts apply to compute + GPU cost only. Pure functions, no I/O.
"""
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional

from gcp_boq.config import EngineConfig
from gcp_boq.models.schemas import PricingModel, ResourceSpecification, UsagePattern

ZERO = Decimal(0)
HUNDRED = Decimal(100)


@dataclass(frozen=True)
class DiscountResult:
    sustained_use_percent: int = 0
    committed_use_percent: int = 0
    spot_percent: int = 0
    sustained_use_amount: Decimal = ZERO
    committed_use_amount: Decimal = ZERO
    spot_amount: Decimal = ZERO

    @property
    def total_amount(self) -> Decimal:
        return self.sustained_use_amount + self.committed_use_amount + self.spot_amount

    def to_dict(self) -> Dict[str, float]:
        return {
            "sustained_use_percent": self.sustained_use_percent,
            "committed_use_percent": self.committed_use_percent,
            "spot_percent": self.spot_percent,
            "sustained_use_amount": float(self.sustained_use_amount),
            "committed_use_amount": float(self.committed_use_amount),
            "spot_amount": float(self.spot_amount),
        }


def sustained_use_percent(
    usage_duration_hours: float,
    usage_pattern: str,
    config: Optional[EngineConfig] = None,
) -> int:
    """
    Sustained-use percent for on-demand usage.

    Every full step of hours past the threshold earns another step of
    percent, up to the cap. Non-continuous usage never qualifies.
    """
    config = config or EngineConfig()
    if usage_pattern != UsagePattern.CONTINUOUS.value:
        return 0
    if usage_duration_hours <= config.sud_threshold_hours:
        return 0

    steps = math.floor((usage_duration_hours - config.sud_threshold_hours) / config.sud_step_hours)
    return min(config.sud_max_percent, steps * config.sud_step_percent)


def _amount(base_cost: Decimal, percent: int) -> Decimal:
    return base_cost * Decimal(percent) / HUNDRED


def compute_discount(
    spec: ResourceSpecification,
    base_cost: Decimal,
    config: Optional[EngineConfig] = None,
) -> DiscountResult:
    """
    Discount for one resource.

    Args:
        spec: Resource specification (pricing model, usage)
        base_cost: Compute + GPU cost before discount
        config: Discount percentages and sustained-use thresholds

    Returns:
        DiscountResult with at most one non-zero family
    """
    config = config or EngineConfig()
    model = spec.pricing_model

    if model in (PricingModel.SPOT.value, PricingModel.PREEMPTIBLE.value):
        percent = config.spot_discount_percent
        return DiscountResult(spot_percent=percent, spot_amount=_amount(base_cost, percent))

    if model == PricingModel.CUD_1_YEAR.value:
        percent = config.cud_1_year_discount_percent
        return DiscountResult(committed_use_percent=percent, committed_use_amount=_amount(base_cost, percent))

    if model == PricingModel.CUD_3_YEAR.value:
        percent = config.cud_3_year_discount_percent
        return DiscountResult(committed_use_percent=percent, committed_use_amount=_amount(base_cost, percent))

    percent = sustained_use_percent(spec.usage_duration_hours, spec.usage_pattern, config)
    return DiscountResult(sustained_use_percent=percent, sustained_use_amount=_amount(base_cost, percent))

"""
Cost aggregator.
Summarizes the line items of one calculation run.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Sequence

ZERO = Decimal(0)


def _decimal(value: Any) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class BoQSummary:
    total_resources: int = 0
    total_cost: Decimal = ZERO
    total_discount: Decimal = ZERO
    average_cost: Decimal = ZERO
    cost_by_project: Dict[str, Decimal] = field(default_factory=dict)
    cost_by_region: Dict[str, Decimal] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_resources": self.total_resources,
            "total_cost_usd": float(self.total_cost),
            "total_discount_usd": float(self.total_discount),
            "average_cost_per_resource": float(self.average_cost),
            "cost_by_project": {k: float(v) for k, v in self.cost_by_project.items()},
            "cost_by_region": {k: float(v) for k, v in self.cost_by_region.items()},
        }


class CostAggregator:
    """
    Aggregates line items of one run.

    Accepts row mappings carrying ``project_id``, ``region``,
    ``total_cost_usd`` and ``total_discount_usd``, so freshly computed items
    and stored result rows summarize the same way. Only successfully priced
    items ever reach the aggregator; skipped resources are not counted.
    """

    def __init__(self, cost_results: Sequence[Mapping[str, Any]]):
        self.cost_results = cost_results

    def _group_by(self, key: str) -> Dict[str, Decimal]:
        grouped: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        for result in self.cost_results:
            grouped[result.get(key) or "unknown"] += _decimal(result.get("total_cost_usd"))
        return dict(grouped)

    def aggregate_by_project(self) -> Dict[str, Decimal]:
        return self._group_by("project_id")

    def aggregate_by_region(self) -> Dict[str, Decimal]:
        return self._group_by("region")

    def get_total_cost(self) -> Decimal:
        return sum((_decimal(r.get("total_cost_usd")) for r in self.cost_results), ZERO)

    def get_total_discount(self) -> Decimal:
        return sum((_decimal(r.get("total_discount_usd")) for r in self.cost_results), ZERO)

    def aggregate_all(self) -> BoQSummary:
        """
        Perform all aggregations.

        Returns:
            BoQSummary; every figure is zero for an empty run
        """
        count = len(self.cost_results)
        total_cost = self.get_total_cost()

        return BoQSummary(
            total_resources=count,
            total_cost=total_cost,
            total_discount=self.get_total_discount(),
            average_cost=total_cost / count if count else ZERO,
            cost_by_project=self.aggregate_by_project(),
            cost_by_region=self.aggregate_by_region(),
        )


def summarize_records(records: List[Any]) -> BoQSummary:
    """Summarize stored boq_results rows."""
    rows = [
        {
            "project_id": record.project_id,
            "region": record.region,
            "total_cost_usd": record.total_cost_usd,
            "total_discount_usd": record.total_discount_usd,
        }
        for record in records
    ]
    return CostAggregator(rows).aggregate_all()

"""
Domain models for scenario modeling and delta comparison.
A scenario re-prices the same graph with a second usage specification.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from iaccost.domain.cost_models import CostEstimate, format_decimal


@dataclass
class ScenarioDeltaLineItem:
    """Represents the monthly cost delta for a single resource between base and scenario."""
    address: str
    resource_type: str
    base_monthly_cost: Decimal
    scenario_monthly_cost: Decimal
    delta: Decimal
    delta_percent: Optional[Decimal]  # None if base cost is 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "address": self.address,
            "resource_type": self.resource_type,
            "base_monthly_cost": format_decimal(self.base_monthly_cost),
            "scenario_monthly_cost": format_decimal(self.scenario_monthly_cost),
            "delta": format_decimal(self.delta),
            "delta_percent": format_decimal(
                self.delta_percent.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
            ) if self.delta_percent is not None else None,
        }


@dataclass
class ScenarioEstimateResult:
    """Result of scenario modeling comparison."""
    base_estimate: CostEstimate
    scenario_estimate: CostEstimate
    deltas: List[ScenarioDeltaLineItem]
    assumptions: List[str]

    @property
    def total_delta(self) -> Decimal:
        return self.scenario_estimate.total_monthly_cost - self.base_estimate.total_monthly_cost

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        # Largest absolute change first, address breaks ties
        sorted_deltas = sorted(self.deltas, key=lambda item: (-abs(item.delta), item.address))

        return {
            "assumptions": self.assumptions,
            "total_delta": format_decimal(self.total_delta),
            "base_estimate": self.base_estimate.to_dict(),
            "scenario_estimate": self.scenario_estimate.to_dict(),
            "deltas": [delta.to_dict() for delta in sorted_deltas],
        }

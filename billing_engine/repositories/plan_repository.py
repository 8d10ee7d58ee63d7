"""Plan repository - provides access to plan definitions.

Loads from config/billing.yaml and provides lookup methods.
"""

from datetime import timedelta
from typing import Dict, List, Optional

from billing_engine.config import Config
from billing_engine.models import PlanDefinition
from billing_engine.utils.billing_period import billing_period_to_timedelta


class PlanNotFoundError(Exception):
    """Raised when a plan is not found in the repository."""

    pass


class PlanRepository:
    """Repository for plan definitions.

    Thread-safe for read operations.
    """

    def __init__(self, plans: List[PlanDefinition], default_interval_days: int = 30):
        """Initialize plan repository.

        Args:
            plans: Plan definitions to index
            default_interval_days: Interval used for plans missing from the catalog
        """
        self._plans_by_id: Dict[str, PlanDefinition] = {plan.id: plan for plan in plans}
        self._default_interval = timedelta(days=default_interval_days)

    @classmethod
    def from_config(cls, config: Config) -> "PlanRepository":
        """Build the repository from loaded configuration."""
        return cls(config.plans, default_interval_days=config.billing.default_interval_days)

    def get_by_id(self, plan_id: str) -> PlanDefinition:
        """Get plan definition by ID.

        Raises:
            PlanNotFoundError: If plan ID not found
        """
        plan = self._plans_by_id.get(plan_id)
        if plan is None:
            raise PlanNotFoundError(
                f"Plan not found: {plan_id}. "
                f"Available plans: {list(self._plans_by_id.keys())}"
            )
        return plan

    def find_by_id(self, plan_id: str) -> Optional[PlanDefinition]:
        """Find plan definition by ID (returns None if not found)."""
        return self._plans_by_id.get(plan_id)

    def interval_for(self, plan_id: Optional[str]) -> timedelta:
        """Billing interval of a plan, falling back to the default interval."""
        plan = self._plans_by_id.get(plan_id) if plan_id else None
        if plan is None:
            return self._default_interval
        return billing_period_to_timedelta(plan.billing_period)

    def get_all(self) -> List[PlanDefinition]:
        return list(self._plans_by_id.values())

    def __len__(self) -> int:
        return len(self._plans_by_id)

    def __contains__(self, plan_id: str) -> bool:
        return plan_id in self._plans_by_id

    def __repr__(self) -> str:
        return f"PlanRepository(plans={len(self._plans_by_id)})"

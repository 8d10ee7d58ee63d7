"""Tests for PlanRepository."""

from datetime import timedelta
from decimal import Decimal

import pytest

from billing_engine.config import Config
from billing_engine.repositories.plan_repository import PlanNotFoundError, PlanRepository


class TestPlanLookup:
    def test_get_by_id(self, plan_repository):
        plan = plan_repository.get_by_id("basic.monthly")
        assert plan.title == "Basic Monthly"
        assert plan.price == Decimal("49.90")

    def test_get_by_id_unknown_raises(self, plan_repository):
        with pytest.raises(PlanNotFoundError) as exc_info:
            plan_repository.get_by_id("missing.plan")
        assert "missing.plan" in str(exc_info.value)

    def test_find_by_id_unknown_returns_none(self, plan_repository):
        assert plan_repository.find_by_id("missing.plan") is None

    def test_container_protocol(self, plan_repository):
        assert len(plan_repository) == 2
        assert "pro.yearly" in plan_repository
        assert "missing.plan" not in plan_repository


class TestIntervals:
    """Billing interval used when extending a period."""

    def test_monthly_plan(self, plan_repository):
        assert plan_repository.interval_for("basic.monthly") == timedelta(days=30)

    def test_yearly_plan(self, plan_repository):
        assert plan_repository.interval_for("pro.yearly") == timedelta(days=365)

    def test_unknown_plan_uses_default(self, plan_repository):
        assert plan_repository.interval_for("missing.plan") == timedelta(days=30)

    def test_missing_plan_id_uses_default(self):
        repository = PlanRepository([], default_interval_days=45)
        assert repository.interval_for(None) == timedelta(days=45)


class TestFromConfig:
    def test_builds_from_config(self, tmp_path):
        path = tmp_path / "billing.yaml"
        path.write_text(
            "plans:\n"
            "  - id: solo.monthly\n"
            "    title: Solo\n"
            "    price: \"19.90\"\n"
            "default_interval_days: 31\n",
            encoding="utf-8",
        )

        repository = PlanRepository.from_config(Config(str(path)))

        assert repository.get_by_id("solo.monthly").billing_period == "P30D"
        assert repository.interval_for("other") == timedelta(days=31)


"""
Plan catalog and quota resolution.

Plans are static and loaded once; effective limits are recomputed on every
request from the caller's plan and profile overrides and never persisted.
"""

from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional

from models import DEFAULT_PLAN_KEY, PlanLimitsSnapshot, PlanSummary, Profile

MB = 1024 * 1024


@dataclass(frozen=True)
class Plan:
    key: str
    name: str
    max_upload_bytes: int
    max_monthly_renders: Optional[int]  # None = unbounded
    signed_url_ttl_seconds: int

    def to_summary(self) -> PlanSummary:
        return PlanSummary(
            key=self.key,
            name=self.name,
            maxUploadBytes=self.max_upload_bytes,
            maxMonthlyRenders=self.max_monthly_renders,
            signedUrlTtlSeconds=self.signed_url_ttl_seconds,
        )


@dataclass(frozen=True)
class EffectiveLimits:
    plan_key: str
    name: str
    max_upload_bytes: int
    max_monthly_renders: Optional[int]
    signed_url_ttl_seconds: int

    @property
    def unbounded(self) -> bool:
        return self.max_monthly_renders is None

    def snapshot(self, monthly_render_count: int) -> PlanLimitsSnapshot:
        return PlanLimitsSnapshot(
            key=self.plan_key,
            name=self.name,
            maxUploadBytes=self.max_upload_bytes,
            maxMonthlyRenders=self.max_monthly_renders,
            signedUrlTtlSeconds=self.signed_url_ttl_seconds,
            monthlyRenderCount=monthly_render_count,
        )


DEFAULT_PLANS = (
    Plan(
        key="free",
        name="Free",
        max_upload_bytes=20 * MB,
        max_monthly_renders=25,
        signed_url_ttl_seconds=60 * 30,
    ),
    Plan(
        key="pro",
        name="Pro",
        max_upload_bytes=200 * MB,
        max_monthly_renders=250,
        signed_url_ttl_seconds=60 * 60,
    ),
    Plan(
        key="enterprise",
        name="Enterprise",
        max_upload_bytes=512 * MB,
        max_monthly_renders=None,
        signed_url_ttl_seconds=60 * 60 * 24,
    ),
)


class PlanCatalog:
    """Immutable lookup of plans by key with a default (lowest) plan."""

    def __init__(
        self,
        plans: Iterable[Plan] = DEFAULT_PLANS,
        default_plan_key: str = DEFAULT_PLAN_KEY,
        default_ttl_seconds: int = 60 * 30,
    ):
        ordered: List[Plan] = []
        for plan in plans:
            if plan.max_upload_bytes <= 0:
                raise ValueError(f"Plan {plan.key!r} needs a positive upload limit")
            if plan.max_monthly_renders is not None and plan.max_monthly_renders <= 0:
                raise ValueError(f"Plan {plan.key!r} needs a positive render limit")
            if not plan.signed_url_ttl_seconds or plan.signed_url_ttl_seconds <= 0:
                plan = replace(plan, signed_url_ttl_seconds=default_ttl_seconds)
            ordered.append(plan)

        self._plans: Dict[str, Plan] = {plan.key: plan for plan in ordered}
        if len(self._plans) != len(ordered):
            raise ValueError("Plan keys must be unique")
        if default_plan_key not in self._plans:
            raise ValueError(f"Default plan {default_plan_key!r} is not in the catalog")
        self._ordered = tuple(ordered)
        self.default_plan = self._plans[default_plan_key]

    @property
    def plans(self) -> tuple:
        return self._ordered

    def resolve_plan(self, plan_key: Optional[str]) -> Plan:
        """Return the plan for ``plan_key``, or the default plan when unknown."""
        if not plan_key:
            return self.default_plan
        return self._plans.get(plan_key, self.default_plan)


def effective_limits(plan: Plan, profile: Profile) -> EffectiveLimits:
    """Combine plan defaults with the profile's overrides."""
    override_bytes = profile.upload_override_bytes
    max_upload_bytes = (
        override_bytes if override_bytes is not None and override_bytes > 0
        else plan.max_upload_bytes
    )

    render_limit = profile.monthly_render_limit
    max_monthly_renders = (
        render_limit if render_limit is not None and render_limit >= 0
        else plan.max_monthly_renders
    )

    return EffectiveLimits(
        plan_key=plan.key,
        name=plan.name,
        max_upload_bytes=max_upload_bytes,
        max_monthly_renders=max_monthly_renders,
        signed_url_ttl_seconds=plan.signed_url_ttl_seconds,
    )


def has_quota_remaining(limits: EffectiveLimits, current_count: int) -> bool:
    if limits.unbounded:
        return True
    return current_count < limits.max_monthly_renders

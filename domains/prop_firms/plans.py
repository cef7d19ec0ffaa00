"""
domains/prop_firms/plans.py

Plan tier policy for PropFlow.

Two independent policies hang off the plan tier:
- Selection capacity: how many prop firms may be tracked at once
- Feature gate: which tier unlocks a feature (custom firms are premium-only)

Plan Hierarchy: starter < standard < premium

Pure Python logic - no FastAPI imports, no database access, no Streamlit.
Both the backend (enforcement) and the frontend (UI guardrails) use it.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Union

from domains.prop_firms.models import PlanTier


class UnknownPlanError(ValueError):
    """Raised when a plan value is missing or not one of the known tiers."""
    pass


# ============================================================================
# Plan Hierarchy
# ============================================================================

PLAN_HIERARCHY: Dict[PlanTier, int] = {
    PlanTier.starter: 0,
    PlanTier.standard: 1,
    PlanTier.premium: 2,
}

# None means unbounded
SELECTION_CAPACITY: Dict[PlanTier, Optional[int]] = {
    PlanTier.starter: 1,
    PlanTier.standard: 3,
    PlanTier.premium: None,
}

# Feature name -> minimum tier
FEATURE_TIERS: Dict[str, PlanTier] = {
    "custom_firms": PlanTier.premium,
}


def parse_plan_tier(value: Union[PlanTier, str, None]) -> PlanTier:
    """
    Resolve a plan value to a PlanTier.

    There is no fallback tier. Callers must treat an unknown plan as a
    hard error rather than guessing capacity or feature access.

    Raises:
        UnknownPlanError: If value is None, empty, or not a known tier
    """
    if isinstance(value, PlanTier):
        return value
    if not value:
        raise UnknownPlanError("Plan is missing")
    try:
        return PlanTier(str(value).strip().lower())
    except ValueError:
        valid = [p.value for p in PlanTier]
        raise UnknownPlanError(f"Unknown plan {value!r}. Valid options: {valid}")


def plan_level(plan: Union[PlanTier, str]) -> int:
    return PLAN_HIERARCHY[parse_plan_tier(plan)]


def is_feature_available(required: Union[PlanTier, str], current: Union[PlanTier, str]) -> bool:
    """
    Check if the current plan meets the required plan level.

    Example:
        is_feature_available("premium", "standard") -> False
        is_feature_available("standard", "premium") -> True
    """
    return plan_level(current) >= plan_level(required)


def can_use_feature(plan: Union[PlanTier, str], feature_name: str) -> bool:
    """Check a named feature (see FEATURE_TIERS). Unknown features are denied."""
    required = FEATURE_TIERS.get(feature_name)
    if required is None:
        return False
    return is_feature_available(required, plan)


def selection_capacity(plan: Union[PlanTier, str]) -> Optional[int]:
    """Max number of selected prop firms for a plan, or None when unbounded."""
    return SELECTION_CAPACITY[parse_plan_tier(plan)]


def capacity_label(plan: Union[PlanTier, str]) -> str:
    capacity = selection_capacity(plan)
    return "∞" if capacity is None else str(capacity)


def upgrade_guidance(plan: Union[PlanTier, str]) -> str:
    """User-facing text shown when a selection is rejected at the plan limit."""
    tier = parse_plan_tier(plan)
    if tier == PlanTier.starter:
        return "Starter plan allows only 1 prop firm. Upgrade to Standard for up to 3 firms."
    if tier == PlanTier.standard:
        return "Standard plan allows up to 3 prop firms. Upgrade to Premium for unlimited firms."
    return "Premium plan has no prop firm limit."


# ============================================================================
# Plan Display Configuration
# ============================================================================

PLAN_CONFIG: Dict[PlanTier, Dict[str, Any]] = {
    PlanTier.starter: {
        "price_monthly": 5.0,
        "trial_days": 30,
        "summary": "1 prop firm (30 days, then $5/mo)",
        "features": [
            "Track 1 prop firm",
            "Transaction matching on firm names",
        ],
    },
    PlanTier.standard: {
        "price_monthly": 10.0,
        "trial_days": 0,
        "summary": "Up to 3 prop firms",
        "features": [
            "Track up to 3 prop firms",
            "Transaction matching on firm names",
        ],
    },
    PlanTier.premium: {
        "price_monthly": 20.0,
        "trial_days": 0,
        "summary": "Unlimited firms + custom firms",
        "features": [
            "Track unlimited prop firms",
            "Transaction matching on firm names",
            "Custom prop firms with your own match keyword",
        ],
    },
}


def get_plan_config(plan: Union[PlanTier, str]) -> Dict[str, Any]:
    """Return display config for a plan tier, including its capacity."""
    tier = parse_plan_tier(plan)
    config = dict(PLAN_CONFIG[tier])
    config["name"] = tier.value
    config["selection_capacity"] = selection_capacity(tier)
    config["capacity_label"] = capacity_label(tier)
    config["custom_firms_enabled"] = can_use_feature(tier, "custom_firms")
    return config

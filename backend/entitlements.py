"""
backend/entitlements.py

Server-side plan enforcement for prop firm commits.

The frontend applies the same plan rules for UX, but the backend never
trusts it: every committed list is checked here against the user's plan
and the previously stored list before it is persisted.

Rules:
- Stored firms cannot disappear (there is no remove operation)
- Stored firms (catalog and custom) keep their stored name/description/
  keyword; only the selection flag is taken from the client
- is_custom never changes after creation
- New custom firms require a plan with the custom_firms feature
- Newly selecting a firm must not push the selection over plan capacity.
  A list that is already over capacity (plan downgrade) may be kept or
  reduced.
"""

from __future__ import annotations

from typing import Dict, List, Sequence

from domains.prop_firms.models import PlanTier, PropFirm
from domains.prop_firms.plans import can_use_feature, selection_capacity, upgrade_guidance


class CommitValidationError(Exception):
    """Raised when a committed list is structurally invalid."""
    pass


class FeatureNotAllowedError(Exception):
    """Raised when a commit uses a feature not in the user's plan."""
    pass


class SelectionLimitError(Exception):
    """Raised when a commit selects more firms than the plan allows."""
    pass


def validate_commit(
    stored: Sequence[PropFirm],
    incoming: Sequence[PropFirm],
    plan: PlanTier,
) -> List[PropFirm]:
    """
    Check an incoming list against the stored one and the plan.

    Args:
        stored: Currently committed list for the user
        incoming: List the client wants to commit
        plan: User's current plan

    Returns:
        The list to persist (catalog fields restored from stored records)

    Raises:
        CommitValidationError: Structural problems (422)
        FeatureNotAllowedError: New custom firm below the required plan (402)
        SelectionLimitError: New selection over plan capacity (402)
    """
    stored_by_id: Dict[str, PropFirm] = {firm.id: firm for firm in stored}

    seen = set()
    for firm in incoming:
        if firm.id in seen:
            raise CommitValidationError(f"Duplicate prop firm id: {firm.id}")
        seen.add(firm.id)

    missing = [firm_id for firm_id in stored_by_id if firm_id not in seen]
    if missing:
        raise CommitValidationError(f"Prop firms cannot be removed: {', '.join(missing)}")

    result: List[PropFirm] = []
    new_custom = []
    for firm in incoming:
        previous = stored_by_id.get(firm.id)

        if previous is None:
            if not firm.is_custom:
                raise CommitValidationError(f"Unknown prop firm: {firm.id}")
            if not firm.name.strip() or not firm.match_keyword.strip():
                raise CommitValidationError("Custom prop firms need a name and a match keyword")
            new_custom.append(firm)
            result.append(firm)
            continue

        if previous.is_custom != firm.is_custom:
            raise CommitValidationError(f"is_custom cannot change for prop firm: {firm.id}")

        result.append(previous.model_copy(update={"is_selected": firm.is_selected}))

    if new_custom and not can_use_feature(plan, "custom_firms"):
        raise FeatureNotAllowedError(
            f"Adding custom prop firms is not available on the {plan.value} plan. Upgrade to Premium."
        )

    capacity = selection_capacity(plan)
    if capacity is not None:
        selected_count = sum(1 for firm in result if firm.is_selected)
        newly_selected = [
            firm.id for firm in result
            if firm.is_selected and not (firm.id in stored_by_id and stored_by_id[firm.id].is_selected)
        ]
        if newly_selected and selected_count > capacity:
            raise SelectionLimitError(
                f"Plan limit reached: {selected_count}/{capacity} prop firms. {upgrade_guidance(plan)}"
            )

    return result

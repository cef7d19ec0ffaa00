# frontend/prop_firm_settings.py
# Presentation helpers for the Prop Firms page.
#
# Everything here is plain Python (no streamlit import) so it can be unit
# tested: notices for manager outcomes, labels, the plan-limits banner,
# save button state and the summary table.

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd

from domains.prop_firms.models import PlanTier, PropFirm
from domains.prop_firms.plans import PLAN_CONFIG, capacity_label, parse_plan_tier
from domains.prop_firms.selection import (
    SelectionLifecycleManager,
    SelectionOutcome,
    SelectionResult,
)


@dataclass(frozen=True)
class Notice:
    title: str
    description: str
    variant: str = "success"  # success | info | warning | error


SAVE_ERROR_TEXT = "There was a problem saving your preferences. Please try again."


def notice_for(result: SelectionResult, action: str) -> Optional[Notice]:
    """
    Map a manager outcome to the notice shown to the user.

    Args:
        result: Outcome of toggle / add_custom_firm / save_preferences
        action: "toggle", "add_custom" or "save"

    Returns:
        Notice to display, or None when the outcome needs no message
        (a successful toggle just updates the checkbox)
    """
    outcome = result.outcome

    if outcome == SelectionOutcome.ok:
        if action == "add_custom":
            return Notice("Custom firm added", result.message)
        if action == "save":
            return Notice("Preferences saved", result.message)
        return None

    if outcome == SelectionOutcome.capacity_exceeded:
        return Notice("Plan limit reached", result.message, "error")
    if outcome == SelectionOutcome.validation_error:
        return Notice("Missing information", result.message, "error")
    if outcome == SelectionOutcome.plan_restricted:
        return Notice("Pro feature", result.message, "error")
    if outcome == SelectionOutcome.persistence_error:
        description = SAVE_ERROR_TEXT
        if result.message:
            description = f"{SAVE_ERROR_TEXT} ({result.message})"
        return Notice("Error saving preferences", description, "error")

    return Notice("Prop firm not found", result.message, "warning")


# ---------------------------------------------------------
# Wire format
# ---------------------------------------------------------
def parse_firms(payload: Iterable[Dict[str, Any]]) -> List[PropFirm]:
    return [PropFirm(**item) for item in payload]


def serialize_firms(firms: Iterable[PropFirm]) -> List[Dict[str, Any]]:
    return [firm.model_dump() for firm in firms]


# ---------------------------------------------------------
# Labels
# ---------------------------------------------------------
def firm_label(firm: PropFirm) -> str:
    return f"{firm.name} (Custom)" if firm.is_custom else firm.name


def selection_counter(manager: SelectionLifecycleManager, plan: PlanTier) -> str:
    """e.g. "1 / 3" or "5 / ∞"."""
    return f"{manager.selected_count()} / {capacity_label(plan)}"


def plan_limit_lines(plan: PlanTier) -> List[str]:
    """
    Plan-limits banner shown below premium. Empty on premium.
    """
    if parse_plan_tier(plan) == PlanTier.premium:
        return []
    return [f"{tier.value.title()}: {PLAN_CONFIG[tier]['summary']}" for tier in PlanTier]


def plan_limit_hint(plan: PlanTier) -> Optional[str]:
    tier = parse_plan_tier(plan)
    if tier == PlanTier.starter:
        return "Starter plan limited to 1 prop firm. $5/month after trial."
    if tier == PlanTier.standard:
        return "Standard plan limited to 3 prop firms."
    return None


def over_capacity_hint(manager: SelectionLifecycleManager, plan: PlanTier) -> Optional[str]:
    """Shown when a downgrade left more firms selected than the plan allows."""
    if not manager.is_over_capacity(plan):
        return None
    return (
        f"You have {manager.selected_count()} prop firms selected but your plan allows "
        f"{capacity_label(plan)}. Deselect firms to get back within your plan."
    )


def save_button_state(
    has_pending_changes: bool,
    saved_at: Optional[float],
    now: float,
    cooldown_seconds: float = 1.0,
) -> Tuple[str, bool]:
    """
    Label and disabled flag for the Save Preferences button.

    Returns:
        ("✓ Saved", True) during the cool-down after a save, otherwise
        ("Save Preferences", not has_pending_changes)
    """
    if saved_at is not None and now - saved_at < cooldown_seconds:
        return "✓ Saved", True
    return "Save Preferences", not has_pending_changes


def firms_dataframe(firms: Iterable[PropFirm]) -> pd.DataFrame:
    """Summary table of the committed list for the Prop Firms page."""
    rows = [
        {
            "Firm": firm.name,
            "Keyword": firm.match_keyword,
            "Custom": firm.is_custom,
            "Selected": firm.is_selected,
        }
        for firm in firms
    ]
    return pd.DataFrame(rows, columns=["Firm", "Keyword", "Custom", "Selected"])

"""
domains/prop_firms/selection.py

Selection lifecycle for tracked prop firms.

The manager keeps two copies of the user's firm list:
- committed: last saved, authoritative list
- pending: working copy edited by toggles and custom-firm additions

Pending is reconciled with save_preferences() or reverted with
discard_changes(). Plan capacity is checked at the toggle boundary against
the pending list, so several toggles in one session compound correctly.

Every operation reports a SelectionResult instead of raising. The manager
does not log, retry, or know about HTTP or Streamlit; persistence is an
injected commit callable.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from domains.prop_firms.models import PlanTier, PropFirm
from domains.prop_firms.plans import (
    can_use_feature,
    parse_plan_tier,
    selection_capacity,
    upgrade_guidance,
)


CommitFn = Callable[[List[PropFirm]], bool]
PlanLike = Union[PlanTier, str]

MAX_ID_ATTEMPTS = 10


class PersistenceFailure(Exception):
    """Raised by a commit collaborator when the write did not happen."""
    pass


class SelectionOutcome(str, Enum):
    ok = "ok"
    capacity_exceeded = "capacity_exceeded"
    validation_error = "validation_error"
    plan_restricted = "plan_restricted"
    persistence_error = "persistence_error"
    not_found = "not_found"


@dataclass(frozen=True)
class SelectionResult:
    outcome: SelectionOutcome
    message: str = ""
    firm: Optional[PropFirm] = None

    @property
    def ok(self) -> bool:
        return self.outcome == SelectionOutcome.ok


def _new_custom_id() -> str:
    return f"custom-{uuid.uuid4().hex[:12]}"


class SelectionLifecycleManager:
    """
    Pending/committed edit model for a user's prop firm selection.

    Args:
        committed: Last saved firm list (order is preserved)
        commit: Persistence collaborator; receives the full pending list and
            returns True on success. May raise PersistenceFailure.
            When None, saves are local only.
        id_factory: Generates ids for custom firms
    """

    def __init__(
        self,
        committed: Iterable[PropFirm],
        commit: Optional[CommitFn] = None,
        id_factory: Callable[[], str] = _new_custom_id,
    ) -> None:
        self._commit = commit
        self._id_factory = id_factory
        self._committed: Tuple[PropFirm, ...] = ()
        self._pending: List[PropFirm] = []
        self.reset(committed)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def pending_firms(self) -> Tuple[PropFirm, ...]:
        return tuple(self._pending)

    @property
    def committed_firms(self) -> Tuple[PropFirm, ...]:
        return self._committed

    def get_firm(self, firm_id: str) -> Optional[PropFirm]:
        index = self._index_of(firm_id)
        return None if index is None else self._pending[index]

    def selected_count(self) -> int:
        return sum(1 for firm in self._pending if firm.is_selected)

    def has_pending_changes(self) -> bool:
        """True iff pending differs from committed in membership or any selection flag."""
        return _selection_map(self._pending) != _selection_map(self._committed)

    def remaining_capacity(self, plan: PlanLike) -> Optional[int]:
        """Selections still allowed on this plan; None when unbounded."""
        capacity = selection_capacity(plan)
        if capacity is None:
            return None
        return max(capacity - self.selected_count(), 0)

    def is_at_capacity(self, plan: PlanLike) -> bool:
        capacity = selection_capacity(plan)
        return capacity is not None and self.selected_count() >= capacity

    def is_over_capacity(self, plan: PlanLike) -> bool:
        """Selected count exceeds the plan, e.g. after a downgrade."""
        capacity = selection_capacity(plan)
        return capacity is not None and self.selected_count() > capacity

    def can_select(self, firm_id: str, plan: PlanLike) -> bool:
        firm = self.get_firm(firm_id)
        if firm is None:
            return False
        return firm.is_selected or not self.is_at_capacity(plan)

    # ------------------------------------------------------------------
    # Mutations (pending only)
    # ------------------------------------------------------------------

    def toggle(self, firm_id: str, plan: PlanLike) -> SelectionResult:
        tier = parse_plan_tier(plan)
        index = self._index_of(firm_id)
        if index is None:
            return SelectionResult(SelectionOutcome.not_found, f"Unknown prop firm: {firm_id}")

        firm = self._pending[index]

        # Deselecting is always allowed, even when over capacity
        if not firm.is_selected and self.is_at_capacity(tier):
            return SelectionResult(
                SelectionOutcome.capacity_exceeded,
                upgrade_guidance(tier),
                firm,
            )

        toggled = firm.model_copy(update={"is_selected": not firm.is_selected})
        self._pending[index] = toggled
        return SelectionResult(SelectionOutcome.ok, firm=toggled)

    def add_custom_firm(self, name: str, match_keyword: str, plan: PlanLike) -> SelectionResult:
        tier = parse_plan_tier(plan)

        # Plan gate first: a lower tier is told to upgrade whatever it typed
        if not can_use_feature(tier, "custom_firms"):
            return SelectionResult(
                SelectionOutcome.plan_restricted,
                "Adding custom prop firms requires a Premium plan.",
            )

        name = (name or "").strip()
        match_keyword = (match_keyword or "").strip()
        if not name or not match_keyword:
            return SelectionResult(
                SelectionOutcome.validation_error,
                "Please provide both a firm name and a keyword to match in transactions.",
            )

        firm_id = self._new_firm_id()

        firm = PropFirm(
            id=firm_id,
            name=name,
            description=f'Custom firm matching "{match_keyword}"',
            is_selected=False,
            is_custom=True,
            match_keyword=match_keyword,
        )
        self._pending.append(firm)
        return SelectionResult(SelectionOutcome.ok, f'"{name}" has been added to your prop firms.', firm)

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def save_preferences(self) -> SelectionResult:
        """
        Commit the pending list.

        On failure both lists are left as they were, so unsaved edits survive
        and the caller can retry.
        """
        snapshot = tuple(self._pending)

        if self._commit is not None:
            try:
                saved = self._commit(list(snapshot))
            except PersistenceFailure as e:
                return SelectionResult(SelectionOutcome.persistence_error, str(e) or "Save failed")
            if not saved:
                return SelectionResult(SelectionOutcome.persistence_error, "Save failed")

        self._committed = snapshot
        return SelectionResult(SelectionOutcome.ok, "Your prop firm preferences have been updated.")

    def discard_changes(self) -> None:
        self._pending = list(self._committed)

    def reset(self, committed: Iterable[PropFirm]) -> None:
        """Replace both lists, e.g. after reloading from the server."""
        firms = tuple(committed)
        seen = set()
        for firm in firms:
            if firm.id in seen:
                raise ValueError(f"Duplicate prop firm id: {firm.id}")
            seen.add(firm.id)
        self._committed = firms
        self._pending = list(firms)

    def _new_firm_id(self) -> str:
        for _ in range(MAX_ID_ATTEMPTS):
            firm_id = self._id_factory()
            if self._index_of(firm_id) is None:
                return firm_id
        raise ValueError(f"No unused custom firm id after {MAX_ID_ATTEMPTS} attempts")

    def _index_of(self, firm_id: str) -> Optional[int]:
        for i, firm in enumerate(self._pending):
            if firm.id == firm_id:
                return i
        return None


def _selection_map(firms: Iterable[PropFirm]) -> Dict[str, bool]:
    return {firm.id: firm.is_selected for firm in firms}

"""
domains/prop_firms/test_selection.py

Tests for the pending/committed prop firm selection lifecycle.

Tests verify:
1. Toggles respect plan capacity against the pending list
2. Custom firms are premium-only and validated
3. Save commits exactly the pending snapshot (and nothing on failure)
4. Discard restores the committed list
5. has_pending_changes tracks membership and selection flags

Run:
    pytest domains/prop_firms/test_selection.py -v
"""

import itertools

import pytest

from domains.prop_firms.models import PlanTier, PropFirm
from domains.prop_firms.plans import UnknownPlanError
from domains.prop_firms.selection import (
    PersistenceFailure,
    SelectionLifecycleManager,
    SelectionOutcome,
)


# ============================================================================
# Fixtures
# ============================================================================

def make_firms(*ids, selected=()):
    return [
        PropFirm(id=i, name=i.upper(), match_keyword=i.upper(), is_selected=i in selected)
        for i in ids
    ]


@pytest.fixture
def firms():
    return make_firms("a", "b", "c", "d", "e")


@pytest.fixture
def manager(firms):
    return SelectionLifecycleManager(firms)


class RecordingCommit:
    """Commit collaborator that records what it was given."""

    def __init__(self, result=True, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def __call__(self, firms):
        self.calls.append(list(firms))
        if self.error:
            raise self.error
        return self.result


# ============================================================================
# Test: Toggle + capacity
# ============================================================================

def test_starter_scenario_second_select_rejected():
    """Starter: first select succeeds, second is rejected with no state change."""
    manager = SelectionLifecycleManager(make_firms("A", "B"))

    result = manager.toggle("A", PlanTier.starter)
    assert result.ok
    assert manager.get_firm("A").is_selected is True

    before = manager.pending_firms
    result = manager.toggle("B", PlanTier.starter)

    assert result.outcome == SelectionOutcome.capacity_exceeded
    assert "Upgrade to Standard" in result.message
    assert manager.pending_firms == before
    assert manager.get_firm("B").is_selected is False


@pytest.mark.parametrize("plan,capacity", [
    (PlanTier.starter, 1),
    (PlanTier.standard, 3),
])
def test_selected_count_never_exceeds_capacity(firms, plan, capacity):
    """Selecting every firm in turn stops exactly at the plan capacity."""
    manager = SelectionLifecycleManager(firms)

    outcomes = [manager.toggle(firm.id, plan).outcome for firm in firms]

    assert manager.selected_count() == capacity
    assert outcomes[:capacity] == [SelectionOutcome.ok] * capacity
    assert outcomes[capacity:] == [SelectionOutcome.capacity_exceeded] * (len(firms) - capacity)


def test_premium_is_unbounded(manager, firms):
    for firm in firms:
        assert manager.toggle(firm.id, PlanTier.premium).ok

    assert manager.selected_count() == len(firms)
    assert manager.remaining_capacity(PlanTier.premium) is None
    assert manager.is_at_capacity(PlanTier.premium) is False


def test_capacity_counts_pending_not_committed():
    """Toggles compound within one session without a save in between."""
    manager = SelectionLifecycleManager(make_firms("a", "b", "c", "d"))

    assert manager.toggle("a", "standard").ok
    assert manager.toggle("b", "standard").ok
    assert manager.toggle("c", "standard").ok
    assert manager.committed_firms == tuple(make_firms("a", "b", "c", "d"))

    assert manager.toggle("d", "standard").outcome == SelectionOutcome.capacity_exceeded


def test_toggle_twice_restores_flag(manager):
    original = manager.get_firm("b").is_selected

    manager.toggle("b", PlanTier.standard)
    manager.toggle("b", PlanTier.standard)

    assert manager.get_firm("b").is_selected == original
    assert manager.has_pending_changes() is False


def test_deselect_allowed_when_over_capacity():
    """A downgrade can leave the selection over capacity; deselecting still works."""
    manager = SelectionLifecycleManager(make_firms("a", "b", "c", selected=("a", "b", "c")))

    assert manager.is_over_capacity(PlanTier.starter) is True
    assert manager.toggle("a", PlanTier.starter).ok
    assert manager.selected_count() == 2

    # Still at/over capacity: re-selecting is refused
    assert manager.toggle("a", PlanTier.starter).outcome == SelectionOutcome.capacity_exceeded


def test_toggle_unknown_id(manager):
    before = manager.pending_firms

    result = manager.toggle("missing", PlanTier.premium)

    assert result.outcome == SelectionOutcome.not_found
    assert manager.pending_firms == before


def test_toggle_does_not_touch_committed(manager, firms):
    manager.toggle("a", PlanTier.premium)

    assert manager.committed_firms == tuple(firms)
    assert manager.get_firm("a").is_selected is True


def test_unknown_plan_is_hard_error(manager):
    with pytest.raises(UnknownPlanError):
        manager.toggle("a", "gold")

    with pytest.raises(UnknownPlanError):
        manager.add_custom_firm("X", "Y", None)


def test_can_select_and_remaining_capacity():
    manager = SelectionLifecycleManager(make_firms("a", "b", "c"))

    assert manager.remaining_capacity(PlanTier.standard) == 3
    manager.toggle("a", PlanTier.starter)

    assert manager.remaining_capacity(PlanTier.starter) == 0
    assert manager.remaining_capacity(PlanTier.standard) == 2
    assert manager.can_select("a", PlanTier.starter) is True   # already selected
    assert manager.can_select("b", PlanTier.starter) is False
    assert manager.can_select("b", PlanTier.standard) is True
    assert manager.can_select("missing", PlanTier.premium) is False


# ============================================================================
# Test: Custom firms
# ============================================================================

def test_premium_adds_custom_firm(manager):
    result = manager.add_custom_firm("Acme Capital", "ACMECAP", PlanTier.premium)

    assert result.ok
    firm = manager.pending_firms[-1]
    assert firm == result.firm
    assert firm.name == "Acme Capital"
    assert firm.match_keyword == "ACMECAP"
    assert firm.is_custom is True
    assert firm.is_selected is False
    assert firm.id.startswith("custom-")
    assert manager.has_pending_changes() is True
    assert len(manager.committed_firms) == 5


def test_custom_firm_inputs_are_trimmed(manager):
    result = manager.add_custom_firm("  Acme  ", "  ACME ", "premium")

    assert result.firm.name == "Acme"
    assert result.firm.match_keyword == "ACME"


@pytest.mark.parametrize("name,keyword", [
    ("X", "Y"),
    ("", ""),
    ("  ", "KEY"),
])
@pytest.mark.parametrize("plan", [PlanTier.starter, PlanTier.standard])
def test_custom_firm_plan_restricted(manager, plan, name, keyword):
    """Below premium the answer is always plan_restricted, whatever the input."""
    before = manager.pending_firms

    result = manager.add_custom_firm(name, keyword, plan)

    assert result.outcome == SelectionOutcome.plan_restricted
    assert manager.pending_firms == before


@pytest.mark.parametrize("name,keyword", [
    ("", "KEY"),
    ("Name", ""),
    ("   ", "KEY"),
    ("Name", "  "),
])
def test_custom_firm_validation(manager, name, keyword):
    before = manager.pending_firms

    result = manager.add_custom_firm(name, keyword, PlanTier.premium)

    assert result.outcome == SelectionOutcome.validation_error
    assert manager.pending_firms == before


def test_custom_firm_can_be_toggled_and_stays_custom(manager):
    firm = manager.add_custom_firm("Acme", "ACME", PlanTier.premium).firm

    manager.toggle(firm.id, PlanTier.premium)
    toggled = manager.get_firm(firm.id)

    assert toggled.is_selected is True
    assert toggled.is_custom is True


def test_custom_ids_are_unique():
    ids = itertools.chain(["custom-1", "custom-1", "custom-2"])
    manager = SelectionLifecycleManager([], id_factory=lambda: next(ids))

    first = manager.add_custom_firm("One", "ONE", PlanTier.premium).firm
    second = manager.add_custom_firm("Two", "TWO", PlanTier.premium).firm

    assert first.id == "custom-1"
    assert second.id == "custom-2"


def test_exhausted_id_factory_raises():
    manager = SelectionLifecycleManager([], id_factory=lambda: "custom-1")
    manager.add_custom_firm("One", "ONE", PlanTier.premium)

    with pytest.raises(ValueError):
        manager.add_custom_firm("Two", "TWO", PlanTier.premium)

    assert len(manager.pending_firms) == 1


# ============================================================================
# Test: Save / discard
# ============================================================================

def test_save_commits_pending_snapshot(firms):
    commit = RecordingCommit()
    manager = SelectionLifecycleManager(firms, commit=commit)
    manager.toggle("a", PlanTier.premium)
    manager.add_custom_firm("Acme", "ACME", PlanTier.premium)
    snapshot = manager.pending_firms

    result = manager.save_preferences()

    assert result.ok
    assert manager.committed_firms == snapshot
    assert commit.calls == [list(snapshot)]
    assert manager.has_pending_changes() is False


def test_save_then_discard_is_noop(manager):
    manager.toggle("c", PlanTier.premium)
    manager.save_preferences()
    saved = manager.pending_firms

    manager.discard_changes()

    assert manager.pending_firms == saved
    assert manager.has_pending_changes() is False


@pytest.mark.parametrize("commit", [
    RecordingCommit(result=False),
    RecordingCommit(error=PersistenceFailure("database is locked")),
])
def test_failed_save_keeps_both_lists(firms, commit):
    manager = SelectionLifecycleManager(firms, commit=commit)
    manager.toggle("a", PlanTier.premium)
    pending = manager.pending_firms

    result = manager.save_preferences()

    assert result.outcome == SelectionOutcome.persistence_error
    assert manager.pending_firms == pending
    assert manager.committed_firms == tuple(firms)
    assert manager.has_pending_changes() is True


def test_failed_save_can_be_retried(firms):
    commit = RecordingCommit(result=False)
    manager = SelectionLifecycleManager(firms, commit=commit)
    manager.toggle("b", PlanTier.premium)

    assert manager.save_preferences().outcome == SelectionOutcome.persistence_error

    commit.result = True
    assert manager.save_preferences().ok
    assert manager.get_firm("b").is_selected is True
    assert manager.has_pending_changes() is False


def test_discard_restores_committed(manager, firms):
    manager.toggle("a", PlanTier.premium)
    manager.toggle("b", PlanTier.premium)
    assert manager.has_pending_changes() is True

    manager.discard_changes()

    assert manager.pending_firms == tuple(firms)
    assert manager.has_pending_changes() is False


def test_discard_is_idempotent(manager):
    manager.toggle("a", PlanTier.premium)
    manager.add_custom_firm("Acme", "ACME", PlanTier.premium)

    manager.discard_changes()
    first = manager.pending_firms
    manager.discard_changes()

    assert manager.pending_firms == first


def test_discard_drops_unsaved_custom_firm(manager, firms):
    manager.add_custom_firm("Acme", "ACME", PlanTier.premium)

    manager.discard_changes()

    assert [f.id for f in manager.pending_firms] == [f.id for f in firms]


# ============================================================================
# Test: Dirty flag
# ============================================================================

def test_dirty_flag_tracks_selection_flags(manager):
    assert manager.has_pending_changes() is False

    manager.toggle("a", PlanTier.premium)
    assert manager.has_pending_changes() is True

    manager.toggle("a", PlanTier.premium)
    assert manager.has_pending_changes() is False


def test_dirty_flag_tracks_membership(manager):
    manager.add_custom_firm("Acme", "ACME", PlanTier.premium)

    assert manager.has_pending_changes() is True


def test_reset_replaces_both_lists(manager):
    manager.toggle("a", PlanTier.premium)
    fresh = make_firms("x", "y", selected=("y",))

    manager.reset(fresh)

    assert manager.pending_firms == tuple(fresh)
    assert manager.committed_firms == tuple(fresh)
    assert manager.has_pending_changes() is False


def test_duplicate_ids_rejected():
    with pytest.raises(ValueError):
        SelectionLifecycleManager(make_firms("a", "a"))

from datetime import datetime
from types import SimpleNamespace

import pytest

from app.services.lead_status import (
    Actor,
    InvalidTransition,
    LeadStatus,
    apply_transition,
    can_transition,
    is_forward,
    is_sequence_active,
    is_terminal,
    parse_status,
)


def make_lead(status="new"):
    return SimpleNamespace(id=1, status=status, contacted_at=None, replied_at=None, updated_at=None)


def test_parse_status_accepts_mixed_case():
    assert parse_status(" Demo_Booked ") is LeadStatus.DEMO_BOOKED


@pytest.mark.parametrize("value", ["booked", "", None, 3])
def test_parse_status_rejects_unknown_values(value):
    with pytest.raises(ValueError):
        parse_status(value)


def test_terminal_and_forward_helpers():
    assert is_terminal("won")
    assert is_terminal("lost")
    assert not is_terminal("demo_booked")
    assert is_forward("new", "warm")
    assert not is_forward("replied", "contacted")


def test_sequence_active_statuses():
    assert is_sequence_active("new")
    assert is_sequence_active("warm")
    assert not is_sequence_active("replied")
    assert not is_sequence_active("nonsense")


def test_manual_actor_may_move_anywhere():
    assert can_transition("won", "new", Actor.MANUAL)
    assert can_transition("new", "lost", Actor.MANUAL)


def test_automation_only_promotes_new_to_contacted():
    assert can_transition("new", "contacted", Actor.AUTOMATION)
    assert not can_transition("contacted", "warm", Actor.AUTOMATION)
    assert not can_transition("new", "won", Actor.AUTOMATION)


def test_apply_transition_stamps_contacted_once():
    lead = make_lead()
    first = datetime(2025, 3, 1, 9)
    assert apply_transition(lead, "contacted", Actor.AUTOMATION, first) is True
    assert lead.status == "contacted"
    assert lead.contacted_at == first

    apply_transition(lead, "new", Actor.MANUAL, datetime(2025, 3, 2))
    apply_transition(lead, "contacted", Actor.MANUAL, datetime(2025, 3, 3))
    assert lead.contacted_at == first


def test_apply_transition_stamps_replied():
    lead = make_lead("contacted")
    now = datetime(2025, 3, 4, 12)
    apply_transition(lead, LeadStatus.REPLIED, Actor.MANUAL, now)
    assert lead.replied_at == now


def test_apply_transition_same_status_is_noop():
    lead = make_lead("warm")
    assert apply_transition(lead, "warm") is False
    assert lead.updated_at is None


def test_automation_cannot_touch_terminal_leads():
    lead = make_lead("won")
    with pytest.raises(InvalidTransition):
        apply_transition(lead, "contacted", Actor.AUTOMATION)
    assert lead.status == "won"


def test_manual_actor_repairs_legacy_status():
    lead = make_lead("booked")
    assert apply_transition(lead, "demo_booked", Actor.MANUAL) is True
    assert lead.status == "demo_booked"


def test_automation_rejects_legacy_status():
    lead = make_lead("booked")
    with pytest.raises(InvalidTransition):
        apply_transition(lead, "contacted", Actor.AUTOMATION)

"""
Lead lifecycle.

Statuses move forward along a fixed lattice:

    new -> contacted -> warm -> replied -> demo_booked -> won | lost

Admins may set any status by hand (including moving a lead back out of
won/lost). Automation may only promote a lead from ``new`` to ``contacted``
on its first outbound message.
"""
from datetime import datetime
from enum import Enum
from typing import Optional


class LeadStatus(str, Enum):
    NEW = "new"
    CONTACTED = "contacted"
    WARM = "warm"
    REPLIED = "replied"
    DEMO_BOOKED = "demo_booked"
    WON = "won"
    LOST = "lost"


class Actor(str, Enum):
    MANUAL = "manual"
    AUTOMATION = "automation"


LIFECYCLE_ORDER = [
    LeadStatus.NEW,
    LeadStatus.CONTACTED,
    LeadStatus.WARM,
    LeadStatus.REPLIED,
    LeadStatus.DEMO_BOOKED,
    LeadStatus.WON,
    LeadStatus.LOST,
]

TERMINAL_STATUSES = frozenset({LeadStatus.WON, LeadStatus.LOST})

# Leads in these statuses keep receiving automated drip messages
SEQUENCE_ACTIVE_STATUSES = frozenset({LeadStatus.NEW, LeadStatus.CONTACTED, LeadStatus.WARM})

TRANSITIONS = {
    Actor.AUTOMATION: {
        LeadStatus.NEW: frozenset({LeadStatus.CONTACTED}),
    },
    Actor.MANUAL: {status: frozenset(LIFECYCLE_ORDER) for status in LIFECYCLE_ORDER},
}


class InvalidTransition(ValueError):
    pass


def parse_status(value) -> LeadStatus:
    """Map a raw API value onto LeadStatus; unknown strings are rejected."""
    if isinstance(value, LeadStatus):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Invalid status: {value!r}")
    try:
        return LeadStatus(value.strip().lower())
    except ValueError:
        allowed = ", ".join(s.value for s in LIFECYCLE_ORDER)
        raise ValueError(f"Invalid status '{value}'. Must be one of: {allowed}") from None


def is_terminal(status) -> bool:
    return parse_status(status) in TERMINAL_STATUSES


def is_forward(current, target) -> bool:
    return LIFECYCLE_ORDER.index(parse_status(target)) > LIFECYCLE_ORDER.index(parse_status(current))


def can_transition(current, target, actor: Actor = Actor.MANUAL) -> bool:
    try:
        current_status = parse_status(current)
        target_status = parse_status(target)
    except ValueError:
        return False
    return target_status in TRANSITIONS[actor].get(current_status, frozenset())


def is_sequence_active(status) -> bool:
    try:
        return parse_status(status) in SEQUENCE_ACTIVE_STATUSES
    except ValueError:
        return False


def apply_transition(lead, target, actor: Actor = Actor.MANUAL, now: Optional[datetime] = None) -> bool:
    """
    Moves ``lead`` to ``target`` and stamps lifecycle timestamps.

    Returns False when the lead is already in ``target`` (nothing to do) and
    raises InvalidTransition when ``actor`` may not perform the move.
    """
    target_status = parse_status(target)
    now = now or datetime.utcnow()

    try:
        current_status = parse_status(lead.status)
    except ValueError:
        # Legacy rows written before statuses were validated
        if actor is not Actor.MANUAL:
            raise InvalidTransition(f"Lead {lead.id} has unknown status '{lead.status}'")
        current_status = None

    if current_status == target_status:
        return False

    if current_status is not None and not can_transition(current_status, target_status, actor):
        raise InvalidTransition(
            f"{actor.value} cannot move lead {lead.id} from {current_status.value} to {target_status.value}"
        )

    lead.status = target_status.value
    if target_status == LeadStatus.CONTACTED and lead.contacted_at is None:
        lead.contacted_at = now
    if target_status == LeadStatus.REPLIED and lead.replied_at is None:
        lead.replied_at = now
    lead.updated_at = now
    return True

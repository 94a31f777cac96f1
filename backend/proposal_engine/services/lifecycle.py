"""
Proposal lifecycle state machine.

WHAT: The single place that decides which status changes are legal.

WHY: Status used to be written from many call sites, each with its own
idea of what was allowed. Every change now goes through transition(),
which validates (current status, trigger) against one table and rejects
anything else with InvalidTransitionError, leaving the status untouched.

HOW:
    draft/sent/viewed/on_hold --SEND-------> sent
    sent                      --VIEW-------> viewed   (recipient, first open only)
    sent/viewed/on_hold       --SIGN-------> accepted
    sent/viewed/on_hold       --DECLINE----> declined
    draft/sent/viewed/on_hold --EXPIRE-----> expired  (applied lazily on read)
    draft/sent/viewed/on_hold --SET_STATUS-> any user-settable status

accepted, declined and expired are terminal.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple

from proposal_engine.core.exceptions import InvalidTransitionError
from proposal_engine.models.proposal import ProposalStatus


class Trigger(str, Enum):
    """Events that move a proposal between statuses."""

    SEND = "send"
    VIEW = "view"
    SIGN = "sign"
    DECLINE = "decline"
    EXPIRE = "expire"
    SET_STATUS = "set_status"


EDITABLE_STATUSES: FrozenSet[ProposalStatus] = frozenset(
    {
        ProposalStatus.DRAFT,
        ProposalStatus.SENT,
        ProposalStatus.VIEWED,
        ProposalStatus.ON_HOLD,
    }
)
TERMINAL_STATUSES: FrozenSet[ProposalStatus] = frozenset(
    {
        ProposalStatus.ACCEPTED,
        ProposalStatus.DECLINED,
        ProposalStatus.EXPIRED,
    }
)
SIGNABLE_STATUSES: FrozenSet[ProposalStatus] = frozenset(
    {
        ProposalStatus.SENT,
        ProposalStatus.VIEWED,
        ProposalStatus.ON_HOLD,
    }
)
# viewed and expired are only ever set by the system
USER_SETTABLE_STATUSES: FrozenSet[ProposalStatus] = frozenset(
    {
        ProposalStatus.DRAFT,
        ProposalStatus.SENT,
        ProposalStatus.ON_HOLD,
        ProposalStatus.ACCEPTED,
        ProposalStatus.DECLINED,
    }
)

# trigger -> (allowed source statuses, fixed target or None when caller-chosen)
TRANSITIONS: Dict[Trigger, Tuple[FrozenSet[ProposalStatus], Optional[ProposalStatus]]] = {
    Trigger.SEND: (EDITABLE_STATUSES, ProposalStatus.SENT),
    Trigger.VIEW: (frozenset({ProposalStatus.SENT}), ProposalStatus.VIEWED),
    Trigger.SIGN: (SIGNABLE_STATUSES, ProposalStatus.ACCEPTED),
    Trigger.DECLINE: (SIGNABLE_STATUSES, ProposalStatus.DECLINED),
    Trigger.EXPIRE: (EDITABLE_STATUSES, ProposalStatus.EXPIRED),
    Trigger.SET_STATUS: (EDITABLE_STATUSES, None),
}

MILESTONE_FIELDS: Dict[ProposalStatus, str] = {
    ProposalStatus.SENT: "sent_at",
    ProposalStatus.VIEWED: "viewed_at",
    ProposalStatus.ACCEPTED: "accepted_at",
    ProposalStatus.DECLINED: "declined_at",
}


def is_terminal(status: ProposalStatus) -> bool:
    return ProposalStatus(status) in TERMINAL_STATUSES


def is_editable(status: ProposalStatus) -> bool:
    """Content (title, sections, items, terms, pricing) may change only in these statuses."""
    return ProposalStatus(status) in EDITABLE_STATUSES


def can_sign(status: ProposalStatus, require_signature: bool, has_signature: bool) -> bool:
    return (
        bool(require_signature)
        and not has_signature
        and ProposalStatus(status) in SIGNABLE_STATUSES
    )


def is_past_expiration(expiration_date: Optional[date], today: Optional[date] = None) -> bool:
    """
    Whether a proposal with this expiration date has lapsed.

    The expiration date marks the moment the offer stops being valid, so a
    proposal expiring today is already expired.
    """
    if expiration_date is None:
        return False
    return expiration_date <= (today or date.today())


def allowed_sources(trigger: Trigger) -> FrozenSet[ProposalStatus]:
    """Statuses from which `trigger` may fire."""
    return TRANSITIONS[Trigger(trigger)][0]


def transition(
    current: ProposalStatus,
    trigger: Trigger,
    target: Optional[ProposalStatus] = None,
) -> ProposalStatus:
    """
    Validate a status change and return the resulting status.

    Args:
        current: Current proposal status
        trigger: Event causing the change
        target: Requested status (SET_STATUS only)

    Returns:
        The new status

    Raises:
        InvalidTransitionError: If the trigger is not allowed from `current`
            or the requested target is not user-settable
    """
    current = ProposalStatus(current)
    trigger = Trigger(trigger)
    sources, fixed_target = TRANSITIONS[trigger]

    if current not in sources:
        raise InvalidTransitionError(
            message=f"Cannot {trigger.value.replace('_', ' ')} a proposal that is {current.value}",
            current_status=current.value,
            trigger=trigger.value,
        )

    if fixed_target is not None:
        return fixed_target

    if target is None or ProposalStatus(target) not in USER_SETTABLE_STATUSES:
        raise InvalidTransitionError(
            message=f"Status '{getattr(target, 'value', target)}' cannot be set directly",
            current_status=current.value,
            requested_status=getattr(target, "value", target),
        )
    return ProposalStatus(target)


def milestone_values(
    proposal: Any,
    new_status: ProposalStatus,
    now: Optional[datetime] = None,
) -> Dict[str, datetime]:
    """
    Milestone timestamp to write alongside a move to `new_status`.

    Milestones are set only the first time their status is reached;
    earlier milestones are kept as history.

    Returns:
        {field: timestamp}, empty when there is nothing to set
    """
    field = MILESTONE_FIELDS.get(ProposalStatus(new_status))
    if field is None or getattr(proposal, field, None) is not None:
        return {}
    return {field: now or datetime.utcnow()}

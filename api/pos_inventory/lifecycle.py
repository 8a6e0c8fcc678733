# pos_inventory/lifecycle.py
"""
Inventory unit lifecycle.

A unit's status column and the status of its latest return record are two
fields describing one lifecycle. ``LifecycleState`` holds both, and
``transition`` is the only place either of them is allowed to change:

    available <-> reserved
    available | reserved --sell--> sold --release--> available
    sold --request_return--> sold + pending return
    sold + pending --resolve_restock--> available + restocked
    sold + pending --resolve_trash--> defective + trashed
    sold + pending --resolve_return_to_supplier--> defective + returned_to_supplier
    sold (no pending) --direct_restock--> available + restocked
    sold (no pending) --direct_defective--> defective + trashed

``defective`` has no outgoing transitions, so a unit sent back to the supplier
never becomes sellable again.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, FrozenSet, NamedTuple
import enum

from pos_inventory.db_models import InventoryUnitStatus as S, ReturnStatus as R
from pos_inventory.errors import ValidationError


class LifecycleEvent(str, enum.Enum):
    reserve = "reserve"
    unreserve = "unreserve"
    sell = "sell"
    release = "release"
    request_return = "request_return"
    resolve_restock = "resolve_restock"
    resolve_trash = "resolve_trash"
    resolve_return_to_supplier = "resolve_return_to_supplier"
    direct_restock = "direct_restock"
    direct_defective = "direct_defective"


@dataclass(frozen=True)
class LifecycleState:
    unit_status: S
    # status of the unit's most recent return record, if any
    return_status: Optional[R] = None

    @property
    def return_pending(self) -> bool:
        return self.return_status == R.pending


class _Rule(NamedTuple):
    sources: FrozenSet[S]
    # True: pending return required, False: forbidden, None: don't care
    pending: Optional[bool]
    target: S
    # None keeps the current return status
    return_target: Optional[R]
    message: str


_RULES: dict[LifecycleEvent, _Rule] = {
    LifecycleEvent.reserve: _Rule(
        frozenset({S.available}), False, S.reserved, None,
        "Only available units can be reserved",
    ),
    LifecycleEvent.unreserve: _Rule(
        frozenset({S.reserved}), None, S.available, None,
        "Only reserved units can be released from a reservation",
    ),
    LifecycleEvent.sell: _Rule(
        frozenset({S.available, S.reserved}), False, S.sold, None,
        "Inventory unit is not available for sale",
    ),
    LifecycleEvent.release: _Rule(
        frozenset({S.sold}), False, S.available, None,
        "Only sold units without a pending return can be released",
    ),
    LifecycleEvent.request_return: _Rule(
        frozenset({S.sold}), False, S.sold, R.pending,
        "Only sold units can be returned",
    ),
    LifecycleEvent.resolve_restock: _Rule(
        frozenset({S.sold}), True, S.available, R.restocked,
        "Return is not pending",
    ),
    LifecycleEvent.resolve_trash: _Rule(
        frozenset({S.sold}), True, S.defective, R.trashed,
        "Return is not pending",
    ),
    LifecycleEvent.resolve_return_to_supplier: _Rule(
        frozenset({S.sold}), True, S.defective, R.returned_to_supplier,
        "Return is not pending",
    ),
    LifecycleEvent.direct_restock: _Rule(
        frozenset({S.sold}), False, S.available, R.restocked,
        "Only sold units can be returned",
    ),
    LifecycleEvent.direct_defective: _Rule(
        frozenset({S.sold}), False, S.defective, R.trashed,
        "Only sold units can be returned",
    ),
}


def can_apply(state: LifecycleState, event: LifecycleEvent) -> bool:
    rule = _RULES[event]
    if state.unit_status not in rule.sources:
        return False
    if rule.pending is True and not state.return_pending:
        return False
    if rule.pending is False and state.return_pending:
        return False
    return True


def can_sell(state: LifecycleState) -> bool:
    return can_apply(state, LifecycleEvent.sell)


def can_request_return(state: LifecycleState) -> bool:
    return can_apply(state, LifecycleEvent.request_return)


def can_resolve(state: LifecycleState) -> bool:
    return can_apply(state, LifecycleEvent.resolve_restock)


def transition(state: LifecycleState, event: LifecycleEvent, unit_id: Optional[int] = None) -> LifecycleState:
    """Return the state after ``event`` or raise ValidationError if the move is not allowed."""
    rule = _RULES[event]
    if not can_apply(state, event):
        where = f" (unit {unit_id}, status {state.unit_status.value})" if unit_id is not None else ""
        if state.unit_status in rule.sources and rule.pending is False and state.return_pending:
            raise ValidationError(f"A return is already pending for this unit{where}")
        raise ValidationError(f"{rule.message}{where}")
    return LifecycleState(
        unit_status=rule.target,
        return_status=rule.return_target if rule.return_target is not None else state.return_status,
    )

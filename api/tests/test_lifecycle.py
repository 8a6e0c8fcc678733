"""
Unit lifecycle transitions: status column and latest return record move together.
"""
import pytest

from pos_inventory.db_models import InventoryUnitStatus as S, ReturnStatus as R
from pos_inventory.errors import ValidationError
from pos_inventory.lifecycle import (
    LifecycleEvent as E, LifecycleState, can_request_return, can_resolve, can_sell, transition,
)


class TestSelling:

    def test_available_and_reserved_units_can_be_sold(self):
        assert transition(LifecycleState(S.available), E.sell).unit_status == S.sold
        assert transition(LifecycleState(S.reserved), E.sell).unit_status == S.sold

    def test_sold_unit_cannot_be_sold_again(self):
        with pytest.raises(ValidationError, match="not available for sale"):
            transition(LifecycleState(S.sold), E.sell, unit_id=7)

    def test_defective_unit_is_never_sellable(self):
        assert not can_sell(LifecycleState(S.defective, R.returned_to_supplier))
        assert not can_sell(LifecycleState(S.defective, R.trashed))

    def test_release_puts_unit_back(self):
        assert transition(LifecycleState(S.sold), E.release).unit_status == S.available

    def test_release_refused_while_return_pending(self):
        with pytest.raises(ValidationError, match="already pending"):
            transition(LifecycleState(S.sold, R.pending), E.release)

    def test_reserve_round_trip(self):
        reserved = transition(LifecycleState(S.available), E.reserve)
        assert reserved.unit_status == S.reserved
        assert transition(reserved, E.unreserve).unit_status == S.available


class TestReturns:

    def test_request_return_keeps_unit_sold(self):
        state = transition(LifecycleState(S.sold), E.request_return)
        assert state == LifecycleState(S.sold, R.pending)
        assert state.return_pending

    def test_second_request_is_refused(self):
        state = LifecycleState(S.sold, R.pending)
        assert not can_request_return(state)
        with pytest.raises(ValidationError, match="A return is already pending"):
            transition(state, E.request_return, unit_id=3)

    def test_only_sold_units_can_be_returned(self):
        with pytest.raises(ValidationError, match="Only sold units can be returned"):
            transition(LifecycleState(S.available), E.request_return)

    def test_returned_again_after_earlier_resolution(self):
        # a restocked unit that was sold again can come back again
        assert can_request_return(LifecycleState(S.sold, R.restocked))

    @pytest.mark.parametrize("event, unit_status, return_status", [
        (E.resolve_restock, S.available, R.restocked),
        (E.resolve_trash, S.defective, R.trashed),
        (E.resolve_return_to_supplier, S.defective, R.returned_to_supplier),
    ])
    def test_resolutions(self, event, unit_status, return_status):
        state = transition(LifecycleState(S.sold, R.pending), event)
        assert state == LifecycleState(unit_status, return_status)

    def test_resolution_requires_pending_return(self):
        assert not can_resolve(LifecycleState(S.sold))
        with pytest.raises(ValidationError, match="Return is not pending"):
            transition(LifecycleState(S.sold), E.resolve_trash)

    def test_direct_outcomes(self):
        assert transition(LifecycleState(S.sold), E.direct_restock) == LifecycleState(S.available, R.restocked)
        assert transition(LifecycleState(S.sold), E.direct_defective) == LifecycleState(S.defective, R.trashed)

    def test_error_message_names_unit(self):
        with pytest.raises(ValidationError) as exc:
            transition(LifecycleState(S.available), E.resolve_restock, unit_id=42)
        assert "unit 42" in exc.value.message

"""Tests for the transition and authorization tables."""

import pytest

from errors import AuthorizationError, TradeStateConflict
from models.trade_models import Trade, TradeStatus
from services.transitions import TRANSITIONS, TradeAction, TradeRole, authorize, role_of


@pytest.fixture
def trade():
    return Trade(
        id="65b000000000000000000001",
        proposer_id="p",
        receiver_id="r",
        offered_book_id="b1",
        requested_book_id="b2",
    )


class TestAuthorize:

    @pytest.mark.parametrize(
        "status,action,role,expected",
        [
            (TradeStatus.PROPOSED, TradeAction.ACCEPT, TradeRole.RECEIVER, TradeStatus.ACCEPTED),
            (TradeStatus.PROPOSED, TradeAction.DECLINE, TradeRole.RECEIVER, TradeStatus.DECLINED),
            (TradeStatus.PROPOSED, TradeAction.CANCEL, TradeRole.PROPOSER, TradeStatus.CANCELLED),
            (TradeStatus.ACCEPTED, TradeAction.CANCEL, TradeRole.RECEIVER, TradeStatus.CANCELLED),
            (TradeStatus.ACCEPTED, TradeAction.CONFIRM, TradeRole.PROPOSER, TradeStatus.ACCEPTED),
            (TradeStatus.ACCEPTED, TradeAction.COMPLETE, TradeRole.RECEIVER, TradeStatus.COMPLETED),
            (TradeStatus.PROPOSED, TradeAction.EXPIRE, TradeRole.SYSTEM, TradeStatus.CANCELLED),
        ],
    )
    def test_allowed_edges(self, status, action, role, expected):
        assert authorize(status, action, role) == expected

    def test_proposer_cannot_accept_in_any_state(self):
        for status in TradeStatus:
            with pytest.raises(AuthorizationError):
                authorize(status, TradeAction.ACCEPT, TradeRole.PROPOSER)

    def test_parties_cannot_expire(self):
        with pytest.raises(AuthorizationError):
            authorize(TradeStatus.PROPOSED, TradeAction.EXPIRE, TradeRole.PROPOSER)

    @pytest.mark.parametrize(
        "status", [TradeStatus.DECLINED, TradeStatus.CANCELLED, TradeStatus.COMPLETED]
    )
    def test_terminal_statuses_have_no_outgoing_edges(self, status):
        for action in TradeAction:
            assert (status, action) not in TRANSITIONS

    def test_missing_edge_is_a_conflict(self):
        with pytest.raises(TradeStateConflict):
            authorize(TradeStatus.ACCEPTED, TradeAction.ACCEPT, TradeRole.RECEIVER)
        with pytest.raises(TradeStateConflict):
            authorize(TradeStatus.PROPOSED, TradeAction.COMPLETE, TradeRole.PROPOSER)


class TestRoleOf:

    def test_roles(self, trade):
        assert role_of(trade, "p") == TradeRole.PROPOSER
        assert role_of(trade, "r") == TradeRole.RECEIVER

    def test_outsider_is_rejected(self, trade):
        with pytest.raises(AuthorizationError):
            role_of(trade, "someone-else")

"""Trade lifecycle tables.

Every status change the engine performs is looked up here first; nothing else
decides which edges exist or who may walk them.
"""
from enum import Enum
from typing import Dict, FrozenSet, Tuple

from errors import AuthorizationError, TradeStateConflict
from models.trade_models import Trade, TradeStatus


class TradeAction(str, Enum):
    ACCEPT = "accept"
    DECLINE = "decline"
    CANCEL = "cancel"
    CONFIRM = "confirm"
    COMPLETE = "complete"
    INVALIDATE = "invalidate"
    EXPIRE = "expire"


class TradeRole(str, Enum):
    PROPOSER = "proposer"
    RECEIVER = "receiver"
    SYSTEM = "system"


PARTIES = frozenset({TradeRole.PROPOSER, TradeRole.RECEIVER})
SYSTEM = frozenset({TradeRole.SYSTEM})

# (from status, action) -> (to status, roles allowed to perform it)
TRANSITIONS: Dict[Tuple[TradeStatus, TradeAction], Tuple[TradeStatus, FrozenSet[TradeRole]]] = {
    (TradeStatus.PROPOSED, TradeAction.ACCEPT): (TradeStatus.ACCEPTED, frozenset({TradeRole.RECEIVER})),
    (TradeStatus.PROPOSED, TradeAction.DECLINE): (TradeStatus.DECLINED, frozenset({TradeRole.RECEIVER})),
    (TradeStatus.PROPOSED, TradeAction.CANCEL): (TradeStatus.CANCELLED, PARTIES),
    (TradeStatus.ACCEPTED, TradeAction.CANCEL): (TradeStatus.CANCELLED, PARTIES),
    (TradeStatus.ACCEPTED, TradeAction.CONFIRM): (TradeStatus.ACCEPTED, PARTIES),
    (TradeStatus.ACCEPTED, TradeAction.COMPLETE): (TradeStatus.COMPLETED, PARTIES),
    (TradeStatus.PROPOSED, TradeAction.INVALIDATE): (TradeStatus.CANCELLED, SYSTEM),
    (TradeStatus.PROPOSED, TradeAction.EXPIRE): (TradeStatus.CANCELLED, SYSTEM),
}


def _roles_for_action() -> Dict[TradeAction, FrozenSet[TradeRole]]:
    roles: Dict[TradeAction, FrozenSet[TradeRole]] = {action: frozenset() for action in TradeAction}
    for (_, action), (_, allowed) in TRANSITIONS.items():
        roles[action] = roles[action] | allowed
    return roles


ACTION_ROLES = _roles_for_action()


def role_of(trade: Trade, actor_id: str) -> TradeRole:
    if actor_id == trade.proposer_id:
        return TradeRole.PROPOSER
    if actor_id == trade.receiver_id:
        return TradeRole.RECEIVER
    raise AuthorizationError(f"User {actor_id} is not a party to trade {trade.id}")


def authorize(status: TradeStatus, action: TradeAction, role: TradeRole) -> TradeStatus:
    """Check ``role`` may perform ``action`` from ``status`` and return the target status.

    Roles that can never perform the action are rejected before the status is
    considered, so a proposer answering their own proposal is an authorization
    failure whatever state the trade is in.
    """
    if role not in ACTION_ROLES[action]:
        raise AuthorizationError(f"A {role.value} cannot {action.value} a trade")

    edge = TRANSITIONS.get((status, action))
    if edge is None:
        raise TradeStateConflict(f"Cannot {action.value} a trade with status \"{status.value}\"")

    target, allowed = edge
    if role not in allowed:
        raise AuthorizationError(f"A {role.value} cannot {action.value} a {status.value} trade")
    return target

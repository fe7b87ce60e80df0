"""
Offer and Order status machines.

The CRUD layer creates records as ``pending`` (or moves them to ``activation``,
``deactivation`` or ``completion`` when a follow-up transaction is sent); the
reconciler is the only writer of the terminal states below. Stored values keep
the camelCase spelling used by the rest of the platform.
"""
from enum import Enum
from typing import Dict, FrozenSet, Union

from errors import InvalidStatusTransition


class OfferStatus(str, Enum):
    PENDING = 'pending'
    SUCCESS = 'success'              # the offer has been created / (de)activated
    FAILURE = 'failure'              # the offer creation failed
    ACTIVATION = 'activation'        # being activated
    ACTIVATION_FAILURE = 'activationFailure'
    DEACTIVATION = 'deactivation'    # being deactivated
    DEACTIVATION_FAILURE = 'deactivationFailure'


class OrderStatus(str, Enum):
    PENDING = 'pending'
    SUCCESS = 'success'              # deposit confirmed on chain
    FAILURE = 'failure'              # order creation failed
    COMPLETION = 'completion'        # payment transaction sent
    COMPLETE = 'complete'            # fully completed and paid for
    COMPLETION_FAILURE = 'completionFailure'


OFFER_TRANSITIONS: Dict[OfferStatus, FrozenSet[OfferStatus]] = {
    OfferStatus.PENDING: frozenset({OfferStatus.SUCCESS, OfferStatus.FAILURE}),
    OfferStatus.ACTIVATION: frozenset({OfferStatus.SUCCESS, OfferStatus.ACTIVATION_FAILURE}),
    OfferStatus.DEACTIVATION: frozenset({OfferStatus.SUCCESS, OfferStatus.DEACTIVATION_FAILURE}),
}

ORDER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.SUCCESS, OrderStatus.FAILURE}),
    OrderStatus.COMPLETION: frozenset({OrderStatus.COMPLETE, OrderStatus.COMPLETION_FAILURE}),
}


def _coerce(enum_cls, entity: str, value, current, target):
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidStatusTransition(entity, current, target) from None


def _transition(enum_cls, table, entity, current, target):
    cur = _coerce(enum_cls, entity, current, current, target)
    tgt = _coerce(enum_cls, entity, target, current, target)
    if tgt not in table.get(cur, frozenset()):
        raise InvalidStatusTransition(entity, cur.value, tgt.value)
    return tgt


def offer_transition(current: Union[str, OfferStatus], target: Union[str, OfferStatus]) -> OfferStatus:
    """Validate an offer status change and return the target state."""
    return _transition(OfferStatus, OFFER_TRANSITIONS, 'offer', current, target)


def order_transition(current: Union[str, OrderStatus], target: Union[str, OrderStatus]) -> OrderStatus:
    """Validate an order status change and return the target state."""
    return _transition(OrderStatus, ORDER_TRANSITIONS, 'order', current, target)

"""
Tests for the offer/order status machines.
"""
import pytest

from errors import InvalidStatusTransition
from statuses import OfferStatus, OrderStatus, offer_transition, order_transition


class TestOfferTransitions:
    @pytest.mark.parametrize("current,target", [
        ('pending', 'success'),
        ('pending', 'failure'),
        ('activation', 'success'),
        ('activation', 'activationFailure'),
        ('deactivation', 'success'),
        ('deactivation', 'deactivationFailure'),
    ])
    def test_allowed(self, current, target):
        assert offer_transition(current, target) == OfferStatus(target)

    @pytest.mark.parametrize("current,target", [
        ('success', 'failure'),
        ('failure', 'success'),
        ('pending', 'activationFailure'),
        ('activation', 'deactivationFailure'),
        ('deactivation', 'failure'),
    ])
    def test_refused(self, current, target):
        with pytest.raises(InvalidStatusTransition):
            offer_transition(current, target)

    def test_unknown_status(self):
        with pytest.raises(InvalidStatusTransition) as exc_info:
            offer_transition('paused', 'success')
        assert exc_info.value.entity == 'offer'

    def test_accepts_enum_members(self):
        assert offer_transition(OfferStatus.PENDING, OfferStatus.SUCCESS) is OfferStatus.SUCCESS

    def test_stored_values_are_camel_case(self):
        assert OfferStatus.ACTIVATION_FAILURE.value == 'activationFailure'
        assert OfferStatus.DEACTIVATION_FAILURE.value == 'deactivationFailure'


class TestOrderTransitions:
    @pytest.mark.parametrize("current,target", [
        ('pending', 'success'),
        ('pending', 'failure'),
        ('completion', 'complete'),
        ('completion', 'completionFailure'),
    ])
    def test_allowed(self, current, target):
        assert order_transition(current, target) == OrderStatus(target)

    @pytest.mark.parametrize("current,target", [
        ('success', 'complete'),
        ('complete', 'completionFailure'),
        ('pending', 'complete'),
        (None, 'success'),
    ])
    def test_refused(self, current, target):
        with pytest.raises(InvalidStatusTransition):
            order_transition(current, target)

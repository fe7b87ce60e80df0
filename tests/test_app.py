"""
Tests for the HTTP trigger layer: authentication, routing, response shape.
"""
from unittest.mock import Mock, patch

import pytest
import requests

import app as app_module
from auth import introspect_token
from errors import AuthError

from chain_stubs import hex32, new_offer_log, receipt

AUTH = {'Authorization': 'Bearer good-token'}

ROUTES = [
    ('/update-offers-onchain/update-offer-user', 'update_offers', True),
    ('/update-offers-onchain/update-offer-all', 'update_offers', False),
    ('/update-offers-onchain/update-offer-activation-user', 'update_offer_activations', True),
    ('/update-offers-onchain/update-offer-activation-all', 'update_offer_activations', False),
    ('/update-orders-onchain/update-order-user', 'update_orders', True),
    ('/update-orders-onchain/update-order-all', 'update_orders', False),
    ('/update-orders-onchain/update-order-completion-user', 'update_order_completions', True),
    ('/update-orders-onchain/update-order-completion-all', 'update_order_completions', False),
    ('/update-orders-onchain/update-order-completion-seller', 'update_order_completions_for_seller', True),
]


@pytest.fixture
def client():
    app_module.app.config['TESTING'] = True
    with app_module.app.test_client() as client:
        yield client


@pytest.fixture
def logged_in():
    with patch('auth.introspect_token', return_value='user-1') as introspect:
        yield introspect


@pytest.fixture
def fake_reconciler():
    reconciler = Mock()
    with patch('app.get_reconciler', return_value=reconciler):
        yield reconciler


class TestAuthentication:
    def test_no_credentials(self, client):
        resp = client.put('/update-offers-onchain/update-offer-all')

        assert resp.status_code == 403
        assert resp.get_json() == {'message': 'No credentials sent'}

    def test_wrong_scheme(self, client):
        resp = client.put('/update-offers-onchain/update-offer-all', headers={'Authorization': 'Basic abc'})

        assert resp.status_code == 403
        assert resp.get_json() == {'message': 'Wrong authentication method'}

    def test_rejected_token(self, client):
        with patch('auth.introspect_token', side_effect=AuthError('Invalid token')):
            resp = client.put('/update-offers-onchain/update-offer-all', headers=AUTH)

        assert resp.status_code == 401
        assert resp.get_json() == {'message': 'Invalid token'}

    def test_token_is_passed_to_introspection(self, client, logged_in, fake_reconciler):
        with patch('recipes.update_offers', return_value=[]):
            client.put('/update-offers-onchain/update-offer-all', headers=AUTH)

        logged_in.assert_called_once_with('good-token')

    def test_get_is_not_allowed(self, client):
        assert client.get('/update-offers-onchain/update-offer-all', headers=AUTH).status_code == 405


class TestRoutes:
    @pytest.mark.parametrize("path,operation,scoped", ROUTES)
    def test_route_dispatch(self, client, logged_in, fake_reconciler, path, operation, scoped):
        with patch(f'recipes.{operation}', return_value=[{'_id': 'r1', 'status': 'pending'}]) as op:
            resp = client.put(path, headers=AUTH)

        assert resp.status_code == 200
        assert resp.get_json() == [{'_id': 'r1', 'status': 'pending'}]
        if scoped:
            op.assert_called_once_with(fake_reconciler, 'user-1')
        else:
            op.assert_called_once_with(fake_reconciler)

    def test_empty_result_is_an_empty_list(self, client, logged_in, fake_reconciler):
        with patch('recipes.update_orders', return_value=[]):
            resp = client.put('/update-orders-onchain/update-order-all', headers=AUTH)

        assert resp.status_code == 200
        assert resp.get_json() == []

    def test_non_json_ids_are_stringified(self, client, logged_in, fake_reconciler):
        class ObjectId:
            def __str__(self):
                return '64b7f0c2e13e5a0012345678'

        with patch('recipes.update_orders', return_value=[{'_id': ObjectId(), 'status': 'pending'}]):
            resp = client.put('/update-orders-onchain/update-order-all', headers=AUTH)

        assert resp.get_json() == [{'_id': '64b7f0c2e13e5a0012345678', 'status': 'pending'}]


class TestEndToEnd:
    def test_offer_user_endpoint_updates_store(self, client, logged_in, reconciler, web3_factory, add_chain):
        add_chain('97', ['https://rpc-a'])
        offers = reconciler.db.get_collection('offers')
        offers.insert_many([
            {'_id': 'mine', 'userId': 'user-1', 'status': 'pending', 'hash': '0x' + '01' * 32, 'exchangeChainId': '97'},
            {'_id': 'other', 'userId': 'user-2', 'status': 'pending', 'hash': '0x' + '02' * 32, 'exchangeChainId': '97'},
        ])
        web3_factory.script['https://rpc-a'] = receipt(new_offer_log('offer-1'))

        with patch('app.get_reconciler', return_value=reconciler):
            resp = client.put('/update-offers-onchain/update-offer-user', headers=AUTH)

        assert resp.status_code == 200
        assert [r['_id'] for r in resp.get_json()] == ['mine']
        assert offers.find_one({'_id': 'mine'})['offerId'] == hex32('offer-1')
        assert offers.find_one({'_id': 'other'})['status'] == 'pending'


class TestInspection:
    def test_rpc_stats_without_traffic(self, client):
        resp = client.get('/api/rpc_stats')

        assert resp.status_code == 200
        assert resp.get_json()['status'] == 'no_data'

    def test_rpc_stats_after_lookups(self, client, reconciler, web3_factory):
        web3_factory.script['https://rpc-a'] = receipt()
        reconciler.rpc.get_receipt(['https://rpc-a'], '0x' + '01' * 32)

        data = client.get('/api/rpc_stats').get_json()

        assert data['status'] == 'success'
        assert data['total_requests'] == 1
        assert data['active_provider'] == 'https://rpc-a'

    def test_abis(self, client, reconciler):
        with patch('app.get_reconciler', return_value=reconciler):
            data = client.get('/api/abis').get_json()

        assert data['contracts']['pool']['available'] is True


class TestIntrospection:
    def _response(self, status, payload):
        resp = Mock()
        resp.status_code = status
        resp.json.return_value = payload
        return resp

    def test_returns_subject(self):
        with patch('auth.requests.post', return_value=self._response(200, {'sub': 'user-9'})) as post:
            assert introspect_token('tok') == 'user-9'
        assert post.call_args.kwargs['json'] == {'token': 'tok'}
        assert post.call_args.kwargs['headers']['Authorization'] == 'Bearer tok'

    def test_inactive_token(self):
        with patch('auth.requests.post', return_value=self._response(200, {'active': False, 'sub': 'u'})):
            with pytest.raises(AuthError):
                introspect_token('tok')

    def test_error_status_uses_service_message(self):
        with patch('auth.requests.post', return_value=self._response(403, {'message': 'expired'})):
            with pytest.raises(AuthError) as exc_info:
                introspect_token('tok')
        assert str(exc_info.value) == 'expired'
        assert exc_info.value.status == 401

    def test_service_unreachable(self):
        with patch('auth.requests.post', side_effect=requests.exceptions.ConnectionError('down')):
            with pytest.raises(AuthError):
                introspect_token('tok')

    def test_non_json_body(self):
        resp = self._response(200, None)
        resp.json.side_effect = ValueError('not json')
        with patch('auth.requests.post', return_value=resp):
            with pytest.raises(AuthError):
                introspect_token('tok')

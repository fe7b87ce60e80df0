"""
Tests for ordered RPC failover receipt lookup.

Endpoints are asked strictly in order; the first receipt wins and no later
endpoint is contacted. An exhausted list is NOT_FOUND when every endpoint
answered and INDETERMINATE when at least one of them failed.
"""
from unittest.mock import Mock

import pytest
from requests.exceptions import ConnectionError, Timeout
from web3.exceptions import TransactionNotFound

from web3_utils import LookupOutcome, RpcFailoverClient, get_rpc_stats, receipt_field

from chain_stubs import ScriptedWeb3Factory, receipt

A, B, C, D = 'https://rpc-a', 'https://rpc-b', 'https://rpc-c', 'https://rpc-d'
TX = '0x' + '01' * 32


def _client(factory):
    return RpcFailoverClient(timeout=2, web3_factory=factory)


class TestOrderedFailover:
    """First success wins, endpoints are never raced."""

    def test_first_endpoint_answers(self):
        rec = receipt()
        factory = ScriptedWeb3Factory({A: rec})

        lookup = _client(factory).get_receipt([A, B], TX)

        assert lookup.outcome == LookupOutcome.FOUND
        assert lookup.receipt is rec
        assert lookup.endpoint == A
        assert factory.urls_called() == [A]

    def test_error_then_missing_then_found_stops_at_third(self):
        """A throws, B has nothing, C has the receipt: D is never contacted."""
        rec = receipt()
        factory = ScriptedWeb3Factory({A: ConnectionError('refused'), B: None, C: rec, D: receipt()})

        lookup = _client(factory).get_receipt([A, B, C, D], TX)

        assert lookup.found
        assert lookup.receipt is rec
        assert lookup.endpoint == C
        assert lookup.attempts == 3
        assert factory.urls_called() == [A, B, C]
        assert A in lookup.errors

    def test_transaction_not_found_moves_on(self):
        rec = receipt()
        factory = ScriptedWeb3Factory({A: TransactionNotFound('unknown tx'), B: rec})

        lookup = _client(factory).get_receipt([A, B], TX)

        assert lookup.found
        assert lookup.endpoint == B
        assert lookup.errors == {}

    def test_reverted_receipt_is_authoritative(self):
        reverted = receipt(status=0)
        factory = ScriptedWeb3Factory({A: reverted, B: receipt()})

        lookup = _client(factory).get_receipt([A, B], TX)

        assert lookup.receipt is reverted
        assert factory.urls_called() == [A]

    def test_endpoint_order_is_respected(self):
        factory = ScriptedWeb3Factory({C: receipt()})

        _client(factory).get_receipt([C, B, A], TX)

        assert factory.urls_called() == [C]


class TestExhaustedEndpoints:
    """What an empty-handed pass reports."""

    def test_all_answer_without_receipt_is_not_found(self):
        factory = ScriptedWeb3Factory({A: None, B: TransactionNotFound('nope')})

        lookup = _client(factory).get_receipt([A, B], TX)

        assert lookup.outcome == LookupOutcome.NOT_FOUND
        assert lookup.receipt is None
        assert lookup.attempts == 2

    def test_any_error_makes_it_indeterminate(self):
        factory = ScriptedWeb3Factory({A: Timeout('slow'), B: None})

        lookup = _client(factory).get_receipt([A, B], TX)

        assert lookup.outcome == LookupOutcome.INDETERMINATE
        assert not lookup.found
        assert set(lookup.errors) == {A}

    def test_every_endpoint_failing(self):
        factory = ScriptedWeb3Factory({A: Timeout('slow'), B: ValueError('bad json')})

        lookup = _client(factory).get_receipt([A, B], TX)

        assert lookup.outcome == LookupOutcome.INDETERMINATE
        assert set(lookup.errors) == {A, B}

    def test_empty_endpoint_list(self):
        lookup = _client(ScriptedWeb3Factory()).get_receipt([], TX)

        assert lookup.outcome == LookupOutcome.NOT_FOUND
        assert lookup.attempts == 0

    @pytest.mark.parametrize("tx_hash", [None, ""])
    def test_missing_hash_skips_the_network(self, tx_hash):
        factory = ScriptedWeb3Factory({A: receipt()})

        lookup = _client(factory).get_receipt([A], tx_hash)

        assert lookup.outcome == LookupOutcome.NOT_FOUND
        assert factory.calls == []


class TestProviderConstruction:
    """Timeouts are applied per endpoint."""

    def test_default_factory_applies_timeout(self):
        client = RpcFailoverClient(timeout=7)

        w3 = client.connect(A)

        assert w3.provider.endpoint_uri == A
        assert dict(w3.provider.get_request_kwargs())['timeout'] == 7

    def test_factory_exception_counts_as_endpoint_error(self):
        def factory(url):
            if url == A:
                raise RuntimeError('cannot build provider')
            w3 = Mock()
            w3.eth.get_transaction_receipt.return_value = receipt()
            return w3

        lookup = _client(factory).get_receipt([A, B], TX)

        assert lookup.found
        assert lookup.endpoint == B
        assert A in lookup.errors


class TestRpcStats:
    """Global per-endpoint counters exposed on /api/rpc_stats."""

    def test_success_and_errors_are_counted(self):
        factory = ScriptedWeb3Factory({A: ConnectionError('down'), B: receipt()})

        _client(factory).get_receipt([A, B], TX)
        stats = get_rpc_stats()

        by_url = {s['url']: s for s in stats['stats']}
        assert by_url[A]['errors'] == 1
        assert by_url[B]['success'] == 1
        assert stats['total_requests'] == 2
        assert stats['active_provider'] == B


class TestReceiptField:
    def test_reads_dicts_and_objects(self):
        assert receipt_field({'status': 1}, 'status') == 1
        assert receipt_field(Mock(spec=['status'], status=0), 'status') == 0
        assert receipt_field(None, 'status', 'x') == 'x'

"""
Pytest configuration and fixtures for the reconciler tests.
"""
import pytest

from abi_registry import AbiRegistry
from config import COLLECTION_BLOCKCHAINS
from document_store import Database
from reconciler import BatchReconciler
from web3_utils import RpcFailoverClient, reset_rpc_stats

from chain_stubs import ALL_ABIS, ScriptedWeb3Factory


@pytest.fixture(autouse=True)
def clean_rpc_stats():
    """RPC statistics are process-global; start every test from zero."""
    reset_rpc_stats()
    yield
    reset_rpc_stats()


@pytest.fixture
def db(tmp_path):
    return Database(str(tmp_path), 'test-db')


@pytest.fixture
def abis():
    return AbiRegistry.from_abis(ALL_ABIS)


@pytest.fixture
def web3_factory():
    return ScriptedWeb3Factory()


@pytest.fixture
def reconciler(db, abis, web3_factory):
    rpc = RpcFailoverClient(timeout=3, web3_factory=web3_factory)
    return BatchReconciler(db, abis, rpc, max_workers=4)


@pytest.fixture
def add_chain(db):
    """Register a blockchain document: add_chain('97', ['https://rpc-a'], pool=...)."""
    def _add(chain_id, rpc, pool=None):
        doc = {'chainId': chain_id, 'rpc': list(rpc)}
        if pool:
            doc['usefulAddresses'] = {'grtPoolAddress': pool}
        db.get_collection(COLLECTION_BLOCKCHAINS).insert_one(doc)
        return doc
    return _add

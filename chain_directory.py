"""Resolve a logical chain id to its blockchain document and RPC endpoints."""
import logging
from typing import Any, Dict, List, Optional

from config import POOL_ADDRESS_KEY
from errors import ChainNotConfigured

logger = logging.getLogger(__name__)


def _chain_id_candidates(chain_id) -> List[Any]:
    """Stored chain ids may be strings or integers; match either form."""
    text = str(chain_id).strip()
    candidates = [chain_id, text]
    if text.isdigit():
        candidates.append(int(text))
    return list(dict.fromkeys(candidates))


def find_blockchain(blockchains, chain_id) -> Dict[str, Any]:
    """Return the blockchain document for ``chain_id`` (string or integer form)."""
    if chain_id is None or chain_id == '':
        raise ChainNotConfigured(chain_id, "record has no chain id")
    doc = blockchains.find_one({'chainId': {'$in': _chain_id_candidates(chain_id)}})
    if doc is None:
        raise ChainNotConfigured(chain_id)
    return doc


def endpoints_of(blockchain: Dict[str, Any]) -> List[str]:
    """Ordered RPC endpoint list of a blockchain document, preference first."""
    rpc = blockchain.get('rpc') or []
    if isinstance(rpc, str):
        rpc = [rpc]
    urls = [u for u in rpc if isinstance(u, str) and u.strip()]
    if not urls:
        raise ChainNotConfigured(blockchain.get('chainId'), "no RPC endpoint configured")
    return urls


def resolve_endpoints(blockchains, chain_id) -> List[str]:
    return endpoints_of(find_blockchain(blockchains, chain_id))


def pool_address(blockchain: Dict[str, Any]) -> Optional[str]:
    """Pool contract address recorded on the blockchain document, if any."""
    useful = blockchain.get('usefulAddresses') or {}
    return useful.get(POOL_ADDRESS_KEY) or None

"""
On-chain Reconciler - Web3 Connection Utilities
Transaction receipt lookup with ordered RPC endpoint failover
"""
from web3 import Web3
from web3.exceptions import TransactionNotFound
from typing import Any, Callable, Dict, List, Optional, Sequence
from dataclasses import dataclass, field
from collections import defaultdict, deque
from enum import Enum
import logging
import threading
import time

from config import RPC_TIMEOUT_SECS

logger = logging.getLogger(__name__)

# Global RPC tracking (shared across all reconciliation calls)
_stats_lock = threading.Lock()
_rpc_call_success = defaultdict(int)
_rpc_call_errors = defaultdict(int)
_rpc_response_times = defaultdict(lambda: deque(maxlen=100))
_current_provider_url = None


def track_rpc_success(provider_url: str, response_time: float):
    """Track successful RPC call"""
    global _current_provider_url
    with _stats_lock:
        _rpc_call_success[provider_url] += 1
        _rpc_response_times[provider_url].append(response_time)
        _current_provider_url = provider_url


def track_rpc_error(provider_url: str):
    """Track failed RPC call"""
    with _stats_lock:
        _rpc_call_errors[provider_url] += 1


def reset_rpc_stats():
    global _current_provider_url
    with _stats_lock:
        _rpc_call_success.clear()
        _rpc_call_errors.clear()
        _rpc_response_times.clear()
        _current_provider_url = None


def get_rpc_stats() -> Dict:
    """Get global RPC statistics for every endpoint used so far"""
    with _stats_lock:
        urls = set(_rpc_call_success) | set(_rpc_call_errors)
        stats = []
        for url in urls:
            success = _rpc_call_success[url]
            errors = _rpc_call_errors[url]
            total = success + errors
            times = _rpc_response_times.get(url) or ()

            success_rate = (success / total * 100) if total > 0 else 0
            avg_response_time = sum(times) / len(times) if times else 0

            stats.append({
                'url': url,
                'provider': url.split('/')[2] if url.count('/') >= 2 else url[:30],
                'success': success,
                'errors': errors,
                'total': total,
                'success_rate': success_rate,
                'avg_response_time': avg_response_time
            })

        total_success = sum(_rpc_call_success.values())
        total_errors = sum(_rpc_call_errors.values())
        active = _current_provider_url

    # Sort by total requests (descending), then by success rate (descending)
    stats.sort(key=lambda x: (-x['total'], -x['success_rate'], x['avg_response_time']))

    return {
        'stats': stats,
        'total_requests': total_success + total_errors,
        'total_success': total_success,
        'total_errors': total_errors,
        'active_provider': active
    }


class LookupOutcome(str, Enum):
    FOUND = 'found'
    NOT_FOUND = 'not_found'          # every endpoint answered, none has a receipt
    INDETERMINATE = 'indeterminate'  # at least one endpoint failed, none has a receipt


@dataclass
class ReceiptLookup:
    """Result of one failover pass over an endpoint list."""

    outcome: LookupOutcome
    receipt: Optional[Any] = None
    endpoint: Optional[str] = None
    attempts: int = 0
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def found(self) -> bool:
        return self.outcome == LookupOutcome.FOUND


class RpcFailoverClient:
    """Sequential, first-success receipt lookup across an ordered endpoint list.

    Endpoints are never raced: index 0 is asked first, then 1, and so on, so for
    a given run the first healthy responder wins deterministically. A receipt
    from any endpoint is authoritative (even a reverted one); an endpoint that
    throws or has not seen the transaction yet just hands over to the next one.
    """

    def __init__(self, timeout: int = RPC_TIMEOUT_SECS,
                 web3_factory: Optional[Callable[[str], Any]] = None):
        self.timeout = timeout
        self._web3_factory = web3_factory or self._default_web3

    def _default_web3(self, url: str) -> Web3:
        return Web3(Web3.HTTPProvider(url, request_kwargs={"timeout": self.timeout}))

    def connect(self, url: str):
        """Provider bound to ``url`` (used for follow-up contract reads)."""
        return self._web3_factory(url)

    def get_receipt(self, endpoints: Sequence[str], tx_hash: str) -> ReceiptLookup:
        if not tx_hash:
            logger.debug("No transaction hash given, nothing to look up")
            return ReceiptLookup(LookupOutcome.NOT_FOUND)

        errors: Dict[str, str] = {}
        attempts = 0
        for url in endpoints:
            attempts += 1
            start_time = time.time()
            try:
                w3 = self._web3_factory(url)
                receipt = w3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                receipt = None
            except Exception as exc:
                track_rpc_error(url)
                errors[url] = str(exc)[:200]
                logger.warning("Receipt lookup for %s failed on %s: %s", tx_hash, url, str(exc)[:200])
                continue

            track_rpc_success(url, time.time() - start_time)
            if receipt is None:
                logger.debug("Receipt for %s not available on %s yet", tx_hash, url)
                continue

            logger.debug("Receipt for %s found on %s (attempt %s)", tx_hash, url, attempts)
            return ReceiptLookup(LookupOutcome.FOUND, receipt, url, attempts, errors)

        outcome = LookupOutcome.INDETERMINATE if errors else LookupOutcome.NOT_FOUND
        logger.info(
            "No receipt for %s after %s endpoint(s) (%s)", tx_hash, attempts, outcome.value
        )
        return ReceiptLookup(outcome, None, None, attempts, errors)


def receipt_field(receipt, name: str, default=None):
    """Read a receipt attribute whether it is an AttributeDict, dict or object."""
    if receipt is None:
        return default
    if hasattr(receipt, 'get'):
        return receipt.get(name, default)
    return getattr(receipt, name, default)

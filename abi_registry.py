"""
Contract interface registry.

Downloads the JSON ABIs of the pool, token and liquidity-wallet contracts once
per process and hands out event decoders by logical name. A source that cannot
be fetched stays ``None``; dependent resolutions treat that as "cannot resolve"
instead of failing the whole batch.
"""
import logging
import threading
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

import requests
from eth_utils import event_abi_to_log_topic, to_bytes
from web3 import Web3
from web3._utils.events import get_event_data
from web3.exceptions import LogTopicError, MismatchedABI

from config import ABI_FETCH_TIMEOUT_SECS, ABI_SOURCES
from errors import LogDecodeError

logger = logging.getLogger(__name__)

# Shared ABI codec (no provider needed for decoding)
_CODEC = Web3().codec

_LOG_DEFAULTS = {
    'logIndex': 0,
    'transactionIndex': 0,
    'transactionHash': None,
    'address': None,
    'blockHash': None,
    'blockNumber': None,
}


def _as_bytes(value) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return to_bytes(hexstr=value)
    raise TypeError(f"cannot convert {type(value).__name__} to bytes")


def extract_abi(document: Any) -> Optional[List[Dict[str, Any]]]:
    """Accept a bare ABI list or a build artifact carrying an ``abi`` key."""
    if isinstance(document, list):
        return document
    if isinstance(document, dict) and isinstance(document.get('abi'), list):
        return document['abi']
    return None


class EventDecoder:
    """Decode raw receipt logs against the events of one contract ABI."""

    def __init__(self, abi: List[Dict[str, Any]]):
        self.abi = abi
        self._events: Dict[bytes, Dict[str, Any]] = {}
        for entry in abi:
            if entry.get('type') != 'event' or entry.get('anonymous'):
                continue
            event_abi = dict(entry)
            event_abi.setdefault('anonymous', False)
            event_abi.setdefault('inputs', [])
            self._events[bytes(event_abi_to_log_topic(event_abi))] = event_abi

    @property
    def event_names(self) -> List[str]:
        return sorted(e['name'] for e in self._events.values())

    def decode(self, log) -> Optional[Mapping[str, Any]]:
        """Return the decoded event (``event``, ``args``, ...) or None.

        None means the log belongs to no event of this ABI. A log that carries a
        known event topic but cannot be decoded raises LogDecodeError.
        """
        try:
            topics = [_as_bytes(t) for t in (log.get('topics') or [])]
        except (TypeError, ValueError) as exc:
            logger.debug("Skipping log with malformed topics: %s", exc)
            return None
        if not topics:
            return None
        event_abi = self._events.get(topics[0])
        if event_abi is None:
            return None

        entry = dict(_LOG_DEFAULTS)
        entry.update(dict(log))
        entry['topics'] = topics
        entry['data'] = _as_bytes(log.get('data') or b'')
        try:
            return get_event_data(_CODEC, event_abi, entry)
        except (MismatchedABI, LogTopicError) as exc:
            # Same signature, different indexed layout: not our event
            logger.debug("Log does not fit %s: %s", event_abi['name'], exc)
            return None
        except Exception as exc:
            raise LogDecodeError(event_abi['name'], exc) from exc


class AbiRegistry:
    """Explicitly constructed, read-mostly cache of contract ABIs.

    ``load()`` fetches every source; afterwards the registry exposes an
    immutable snapshot. ``refresh_missing()`` retries only the sources that
    failed earlier and is meant to be called once per reconciliation pass.
    """

    def __init__(self, sources: Optional[Mapping[str, str]] = None,
                 timeout: int = ABI_FETCH_TIMEOUT_SECS,
                 session: Optional[requests.Session] = None):
        self.sources = dict(ABI_SOURCES if sources is None else sources)
        self.timeout = timeout
        self._session = session
        self._lock = threading.Lock()
        self._abis: Mapping[str, Optional[List[Dict[str, Any]]]] = MappingProxyType({})
        self._decoders: Mapping[str, Optional[EventDecoder]] = MappingProxyType({})
        self.loaded = False

    @classmethod
    def from_abis(cls, abis: Mapping[str, Optional[List[Dict[str, Any]]]]) -> "AbiRegistry":
        """Build an already-loaded registry from in-memory ABIs."""
        registry = cls(sources={name: '' for name in abis})
        registry._publish(dict(abis))
        return registry

    def _fetch(self, name: str, url: str) -> Optional[List[Dict[str, Any]]]:
        getter = self._session.get if self._session is not None else requests.get
        try:
            resp = getter(url, timeout=self.timeout)
            resp.raise_for_status()
            abi = extract_abi(resp.json())
        except (requests.exceptions.RequestException, ValueError) as exc:
            logger.warning("Failed to fetch ABI %s from %s: %s", name, url, exc)
            return None
        if abi is None:
            logger.warning("ABI document for %s at %s has no ABI list", name, url)
        return abi

    def _publish(self, abis: Dict[str, Optional[List[Dict[str, Any]]]]) -> None:
        abis = dict(abis)
        decoders = {}
        for name, abi in abis.items():
            if abi is None:
                decoders[name] = None
                continue
            try:
                decoders[name] = EventDecoder(abi)
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                logger.warning("ABI %s is malformed, treating it as missing: %s", name, exc)
                abis[name] = None
                decoders[name] = None
        self._abis = MappingProxyType(abis)
        self._decoders = MappingProxyType(decoders)
        self.loaded = True

    def load(self) -> "AbiRegistry":
        with self._lock:
            abis = {name: self._fetch(name, url) for name, url in self.sources.items()}
            self._publish(abis)
        missing = self.missing()
        if missing:
            logger.warning("ABI registry loaded with missing entries: %s", ", ".join(missing))
        else:
            logger.info("ABI registry loaded (%s contracts)", len(abis))
        return self

    def refresh_missing(self) -> List[str]:
        """Load on first use, otherwise retry failed sources. Returns names still missing."""
        if not self.loaded:
            self.load()
            return self.missing()
        if not self.missing():
            return []
        with self._lock:
            abis = dict(self._abis)
            for name in [n for n, a in abis.items() if a is None]:
                url = self.sources.get(name)
                if url:
                    abis[name] = self._fetch(name, url)
            self._publish(abis)
        return self.missing()

    def missing(self) -> List[str]:
        return sorted(n for n, a in self._abis.items() if a is None)

    def abi(self, name: str) -> Optional[List[Dict[str, Any]]]:
        return self._abis.get(name)

    def decoder(self, name: str) -> Optional[EventDecoder]:
        return self._decoders.get(name)

    def status(self) -> Dict[str, Any]:
        return {
            'loaded': self.loaded,
            'contracts': {
                name: {
                    'available': self._decoders.get(name) is not None,
                    'events': self._decoders[name].event_names if self._decoders.get(name) else [],
                }
                for name in self.sources
            },
        }

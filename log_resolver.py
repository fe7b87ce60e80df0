"""
Event log resolution: turn a transaction receipt into a business outcome.

A reverted receipt (status 0) is a failure whatever its logs say. Otherwise the
first log decoding to the expected event wins and the requested argument is
extracted from it. Reverts and missing events both end in the failure status,
but stay distinguishable here for logging and tests.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional
import logging

from web3 import Web3

from errors import LogDecodeError
from web3_utils import receipt_field

logger = logging.getLogger(__name__)


class ResolutionOutcome(str, Enum):
    RESOLVED = 'resolved'
    REVERTED = 'reverted'
    EVENT_MISSING = 'event_missing'
    NO_DECODER = 'no_decoder'


@dataclass(frozen=True)
class LogResolution:
    outcome: ResolutionOutcome
    value: Any = None
    log: Optional[Mapping[str, Any]] = None

    @property
    def found(self) -> bool:
        return self.outcome == ResolutionOutcome.RESOLVED

    @property
    def reverted(self) -> bool:
        return self.outcome == ResolutionOutcome.REVERTED

    @property
    def definitive(self) -> bool:
        """True when the outcome may be written back as a terminal status."""
        return self.outcome != ResolutionOutcome.NO_DECODER


def normalize_value(value):
    """Render decoded ABI values the way they are stored on records."""
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_hex(bytes(value))
    return value


def is_reverted(receipt) -> bool:
    status = receipt_field(receipt, 'status')
    if isinstance(status, str):
        status = int(status, 16) if status.startswith('0x') else int(status)
    return status == 0


def resolve_event(receipt, decoder, event_name: str, arg_name: Optional[str] = None) -> LogResolution:
    """Locate ``event_name`` in the receipt logs and extract ``arg_name``.

    With ``arg_name=None`` the event's presence alone resolves the receipt.
    Raises LogDecodeError when no log resolves but one carrying the event's
    topic could not be decoded.
    """
    if is_reverted(receipt):
        return LogResolution(ResolutionOutcome.REVERTED)
    if decoder is None:
        return LogResolution(ResolutionOutcome.NO_DECODER)

    decode_error = None
    for log in receipt_field(receipt, 'logs') or []:
        try:
            decoded = decoder.decode(log)
        except LogDecodeError as exc:
            if exc.event_name == event_name and decode_error is None:
                decode_error = exc
            continue
        if decoded is None or decoded['event'] != event_name:
            continue
        if arg_name is None:
            return LogResolution(ResolutionOutcome.RESOLVED, None, decoded)
        args = decoded['args']
        if arg_name not in args:
            logger.warning("%s log has no argument %s", event_name, arg_name)
            continue
        return LogResolution(ResolutionOutcome.RESOLVED, normalize_value(args[arg_name]), decoded)

    # An undecodable candidate is not proof of absence
    if decode_error is not None:
        raise decode_error
    return LogResolution(ResolutionOutcome.EVENT_MISSING)

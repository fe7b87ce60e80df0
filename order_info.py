# Read an order's terms back from the pool contract
from decimal import Decimal
from typing import Any, Dict, List

from web3 import Web3

from log_resolver import normalize_value


def format_ether(wei) -> str:
    """Render a wei amount as an ether string with at least one decimal ("1.0")."""
    value = Web3.from_wei(int(wei), 'ether')
    text = format(Decimal(value).normalize(), 'f')
    if '.' not in text:
        text += '.0'
    return text


def get_order_information(w3, pool_address: str, pool_abi: List[Dict[str, Any]], order_id) -> Dict[str, str]:
    """Fetch deposit/offer terms of ``order_id`` from the pool contract."""
    contract = w3.eth.contract(address=Web3.to_checksum_address(pool_address), abi=pool_abi)
    fns = contract.functions
    return {
        'amountTokenDeposit': format_ether(fns.getDepositAmount(order_id).call()),
        'addressTokenDeposit': fns.getDepositToken(order_id).call(),
        'chainIdTokenDeposit': str(fns.getDepositChainId(order_id).call()),
        'destAddr': fns.getRecipient(order_id).call(),
        'offerId': normalize_value(fns.getIdOffer(order_id).call()),
        'amountTokenOffer': format_ether(fns.getAmountOffer(order_id).call()),
    }

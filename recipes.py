"""
The four reconciliation recipes and the record filters that feed them.

| recipe            | event             | extracted  | chain id taken from          |
|-------------------|-------------------|------------|------------------------------|
| offer creation    | LogNewOffer       | _idOffer   | offer.exchangeChainId        |
| offer activation  | LogSetStatusOffer | _isActive  | offer.exchangeChainId        |
| order creation    | LogTrade          | _idTrade   | order.chainIdTokenDeposit    |
| order completion  | LogOfferPaid      | (presence) | linked offer's chainId       |
"""
import logging
from typing import Any, Dict, List, Optional

from chain_directory import pool_address
from config import (
    COLLECTION_OFFERS,
    COLLECTION_ORDERS,
    LIQUIDITY_WALLET_ABI,
    POOL_ABI,
)
from errors import ChainNotConfigured
from log_resolver import LogResolution
from order_info import get_order_information
from reconciler import BatchReconciler, RecordContext, Recipe
from statuses import OfferStatus, OrderStatus, offer_transition, order_transition

logger = logging.getLogger(__name__)


# ========== STATUS UPDATES ==========

def offer_creation_update(offer: Dict[str, Any], resolution: LogResolution) -> Dict[str, Any]:
    if resolution.found:
        return {
            'offerId': resolution.value,
            'status': offer_transition(offer.get('status'), OfferStatus.SUCCESS).value,
        }
    return {
        'offerId': '',
        'status': offer_transition(offer.get('status'), OfferStatus.FAILURE).value,
    }


def offer_activation_update(offer: Dict[str, Any], resolution: LogResolution) -> Dict[str, Any]:
    current = offer.get('status')
    if resolution.found:
        return {
            'isActive': bool(resolution.value),
            'status': offer_transition(current, OfferStatus.SUCCESS).value,
        }
    target = (OfferStatus.DEACTIVATION_FAILURE if current == OfferStatus.DEACTIVATION.value
              else OfferStatus.ACTIVATION_FAILURE)
    return {'status': offer_transition(current, target).value}


def order_creation_update(order: Dict[str, Any], resolution: LogResolution) -> Dict[str, Any]:
    if resolution.found:
        return {
            'orderId': resolution.value,
            'status': order_transition(order.get('status'), OrderStatus.SUCCESS).value,
        }
    return {
        'orderId': '',
        'status': order_transition(order.get('status'), OrderStatus.FAILURE).value,
    }


def order_completion_update(order: Dict[str, Any], resolution: LogResolution) -> Dict[str, Any]:
    if resolution.found:
        return {
            'isComplete': True,
            'status': order_transition(order.get('status'), OrderStatus.COMPLETE).value,
        }
    return {'status': order_transition(order.get('status'), OrderStatus.COMPLETION_FAILURE).value}


# ========== CHAIN / ENRICHMENT HOOKS ==========

def linked_offer_chain_id(db, order: Dict[str, Any]):
    """Payment happens on the chain of the offer the order was placed against."""
    offer_id = order.get('offerId')
    offer = db.get_collection(COLLECTION_OFFERS).find_one({'offerId': offer_id}) if offer_id else None
    if offer is None:
        raise ChainNotConfigured(None, f"linked offer {offer_id!r} not found")
    return offer.get('chainId')


def order_information(reconciler: BatchReconciler, ctx: RecordContext) -> Dict[str, Any]:
    """On-chain order terms, read from the endpoint that produced the receipt."""
    address = pool_address(ctx.blockchain)
    abi = reconciler.abis.abi(POOL_ABI)
    if not address or abi is None:
        logger.debug(
            "Skipping order information for %s (pool address=%s, abi=%s)",
            ctx.record.get('_id'), bool(address), abi is not None,
        )
        return {}
    w3 = reconciler.rpc.connect(ctx.lookup.endpoint)
    return get_order_information(w3, address, abi, ctx.resolution.value)


# ========== RECIPES ==========

OFFER_CREATION = Recipe(
    name='offer-creation',
    collection=COLLECTION_OFFERS,
    hash_field='hash',
    abi_name=POOL_ABI,
    event_name='LogNewOffer',
    arg_name='_idOffer',
    build_update=offer_creation_update,
    chain_field='exchangeChainId',
)

OFFER_ACTIVATION = Recipe(
    name='offer-activation',
    collection=COLLECTION_OFFERS,
    hash_field='activationHash',
    abi_name=POOL_ABI,
    event_name='LogSetStatusOffer',
    arg_name='_isActive',
    build_update=offer_activation_update,
    chain_field='exchangeChainId',
)

ORDER_CREATION = Recipe(
    name='order-creation',
    collection=COLLECTION_ORDERS,
    hash_field='hash',
    abi_name=POOL_ABI,
    event_name='LogTrade',
    arg_name='_idTrade',
    build_update=order_creation_update,
    chain_field='chainIdTokenDeposit',
    enrich=order_information,
)

ORDER_COMPLETION = Recipe(
    name='order-completion',
    collection=COLLECTION_ORDERS,
    hash_field='completionHash',
    abi_name=LIQUIDITY_WALLET_ABI,
    event_name='LogOfferPaid',
    arg_name=None,
    build_update=order_completion_update,
    chain_id_of=linked_offer_chain_id,
)


# ========== FILTERS ==========

def _scoped(query: Dict[str, Any], user_id: Optional[str]) -> Dict[str, Any]:
    if user_id is not None:
        query = dict(query, userId=user_id)
    return query


def pending_offers_filter(user_id: Optional[str] = None) -> Dict[str, Any]:
    return _scoped({'status': OfferStatus.PENDING.value}, user_id)


def offers_awaiting_activation_filter(user_id: Optional[str] = None) -> Dict[str, Any]:
    return _scoped({
        'offerId': {'$exists': True, '$ne': ''},
        '$or': [
            {'isActive': False, 'status': OfferStatus.ACTIVATION.value},
            {'isActive': True, 'status': OfferStatus.DEACTIVATION.value},
        ],
    }, user_id)


def pending_orders_filter(user_id: Optional[str] = None) -> Dict[str, Any]:
    return _scoped({'status': OrderStatus.PENDING.value}, user_id)


def orders_awaiting_completion_filter(user_id: Optional[str] = None) -> Dict[str, Any]:
    return _scoped({
        'orderId': {'$exists': True, '$ne': ''},
        'isComplete': False,
        'status': OrderStatus.COMPLETION.value,
    }, user_id)


def seller_orders_awaiting_completion_filter(db, seller_id: str) -> Dict[str, Any]:
    """Orders awaiting completion placed against offers owned by ``seller_id``."""
    offers = db.get_collection(COLLECTION_OFFERS).find({'userId': seller_id})
    offer_ids = sorted({o['offerId'] for o in offers if o.get('offerId')})
    query = orders_awaiting_completion_filter()
    query['offerId'] = {'$exists': True, '$ne': '', '$in': offer_ids}
    return query


# ========== OPERATIONS ==========

def update_offers(reconciler: BatchReconciler, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
    return reconciler.reconcile(OFFER_CREATION, pending_offers_filter(user_id))


def update_offer_activations(reconciler: BatchReconciler, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
    return reconciler.reconcile(OFFER_ACTIVATION, offers_awaiting_activation_filter(user_id))


def update_orders(reconciler: BatchReconciler, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
    return reconciler.reconcile(ORDER_CREATION, pending_orders_filter(user_id))


def update_order_completions(reconciler: BatchReconciler, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
    return reconciler.reconcile(ORDER_COMPLETION, orders_awaiting_completion_filter(user_id))


def update_order_completions_for_seller(reconciler: BatchReconciler, seller_id: str) -> List[Dict[str, Any]]:
    return reconciler.reconcile(
        ORDER_COMPLETION, seller_orders_awaiting_completion_filter(reconciler.db, seller_id)
    )

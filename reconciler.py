"""
Batch reconciliation engine.

A :class:`Recipe` says which records to look at, where their transaction hash
and chain id live, which event decides the outcome and how the outcome maps to
a partial update. :class:`BatchReconciler` applies one recipe to every record
matching a filter: records are resolved in parallel (bounded worker pool), each
one is written with a single targeted ``$set`` and a failure on one record
never aborts the others.
"""
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
import logging

from chain_directory import endpoints_of, find_blockchain
from config import COLLECTION_BLOCKCHAINS, RECONCILE_MAX_WORKERS
from errors import AbiUnavailable, ReconcileError, RecordMissing
from log_resolver import LogResolution, ResolutionOutcome, resolve_event
from web3_utils import ReceiptLookup

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordContext:
    """Everything known about one record once its receipt has been resolved."""

    record: Dict[str, Any]
    blockchain: Dict[str, Any]
    lookup: ReceiptLookup
    resolution: LogResolution


@dataclass(frozen=True)
class Recipe:
    name: str
    collection: str
    hash_field: str
    abi_name: str
    event_name: str
    arg_name: Optional[str]
    build_update: Callable[[Dict[str, Any], LogResolution], Dict[str, Any]]
    chain_field: Optional[str] = None
    # (db, record) -> chain id, for records that do not carry it themselves
    chain_id_of: Optional[Callable[[Any, Dict[str, Any]], Any]] = None
    # (reconciler, context) -> extra fields written on success
    enrich: Optional[Callable[["BatchReconciler", RecordContext], Dict[str, Any]]] = None

    def chain_id(self, db, record: Dict[str, Any]):
        if self.chain_id_of is not None:
            return self.chain_id_of(db, record)
        return record.get(self.chain_field)


class BatchReconciler:
    def __init__(self, db, abis, rpc, max_workers: int = RECONCILE_MAX_WORKERS,
                 blockchains_collection: str = COLLECTION_BLOCKCHAINS):
        self.db = db
        self.abis = abis
        self.rpc = rpc
        self.max_workers = max(1, int(max_workers))
        self.blockchains = db.get_collection(blockchains_collection)

    def reconcile(self, recipe: Recipe, query: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Resolve every record matching ``query``; return those that progressed.

        Returned records are the documents as read before the update.
        """
        # Missing ABIs get one more chance per call, never within a call
        missing = self.abis.refresh_missing()
        if missing:
            logger.warning("[%s] running without ABI(s): %s", recipe.name, ", ".join(missing))

        collection = self.db.get_collection(recipe.collection)
        records = list(collection.find(query))
        if not records:
            logger.debug("[%s] no matching records", recipe.name)
            return []

        workers = min(self.max_workers, len(records))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"reconcile-{recipe.name}") as executor:
            results = list(executor.map(lambda r: self._reconcile_one(recipe, collection, r), records))

        progressed = [r for r in results if r is not None]
        logger.info("[%s] %s/%s record(s) reconciled", recipe.name, len(progressed), len(records))
        return progressed

    def _reconcile_one(self, recipe: Recipe, collection, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        record_id = record.get('_id')
        try:
            update = self.resolve_update(recipe, record)
            if update is None:
                return None
            # Only write over the status we resolved from
            target = {'_id': record_id}
            if 'status' in record:
                target['status'] = record['status']
            result = collection.update_one(target, {'$set': update})
            if result.matched_count == 0:
                raise RecordMissing(recipe.collection, record_id, record.get('status'))
            logger.info("[%s] %s id=%s -> %s", recipe.name, recipe.collection, record_id, update)
            return record
        except ReconcileError as exc:
            logger.warning("[%s] %s id=%s left unchanged: %s", recipe.name, recipe.collection, record_id, exc)
        except Exception:
            logger.exception("[%s] %s id=%s failed", recipe.name, recipe.collection, record_id)
        return None

    def resolve_update(self, recipe: Recipe, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Compute the ``$set`` fields for one record, or None while still pending."""
        chain_id = recipe.chain_id(self.db, record)
        blockchain = find_blockchain(self.blockchains, chain_id)
        endpoints = endpoints_of(blockchain)

        tx_hash = record.get(recipe.hash_field)
        lookup = self.rpc.get_receipt(endpoints, tx_hash)
        if not lookup.found:
            logger.info(
                "[%s] %s id=%s stays pending: receipt %s (%s)",
                recipe.name, recipe.collection, record.get('_id'), lookup.outcome.value, tx_hash,
            )
            return None

        resolution = resolve_event(
            lookup.receipt, self.abis.decoder(recipe.abi_name), recipe.event_name, recipe.arg_name
        )
        if resolution.outcome == ResolutionOutcome.NO_DECODER:
            raise AbiUnavailable(recipe.abi_name)
        if not resolution.found:
            logger.info(
                "[%s] %s id=%s: %s (%s)",
                recipe.name, recipe.collection, record.get('_id'), resolution.outcome.value, tx_hash,
            )

        update = recipe.build_update(record, resolution)
        if resolution.found and recipe.enrich is not None:
            ctx = RecordContext(record, blockchain, lookup, resolution)
            update.update(recipe.enrich(self, ctx))
        return update

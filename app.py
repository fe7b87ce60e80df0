from flask import Flask, g, jsonify
import logging
import os
import threading
import time

from abi_registry import AbiRegistry
from auth import require_auth
from config import DATA_DIR, DB_NAME, RECONCILE_MAX_WORKERS, RPC_TIMEOUT_SECS
from document_store import Database
from reconciler import BatchReconciler
from web3_utils import RpcFailoverClient
import recipes
import web3_utils

app = Flask(__name__)

# Track server start time for uptime calculation
SERVER_START_TIME = time.time()


# Logging Setup - uniform, coloured console format
class _ColorFormatter(logging.Formatter):
    """Simple color formatter for console logs."""
    COLORS = {
        'DEBUG': '\x1b[90m',   # dim gray
        'INFO': '\x1b[37m',    # white
        'WARNING': '\x1b[33m', # yellow
        'ERROR': '\x1b[31m',   # red
        'CRITICAL': '\x1b[41m' # red background
    }
    RESET = '\x1b[0m'

    def format(self, record):
        levelname = record.levelname
        color = self.COLORS.get(levelname, '')
        formatted = super().format(record)
        return f"{color}{formatted}{self.RESET}"


def setup_logging(level=logging.INFO):
    root = logging.getLogger()
    if root.handlers:
        return  # already configured

    fmt = '%(asctime)s %(levelname)-7s [%(name)s] %(message)s'
    handler = logging.StreamHandler()
    handler.setFormatter(_ColorFormatter(fmt, datefmt='%H:%M:%S'))

    root.setLevel(level)
    root.addHandler(handler)

    # Module specific defaults to reduce noise
    logging.getLogger('werkzeug').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('web3').setLevel(logging.WARNING)


setup_logging()
logger = logging.getLogger(__name__)


# --- Services (built once per process) ---
_services_lock = threading.Lock()
_reconciler = None


def build_reconciler(data_dir=DATA_DIR, db_name=DB_NAME):
    db = Database(data_dir, db_name)
    abis = AbiRegistry()
    rpc = RpcFailoverClient(timeout=RPC_TIMEOUT_SECS)
    return BatchReconciler(db, abis, rpc, max_workers=RECONCILE_MAX_WORKERS)


def get_reconciler():
    global _reconciler
    with _services_lock:
        if _reconciler is None:
            _reconciler = build_reconciler()
            logger.info("[App] Reconciler ready (db=%s, workers=%s)", DB_NAME, _reconciler.max_workers)
        return _reconciler


def _records_response(records):
    # Storage ids may be driver objects (e.g. ObjectId); expose them as strings
    out = []
    for rec in records:
        rec = dict(rec)
        if '_id' in rec and not isinstance(rec['_id'], (str, int)):
            rec['_id'] = str(rec['_id'])
        out.append(rec)
    return jsonify(out), 200


# --- Offers ---

@app.route('/update-offers-onchain/update-offer-user', methods=['PUT'])
@require_auth
def update_offer_user():
    """Resolve the caller's pending offers"""
    return _records_response(recipes.update_offers(get_reconciler(), g.user_id))


@app.route('/update-offers-onchain/update-offer-all', methods=['PUT'])
@require_auth
def update_offer_all():
    return _records_response(recipes.update_offers(get_reconciler()))


@app.route('/update-offers-onchain/update-offer-activation-user', methods=['PUT'])
@require_auth
def update_offer_activation_user():
    """Resolve the caller's offers waiting for an activation/deactivation"""
    return _records_response(recipes.update_offer_activations(get_reconciler(), g.user_id))


@app.route('/update-offers-onchain/update-offer-activation-all', methods=['PUT'])
@require_auth
def update_offer_activation_all():
    return _records_response(recipes.update_offer_activations(get_reconciler()))


# --- Orders ---

@app.route('/update-orders-onchain/update-order-user', methods=['PUT'])
@require_auth
def update_order_user():
    """Resolve the caller's pending orders"""
    return _records_response(recipes.update_orders(get_reconciler(), g.user_id))


@app.route('/update-orders-onchain/update-order-all', methods=['PUT'])
@require_auth
def update_order_all():
    return _records_response(recipes.update_orders(get_reconciler()))


@app.route('/update-orders-onchain/update-order-completion-user', methods=['PUT'])
@require_auth
def update_order_completion_user():
    """Resolve the caller's orders waiting for payment confirmation"""
    return _records_response(recipes.update_order_completions(get_reconciler(), g.user_id))


@app.route('/update-orders-onchain/update-order-completion-all', methods=['PUT'])
@require_auth
def update_order_completion_all():
    return _records_response(recipes.update_order_completions(get_reconciler()))


@app.route('/update-orders-onchain/update-order-completion-seller', methods=['PUT'])
@require_auth
def update_order_completion_seller():
    """Resolve completions of orders placed against the caller's offers"""
    return _records_response(recipes.update_order_completions_for_seller(get_reconciler(), g.user_id))


# --- Operator inspection ---

@app.route('/api/rpc_stats')
def api_rpc_stats():
    """Get RPC endpoint performance statistics"""
    stats = web3_utils.get_rpc_stats()

    if stats['total_requests'] == 0:
        return jsonify({
            "status": "no_data",
            "message": "No RPC statistics available yet. System needs to make RPC calls first.",
            "stats": []
        })

    return jsonify({
        "status": "success",
        "timestamp": time.time(),
        "uptime_seconds": int(time.time() - SERVER_START_TIME),
        "total_requests": stats['total_requests'],
        "total_success": stats['total_success'],
        "total_errors": stats['total_errors'],
        "providers": stats['stats'],
        "active_provider": stats['active_provider']
    })


@app.route('/api/abis')
def api_abis():
    """Which contract ABIs are loaded"""
    return jsonify(get_reconciler().abis.status())


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    logger.info("[App] Listening on port %s", port)
    app.run(debug=False, host='0.0.0.0', port=port, use_reloader=False)

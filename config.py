"""
On-chain Reconciler - Centralized Configuration
Single source of truth for endpoints, timeouts, and storage settings
"""
import os

# ========== REMOTE ABI SOURCES ==========
# Contract interfaces are published next to the contracts; override the base
# URL (or a single entry) to point at a fork or a local mirror.
ABI_BASE_URL = os.environ.get(
    'ABI_BASE_URL',
    'https://raw.githubusercontent.com/grindery-io/Depay-Reality/main/abis',
).rstrip('/')

# Logical contract names used by the reconciliation recipes
POOL_ABI = 'pool'
TOKEN_ABI = 'token'
LIQUIDITY_WALLET_ABI = 'liquidity_wallet'


def _build_abi_sources():
    return {
        POOL_ABI: os.environ.get('ABI_URL_POOL', f"{ABI_BASE_URL}/GrtPool.json"),
        TOKEN_ABI: os.environ.get('ABI_URL_TOKEN', f"{ABI_BASE_URL}/ERC20Sample.json"),
        LIQUIDITY_WALLET_ABI: os.environ.get(
            'ABI_URL_LIQUIDITY_WALLET', f"{ABI_BASE_URL}/GrtLiquidityWallet.json"
        ),
    }


ABI_SOURCES = _build_abi_sources()


def _env_int(name, default):
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


# ========== TIMEOUTS ==========
ABI_FETCH_TIMEOUT_SECS = _env_int('ABI_FETCH_TIMEOUT_SECS', 10)
# Applied to every single JSON-RPC request, per endpoint
RPC_TIMEOUT_SECS = _env_int('RPC_TIMEOUT_SECS', 10)
AUTH_TIMEOUT_SECS = _env_int('AUTH_TIMEOUT_SECS', 10)

# ========== BATCH SETTINGS ==========
# Upper bound of records resolved in parallel by one reconciliation call
RECONCILE_MAX_WORKERS = max(1, _env_int('RECONCILE_MAX_WORKERS', 16))

# ========== AUTHENTICATION ==========
AUTH_INTROSPECTION_URL = os.environ.get(
    'AUTH_INTROSPECTION_URL', 'https://orchestrator.grindery.com/introspect'
)

# ========== STORAGE SETTINGS ==========
ROOT_DIR = os.path.dirname(os.path.abspath(__file__))
DATA_DIR = os.environ.get('DATA_DIR', os.path.join(ROOT_DIR, 'data'))
DB_NAME = os.environ.get('DB_NAME', 'grindery-delight')

COLLECTION_OFFERS = 'offers'
COLLECTION_ORDERS = 'orders'
COLLECTION_BLOCKCHAINS = 'blockchains'

# Key under blockchain.usefulAddresses holding the pool contract address
POOL_ADDRESS_KEY = os.environ.get('POOL_ADDRESS_KEY', 'grtPoolAddress')

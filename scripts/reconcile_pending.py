"""
Reconcile pending offers and orders from the command line

Runs the same reconciliation passes as the HTTP trigger endpoints, without
authentication, against the configured data directory. Useful from cron or
when the web service is down.

Usage:
    python scripts/reconcile_pending.py                 # every pass, every user
    python scripts/reconcile_pending.py --orders --user 42
"""

import argparse
import logging
import os
import sys

# Add parent directory to path for imports
SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.abspath(os.path.join(SCRIPT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from app import build_reconciler, setup_logging  # noqa: E402
from config import DATA_DIR, DB_NAME  # noqa: E402
import recipes  # noqa: E402

PASSES = [
    ('offers', 'Offer creations', recipes.update_offers),
    ('activations', 'Offer (de)activations', recipes.update_offer_activations),
    ('orders', 'Order creations', recipes.update_orders),
    ('completions', 'Order completions', recipes.update_order_completions),
]


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description='Reconcile pending offers/orders with on-chain receipts')
    parser.add_argument('--offers', action='store_true', help='Resolve pending offer creations')
    parser.add_argument('--activations', action='store_true', help='Resolve offer activations/deactivations')
    parser.add_argument('--orders', action='store_true', help='Resolve pending order creations')
    parser.add_argument('--completions', action='store_true', help='Resolve order completions')
    parser.add_argument('--user', default=None, help='Only records owned by this user id')
    parser.add_argument('--data-dir', default=DATA_DIR, help=f'Data directory (default: {DATA_DIR})')
    parser.add_argument('--db', default=DB_NAME, help=f'Database name (default: {DB_NAME})')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    args = parser.parse_args(argv)

    setup_logging()
    if args.verbose:
        # app configures the root logger on import; just lower its level
        logging.getLogger().setLevel(logging.DEBUG)

    selected = [p for p in PASSES if getattr(args, p[0])] or PASSES
    reconciler = build_reconciler(args.data_dir, args.db)

    print("=" * 60)
    print(f"Reconciling {args.db} ({args.data_dir})" + (f" for user {args.user}" if args.user else ""))
    print("=" * 60)

    total = 0
    for _, label, operation in selected:
        records = operation(reconciler, args.user)
        total += len(records)
        print(f"  {label:<24} {len(records):>5} updated")

    print("-" * 60)
    print(f"  {'Total':<24} {total:>5} updated")
    return 0


if __name__ == "__main__":
    sys.exit(main())

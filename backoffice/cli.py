import argparse
import asyncio
import json
import logging
import sys
import uuid

from backoffice.db import SessionLocal
from backoffice.services.carrier_tracking import UspsTrackingSource, refresh_carrier_statuses
from backoffice.services.status_promotion import promote_eligible_orders
from backoffice.sync.orchestrator import SyncOrchestrator

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
)
logger = logging.getLogger("backoffice.cli")


def run_sync_command(args) -> int:
    """Sync all active stores (or one). Exit code 1 if any store failed."""
    session = SessionLocal()
    try:
        store_id = uuid.UUID(args.store_id) if args.store_id else None
        logger.info(f"[CLI] Starting order sync (store_id={store_id or 'all'})")
        summary = asyncio.run(SyncOrchestrator(session).synchronize_all(store_id=store_id))
        print(json.dumps(summary.model_dump(mode="json"), indent=2))
        if not summary.success:
            logger.error(f"[CLI] {summary.error}")
            return 1
        return 0
    except Exception as e:
        logger.exception(f"[CLI] Critical error: {e}")
        return 1
    finally:
        session.close()


def run_promote_command(args) -> int:
    session = SessionLocal()
    try:
        result = promote_eligible_orders(session)
        print(json.dumps(result, indent=2))
        return 0
    except Exception as e:
        logger.exception(f"[CLI] Critical error: {e}")
        return 1
    finally:
        session.close()


def run_tracking_command(args) -> int:
    """Refresh carrier status for every shipped order. Exit code 1 if any order failed."""
    session = SessionLocal()
    try:
        result = asyncio.run(refresh_carrier_statuses(session, UspsTrackingSource()))
        print(json.dumps(result, indent=2))
        return 1 if result["errors"] else 0
    except Exception as e:
        logger.exception(f"[CLI] Critical error: {e}")
        return 1
    finally:
        session.close()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Order backoffice operations CLI")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    sync_parser = subparsers.add_parser("sync", help="Pull new and changed orders from every active store")
    sync_parser.add_argument("--store-id", help="Only sync this store")

    subparsers.add_parser("promote", help="Re-resolve pending_enrichment orders against the product catalog")
    subparsers.add_parser("tracking", help="Poll the carrier for every shipped order and advance its status")

    args = parser.parse_args(argv)

    if args.command == "sync":
        return run_sync_command(args)
    if args.command == "promote":
        return run_promote_command(args)
    if args.command == "tracking":
        return run_tracking_command(args)
    parser.print_help()
    return 2


if __name__ == "__main__":
    sys.exit(main())

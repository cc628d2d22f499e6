"""
Piece/sale reconciliation CLI.

Checks land pieces against their sales and optionally repairs what can be
repaired automatically (orphaned reservations, stale pending sales).
"""

import argparse
import asyncio
import sys
from datetime import timedelta
from pathlib import Path
from uuid import UUID

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from api.main import configure_logging
from repositories.client import create_supabase_client
from services.engine import build_engine
from services.settings import EngineSettings


async def run(args: argparse.Namespace) -> int:
    settings = EngineSettings.from_env()
    configure_logging(settings.log_level)
    engine = build_engine(await create_supabase_client(), settings)
    reconciliation = engine.reconciliation

    exit_code = 0

    for raw_id in args.piece or []:
        piece_id = UUID(raw_id)
        report = await reconciliation.verify_piece(piece_id)
        status = report.piece_status.value if report.piece_status else "missing"
        print(f"Piece {piece_id} [{status}]: {'OK' if report.consistent else 'INCONSISTENT'}")
        for issue in report.issues:
            print(f"  - {issue} (recommended: {report.recommended_action.value})")

        if not report.consistent:
            exit_code = 1
            if args.fix:
                result = await reconciliation.fix_piece(piece_id)
                print(f"  fix: {result.action} ({'done' if result.success else result.error})")

    if args.release_orphans:
        released = await reconciliation.release_orphaned_reservations(
            grace_period=timedelta(minutes=settings.orphan_grace_period_minutes)
        )
        print(f"Released {len(released)} orphaned reservation(s)")
        for piece_id in released:
            print(f"  - {piece_id}")

    if args.cancel_stale:
        cleanup = await reconciliation.cancel_stale_pending_sales(
            max_age=timedelta(hours=settings.stale_pending_sale_hours)
        )
        print(f"Cancelled {cleanup.cancelled} stale pending sale(s)")
        if cleanup.failed_ids:
            print(f"Failed to cancel {len(cleanup.failed_ids)} sale(s):")
            for sale_id in cleanup.failed_ids:
                print(f"  - {sale_id}")
            exit_code = 1

    return exit_code


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Check land pieces against their sales and repair inconsistencies",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Check one piece
  python reconcile_pieces.py --piece 123e4567-e89b-12d3-a456-426614174000

  # Check and repair it
  python reconcile_pieces.py --piece 123e4567-e89b-12d3-a456-426614174000 --fix

  # Release every Reserved piece without a pending sale
  python reconcile_pieces.py --release-orphans

  # Cancel pending sales older than STALE_PENDING_SALE_HOURS
  python reconcile_pieces.py --cancel-stale
        """
    )

    parser.add_argument(
        "--piece",
        "-p",
        action="append",
        help="Piece id to check (repeatable)"
    )

    parser.add_argument(
        "--fix",
        action="store_true",
        help="Apply the automatic repair for inconsistent pieces"
    )

    parser.add_argument(
        "--release-orphans",
        action="store_true",
        help="Release Reserved pieces that have no pending sale"
    )

    parser.add_argument(
        "--cancel-stale",
        action="store_true",
        help="Cancel stale pending sales"
    )

    args = parser.parse_args()

    if not (args.piece or args.release_orphans or args.cancel_stale):
        parser.error("nothing to do: give --piece, --release-orphans or --cancel-stale")

    try:
        return asyncio.run(run(args))

    except KeyboardInterrupt:
        print("\n\nReconciliation interrupted by user")
        return 130

    except Exception as e:
        print(f"\nERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())

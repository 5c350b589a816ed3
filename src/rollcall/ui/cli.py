from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys
from contextlib import suppress
from pathlib import Path
from signal import SIGINT
from typing import TYPE_CHECKING

from dotenv import load_dotenv
from pydantic import ValidationError

from rollcall import __version__
from rollcall.app import (
    Backend,
    StoreSource,
    audit_stores,
    open_stores,
    reconcile_stores,
    sync_identity,
)
from rollcall.config import ConfigurationError, configure_logging, get_reconcile_config
from rollcall.domain.reconciliation import (
    CancellationToken,
    InconsistentInputError,
    OperationCancelledError,
    ReconciliationPolicy,
    SnapshotLoadError,
)

from .schema import report_document, verification_document

if TYPE_CHECKING:
    from collections.abc import Sequence

    from rollcall.config import ReconcileConfig

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2

# reconcile flag -> policy field
_POLICY_FLAGS = {
    "create_missing_profiles": "create_missing_profile",
    "create_missing_members": "create_missing_member",
    "link_members": "link_members_by_email",
    "update_mismatches": "update_mismatched_fields",
    "dedupe_members": "deduplicate_members",
    "clear_invalid_assignments": "clear_invalid_assignments",
    "delete_orphans": "delete_orphaned_profiles",
}


def _store_options() -> argparse.ArgumentParser:
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument(
        "--backend",
        choices=[backend.value for backend in Backend],
        default=None,
        help="Where the stores live (default: platform, or snapshot when --snapshot is given)",
    )
    parent.add_argument(
        "--snapshot",
        type=Path,
        help="JSON snapshot file to use instead of the hosted stores",
    )
    parent.add_argument(
        "--database-uri",
        type=str,
        help="SQLAlchemy URI for the database backend (defaults to DATABASE_URI)",
    )
    parent.add_argument(
        "--page-size",
        type=int,
        help="Records requested per page (defaults to ROLLCALL_PAGE_SIZE or 500)",
    )
    parent.add_argument(
        "--max-pages",
        type=int,
        help="Stop listing a store after this many pages; the audit is then partial",
    )
    parent.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")
    return parent


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="rollcall",
        description="Audit and reconcile identities, profiles and members",
    )
    parser.add_argument("--version", action="version", version=f"rollcall {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)
    common = _store_options()

    audit = subparsers.add_parser("audit", parents=[common], help="Report findings only")
    audit.add_argument(
        "--export",
        type=Path,
        help="Also write the audited snapshot to this JSON file",
    )

    reconcile = subparsers.add_parser(
        "reconcile",
        parents=[common],
        help="Audit, apply the selected corrections and audit again",
    )
    reconcile.add_argument(
        "--create-missing-profiles",
        action="store_true",
        help="Create a profile for every identity without one",
    )
    reconcile.add_argument(
        "--create-missing-members",
        action="store_true",
        help="Create a member for every identity without one",
    )
    reconcile.add_argument(
        "--link-members",
        action="store_true",
        help="Link unlinked members to the single identity sharing their email",
    )
    reconcile.add_argument(
        "--update-mismatches",
        action="store_true",
        help="Copy identity email/name onto disagreeing profiles and members",
    )
    reconcile.add_argument(
        "--dedupe-members",
        action="store_true",
        help="Merge members sharing an email into the oldest one and delete the rest",
    )
    reconcile.add_argument(
        "--clear-invalid-assignments",
        action="store_true",
        help="Clear dangling, self and cyclic member assignments",
    )
    reconcile.add_argument(
        "--delete-orphans",
        action="store_true",
        help="Delete profiles whose identity no longer exists",
    )
    reconcile.add_argument(
        "--save-snapshot",
        action="store_true",
        help="With --snapshot, write the reconciled state back to the file",
    )

    sync_user = subparsers.add_parser(
        "sync-user",
        parents=[common],
        help="Create or correct the profile and member of one identity",
    )
    sync_user.add_argument("identity_id", type=str, help="Identity id to synchronise")
    sync_user.add_argument(
        "--save-snapshot",
        action="store_true",
        help="With --snapshot, write the synchronised state back to the file",
    )

    args = parser.parse_args(list(argv))
    if args.page_size is not None and args.page_size < 1:
        parser.error("--page-size must be positive")
    if args.max_pages is not None and args.max_pages < 1:
        parser.error("--max-pages must be positive")
    return args


def _store_source(args: argparse.Namespace) -> StoreSource:
    backend = Backend(args.backend) if args.backend else None
    if backend is None:
        backend = Backend.SNAPSHOT if args.snapshot is not None else Backend.PLATFORM
    if backend is Backend.SNAPSHOT and args.snapshot is None:
        raise ValueError("--backend snapshot requires --snapshot PATH")
    return StoreSource(
        backend=backend,
        snapshot_path=args.snapshot,
        database_uri=args.database_uri,
        save_snapshot=bool(getattr(args, "save_snapshot", False)),
    )


def _reconcile_config(args: argparse.Namespace) -> ReconcileConfig:
    config = get_reconcile_config()
    overrides: dict[str, int] = {}
    if args.page_size is not None:
        overrides["page_size"] = args.page_size
    if args.max_pages is not None:
        overrides["max_pages"] = args.max_pages
    return dataclasses.replace(config, **overrides) if overrides else config


def build_policy(args: argparse.Namespace) -> ReconciliationPolicy:
    return ReconciliationPolicy(
        **{field: bool(getattr(args, flag)) for flag, field in _POLICY_FLAGS.items()}
    )


async def _run(
    args: argparse.Namespace,
    source: StoreSource,
    config: ReconcileConfig,
    cancellation: CancellationToken,
) -> int:
    loop = asyncio.get_running_loop()
    with suppress(NotImplementedError, RuntimeError):
        loop.add_signal_handler(SIGINT, cancellation.cancel, "interrupted by user")
    try:
        async with open_stores(source) as stores:
            if args.command == "audit":
                _, report = await audit_stores(
                    stores,
                    config=config,
                    cancellation=cancellation,
                    export_path=args.export,
                )
                print(report_document(report).to_json())  # noqa: T201
                return EXIT_OK if report.total_findings == 0 else EXIT_FAILED

            if args.command == "reconcile":
                result = await reconcile_stores(
                    stores,
                    build_policy(args),
                    config=config,
                    cancellation=cancellation,
                )
            elif args.command == "sync-user":
                result = await sync_identity(
                    stores,
                    args.identity_id,
                    config=config,
                    cancellation=cancellation,
                )
            else:
                raise ValueError(f"Unsupported command: {args.command}")

            document = verification_document(result, failure_samples=config.failure_samples)
            print(document.to_json())  # noqa: T201
            return EXIT_OK if result.fully_reconciled else EXIT_FAILED
    finally:
        with suppress(NotImplementedError, RuntimeError):
            loop.remove_signal_handler(SIGINT)


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    load_dotenv()
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(verbose=parsed_args.verbose)

    try:
        source = _store_source(parsed_args)
        config = _reconcile_config(parsed_args)
    except (ConfigurationError, ValueError):
        log.exception("CLI validation error")
        sys.exit(EXIT_USAGE)

    cancellation = CancellationToken()
    try:
        code = asyncio.run(_run(parsed_args, source, config, cancellation))
    except ConfigurationError:
        log.exception("Configuration error")
        sys.exit(EXIT_USAGE)
    except (InconsistentInputError, SnapshotLoadError) as exc:
        log.error("Refusing to continue: %s", exc)  # noqa: TRY400
        sys.exit(EXIT_FAILED)
    except OperationCancelledError as exc:
        log.warning("Cancelled: %s", exc)
        sys.exit(EXIT_FAILED)
    except (OSError, ValidationError):
        log.exception("Could not read the snapshot file")
        sys.exit(EXIT_USAGE)
    except Exception:
        log.exception("Fatal error during reconciliation")
        sys.exit(EXIT_FAILED)

    if cancellation.cancelled:
        log.warning("Stopped early: %s", cancellation.reason)
    sys.exit(code)


if __name__ == "__main__":
    main()

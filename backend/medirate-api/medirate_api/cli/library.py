"""Document library reconciliation tool.

    medirate-library compare LOCAL_DIR
    medirate-library sync LOCAL_DIR [--concurrency N]
    medirate-library pull LOCAL_DIR [--concurrency N]
    medirate-library create-archives [--dry-run] [--output results.json]

The blob token is read from BLOB_READ_WRITE_TOKEN, VERCEL_BLOB_RW_TOKEN or
BLOB_TOKEN. `compare` exits 0 when local and remote match and 2 on drift;
any command exits 1 on errors.
"""
import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from ..services.blob_store import BlobStore, BlobStoreError
from ..services.library import DocumentLibrary
from ..services.reconcile import (
    SyncDiff,
    TransferReport,
    default_concurrency,
    diff_paths,
    download_missing,
    remote_paths,
    scan_local,
    upload_missing,
)

logger = logging.getLogger(__name__)

TOKEN_VARIABLES = ("BLOB_READ_WRITE_TOKEN", "VERCEL_BLOB_RW_TOKEN", "BLOB_TOKEN")
EXIT_OK = 0
EXIT_ERROR = 1
EXIT_DRIFT = 2
MAX_LISTED = 10


def blob_token(environ=None) -> Optional[str]:
    environ = os.environ if environ is None else environ
    for name in TOKEN_VARIABLES:
        if environ.get(name):
            return environ[name]
    return None


def _print_paths(title: str, paths: List[str]) -> None:
    if not paths:
        return
    print(f"{title} ({len(paths)}):")
    for path in paths[:MAX_LISTED]:
        print(f"  {path}")
    if len(paths) > MAX_LISTED:
        print(f"  ... and {len(paths) - MAX_LISTED} more")


def _print_diff(diff: SyncDiff) -> None:
    print(f"Local files:  {diff.local_count}")
    print(f"Remote files: {diff.remote_count}")
    _print_paths("Missing from blob store", diff.missing_remote)
    _print_paths("Only in blob store", diff.extra_remote)
    print("In sync" if diff.in_sync else "Drift detected")


def _print_report(action: str, report: TransferReport) -> None:
    print(f"{action}: {len(report.succeeded)} succeeded, {len(report.failed)} failed")
    for path, error in report.failed[:MAX_LISTED]:
        print(f"  {path}: {error}")
    if len(report.failed) > MAX_LISTED:
        print(f"  ... and {len(report.failed) - MAX_LISTED} more failures")


def _local_root(value: str) -> Path:
    root = Path(value)
    if not root.is_dir():
        raise argparse.ArgumentTypeError(f"{value} is not a directory")
    return root


def cmd_compare(store: BlobStore, args: argparse.Namespace) -> int:
    diff = diff_paths(scan_local(args.local_dir), remote_paths(store))
    _print_diff(diff)
    return EXIT_OK if diff.in_sync else EXIT_DRIFT


def cmd_sync(store: BlobStore, args: argparse.Namespace) -> int:
    diff = diff_paths(scan_local(args.local_dir), remote_paths(store))
    _print_diff(diff)

    if diff.missing_remote:
        report = asyncio.run(upload_missing(store, args.local_dir, diff.missing_remote, args.concurrency))
        _print_report("Upload", report)
    else:
        report = TransferReport()
        print("Nothing to upload")

    verify = diff_paths(scan_local(args.local_dir), remote_paths(store))
    if verify.missing_remote:
        _print_paths("Still missing after sync", verify.missing_remote)
    return EXIT_OK if report.ok and not verify.missing_remote else EXIT_ERROR


def cmd_pull(store: BlobStore, args: argparse.Namespace) -> int:
    remote = remote_paths(store)
    diff = diff_paths(scan_local(args.local_dir), remote)
    extras = {path: remote[path] for path in diff.extra_remote}
    if not extras:
        print("Nothing to download")
        return EXIT_OK

    report = asyncio.run(download_missing(store, args.local_dir, extras, args.concurrency))
    _print_report("Download", report)
    return EXIT_OK if report.ok else EXIT_ERROR


def cmd_create_archives(store: BlobStore, args: argparse.Namespace) -> int:
    results = DocumentLibrary(store).create_archives(dry_run=args.dry_run)
    summary = results["summary"]
    verb = "Would create" if args.dry_run else "Created"
    print(f"{verb} {summary['planned'] if args.dry_run else summary['created']} archive folder(s)")
    _print_paths("Archive folders", results["planned"])

    if args.output:
        Path(args.output).write_text(json.dumps(results, indent=2))
        print(f"Results written to {args.output}")
    return EXIT_OK if not results["errors"] else EXIT_ERROR


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="medirate-library", description="MediRate document library tools")
    parser.add_argument("--verbose", action="store_true", help="Log each transfer")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, func, help_text in (
        ("compare", cmd_compare, "Compare a local folder with the blob store"),
        ("sync", cmd_sync, "Upload local files missing from the blob store"),
        ("pull", cmd_pull, "Download blob store files missing locally"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("local_dir", type=_local_root, help="Local library root")
        sub.add_argument(
            "--concurrency",
            type=int,
            default=default_concurrency(),
            help="Parallel transfers (default: CPU count within 2-8)",
        )
        sub.set_defaults(func=func)

    archives = subparsers.add_parser("create-archives", help="Create missing _ARCHIVE folders")
    archives.add_argument("--dry-run", action="store_true", help="Only list the folders that would be created")
    archives.add_argument("--output", help="Write the results as JSON to this file")
    archives.set_defaults(func=cmd_create_archives)

    return parser


def main(argv: Optional[List[str]] = None, store: Optional[BlobStore] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(message)s",
    )

    if getattr(args, "concurrency", 1) < 1:
        parser.error("--concurrency must be at least 1")

    if store is None:
        token = blob_token()
        if not token:
            print(f"Missing blob token; set one of {', '.join(TOKEN_VARIABLES)}", file=sys.stderr)
            return EXIT_ERROR
        store = BlobStore(token, api_url=os.getenv("BLOB_API_URL", "https://blob.vercel-storage.com"))

    try:
        return args.func(store, args)
    except BlobStoreError as e:
        logger.error(f"Blob store error: {e}")
        print(f"Blob store error: {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())

"""Reconciliation between a local document tree and the blob store.

Transfers run concurrently in a bounded pool; a failed file is recorded and
the batch carries on.
"""
import asyncio
import logging
import mimetypes
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Set, Tuple

from .blob_store import BlobStore, normalize_pathname

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".pdf", ".doc", ".docx", ".xls", ".xlsx", ".txt"}


def default_concurrency() -> int:
    return max(2, min(8, os.cpu_count() or 2))


def scan_local(root: Path, extensions: Iterable[str] = ALLOWED_EXTENSIONS) -> Set[str]:
    """Relative POSIX paths of the library files under root."""
    root = Path(root)
    allowed = {ext.lower() for ext in extensions}
    return {
        path.relative_to(root).as_posix()
        for path in root.rglob("*")
        if path.is_file() and path.suffix.lower() in allowed
    }


def remote_paths(store: BlobStore, extensions: Iterable[str] = ALLOWED_EXTENSIONS) -> dict:
    """Remote pathname -> URL for library files."""
    allowed = {ext.lower() for ext in extensions}
    return {
        blob.pathname: blob.url
        for blob in store.list_all()
        if os.path.splitext(blob.pathname)[1].lower() in allowed
    }


@dataclass
class SyncDiff:
    local_count: int
    remote_count: int
    missing_remote: List[str]  # local files not uploaded yet
    extra_remote: List[str]  # remote files with no local copy

    @property
    def in_sync(self) -> bool:
        return not self.missing_remote and not self.extra_remote


def diff_paths(local: Set[str], remote: Iterable[str]) -> SyncDiff:
    remote = {normalize_pathname(p) for p in remote}
    return SyncDiff(
        local_count=len(local),
        remote_count=len(remote),
        missing_remote=sorted(local - remote),
        extra_remote=sorted(remote - local),
    )


@dataclass
class TransferReport:
    succeeded: List[str] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)  # (path, error)

    @property
    def ok(self) -> bool:
        return not self.failed


async def _run_bounded(items: List[str], worker, concurrency: int) -> TransferReport:
    semaphore = asyncio.Semaphore(concurrency)
    report = TransferReport()

    async def run_one(item: str) -> None:
        async with semaphore:
            await asyncio.to_thread(worker, item)

    results = await asyncio.gather(*(run_one(item) for item in items), return_exceptions=True)
    for item, result in zip(items, results):
        if isinstance(result, Exception):
            logger.error(f"Transfer failed for {item}: {result}")
            report.failed.append((item, str(result)))
        else:
            report.succeeded.append(item)
    return report


async def upload_missing(store: BlobStore, root: Path, paths: List[str],
                         concurrency: Optional[int] = None) -> TransferReport:
    """Upload local files (relative paths under root) to the same pathnames."""
    root = Path(root)

    def upload(relative: str) -> None:
        data = (root / relative).read_bytes()
        store.put(relative, data, content_type=mimetypes.guess_type(relative)[0])
        logger.info(f"Uploaded {relative}")

    return await _run_bounded(paths, upload, concurrency or default_concurrency())


async def download_missing(store: BlobStore, root: Path, urls: dict,
                           concurrency: Optional[int] = None) -> TransferReport:
    """Download remote files (pathname -> URL) into root."""
    root = Path(root)

    def download(relative: str) -> None:
        target = root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(store.download(urls[relative]))
        logger.info(f"Downloaded {relative}")

    return await _run_bounded(sorted(urls), download, concurrency or default_concurrency())

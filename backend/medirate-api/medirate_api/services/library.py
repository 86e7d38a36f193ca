"""Document library on top of the blob store.

Layout: `<State>/<Subfolder>/.../<file>`. Empty folders exist as `.gitkeep`
placeholders; `_metadata/` holds JSON side files such as state links.
"""
import json
import logging
import mimetypes
import posixpath
from typing import Dict, List, Optional

from .blob_store import BlobObject, BlobStore, BlobStoreError, normalize_pathname

logger = logging.getLogger(__name__)

METADATA_PREFIX = "_metadata/"
STATE_LINKS_PATH = "_metadata/state-links.json"
PLACEHOLDER = ".gitkeep"
ARCHIVE_SUFFIX = "_ARCHIVE"

SIZE_UNITS = ["Bytes", "KB", "MB", "GB"]


def split_path(pathname: str) -> List[str]:
    return [part for part in normalize_pathname(pathname).split("/") if part]


def extract_state(pathname: str) -> Optional[str]:
    """First path segment, the state the document belongs to."""
    parts = split_path(pathname)
    return parts[0] if len(parts) > 1 else None


def extract_subfolder(pathname: str) -> Optional[str]:
    """Folder directly containing the file, when it is below the state folder."""
    parts = split_path(pathname)
    return parts[-2] if len(parts) > 2 else None


def format_file_size(size: int) -> str:
    if not size:
        return "0 Bytes"
    index = 0
    value = float(size)
    while value >= 1024 and index < len(SIZE_UNITS) - 1:
        value /= 1024
        index += 1
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {SIZE_UNITS[index]}"


def is_archive_path(pathname: str) -> bool:
    return any(part.upper().endswith(ARCHIVE_SUFFIX) for part in split_path(pathname)[:-1])


def is_hidden(pathname: str) -> bool:
    """Metadata files and folder placeholders are not listed as documents."""
    pathname = normalize_pathname(pathname)
    return (
        pathname.startswith(METADATA_PREFIX)
        or posixpath.basename(pathname) == PLACEHOLDER
        or pathname.endswith("/")
    )


def to_document(blob: BlobObject) -> dict:
    name = posixpath.basename(blob.pathname)
    extension = posixpath.splitext(name)[1].lstrip(".").lower()
    return {
        "id": blob.pathname,
        "title": name,
        "type": extension,
        "state": extract_state(blob.pathname),
        "folder": extract_state(blob.pathname),
        "subfolder": extract_subfolder(blob.pathname),
        "filePath": blob.pathname,
        "fileSize": format_file_size(blob.size),
        "size": blob.size,
        "uploadDate": blob.uploaded_at.isoformat() if blob.uploaded_at else None,
        "downloadUrl": blob.download_url or blob.url,
        "isArchived": is_archive_path(blob.pathname),
    }


def build_tree(pathnames: List[str]) -> List[dict]:
    """Nested folder tree; folders sort before files, both alphabetically."""
    root: Dict[str, dict] = {}
    for pathname in pathnames:
        parts = split_path(pathname)
        if not parts or normalize_pathname(pathname).startswith(METADATA_PREFIX):
            continue
        level = root
        for depth, part in enumerate(parts):
            is_file = depth == len(parts) - 1
            if is_file and part == PLACEHOLDER:
                break
            node = level.setdefault(part, {
                "name": part,
                "path": "/".join(parts[:depth + 1]),
                "type": "file" if is_file else "folder",
                "children": {},
            })
            level = node["children"]

    def render(nodes: Dict[str, dict]) -> List[dict]:
        ordered = sorted(nodes.values(), key=lambda n: (n["type"] != "folder", n["name"].lower()))
        rendered = []
        for node in ordered:
            item = {"name": node["name"], "path": node["path"], "type": node["type"]}
            if node["type"] == "folder":
                item["children"] = render(node["children"])
            rendered.append(item)
        return rendered

    return render(root)


def state_structure(pathnames: List[str]) -> Dict[str, List[str]]:
    """Map each state folder to its immediate subfolders (archives and metadata excluded)."""
    structure: Dict[str, set] = {}
    for pathname in pathnames:
        pathname = normalize_pathname(pathname)
        if pathname.startswith(METADATA_PREFIX) or pathname.lower().endswith(".json"):
            continue
        parts = split_path(pathname)
        if len(parts) < 2:
            continue
        subfolders = structure.setdefault(parts[0], set())
        if len(parts) >= 3 and not parts[1].upper().endswith(ARCHIVE_SUFFIX):
            subfolders.add(parts[1])
    return {state: sorted(subfolders) for state, subfolders in sorted(structure.items())}


def plan_archive_folders(pathnames: List[str]) -> List[str]:
    """Placeholder paths for every state/subfolder pair that lacks an archive folder."""
    existing = {normalize_pathname(p) for p in pathnames}
    archive_folders = set()
    for pathname in existing:
        parts = split_path(pathname)
        if len(parts) >= 2 and parts[1].upper().endswith(ARCHIVE_SUFFIX):
            archive_folders.add(f"{parts[0]}/{parts[1]}")

    planned = []
    for state, subfolders in state_structure(list(existing)).items():
        for subfolder in subfolders:
            folder = f"{state}/{subfolder}{ARCHIVE_SUFFIX}"
            if folder not in archive_folders:
                planned.append(f"{folder}/{PLACEHOLDER}")
    return planned


class DocumentLibrary:
    """Document operations used by the API and the library CLI."""

    def __init__(self, store: BlobStore):
        self.store = store

    def blobs(self, prefix: Optional[str] = None) -> List[BlobObject]:
        return self.store.list_all(prefix=prefix)

    def list_documents(self) -> List[dict]:
        documents = [to_document(blob) for blob in self.blobs() if not is_hidden(blob.pathname)]
        return sorted(documents, key=lambda d: d["filePath"].lower())

    def state_links(self) -> dict:
        """State name -> external links, from the metadata side file."""
        blobs, _ = self.store.list(prefix=STATE_LINKS_PATH, limit=1)
        match = next((b for b in blobs if b.pathname == STATE_LINKS_PATH), None)
        if match is None:
            return {}
        try:
            return json.loads(self.store.download(match.url))
        except (BlobStoreError, ValueError) as e:
            logger.warning(f"Could not read state links: {e}")
            return {}

    def find(self, pathname: str) -> Optional[BlobObject]:
        pathname = normalize_pathname(pathname)
        blobs, _ = self.store.list(prefix=pathname, limit=10)
        return next((b for b in blobs if b.pathname == pathname), None)

    def tree(self) -> List[dict]:
        return build_tree([blob.pathname for blob in self.blobs()])

    def structure(self) -> Dict[str, List[str]]:
        return state_structure([blob.pathname for blob in self.blobs()])

    def upload(self, folder: str, filename: str, data: bytes, content_type: Optional[str] = None) -> BlobObject:
        filename = posixpath.basename(normalize_pathname(filename))
        if not filename:
            raise ValueError("A file name is required")
        pathname = posixpath.join(normalize_pathname(folder).strip("/"), filename) if folder else filename
        content_type = content_type or mimetypes.guess_type(filename)[0]
        blob = self.store.put(pathname, data, content_type=content_type)
        logger.info(f"Uploaded {pathname} ({format_file_size(len(data))})")
        return blob

    def create_folder(self, folder: str) -> str:
        folder = normalize_pathname(folder).strip("/")
        if not folder:
            raise ValueError("A folder path is required")
        placeholder = f"{folder}/{PLACEHOLDER}"
        if self.find(placeholder) is None:
            self.store.put(placeholder, b"")
        return placeholder

    def _matching(self, pathname: str) -> List[BlobObject]:
        """The blob at pathname, or every blob below it when it is a folder."""
        pathname = normalize_pathname(pathname).rstrip("/")
        blob = self.find(pathname)
        if blob is not None:
            return [blob]
        return self.blobs(prefix=f"{pathname}/")

    def delete(self, pathname: str) -> int:
        blobs = self._matching(pathname)
        self.store.delete([blob.url for blob in blobs])
        logger.info(f"Deleted {len(blobs)} blob(s) under {pathname}")
        return len(blobs)

    def copy(self, source: str, destination: str, keep_source: bool = True) -> List[str]:
        """Copy a file or folder; with keep_source False this is a move."""
        source = normalize_pathname(source).rstrip("/")
        destination = normalize_pathname(destination).rstrip("/")
        blobs = self._matching(source)
        if not blobs:
            raise FileNotFoundError(source)
        if destination == source or destination.startswith(f"{source}/"):
            raise ValueError("Destination cannot be the source or inside it")

        created = []
        for blob in blobs:
            suffix = blob.pathname[len(source):]
            target = destination + suffix if suffix else destination
            self.store.copy(blob.url, target)
            created.append(target)

        if not keep_source:
            self.store.delete([blob.url for blob in blobs])
        return created

    def move(self, source: str, destination_folder: str) -> List[str]:
        name = posixpath.basename(normalize_pathname(source).rstrip("/"))
        destination = posixpath.join(normalize_pathname(destination_folder).strip("/"), name)
        return self.copy(source, destination, keep_source=False)

    def rename(self, source: str, new_name: str) -> List[str]:
        if not new_name or "/" in new_name:
            raise ValueError("New name must be a single path segment")
        parent = posixpath.dirname(normalize_pathname(source).rstrip("/"))
        return self.copy(source, posixpath.join(parent, new_name), keep_source=False)

    def create_archives(self, dry_run: bool = False) -> dict:
        """Create missing `<state>/<subfolder>_ARCHIVE/` folders."""
        planned = plan_archive_folders([blob.pathname for blob in self.blobs()])
        created, errors = [], []
        if not dry_run:
            for placeholder in planned:
                try:
                    self.store.put(placeholder, b"")
                    created.append(placeholder)
                except BlobStoreError as e:
                    logger.error(f"Failed to create archive folder {placeholder}: {e}")
                    errors.append({"path": placeholder, "error": str(e)})
        return {
            "planned": planned,
            "created": created,
            "errors": errors,
            "summary": {"planned": len(planned), "created": len(created), "failed": len(errors)},
        }

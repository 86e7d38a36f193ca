"""
Document library endpoints

Listing and download need an active entitlement; changing the library is
admin only.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field

from ..auth.rbac import CurrentUser, require_access, require_admin
from ..dependencies import get_document_library
from ..services.blob_store import BlobStoreError
from ..services.entitlements import AccessDecision
from ..services.library import DocumentLibrary, format_file_size, is_hidden

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/documents", tags=["documents"])

MAX_UPLOAD_BYTES = 100 * 1024 * 1024


class FolderRequest(BaseModel):
    folder_path: str = Field(..., alias="folderPath", min_length=1)

    class Config:
        populate_by_name = True


class MoveRequest(BaseModel):
    source: str = Field(..., min_length=1)
    destination: str = Field(..., min_length=1)


class RenameRequest(BaseModel):
    path: str = Field(..., min_length=1)
    new_name: str = Field(..., alias="newName", min_length=1)

    class Config:
        populate_by_name = True


class ArchiveRequest(BaseModel):
    dry_run: bool = Field(False, alias="dryRun")

    class Config:
        populate_by_name = True


def _library_call(func, *args):
    try:
        return func(*args)
    except FileNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Not found: {e}")
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except BlobStoreError as e:
        logger.error(f"Blob store operation failed: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Document store error: {e}")


@router.get("")
async def list_documents(
    access: AccessDecision = Depends(require_access),
    library: DocumentLibrary = Depends(get_document_library),
):
    """All documents with state link metadata."""
    documents = _library_call(library.list_documents)
    return {
        "documents": documents,
        "stateLinks": _library_call(library.state_links),
        "total": len(documents),
    }


@router.get("/download")
async def download_document(
    path: str,
    access: AccessDecision = Depends(require_access),
    library: DocumentLibrary = Depends(get_document_library),
):
    """Redirect to the document's download URL."""
    blob = _library_call(library.find, path)
    if blob is None or is_hidden(blob.pathname):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    return RedirectResponse(blob.download_url or blob.url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)


@router.get("/tree")
async def get_tree(
    admin: CurrentUser = Depends(require_admin),
    library: DocumentLibrary = Depends(get_document_library),
):
    """Folder tree of the whole library (admin only)."""
    return {"tree": _library_call(library.tree)}


@router.get("/structure")
async def get_structure(
    admin: CurrentUser = Depends(require_admin),
    library: DocumentLibrary = Depends(get_document_library),
):
    """State -> subfolders map (admin only)."""
    return {"structure": _library_call(library.structure)}


@router.post("/upload", status_code=status.HTTP_201_CREATED)
async def upload_document(
    file: UploadFile = File(...),
    folder_path: Optional[str] = Form(None, alias="folderPath"),
    admin: CurrentUser = Depends(require_admin),
    library: DocumentLibrary = Depends(get_document_library),
):
    """Upload a file into a folder (admin only)."""
    data = await file.read()
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded file is empty")
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File exceeds {format_file_size(MAX_UPLOAD_BYTES)}"
        )

    blob = _library_call(library.upload, folder_path or "", file.filename or "", data, file.content_type)
    logger.info(f"{admin.email} uploaded {blob.pathname}")
    return {"success": True, "path": blob.pathname, "url": blob.url, "fileSize": format_file_size(len(data))}


@router.post("/create-folder", status_code=status.HTTP_201_CREATED)
async def create_folder(
    body: FolderRequest,
    admin: CurrentUser = Depends(require_admin),
    library: DocumentLibrary = Depends(get_document_library),
):
    """Create an empty folder (admin only)."""
    placeholder = _library_call(library.create_folder, body.folder_path)
    return {"success": True, "path": placeholder.rsplit("/", 1)[0]}


@router.delete("")
async def delete_path(
    path: str,
    admin: CurrentUser = Depends(require_admin),
    library: DocumentLibrary = Depends(get_document_library),
):
    """Delete a file or a whole folder (admin only)."""
    deleted = _library_call(library.delete, path)
    if deleted == 0:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Nothing found at this path")
    logger.info(f"{admin.email} deleted {path} ({deleted} blob(s))")
    return {"success": True, "deleted": deleted}


@router.post("/move")
async def move_path(
    body: MoveRequest,
    admin: CurrentUser = Depends(require_admin),
    library: DocumentLibrary = Depends(get_document_library),
):
    """Move a file or folder into another folder (admin only)."""
    paths: List[str] = _library_call(library.move, body.source, body.destination)
    return {"success": True, "paths": paths}


@router.post("/copy")
async def copy_path(
    body: MoveRequest,
    admin: CurrentUser = Depends(require_admin),
    library: DocumentLibrary = Depends(get_document_library),
):
    """Copy a file or folder to a new path (admin only)."""
    paths: List[str] = _library_call(library.copy, body.source, body.destination)
    return {"success": True, "paths": paths}


@router.post("/rename")
async def rename_path(
    body: RenameRequest,
    admin: CurrentUser = Depends(require_admin),
    library: DocumentLibrary = Depends(get_document_library),
):
    """Rename a file or folder in place (admin only)."""
    paths: List[str] = _library_call(library.rename, body.path, body.new_name)
    return {"success": True, "paths": paths}


@router.post("/create-archives")
async def create_archives(
    body: ArchiveRequest = ArchiveRequest(),
    admin: CurrentUser = Depends(require_admin),
    library: DocumentLibrary = Depends(get_document_library),
):
    """Create missing `<subfolder>_ARCHIVE` folders in every state (admin only)."""
    return _library_call(library.create_archives, body.dry_run)

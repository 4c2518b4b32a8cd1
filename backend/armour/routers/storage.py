import logging
import mimetypes
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from armour.errors import AccessDenied, NotFound
from armour.services.storage import StorageService, get_storage

logger = logging.getLogger(__name__)

router = APIRouter()


def _object_response(storage: StorageService, path: str) -> Response:
    try:
        data = storage.read(path)
    except (FileNotFoundError, IsADirectoryError, ValueError):
        raise NotFound("Object not found")
    media_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
    return Response(content=data, media_type=media_type)


@router.get("/object/{path:path}")
async def signed_object(
    path: str,
    expires: Optional[int] = None,
    signature: Optional[str] = None,
    storage: StorageService = Depends(get_storage),
):
    """Serve an object through a signed, expiring URL."""
    if expires is None or not signature or not storage.verify_signature(path, expires, signature):
        logger.info(f"[Storage] Rejected signed download for {path}")
        raise AccessDenied("Invalid or expired signature")
    return _object_response(storage, path)


@router.get("/v1/object/public/{path:path}")
async def public_object(path: str, storage: StorageService = Depends(get_storage)):
    return _object_response(storage, path)

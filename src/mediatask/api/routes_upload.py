from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile

from ..common.service import Services
from ..common.types import StoredFile
from .deps import get_services

router = APIRouter(tags=["upload"])


@router.post("/upload", response_model=StoredFile)
def upload_file(file: UploadFile = File(...), services: Services = Depends(get_services)) -> StoredFile:
    """Store an input file that task specifications can reference."""
    try:
        return services.storage.save(file.filename, file.file)
    finally:
        file.file.close()

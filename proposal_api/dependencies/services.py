from __future__ import annotations

from fastapi import Depends

from ..config import settings
from ..services.ingestion import IngestionPipeline
from ..services.storage import StorageService, get_storage_service
from .db import get_session_factory


def get_storage() -> StorageService:
    return get_storage_service()


def get_ingestion_pipeline(
    storage: StorageService = Depends(get_storage),
    session_factory=Depends(get_session_factory),
) -> IngestionPipeline:
    return IngestionPipeline.from_settings(settings, session_factory, storage)

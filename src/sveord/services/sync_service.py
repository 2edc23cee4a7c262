"""Pulling remote data into the local store and exporting the unified list."""
import logging
from datetime import date
from pathlib import Path
from typing import Dict, Optional, Union

from sqlalchemy.orm import Session

from sveord.config import settings
from sveord.services.backend_client import BackendClient
from sveord.services.consolidation_service import consolidate, count_by_level, write_unified_list
from sveord.services.progress_service import ProgressService
from sveord.services.word_service import WordService

logger = logging.getLogger(__name__)


class SyncService:
    """Service for moving vocabulary and progress between the backend and local store."""

    def __init__(self, backend: BackendClient, db: Optional[Session] = None):
        """Initialize the service with an open backend client and an optional local session."""
        self.backend = backend
        self.db = db

    async def pull(self) -> Dict[str, int]:
        """Mirror remote words and the current user's progress locally."""
        if self.db is None:
            raise ValueError("A local database session is required to pull")

        user = await self.backend.get_current_user()
        words = await self.backend.fetch_words()
        word_service = WordService(self.db)
        imported_words = word_service.import_words(words)

        progress = await self.backend.fetch_user_progress(user["id"])
        imported_progress = ProgressService(self.db).import_progress(
            user["id"], progress, id_map=word_service.id_map
        )

        return {"words": imported_words, "progress": imported_progress}

    async def export_unified_list(
        self, directory: Union[str, Path, None] = None, today: Optional[date] = None
    ) -> Path:
        """Fetch everything for the current user, consolidate it and write the export file."""
        user = await self.backend.get_current_user()
        words = await self.backend.fetch_words()
        if not words:
            raise ValueError("No words found; cannot consolidate an empty list")
        progress = await self.backend.fetch_user_progress(user["id"])

        consolidated = consolidate(words, progress)
        logger.info(f"Total words scanned: {len(words)}, unique: {len(consolidated)}")
        logger.info(f"Counts by level: {count_by_level(consolidated)}")
        return write_unified_list(consolidated, directory or settings.paths.export_dir, today)

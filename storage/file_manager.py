# storage/file_manager.py
"""Utility class for asynchronous file operations."""

from __future__ import annotations

import asyncio
import json
import os
from typing import Any

import structlog
from config import settings
from models.run_models import AnalysisDebugLog, EntityBundle

logger = structlog.get_logger(__name__)


class FileManager:
    """Handle reading source text and writing bible artifacts."""

    def __init__(self, output_dir: str = settings.BASE_OUTPUT_DIR) -> None:
        self.output_dir = output_dir
        os.makedirs(self.output_dir, exist_ok=True)

    @property
    def bible_path(self) -> str:
        return os.path.join(self.output_dir, settings.BIBLE_FILE)

    @property
    def debug_log_path(self) -> str:
        return os.path.join(self.output_dir, settings.DEBUG_LOG_FILE)

    async def read_text(self, file_path: str) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._read_text_sync, file_path)

    def _read_text_sync(self, file_path: str) -> str:
        """Read the contents of ``file_path`` synchronously.

        Args:
            file_path: Path to the file to read.

        Returns:
            The full text of the file.
        """

        with open(file_path, encoding="utf-8") as f:
            return f.read()

    async def save_bible(self, bundle: EntityBundle, file_path: str | None = None) -> str:
        path = file_path or self.bible_path
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write_json_sync, path, bundle.to_dict())
        logger.info(
            "Saved visual bible to %s",
            path,
            characters=len(bundle.characters),
            scenes=len(bundle.scenes),
        )
        return path

    async def save_debug_log(
        self, entries: list[AnalysisDebugLog], file_path: str | None = None
    ) -> str:
        path = file_path or self.debug_log_path
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None, self._write_json_sync, path, [entry.to_dict() for entry in entries]
        )
        logger.info("Saved debug log with %d entries to %s", len(entries), path)
        return path

    def _write_json_sync(self, file_path: str, data: Any) -> None:
        directory = os.path.dirname(file_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(file_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)

    async def load_bible(self, file_path: str | None = None) -> EntityBundle:
        """Load a previously saved bible for re-enrichment or seeding."""
        path = file_path or self.bible_path
        loop = asyncio.get_running_loop()
        data = await loop.run_in_executor(None, self._read_json_sync, path)
        if not isinstance(data, dict):
            raise ValueError(f"{path} does not contain a visual bible object.")
        return EntityBundle.model_validate(
            {"characters": data.get("characters") or [], "scenes": data.get("scenes") or []}
        )

    def _read_json_sync(self, file_path: str) -> Any:
        with open(file_path, encoding="utf-8") as f:
            return json.load(f)

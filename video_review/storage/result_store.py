"""Durable analysis result storage with TTL-based cleanup."""

import asyncio
import logging
import os
import re
import tempfile
import time
from abc import ABC, abstractmethod
from typing import Optional

from pydantic import ValidationError

from video_review.analysis.schemas import AnalysisResult
from video_review.exceptions import IncompleteRecordError, PersistenceError

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"^[A-Za-z0-9._-]+$")


class ResultStore(ABC):
    """Create-if-absent, then read. One record per job id."""

    @abstractmethod
    async def save(self, result: AnalysisResult) -> None:
        """Persist `result`. Raises PersistenceError on failure or if the id exists."""
        ...

    @abstractmethod
    async def load(self, job_id: str) -> Optional[AnalysisResult]:
        """Return the stored result, None if absent.

        Raises IncompleteRecordError when a record exists but is mid-write or unreadable.
        """
        ...

    @abstractmethod
    async def exists(self, job_id: str) -> bool:
        ...

    @abstractmethod
    def cleanup_expired(self) -> int:
        """Remove records older than the TTL. Returns count of removed records."""
        ...


class FileResultStore(ResultStore):
    """One `<job_id>.json` file per result, written atomically via temp file + rename."""

    def __init__(self, base_dir: Optional[str] = None, ttl_hours: int = 0):
        if base_dir:
            self._base_dir = base_dir
        else:
            self._base_dir = os.path.join(tempfile.gettempdir(), "video_review_results")
        os.makedirs(self._base_dir, exist_ok=True)
        self._ttl_seconds = ttl_hours * 3600

    @property
    def base_dir(self) -> str:
        return self._base_dir

    def get_result_path(self, job_id: str) -> str:
        return os.path.join(self._base_dir, f"{_check_id(job_id)}.json")

    def _partial_path(self, job_id: str) -> str:
        return os.path.join(self._base_dir, f".{_check_id(job_id)}.json.partial")

    async def save(self, result: AnalysisResult) -> None:
        try:
            await asyncio.to_thread(self._write, result)
        except PersistenceError:
            raise
        except OSError as e:
            raise PersistenceError(f"Failed to persist analysis result: {e}") from e
        logger.info(f"{__name__}:save - job_id={result.id} path={self.get_result_path(result.id)}")

    def _write(self, result: AnalysisResult) -> None:
        final_path = self.get_result_path(result.id)
        if os.path.exists(final_path):
            raise PersistenceError(f"A result for '{result.id}' is already stored")
        partial_path = self._partial_path(result.id)
        payload = result.model_dump_json(by_alias=True, indent=2)
        try:
            with open(partial_path, "w", encoding="utf-8") as dst:
                dst.write(payload)
                dst.flush()
                os.fsync(dst.fileno())
            os.replace(partial_path, final_path)
        except OSError:
            if os.path.exists(partial_path):
                os.remove(partial_path)
            raise

    async def load(self, job_id: str) -> Optional[AnalysisResult]:
        return await asyncio.to_thread(self._read, job_id)

    def _read(self, job_id: str) -> Optional[AnalysisResult]:
        final_path = self.get_result_path(job_id)
        if not os.path.exists(final_path):
            if os.path.exists(self._partial_path(job_id)):
                raise IncompleteRecordError(f"Result for '{job_id}' is still being written")
            return None
        try:
            with open(final_path, "r", encoding="utf-8") as src:
                return AnalysisResult.model_validate_json(src.read())
        except (OSError, ValidationError) as e:
            raise IncompleteRecordError(f"Result for '{job_id}' is unreadable: {e}") from e

    async def exists(self, job_id: str) -> bool:
        path = self.get_result_path(job_id)
        return os.path.exists(path) or os.path.exists(self._partial_path(job_id))

    def cleanup_expired(self) -> int:
        if self._ttl_seconds <= 0 or not os.path.exists(self._base_dir):
            return 0
        now = time.time()
        removed = 0
        for entry in os.listdir(self._base_dir):
            # Leftover .partial files from an interrupted save expire the same way
            if not entry.endswith((".json", ".json.partial")):
                continue
            path = os.path.join(self._base_dir, entry)
            if now - os.path.getmtime(path) > self._ttl_seconds:
                os.remove(path)
                removed += 1
        if removed:
            logger.info(f"{__name__}:cleanup_expired - removed {removed} result(s)")
        return removed


def _check_id(job_id: str) -> str:
    """Job ids become file names, so path separators and the like are refused."""
    if not _SAFE_ID.match(job_id or "") or job_id in (".", ".."):
        raise PersistenceError(f"Job id '{job_id}' cannot be used as a result key")
    return job_id

"""Supabase-backed result store.

Expects a table with columns `id text primary key`, `result jsonb`,
`created_at timestamptz`.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import ValidationError
from supabase import Client, create_client

from video_review.analysis.schemas import AnalysisResult
from video_review.exceptions import IncompleteRecordError, PersistenceError
from video_review.storage.result_store import ResultStore

logger = logging.getLogger(__name__)


class SupabaseResultStore(ResultStore):
    def __init__(
        self,
        url: str = "",
        service_role_key: str = "",
        table: str = "analysis_results",
        ttl_hours: int = 0,
        client: Optional[Client] = None,
    ):
        if client is None and not (url and service_role_key):
            raise RuntimeError(
                "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set "
                "when RESULT_STORE_BACKEND=supabase"
            )
        self._url = url
        self._key = service_role_key
        self._client = client
        self._table = table
        self._ttl_hours = ttl_hours

    @property
    def client(self) -> Client:
        """Service-role client, created on first use."""
        if self._client is None:
            self._client = create_client(self._url, self._key)
        return self._client

    def _rows(self):
        return self.client.table(self._table)

    async def save(self, result: AnalysisResult) -> None:
        if await self.exists(result.id):
            raise PersistenceError(f"A result for '{result.id}' is already stored")
        row = {
            "id": result.id,
            "result": result.model_dump(mode="json", by_alias=True),
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            await asyncio.to_thread(lambda: self._rows().insert(row).execute())
        except Exception as e:
            raise PersistenceError(f"Failed to persist analysis result: {e}") from e
        logger.info(f"{__name__}:save - job_id={result.id} table={self._table}")

    async def load(self, job_id: str) -> Optional[AnalysisResult]:
        try:
            response = await asyncio.to_thread(
                lambda: self._rows().select("result").eq("id", job_id).limit(1).execute()
            )
        except Exception as e:
            raise PersistenceError(f"Failed to read analysis result: {e}") from e
        if not response.data:
            return None
        try:
            return AnalysisResult.model_validate(response.data[0]["result"])
        except (KeyError, TypeError, ValidationError) as e:
            raise IncompleteRecordError(f"Result for '{job_id}' is unreadable: {e}") from e

    async def exists(self, job_id: str) -> bool:
        try:
            response = await asyncio.to_thread(
                lambda: self._rows().select("id").eq("id", job_id).limit(1).execute()
            )
        except Exception as e:
            raise PersistenceError(f"Failed to query analysis results: {e}") from e
        return bool(response.data)

    def cleanup_expired(self) -> int:
        if self._ttl_hours <= 0:
            return 0
        cutoff = datetime.now(timezone.utc) - timedelta(hours=self._ttl_hours)
        response = self._rows().delete().lt("created_at", cutoff.isoformat()).execute()
        removed = len(response.data or [])
        if removed:
            logger.info(f"{__name__}:cleanup_expired - removed {removed} result(s)")
        return removed

"""Upload progress channel.

Tracks one percentage per upload id and exposes it as an async stream.

- update() is called by the upload producer with 0..100, or -1 on failure.
- subscribe() yields the current value immediately, then on every update,
  and again every `heartbeat_seconds` when nothing changed.
- 100 and -1 are terminal: the stream ends and the record is removed.
  The id is remembered for a while so late updates are dropped.
- A subscriber that goes away before a terminal value also removes the record,
  but leaves no marker: later updates start a fresh record and a reconnecting
  subscriber follows it to the end.

All methods must run on the event loop thread. Mutations never await, so
each one is atomic with respect to other coroutines.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

COMPLETE = 100
FAILED = -1
TERMINAL_VALUES = (COMPLETE, FAILED)


@dataclass
class _ProgressRecord:
    value: int = 0
    updated_at: float = 0.0
    changed: asyncio.Event = field(default_factory=asyncio.Event)


class ProgressChannel:
    def __init__(
        self,
        heartbeat_seconds: float = 1.0,
        max_age_seconds: float = 1800.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._records: Dict[str, _ProgressRecord] = {}
        self._finished: Dict[str, Tuple[int, float]] = {}
        self._heartbeat = heartbeat_seconds
        self._max_age = max_age_seconds
        self._clock = clock

    def update(self, upload_id: str, value: int) -> None:
        """Record progress for `upload_id`. Updates after a terminal value are ignored."""
        if not upload_id:
            logger.error(f"{__name__}:update - progress update without upload id")
            return
        if value != FAILED and not 0 <= value <= COMPLETE:
            raise ValueError(f"Progress must be between 0 and 100, or -1; got {value}")

        self._evict_stale()
        if upload_id in self._finished:
            logger.debug(f"{__name__}:update - dropping late update for {upload_id}")
            return

        record = self._records.get(upload_id)
        if record is None:
            record = self._records[upload_id] = _ProgressRecord(updated_at=self._clock())
        elif value != FAILED and value < record.value:
            # Progress never moves backwards
            return

        record.value = value
        record.updated_at = self._clock()
        record.changed.set()
        logger.debug(f"{__name__}:update - {upload_id}: {value}%")

        if value in TERMINAL_VALUES:
            self._finish(upload_id, record)

    def get(self, upload_id: str) -> Optional[int]:
        record = self._records.get(upload_id)
        return record.value if record else None

    def __contains__(self, upload_id: str) -> bool:
        return upload_id in self._records

    async def subscribe(self, upload_id: str) -> AsyncIterator[int]:
        """Stream progress values for `upload_id` until a terminal value."""
        record = self._records.get(upload_id)
        if record is None:
            if upload_id in self._finished:
                # Already over: report the last known value once
                yield self._finished[upload_id][0]
                return
            record = self._records[upload_id] = _ProgressRecord(updated_at=self._clock())

        try:
            while True:
                record.changed.clear()
                value = record.value
                yield value
                if value in TERMINAL_VALUES:
                    return
                try:
                    await asyncio.wait_for(record.changed.wait(), timeout=self._heartbeat)
                except asyncio.TimeoutError:
                    pass
                if record.value not in TERMINAL_VALUES and self._records.get(upload_id) is not record:
                    # Evicted as stale
                    return
        finally:
            # Disconnect before a terminal value; terminal values were already finished by update()
            if self._records.get(upload_id) is record:
                del self._records[upload_id]

    def _finish(self, upload_id: str, record: _ProgressRecord) -> None:
        if self._records.get(upload_id) is record:
            del self._records[upload_id]
        self._finished[upload_id] = (record.value, self._clock())

    def _evict_stale(self) -> None:
        cutoff = self._clock() - self._max_age
        for upload_id in [k for k, r in self._records.items() if r.updated_at < cutoff]:
            logger.info(f"{__name__}:evict - dropping stale progress for {upload_id}")
            self._records[upload_id].changed.set()
            del self._records[upload_id]
        for upload_id in [k for k, (_, t) in self._finished.items() if t < cutoff]:
            del self._finished[upload_id]

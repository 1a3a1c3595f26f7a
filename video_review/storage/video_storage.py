"""Video object storage used by the upload endpoint.

Uploads are written chunk by chunk so the caller can publish progress
between chunks. `commit()` returns the video reference handed to analysis.
"""

import asyncio
import logging
import os
import re
import time
from abc import ABC, abstractmethod
from typing import Any, Optional

logger = logging.getLogger(__name__)


def safe_object_name(filename: Optional[str]) -> str:
    """Timestamped, filesystem/bucket-safe name for an uploaded file."""
    safe = re.sub(r"[^a-zA-Z0-9.-]", "_", filename or "video.mp4")
    return f"{int(time.time() * 1000)}-{safe}"


class VideoWriter(ABC):
    @abstractmethod
    async def write(self, chunk: bytes) -> None:
        ...

    @abstractmethod
    async def commit(self) -> str:
        """Finish the upload and return the video reference."""
        ...

    @abstractmethod
    async def abort(self) -> None:
        """Discard a partially written upload."""
        ...


class VideoStorage(ABC):
    name: str = ""

    @abstractmethod
    def open_writer(self, filename: Optional[str], content_type: str) -> VideoWriter:
        ...


class LocalVideoStorage(VideoStorage):
    """Stores uploads on local disk. The reference is the absolute file path."""

    name = "local"

    def __init__(self, base_dir: str):
        self._base_dir = os.path.abspath(base_dir)
        os.makedirs(self._base_dir, exist_ok=True)

    def open_writer(self, filename: Optional[str], content_type: str) -> VideoWriter:
        return _LocalWriter(os.path.join(self._base_dir, safe_object_name(filename)))

    def resolve(self, video_ref: str) -> Optional[str]:
        """Real path of a stored upload, or None when `video_ref` points outside the upload directory."""
        base = os.path.realpath(self._base_dir)
        path = os.path.realpath(video_ref.removeprefix("file://"))
        if path == base or os.path.commonpath([base, path]) != base:
            return None
        return path


class _LocalWriter(VideoWriter):
    def __init__(self, path: str):
        self._path = path
        self._dst = None

    async def write(self, chunk: bytes) -> None:
        if self._dst is None:
            self._dst = await asyncio.to_thread(open, self._path, "wb")
        await asyncio.to_thread(self._dst.write, chunk)

    async def commit(self) -> str:
        if self._dst is None:
            self._dst = await asyncio.to_thread(open, self._path, "wb")
        await asyncio.to_thread(self._dst.close)
        return self._path

    async def abort(self) -> None:
        if self._dst is None:
            return
        await asyncio.to_thread(self._dst.close)
        if os.path.exists(self._path):
            await asyncio.to_thread(os.remove, self._path)


class GcsVideoStorage(VideoStorage):
    """Stores uploads in a Google Cloud Storage bucket under `videos/`."""

    name = "gcs"

    def __init__(self, bucket_name: str, project: Optional[str] = None, client: Any = None):
        if not bucket_name:
            raise RuntimeError("GCS_BUCKET must be set when STORAGE_BACKEND=gcs")
        if client is None:
            from google.cloud import storage

            client = storage.Client(project=project)
        self._bucket = client.bucket(bucket_name)
        self._bucket_name = bucket_name

    def open_writer(self, filename: Optional[str], content_type: str) -> VideoWriter:
        object_name = f"videos/{safe_object_name(filename)}"
        blob = self._bucket.blob(object_name)
        blob.metadata = {"originalname": filename or "", "uploadedAt": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())}
        return _GcsWriter(blob, f"gs://{self._bucket_name}/{object_name}", content_type)


class _GcsWriter(VideoWriter):
    def __init__(self, blob: Any, uri: str, content_type: str):
        self._blob = blob
        self._uri = uri
        self._content_type = content_type
        self._stream = None

    async def write(self, chunk: bytes) -> None:
        if self._stream is None:
            self._stream = await asyncio.to_thread(
                self._blob.open, "wb", content_type=self._content_type
            )
        await asyncio.to_thread(self._stream.write, chunk)

    async def commit(self) -> str:
        if self._stream is None:
            await asyncio.to_thread(
                self._blob.upload_from_string, b"", content_type=self._content_type
            )
        else:
            await asyncio.to_thread(self._stream.close)
        return self._uri

    async def abort(self) -> None:
        if self._stream is None:
            return
        await asyncio.to_thread(self._stream.close)
        try:
            await asyncio.to_thread(self._blob.delete)
        except Exception as e:
            logger.warning(f"{__name__}:abort - could not delete {self._uri}: {e}")

import logging
from typing import Optional, Tuple
from urllib.parse import quote

from gridfs.errors import NoFile
from motor.motor_asyncio import AsyncIOMotorDatabase, AsyncIOMotorGridFSBucket
from pymongo.errors import PyMongoError

from gymchat.config import get_settings
from gymchat.errors import AttachmentUploadError, BackendError


logger = logging.getLogger(__name__)

AUDIO_BUCKET = "audio-messages"
UPLOADS_BUCKET = "gym_uploads"
BUCKETS = (AUDIO_BUCKET, UPLOADS_BUCKET)


class ObjectStorage:
    """GridFS-backed buckets addressed by path, served back through /storage."""

    def __init__(self, db: AsyncIOMotorDatabase, public_base_url: Optional[str] = None) -> None:
        self._db = db
        self._public_base_url = (public_base_url or get_settings().public_base_url).rstrip("/")

    def _bucket(self, bucket: str) -> AsyncIOMotorGridFSBucket:
        if bucket not in BUCKETS:
            raise ValueError(f"Unknown storage bucket: {bucket}")
        return AsyncIOMotorGridFSBucket(self._db, bucket_name=bucket)

    async def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        if not data:
            raise AttachmentUploadError("Refusing to upload an empty attachment")
        try:
            await self._bucket(bucket).upload_from_stream(path, data, metadata={"contentType": content_type})
        except PyMongoError as exc:
            logger.exception("Upload to %s/%s failed", bucket, path)
            raise AttachmentUploadError(f"Upload to {bucket} failed") from exc
        return self.public_url(bucket, path)

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self._public_base_url}/storage/{bucket}/{quote(path)}"

    async def open(self, bucket: str, path: str) -> Optional[Tuple[bytes, str]]:
        try:
            grid_out = await self._bucket(bucket).open_download_stream_by_name(path)
            data = await grid_out.read()
        except NoFile:
            return None
        except PyMongoError as exc:
            raise BackendError(f"Could not read {bucket}/{path}") from exc
        metadata = grid_out.metadata or {}
        return data, metadata.get("contentType", "application/octet-stream")

from __future__ import annotations

import io
import uuid
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import BinaryIO, Optional

from botocore.exceptions import BotoCoreError, ClientError

from ..config import settings
from .aws import boto3_client


class StorageError(RuntimeError):
    pass


@dataclass
class StoredFile:
    key: str
    storage_url: str


class StorageService:
    def __init__(self, bucket: Optional[str] = None, client=None) -> None:
        self.bucket = bucket or settings.aws.s3_bucket
        self._client = client if client is not None else boto3_client("s3")

    def build_key(self, company_id: str | uuid.UUID, original_name: str) -> str:
        suffix = Path(original_name).suffix.lower() or ".bin"
        return f"{company_id}/{uuid.uuid4()}{suffix}"

    def upload_fileobj(
        self,
        company_id: str | uuid.UUID,
        file_obj: BinaryIO | bytes,
        filename: str,
        content_type: str,
    ) -> StoredFile:
        buffer: BinaryIO
        if isinstance(file_obj, (bytes, bytearray)):
            buffer = io.BytesIO(file_obj)
        else:
            buffer = file_obj
            buffer.seek(0)

        key = self.build_key(company_id, filename)
        try:
            self._client.upload_fileobj(buffer, self.bucket, key, ExtraArgs={"ContentType": content_type})
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to upload to S3: {exc}") from exc

        return StoredFile(key=key, storage_url=f"s3://{self.bucket}/{key}")

    def read_bytes(self, key: str) -> bytes:
        try:
            obj = self._client.get_object(Bucket=self.bucket, Key=key)
            body = obj["Body"]
            try:
                return body.read()
            finally:
                body.close()
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to download S3 object: {exc}") from exc

    def generate_presigned_url(self, key: str, ttl: timedelta = timedelta(hours=1)) -> str:
        try:
            return self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=int(ttl.total_seconds()),
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to generate presigned URL: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to delete S3 object: {exc}") from exc


def get_storage_service() -> StorageService:
    return StorageService()

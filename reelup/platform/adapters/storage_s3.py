import logging
from typing import BinaryIO
from urllib.parse import quote
import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError
from reelup.platform.ports.object_storage import ObjectStoragePort, ObjectNotFoundError
from reelup.core.config import settings
from reelup.core.errors import StorageUnavailableError

log = logging.getLogger("storage.s3")

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}

class S3Storage(ObjectStoragePort):
    def __init__(self):
        session = boto3.session.Session(
            aws_access_key_id=settings.S3_ACCESS_KEY,
            aws_secret_access_key=settings.S3_SECRET_KEY,
            region_name=settings.S3_REGION,
        )
        self.s3 = session.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT_URL,
            config=Config(signature_version="s3v4"),
        )
        self.bucket = settings.S3_BUCKET

    def _url(self, key: str) -> str:
        if settings.S3_ENDPOINT_URL:
            return f"{settings.S3_ENDPOINT_URL.rstrip('/')}/{self.bucket}/{quote(key)}"
        return f"https://{self.bucket}.s3.{settings.S3_REGION}.amazonaws.com/{quote(key)}"

    def presign_download(self, key: str, expires_seconds: int = 900) -> str:
        return self.s3.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=expires_seconds,
        )

    def put_bytes(self, key: str, data: bytes, content_type: str) -> str:
        try:
            self.s3.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        except (BotoCoreError, ClientError) as e:
            log.exception("put_object failed key=%s", key)
            raise StorageUnavailableError(f"Could not store {key}") from e
        return self._url(key)

    def put_file(self, key: str, fileobj: BinaryIO, content_type: str) -> str:
        # upload_fileobj switches to multipart above the transfer threshold
        try:
            self.s3.upload_fileobj(fileobj, self.bucket, key, ExtraArgs={"ContentType": content_type})
        except (BotoCoreError, ClientError) as e:
            log.exception("upload_fileobj failed key=%s", key)
            raise StorageUnavailableError(f"Could not store {key}") from e
        return self._url(key)

    def get_bytes(self, key: str) -> bytes:
        try:
            obj = self.s3.get_object(Bucket=self.bucket, Key=key)
            return obj["Body"].read()
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES:
                raise ObjectNotFoundError(key) from e
            raise StorageUnavailableError(f"Could not read {key}") from e
        except BotoCoreError as e:
            raise StorageUnavailableError(f"Could not read {key}") from e

    def exists(self, key: str) -> bool:
        try:
            self.s3.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES:
                return False
            raise StorageUnavailableError(f"Could not stat {key}") from e

    def delete(self, key: str) -> None:
        self.s3.delete_object(Bucket=self.bucket, Key=key)

"""Amazon S3 object store driver."""

from typing import List, Optional
from urllib.parse import quote
import mimetypes

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError, EndpointConnectionError

from .base import ObjectStore, StorageError, ObjectInfo
from utils.retry import (
    retry_on_transient_error,
    is_transient_network_error,
    log_retry,
    TRANSIENT_HTTP_STATUS_CODES,
    TRANSIENT_S3_ERROR_CODES,
)


# ---------------------------------------------------------------------------
# S3 Retry Configuration
# ---------------------------------------------------------------------------

def _is_retryable_s3_error(exc: Exception) -> bool:
    """Determine if an S3 API error should be retried."""
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        return error.get("Code") in TRANSIENT_S3_ERROR_CODES or status in TRANSIENT_HTTP_STATUS_CODES
    if isinstance(exc, EndpointConnectionError):
        return True
    return is_transient_network_error(exc)


def _with_retry(func):
    """Decorator to add retry logic to S3 API calls."""
    return retry_on_transient_error(
        is_retryable=_is_retryable_s3_error,
        max_retries=3,
        base_delay=0.5,
        max_delay=8.0,
        on_retry=log_retry,
    )(func)


class S3Driver(ObjectStore):
    """Object store driver for Amazon S3.

    Credentials come from the default boto3 chain (environment variables,
    shared config, instance profile).
    """

    def __init__(self, default_bucket: str, region: Optional[str] = None,
                 client=None, request_timeout: float = 10.0) -> None:
        """Initialize the S3 driver.

        Args:
            default_bucket: Bucket used when a reference names none
            region: AWS region (e.g. "us-east-1"); None uses the boto3 default
            client: Pre-built boto3 S3 client (tests pass a stubbed one)
            request_timeout: Connect/read timeout in seconds
        """
        super().__init__(default_bucket)
        self.region = region

        if client is not None:
            self.client = client
        else:
            session = boto3.Session(region_name=region)
            self.client = session.client(
                "s3",
                region_name=region,
                config=BotoConfig(
                    connect_timeout=request_timeout,
                    read_timeout=request_timeout,
                    retries={"max_attempts": 3, "mode": "standard"},
                    signature_version="s3v4",
                ),
            )

    @property
    def display_name(self) -> str:
        return f"{self.default_bucket} (S3)"

    @_with_retry
    def _list_page(self, bucket: str, prefix: str, max_keys: int,
                   token: Optional[str] = None) -> dict:
        """Fetch one page of a ListObjectsV2 listing."""
        params = {"Bucket": bucket, "Prefix": prefix, "MaxKeys": max_keys}
        if token:
            params["ContinuationToken"] = token
        return self.client.list_objects_v2(**params)

    @staticmethod
    def _to_infos(response: dict) -> List[ObjectInfo]:
        return [
            ObjectInfo(
                key=item["Key"],
                last_modified=item.get("LastModified"),
                size=item.get("Size"),
            )
            for item in response.get("Contents", [])
            if item.get("Key")
        ]

    def list_objects(self, bucket: str, prefix: str = "",
                     max_keys: int = ObjectStore.DEFAULT_PAGE_SIZE) -> List[ObjectInfo]:
        """List a single page of objects under a prefix."""
        try:
            return self._to_infos(self._list_page(bucket, prefix, max_keys))
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to list s3://{bucket}/{prefix}: {e}")

    def list_all(self, bucket: str, prefix: str = "") -> List[ObjectInfo]:
        """List every object under a prefix, following continuation tokens."""
        results = []
        token = None

        try:
            while True:
                response = self._list_page(bucket, prefix, self.DEFAULT_PAGE_SIZE, token)
                results.extend(self._to_infos(response))
                if not response.get("IsTruncated"):
                    break
                token = response.get("NextContinuationToken")
                if not token:
                    break
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to list s3://{bucket}/{prefix}: {e}")

        return results

    def object_exists(self, bucket: str, key: str) -> bool:
        """Check if an object exists with a HEAD request."""
        if not bucket or not key:
            return False
        try:
            self.client.head_object(Bucket=bucket, Key=key)
            return True
        except (ClientError, BotoCoreError):
            return False

    def object_url(self, bucket: str, key: str) -> str:
        region = self.region or "us-east-1"
        return f"https://{bucket}.s3.{region}.amazonaws.com/{quote(key, safe='/')}"

    def presign_get(self, bucket: str, key: str, expires_in: int = 3600) -> str:
        """Return a presigned GET URL."""
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to presign download for s3://{bucket}/{key}: {e}")

    def presign_put(self, bucket: str, key: str,
                    content_type: str = "application/octet-stream",
                    expires_in: int = 3600) -> str:
        """Return a presigned PUT URL bound to a content type."""
        try:
            return self.client.generate_presigned_url(
                "put_object",
                Params={"Bucket": bucket, "Key": key, "ContentType": content_type},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to presign upload for s3://{bucket}/{key}: {e}")

    @_with_retry
    def _put_file(self, local_path: str, bucket: str, key: str, content_type: str) -> None:
        self.client.upload_file(local_path, bucket, key,
                                ExtraArgs={"ContentType": content_type})

    def upload(self, local_path: str, bucket: str, key: str,
               content_type: Optional[str] = None) -> None:
        """Upload a local file to S3."""
        if content_type is None:
            content_type = mimetypes.guess_type(local_path)[0] or "application/octet-stream"
        try:
            self._put_file(local_path, bucket, key, content_type)
        except (ClientError, BotoCoreError, S3UploadFailedError) as e:
            raise StorageError(f"Failed to upload {local_path} to s3://{bucket}/{key}: {e}")

    def set_cors(self, bucket: str, origins: List[str]) -> None:
        """Allow browser uploads/downloads with presigned URLs from origins."""
        try:
            self.client.put_bucket_cors(
                Bucket=bucket,
                CORSConfiguration={
                    "CORSRules": [{
                        "AllowedOrigins": origins,
                        "AllowedMethods": ["GET", "PUT", "POST", "HEAD", "DELETE"],
                        "AllowedHeaders": ["*"],
                        "ExposeHeaders": ["ETag"],
                        "MaxAgeSeconds": 3000,
                    }],
                },
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to set CORS on {bucket}: {e}")

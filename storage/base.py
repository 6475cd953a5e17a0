"""Base classes for object store drivers.

This module defines the abstract interface that all object store backends
must implement. Unlike a filesystem, an object store is a flat namespace of
keys per bucket; folders only exist as shared key prefixes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


@dataclass
class ObjectInfo:
    """Information about one object in a listing.

    Attributes:
        key: Full object key within its bucket (e.g. "user1/Docs/a.pdf")
        last_modified: Last modification time, if the backend reports it
        size: Object size in bytes (optional)
    """
    key: str
    last_modified: Optional[datetime] = None
    size: Optional[int] = None


class ObjectStore(ABC):
    """Abstract base class for object store backends.

    A single driver serves several buckets; every operation names the bucket
    it works on. Read operations are required; presigning and write
    operations may raise NotImplementedError.
    """

    DEFAULT_PAGE_SIZE = 1000

    def __init__(self, default_bucket: str) -> None:
        self.default_bucket = default_bucket

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Human-readable name for this storage (e.g., 'my-bucket (S3)')."""
        pass

    # =========================================================================
    # Read Operations (required for all drivers)
    # =========================================================================

    @abstractmethod
    def list_objects(self, bucket: str, prefix: str = "",
                     max_keys: int = DEFAULT_PAGE_SIZE) -> List[ObjectInfo]:
        """List a single page of objects under a prefix.

        Args:
            bucket: Bucket to list
            prefix: Key prefix (e.g. "user1/")
            max_keys: Page size upper bound

        Returns:
            List of ObjectInfo, at most max_keys entries

        Raises:
            StorageError: If the listing fails
        """
        pass

    def list_all(self, bucket: str, prefix: str = "") -> List[ObjectInfo]:
        """List every object under a prefix, following pagination.

        Drivers without pagination return their single page.
        """
        return self.list_objects(bucket, prefix)

    @abstractmethod
    def object_exists(self, bucket: str, key: str) -> bool:
        """Check if an object exists.

        Any error (missing bucket, permissions, network) counts as "not
        found"; this never raises.
        """
        pass

    def object_url(self, bucket: str, key: str) -> str:
        """Canonical (unsigned) URL of an object."""
        raise NotImplementedError(f"{self.display_name} has no object URLs")

    # =========================================================================
    # Signing and Write Operations (optional)
    # =========================================================================

    def presign_get(self, bucket: str, key: str, expires_in: int = 3600) -> str:
        """Return a time-limited download URL for an object.

        Raises:
            StorageError: If signing fails
            NotImplementedError: If the backend cannot sign URLs
        """
        raise NotImplementedError(f"{self.display_name} does not support presigned URLs")

    def presign_put(self, bucket: str, key: str,
                    content_type: str = "application/octet-stream",
                    expires_in: int = 3600) -> str:
        """Return a time-limited upload URL for an object."""
        raise NotImplementedError(f"{self.display_name} does not support presigned URLs")

    def upload(self, local_path: str, bucket: str, key: str,
               content_type: Optional[str] = None) -> None:
        """Upload a local file as an object.

        Raises:
            StorageError: If upload fails
            NotImplementedError: If storage is read-only
        """
        raise NotImplementedError(f"{self.display_name} does not support write operations")

    def set_cors(self, bucket: str, origins: List[str]) -> None:
        """Allow browsers from the given origins to use presigned URLs."""
        raise NotImplementedError(f"{self.display_name} does not support CORS configuration")

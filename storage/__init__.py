"""Object store abstraction for Sorta.

Provides a uniform interface for listing, probing and signing objects:
- S3Driver: Amazon S3
- LocalDriver: Local directory tree (one subdirectory per bucket)

Usage:
    from storage import create_storage

    store = create_storage("s3:my-bucket", region="us-east-1")
    store = create_storage("local:/path/to/root")
"""

from typing import Optional

from .base import ObjectStore, StorageError, ObjectInfo
from .local import LocalDriver
from .s3 import S3Driver


def create_storage(uri: str, region: Optional[str] = None,
                   bucket: Optional[str] = None) -> ObjectStore:
    """Create an object store driver from a URI.

    Args:
        uri: Storage URI in one of these formats:
            - s3:bucket-name
            - local:/path/to/root
        region: AWS region for S3
        bucket: Default bucket for local storage (defaults to "local")

    Returns:
        ObjectStore instance for the specified backend

    Raises:
        ValueError: If URI format is invalid
    """
    storage_type, value = parse_storage_uri(uri)
    if storage_type == "s3":
        return S3Driver(value, region=region)
    return LocalDriver(value, default_bucket=bucket or "local")


def parse_storage_uri(uri: str) -> tuple:
    """Parse a storage URI into (type, value) tuple.

    Args:
        uri: Storage URI (e.g., 's3:my-bucket', 'local:/path')

    Returns:
        Tuple of (storage_type, value) where storage_type is 's3' or 'local'

    Raises:
        ValueError: If URI format is invalid
    """
    if uri.startswith("s3:") and uri[3:] and not uri.startswith("s3://"):
        return ("s3", uri[3:])
    elif uri.startswith("local:") and uri[6:]:
        return ("local", uri[6:])
    else:
        raise ValueError(
            f"Invalid storage URI: {uri}. "
            "Must be 's3:<bucket>' or 'local:<path>'"
        )


__all__ = [
    'ObjectStore',
    'StorageError',
    'ObjectInfo',
    'LocalDriver',
    'S3Driver',
    'create_storage',
    'parse_storage_uri',
]

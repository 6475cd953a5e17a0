"""Local filesystem object store driver.

Mirrors S3 semantics on a directory: each subdirectory of the root is a
bucket, and each file below it is an object whose key is its relative path
with '/' separators. Empty directories are reported as folder keys ending in
'/', the way S3 consoles create folder markers.
"""

import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .base import ObjectStore, StorageError, ObjectInfo


class LocalDriver(ObjectStore):
    """Object store driver for the local filesystem.

    All buckets are directories under the root_path provided at construction.
    """

    def __init__(self, root_path: str, default_bucket: str = "local") -> None:
        """Initialize local storage driver.

        Args:
            root_path: Path to the directory holding bucket directories
            default_bucket: Bucket used when a reference names none

        Raises:
            StorageError: If root_path doesn't exist
        """
        super().__init__(default_bucket)
        self.root_path = os.path.abspath(root_path)
        if not os.path.exists(self.root_path):
            raise StorageError(f"Directory does not exist: {self.root_path}")
        if not os.path.isdir(self.root_path):
            raise StorageError(f"Not a directory: {self.root_path}")

    @property
    def display_name(self) -> str:
        return f"{self.root_path} (local)"

    def _full_path(self, bucket: str, key: str = "") -> str:
        """Convert bucket/key to an absolute path inside the root."""
        bucket_root = os.path.join(self.root_path, bucket)
        full = os.path.abspath(os.path.join(bucket_root, key))
        if full != bucket_root and not full.startswith(bucket_root + os.sep):
            raise StorageError(f"Key escapes bucket: {bucket}/{key}")
        return full

    def _info(self, bucket_root: str, abs_path: str, is_dir: bool = False) -> ObjectInfo:
        key = Path(os.path.relpath(abs_path, bucket_root)).as_posix()
        if is_dir:
            key += "/"
        try:
            stat = os.stat(abs_path)
            modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
            size = None if is_dir else stat.st_size
        except OSError:
            modified, size = None, None
        return ObjectInfo(key=key, last_modified=modified, size=size)

    def list_all(self, bucket: str, prefix: str = "") -> List[ObjectInfo]:
        """List all objects whose key starts with prefix."""
        bucket_root = self._full_path(bucket)
        if not os.path.isdir(bucket_root):
            raise StorageError(f"Bucket does not exist: {bucket}")

        results = []
        for root, dirs, files in os.walk(bucket_root):
            dirs.sort()
            if root != bucket_root and not dirs and not files:
                info = self._info(bucket_root, root, is_dir=True)
                if info.key.startswith(prefix):
                    results.append(info)
            for filename in sorted(files):
                info = self._info(bucket_root, os.path.join(root, filename))
                if info.key.startswith(prefix):
                    results.append(info)

        return results

    def list_objects(self, bucket: str, prefix: str = "",
                     max_keys: int = ObjectStore.DEFAULT_PAGE_SIZE) -> List[ObjectInfo]:
        """List a single page of objects under a prefix."""
        return self.list_all(bucket, prefix)[:max_keys]

    def object_exists(self, bucket: str, key: str) -> bool:
        """Check if an object (a regular file) exists."""
        if not key:
            return False
        try:
            return os.path.isfile(self._full_path(bucket, key))
        except StorageError:
            return False

    def object_url(self, bucket: str, key: str) -> str:
        return Path(self._full_path(bucket, key)).as_uri()

    def presign_get(self, bucket: str, key: str, expires_in: int = 3600) -> str:
        """Local objects need no signature; return their file:// URL."""
        return self.object_url(bucket, key)

    def presign_put(self, bucket: str, key: str,
                    content_type: str = "application/octet-stream",
                    expires_in: int = 3600) -> str:
        return self.object_url(bucket, key)

    def upload(self, local_path: str, bucket: str, key: str,
               content_type: Optional[str] = None) -> None:
        """Copy a local file into the bucket directory."""
        full_dest = self._full_path(bucket, key)

        try:
            os.makedirs(os.path.dirname(full_dest), exist_ok=True)
            shutil.copy2(local_path, full_dest)
        except OSError as e:
            raise StorageError(f"Failed to copy file to {bucket}/{key}: {e}")

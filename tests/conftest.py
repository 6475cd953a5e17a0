"""Shared fixtures: an in-memory object store that records its calls."""

from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

from storage import ObjectStore, ObjectInfo, StorageError


class FakeStore(ObjectStore):
    """In-memory ObjectStore keeping per-bucket objects and a call log."""

    def __init__(self, default_bucket: str = "primary") -> None:
        super().__init__(default_bucket)
        self.objects: Dict[str, List[ObjectInfo]] = {}
        self.failing_buckets = set()
        self.calls: List[tuple] = []

    @property
    def display_name(self) -> str:
        return "fake (memory)"

    def add(self, bucket: str, key: str, modified: Optional[datetime] = None) -> None:
        self.objects.setdefault(bucket, []).append(ObjectInfo(key=key, last_modified=modified))

    def list_objects(self, bucket, prefix="", max_keys=1000):
        self.calls.append(("list", bucket, prefix))
        if bucket in self.failing_buckets:
            raise StorageError(f"Access denied: {bucket}")
        items = [o for o in self.objects.get(bucket, []) if o.key.startswith(prefix)]
        return items[:max_keys]

    def object_exists(self, bucket, key):
        self.calls.append(("exists", bucket, key))
        return any(o.key == key for o in self.objects.get(bucket, []))

    def object_url(self, bucket, key):
        return f"https://{bucket}.s3.test.amazonaws.com/{key}"

    def presign_get(self, bucket, key, expires_in=3600):
        return f"{self.object_url(bucket, key)}?signed=get&expires={expires_in}"

    def presign_put(self, bucket, key, content_type="application/octet-stream", expires_in=3600):
        return f"{self.object_url(bucket, key)}?signed=put&type={content_type}"

    def upload(self, local_path, bucket, key, content_type=None):
        self.calls.append(("upload", bucket, key))
        self.add(bucket, key)

    def listed(self) -> bool:
        return any(call[0] == "list" for call in self.calls)


@pytest.fixture
def store():
    return FakeStore()


def ts(seconds: int) -> datetime:
    """A UTC timestamp seconds after 2024-01-01."""
    return datetime.fromtimestamp(1704067200 + seconds, tz=timezone.utc)


@pytest.fixture
def at():
    return ts

"""File operations workflow: structure, uploads, and download links."""

import os
import re
import time
from dataclasses import dataclass
from typing import List, Optional, Tuple, TYPE_CHECKING

from sorta import Sorta
from storage import StorageError, ObjectInfo
from .keys import ObjectRef, reference_from_request
from .resolver import KeyResolver
from .tree import TreeNode, build_tree

if TYPE_CHECKING:
    from storage import ObjectStore
    from .pipeline import GumloopClient


@dataclass
class UploadTicket:
    """Presigned URLs for one direct-to-storage upload."""
    upload_url: str
    object_url: str
    download_url: str
    key: str
    bucket: str


@dataclass
class DownloadLink:
    """A signed download URL for a resolved object."""
    download_url: str
    object_url: str
    key: str
    bucket: str
    found: bool


def sanitize_upload_name(name: str) -> str:
    """Replace every character outside [A-Za-z0-9._-] with '_'."""
    return re.sub(r'[^a-zA-Z0-9._-]', '_', name)


def upload_key(owner: str, file_name: str, now_ms: Optional[int] = None) -> str:
    """Build a collision-safe key: "<owner>/<epoch ms>_<sanitized name>"."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{owner}/{now_ms}_{sanitize_upload_name(file_name)}"


def fetch_structure(client: "GumloopClient", owner: str) -> Tuple[List[str], TreeNode]:
    """Get an owner's tree from the structure pipeline."""
    return client.get_structure_and_parse(owner)


def list_structure(store: "ObjectStore", owner: str,
                   bucket: Optional[str] = None) -> Tuple[List[str], TreeNode]:
    """Get an owner's tree straight from a full storage listing."""
    bucket = bucket or store.default_bucket
    listing = store.list_all(bucket, f"{owner}/")
    raw = [ObjectRef(bucket, info.key).uri for info in listing]
    return (raw, build_tree(raw, owner))


def list_prefix(store: "ObjectStore", prefix: str, match: Optional[str] = None,
                bucket: Optional[str] = None) -> List[ObjectInfo]:
    """List objects under a prefix, optionally filtered by a case-insensitive substring."""
    listing = store.list_all(bucket or store.default_bucket, prefix)
    if match:
        needle = match.lower()
        listing = [info for info in listing if needle in info.key.lower()]
    return listing


def presign_upload(store: "ObjectStore", owner: str, file_name: str,
                   content_type: Optional[str] = None,
                   bucket: Optional[str] = None) -> UploadTicket:
    """Presign a direct upload plus a GET URL the pipeline can fetch from.

    Objects uploaded with a presigned PUT are private, so the pipeline gets
    a presigned GET rather than the plain object URL.
    """
    bucket = bucket or store.default_bucket
    key = upload_key(owner, file_name)
    return UploadTicket(
        upload_url=store.presign_put(bucket, key, content_type or "application/octet-stream"),
        object_url=store.object_url(bucket, key),
        download_url=store.presign_get(bucket, key),
        key=key,
        bucket=bucket,
    )


def download_link(store: "ObjectStore", resolver: KeyResolver,
                  owner: Optional[str] = None, key: Optional[str] = None,
                  uri: Optional[str] = None, path: Optional[str] = None,
                  bucket: Optional[str] = None, expires_in: int = 3600) -> DownloadLink:
    """Resolve a reference and sign a download URL for it.

    Args:
        store: Object store that signs the URL
        resolver: Resolver used to find the real key
        owner: Owner id (enables listing-based matching and path references)
        key: Explicit object key
        uri: s3:// URI or HTTPS object URL
        path: Logical path within the owner's storage
        bucket: Bucket for key/path references (defaults to the store's)
        expires_in: URL lifetime in seconds

    Raises:
        InvalidReferenceError: If no key, uri, or owner + path was given
        StorageError: If the reference cannot be decomposed or signing fails
    """
    bucket = bucket or store.default_bucket
    ref = reference_from_request(bucket, key=key, uri=uri, owner=owner, path=path)
    resolution = resolver.resolve(ref, owner, default_bucket=bucket)
    if resolution.key is None:
        raise StorageError(f"Could not locate file: {uri}")

    return DownloadLink(
        download_url=store.presign_get(resolution.bucket, resolution.key, expires_in),
        object_url=store.object_url(resolution.bucket, resolution.key),
        key=resolution.key,
        bucket=resolution.bucket,
        found=resolution.found,
    )


def upload_local_file(store: "ObjectStore", client: "GumloopClient", owner: str,
                      local_path: str, dest_path: Optional[str] = None,
                      description: str = "") -> str:
    """Stage a local file in storage and hand it to an upload pipeline.

    With dest_path the file is filed there (manual flow); without it the AI
    sorting flow picks the folder.

    Returns:
        The pipeline run id

    Raises:
        ValueError: If dest_path does not start with '/'
        StorageError: If staging the file fails
        PipelineError: If the flow cannot be started
    """
    if dest_path is not None and not dest_path.startswith('/'):
        raise ValueError("Path must start with /")

    file_name = os.path.basename(local_path)
    bucket = store.default_bucket
    key = upload_key(owner, file_name)

    store.upload(local_path, bucket, key)
    file_url = store.presign_get(bucket, key)
    Sorta.print_debug(f"Staged {file_name} at {ObjectRef(bucket, key).uri}")

    if dest_path is not None:
        run_id = client.upload_manual(owner, file_name, dest_path, file_url)
        Sorta.print_log(f"Upload started (manual placement): {file_name} -> {dest_path} [{run_id}]")
    else:
        run_id = client.upload_auto(owner, file_name, description, file_url)
        Sorta.print_log(f"Upload started (AI sorting): {file_name} [{run_id}]")
    return run_id


def init_user_storage(client: "GumloopClient", owner: str) -> None:
    """Create an owner's root folder and wait for the pipeline to finish."""
    run_id = client.create_folder(owner, "/")
    client.poll_run_until_done(run_id, interval=1.0, timeout=30.0)
    Sorta.print_log(f"User storage initialized for {owner}")

"""Storage object identifiers.

An object is named either by an s3:// URI or by a virtual-hosted-style
HTTPS URL. Both decompose into a (bucket, key) pair.
"""

from dataclasses import dataclass
from typing import Optional, Tuple
from urllib.parse import urlparse, unquote


class InvalidReferenceError(ValueError):
    """Raised when a request names no usable object reference at all."""
    pass


@dataclass(frozen=True)
class ObjectRef:
    """A concrete object location."""
    bucket: str
    key: str

    @property
    def uri(self) -> str:
        return f"s3://{self.bucket}/{self.key}"


def basename(key: str) -> str:
    """Return the final '/'-delimited segment of a key."""
    return key.split('/')[-1]


def _decompose(object_id: str) -> Optional[Tuple[str, str]]:
    """Split a URI/URL into (bucket, key); bucket is "" if the URL has none."""
    if object_id.startswith("s3://"):
        bucket, _, key = object_id[5:].partition('/')
        if not bucket:
            return None
        return (bucket, key)

    if object_id.startswith(("https://", "http://")):
        try:
            parsed = urlparse(object_id)
            hostname = parsed.hostname or ""
        except ValueError:
            return None
        host_parts = hostname.split('.')
        bucket = host_parts[0] if len(host_parts) > 1 and host_parts[1] == "s3" else ""
        return (bucket, unquote(parsed.path.lstrip('/')))

    return None


def parse_object_id(object_id: str, default_bucket: str = "") -> Optional[ObjectRef]:
    """Decompose an s3:// URI or HTTPS object URL into an ObjectRef.

    HTTPS keys are percent-decoded; s3:// keys are taken verbatim. An HTTPS
    URL whose host is not "<bucket>.s3.<region>.amazonaws.com" keeps
    default_bucket.

    Returns:
        ObjectRef, or None if the identifier cannot be decomposed
    """
    if not object_id:
        return None
    parts = _decompose(object_id)
    if parts is None:
        return None
    bucket, key = parts
    bucket = bucket or default_bucket
    if not bucket or not key:
        return None
    return ObjectRef(bucket, key)


def object_key(object_id: str) -> Optional[str]:
    """Return the key of an identifier; bare keys pass through unchanged."""
    if not object_id:
        return None
    if "://" not in object_id:
        return object_id
    parts = _decompose(object_id)
    return parts[1] if parts else None


def key_for_path(owner: str, logical_path: str) -> str:
    """Build the object key an owner's logical path would map to verbatim."""
    return f"{owner}/{logical_path.lstrip('/')}"


def reference_from_request(default_bucket: str, key: Optional[str] = None,
                           uri: Optional[str] = None, owner: Optional[str] = None,
                           path: Optional[str] = None) -> Optional[ObjectRef]:
    """Derive the initial candidate from whichever reference a caller supplied.

    Precedence: explicit key, then URI/URL, then owner + logical path.

    Returns:
        ObjectRef, or None when a URI was supplied that cannot be decomposed

    Raises:
        InvalidReferenceError: If no key, URI, or owner + path was given
    """
    if key:
        return ObjectRef(default_bucket, key)
    if uri:
        return parse_object_id(uri, default_bucket)
    if owner and path:
        return ObjectRef(default_bucket, key_for_path(owner, path))
    raise InvalidReferenceError("Missing key or s3_uri or (user_id + path)")

"""Resolution of user-visible paths to the objects that actually back them.

The upload pipeline renames what it stores: it prefixes millisecond
timestamps ("1700000000000_report.pdf"), replaces characters, and
re-encodes spaces. The UI only knows the name the user sees, so before a
download URL can be signed we look for the real key:

1. Probe the derived key directly (no listing cost when it exists).
2. List the owner's prefix and compare normalized basenames, preferring
   the most recently modified match.
3. Repeat both against the secondary bucket, if one is configured.

Nothing here raises for a missing object. The best guess is returned and
the storage layer reports "not found" when the URL is used.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import Callable, List, Optional, TYPE_CHECKING
from urllib.parse import unquote

from sorta import Sorta
from storage import StorageError
from .keys import ObjectRef, basename

if TYPE_CHECKING:
    from storage import ObjectStore, ObjectInfo


DIRECT = "direct"
MATCH = "match"
SUFFIX = "suffix"
UNRESOLVED = "unresolved"

_TIMESTAMP_PREFIX = re.compile(r'^\d+_')


@dataclass
class Resolution:
    """Outcome of resolving a reference.

    Attributes:
        bucket: Bucket the key belongs to
        key: Resolved key, or None if the reference could not be decomposed
        found: True if the key was confirmed or matched in a listing
        strategy: How the key was found (DIRECT, MATCH, SUFFIX or UNRESOLVED)
    """
    bucket: str
    key: Optional[str]
    found: bool = False
    strategy: str = UNRESOLVED

    @property
    def ref(self) -> Optional[ObjectRef]:
        return ObjectRef(self.bucket, self.key) if self.key else None


@dataclass
class MatchCandidate:
    """A listed object whose basename matched the anchor.

    Attributes:
        key: Full object key
        last_modified: Modification time; candidates without one rank oldest
    """
    key: str
    last_modified: Optional[datetime] = None

    def recency(self) -> float:
        return self.last_modified.timestamp() if self.last_modified else float("-inf")


def normalize_name(name: str) -> str:
    """Normalize a file name for fuzzy comparison.

    "My%20Report+(final).PDF" and "my_report_final.pdf" both become
    "my report final pdf".

    Only ASCII letters and digits survive, so names written entirely in
    other scripts reduce to their extension ("報告.pdf" -> "pdf") and match
    any such name with the same extension.
    """
    if not name:
        return ""
    text = name.replace('+', ' ')
    text = re.sub(r'%20', ' ', text, flags=re.IGNORECASE)
    text = unquote(text)
    text = re.sub(r'[^a-z0-9 ]', ' ', text, flags=re.IGNORECASE).lower()
    return re.sub(r'\s+', ' ', text).strip()


def strip_timestamp_prefix(name: str) -> str:
    """Remove a leading "<digits>_" upload timestamp from a basename."""
    return _TIMESTAMP_PREFIX.sub('', name, count=1)


def find_matches(anchor: str, listing: List["ObjectInfo"]) -> List[MatchCandidate]:
    """Return listed objects whose basename matches the anchor basename."""
    anchor_norm = normalize_name(anchor)
    matches = []

    for info in listing:
        base = basename(info.key)
        candidate_norm = normalize_name(strip_timestamp_prefix(base))
        if anchor_norm and candidate_norm == anchor_norm:
            matches.append(MatchCandidate(info.key, info.last_modified))
        elif anchor and base.replace('+', ' ').endswith(anchor):
            matches.append(MatchCandidate(info.key, info.last_modified))

    return matches


def pick_best(candidates: List[MatchCandidate]) -> Optional[MatchCandidate]:
    """Pick the most recently modified candidate; the first listed wins ties."""
    if not candidates:
        return None
    return max(candidates, key=MatchCandidate.recency)


class KeyResolver:
    """Resolve references to real object keys against an object store.

    Args:
        store: Object store used for existence probes and listings
        secondary_bucket: Optional bucket searched when the primary misses
        page_size: Maximum keys fetched per listing
    """

    def __init__(self, store: "ObjectStore", secondary_bucket: Optional[str] = None,
                 page_size: int = 1000) -> None:
        self.store = store
        self.secondary_bucket = secondary_bucket
        self.page_size = page_size

    # =========================================================================
    # Strategies: each returns a Resolution on success, None on a miss
    # =========================================================================

    def probe(self, bucket: str, key: str, owner: Optional[str]) -> Optional[Resolution]:
        """Check whether the key exists verbatim."""
        if self.store.object_exists(bucket, key):
            return Resolution(bucket, key, found=True, strategy=DIRECT)
        return None

    def search(self, bucket: str, key: str, owner: Optional[str]) -> Optional[Resolution]:
        """Search the owner's listing for an object with a matching basename."""
        if not owner:
            return None

        prefix = f"{owner}/"
        try:
            listing = self.store.list_objects(bucket, prefix, max_keys=self.page_size)
        except StorageError as e:
            Sorta.print_log(f"Warning: listing {bucket}/{prefix} failed: {e}")
            return None

        anchor = basename(key)
        best = pick_best(find_matches(anchor, listing))
        if best is not None:
            Sorta.print_debug(f"Resolved {key} -> {best.key} in {bucket}")
            return Resolution(bucket, best.key, found=True, strategy=MATCH)

        if anchor:
            for info in listing:
                if info.key.endswith(anchor):
                    Sorta.print_debug(f"Resolved {key} -> {info.key} in {bucket} (suffix)")
                    return Resolution(bucket, info.key, found=True, strategy=SUFFIX)

        return None

    def attempts(self, bucket: str) -> List[Callable[[str, Optional[str]], Optional[Resolution]]]:
        """Ordered (bucket, strategy) attempts for a reference in bucket."""
        buckets = [bucket]
        if self.secondary_bucket and self.secondary_bucket != bucket:
            buckets.append(self.secondary_bucket)

        chain = []
        for name in buckets:
            chain.append(partial(self.probe, name))
            chain.append(partial(self.search, name))
        return chain

    def resolve(self, ref: Optional[ObjectRef], owner: Optional[str] = None,
                default_bucket: str = "") -> Resolution:
        """Resolve a reference to the best matching object.

        Args:
            ref: Initial candidate derived from the request; None when the
                 caller's identifier could not be decomposed
            owner: Owner id whose prefix may be searched
            default_bucket: Bucket reported for an undecomposable reference

        Returns:
            Resolution; found is False when nothing better than the
            original candidate was located
        """
        if ref is None:
            return Resolution(default_bucket, None)

        for attempt in self.attempts(ref.bucket):
            result = attempt(ref.key, owner)
            if result is not None:
                return result

        Sorta.print_debug(f"No object found for {ref.uri}")
        return Resolution(ref.bucket, ref.key)

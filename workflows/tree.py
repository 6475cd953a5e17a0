"""Folder tree reconstruction from a flat object listing.

S3 has no folders: a user's storage is a flat set of keys such as
"user1/Documents/Taxes/2024.pdf". This module rebuilds the folder hierarchy
the user sees, rooted at "My Storage".
"""

import hashlib
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional

from sorta import Sorta
from .keys import object_key

FOLDER = "folder"
FILE = "file"

ROOT_NAME = "My Storage"
PLACEHOLDER_SUFFIX = ".keep"


@dataclass
class TreeNode:
    """A folder or file in an owner's storage tree.

    Attributes:
        id: Stable node id derived from the owner and logical path
        name: Display name (final path segment)
        kind: FOLDER or FILE
        logical_path: Path from the tree root, e.g. "/Documents/file.pdf"
        backing_id: Identifier of the object this node came from, if any
        children: Child nodes for folders, None for files
    """
    id: str
    name: str
    kind: str
    logical_path: str
    backing_id: Optional[str] = None
    children: Optional[List["TreeNode"]] = None

    @property
    def is_folder(self) -> bool:
        return self.kind == FOLDER

    def find_child(self, name: str) -> Optional["TreeNode"]:
        for child in self.children or []:
            if child.name == name:
                return child
        return None


def node_id(owner: str, logical_path: str) -> str:
    """Derive a node id: owner + path with non-alphanumerics replaced by '_'."""
    return re.sub(r'[^a-zA-Z0-9]', '_', f"{owner}{logical_path}")


def _assign_ids(root: TreeNode, owner: str) -> None:
    """Give every node below root a unique id, walking in display order.

    The first node of a colliding id ("a b.txt" and "a_b.txt") keeps the
    plain id; later ones get a suffix hashed from their logical path.
    """
    used = {root.id}

    def visit(node: TreeNode) -> None:
        for child in node.children or []:
            base = node_id(owner, child.logical_path)
            candidate = base
            if candidate in used:
                digest = hashlib.sha256(child.logical_path.encode("utf-8")).hexdigest()
                length = 8
                candidate = f"{base}_{digest[:length]}"
                while candidate in used:
                    length += 4
                    candidate = f"{base}_{digest[:length]}"
            used.add(candidate)
            child.id = candidate
            visit(child)

    visit(root)


def _sort_key(node: TreeNode) -> tuple:
    return (0 if node.is_folder else 1, node.name.casefold(), node.name)


def _sort_children(node: TreeNode) -> None:
    """Sort folders before files, then by name, at every level."""
    if node.children is None:
        return
    node.children.sort(key=_sort_key)
    for child in node.children:
        _sort_children(child)


def build_tree(object_ids: Iterable[str], owner: str) -> TreeNode:
    """Build an owner's folder tree from a flat list of object identifiers.

    Identifiers may be s3:// URIs, HTTPS object URLs or bare keys, in any
    order, with duplicates. Objects outside "<owner>/" and undecomposable
    identifiers are skipped. ".keep" placeholder objects make their parent
    folders exist without appearing themselves.

    Args:
        object_ids: Flat listing of identifiers
        owner: Owner id whose namespace is rendered

    Returns:
        The root TreeNode
    """
    root = TreeNode(id="root", name=ROOT_NAME, kind=FOLDER, logical_path="/", children=[])
    prefix = f"{owner}/"

    for object_id in object_ids:
        key = object_key(object_id)
        if key is None or not key.startswith(prefix):
            continue

        relative_path = key[len(prefix):]
        if not relative_path:
            continue

        is_placeholder = relative_path.endswith(PLACEHOLDER_SUFFIX)
        parts = [p for p in relative_path.split('/') if p]
        current_path = ""
        parent = root

        for i, part in enumerate(parts):
            is_last = i == len(parts) - 1
            current_path += "/" + part

            if is_last and is_placeholder:
                break

            node = parent.find_child(part)
            is_folder = not is_last or object_id.endswith('/')
            if node is None:
                node = TreeNode(
                    id=node_id(owner, current_path),
                    name=part,
                    kind=FOLDER if is_folder else FILE,
                    logical_path=current_path,
                    backing_id=object_id if is_last else None,
                    children=[] if is_folder else None,
                )
                parent.children.append(node)
            elif is_folder and not node.is_folder:
                # A name listed as both a file and a folder is a folder
                Sorta.print_debug(f"'{current_path}' is listed as a file and a folder; keeping the folder")
                node.kind = FOLDER
                node.children = []
                node.backing_id = object_id if is_last else None
            elif is_last and node.backing_id is None and node.is_folder and object_id.endswith('/'):
                node.backing_id = object_id

            parent = node

    _sort_children(root)
    _assign_ids(root, owner)
    return root


def iter_files(node: TreeNode) -> Iterator[TreeNode]:
    """Yield every file node below node, depth-first in display order."""
    for child in node.children or []:
        if child.is_folder:
            yield from iter_files(child)
        else:
            yield child


def tree_to_dict(node: TreeNode) -> Dict[str, Any]:
    """Convert a tree to JSON-ready dicts; files carry no "children" key."""
    data: Dict[str, Any] = {
        "id": node.id,
        "name": node.name,
        "type": node.kind,
        "path": node.logical_path,
    }
    if node.backing_id is not None:
        data["s3Key"] = node.backing_id
    if node.children is not None:
        data["children"] = [tree_to_dict(child) for child in node.children]
    return data

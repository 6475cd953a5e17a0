"""Workflow layer for Sorta.

Contains the logic between the UI and the external services:
- Tree building: Flat object listings to folder trees
- Key resolution: Logical paths to the real backing objects
- Pipelines: Gumloop flows for uploads, folders, moves and copies
- File operations: Structure, presigned uploads and download links
"""

from .keys import (
    ObjectRef,
    InvalidReferenceError,
    parse_object_id,
    object_key,
    reference_from_request,
)
from .tree import TreeNode, build_tree, iter_files, tree_to_dict, FOLDER, FILE
from .resolver import KeyResolver, Resolution, normalize_name, strip_timestamp_prefix
from .pipeline import GumloopClient, PipelineError, RunState, extract_listing
from .files import (
    UploadTicket,
    DownloadLink,
    fetch_structure,
    list_structure,
    list_prefix,
    presign_upload,
    download_link,
    upload_local_file,
    init_user_storage,
)


__all__ = [
    # Identifiers
    'ObjectRef',
    'InvalidReferenceError',
    'parse_object_id',
    'object_key',
    'reference_from_request',

    # Tree building
    'TreeNode',
    'build_tree',
    'iter_files',
    'tree_to_dict',
    'FOLDER',
    'FILE',

    # Key resolution
    'KeyResolver',
    'Resolution',
    'normalize_name',
    'strip_timestamp_prefix',

    # Pipelines
    'GumloopClient',
    'PipelineError',
    'RunState',
    'extract_listing',

    # File operations
    'UploadTicket',
    'DownloadLink',
    'fetch_structure',
    'list_structure',
    'list_prefix',
    'presign_upload',
    'download_link',
    'upload_local_file',
    'init_user_storage',
]

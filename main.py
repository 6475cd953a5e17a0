#!/usr/bin/env python3
"""Sorta - AI-sorted cloud file manager."""

import argparse
import json
import sys
from dataclasses import asdict
from typing import Optional

from sorta import Sorta, __version__
from storage import StorageError
from workflows import (
    InvalidReferenceError,
    KeyResolver,
    PipelineError,
    TreeNode,
    download_link,
    fetch_structure,
    init_user_storage,
    list_prefix,
    list_structure,
    presign_upload,
    tree_to_dict,
    upload_local_file,
)


def print_tree(node: TreeNode, indent: str = "") -> None:
    """Print a storage tree, one node per line."""
    for child in node.children or []:
        suffix = "/" if child.is_folder else ""
        Sorta.print_log(f"{indent}{child.name}{suffix}")
        if child.is_folder:
            print_tree(child, indent + "  ")


def load_tree(direct: bool) -> TreeNode:
    """Build the configured user's tree from storage or the structure pipeline."""
    if direct:
        _, root = list_structure(Sorta.store or Sorta.open_store(), Sorta.user_id)
    else:
        _, root = fetch_structure(Sorta.pipeline or Sorta.open_pipeline(), Sorta.user_id)
    return root


def make_download_link(reference: str, expires_in: int = 3600):
    """Sign a download URL for an s3:// URI, HTTPS URL, or logical path."""
    store = Sorta.store or Sorta.open_store()
    resolver = KeyResolver(store, secondary_bucket=Sorta.secondary_bucket)
    if "://" in reference:
        return download_link(store, resolver, owner=Sorta.user_id, uri=reference,
                             expires_in=expires_in)
    return download_link(store, resolver, owner=Sorta.user_id, path=reference,
                         expires_in=expires_in)


def require_user() -> Optional[str]:
    if not Sorta.user_id:
        print("Error: No user specified")
        print("Use --user or set SORTA_USER_ID environment variable")
    return Sorta.user_id


def run_command(args: argparse.Namespace) -> int:
    """Run the single command selected on the command line."""
    if args.run:
        print(json.dumps(Sorta.open_pipeline().get_run(args.run).to_dict(), indent=2))
        return 0
    if args.poll:
        run = Sorta.open_pipeline().poll_run_until_done(args.poll, interval=1.5, timeout=120.0)
        print(json.dumps(run.to_dict(), indent=2))
        return 0
    if args.kill:
        Sorta.open_pipeline().kill_run(args.kill)
        Sorta.print_log("Run cancelled")
        return 0
    if args.list is not None:
        for info in list_prefix(Sorta.open_store(), args.list, match=args.match):
            Sorta.print_log(f"- {info.key} ({info.size} bytes) {info.last_modified}")
        return 0
    if args.set_cors:
        store = Sorta.open_store()
        store.set_cors(store.default_bucket, [args.set_cors])
        Sorta.print_log(f"CORS set on {store.default_bucket} for {args.set_cors}")
        return 0

    if not require_user():
        return 1
    owner = Sorta.user_id

    if args.structure:
        root = load_tree(args.direct)
        if args.json:
            print(json.dumps(tree_to_dict(root), indent=2))
        else:
            Sorta.print_log(f"{root.name}/")
            print_tree(root, "  ")
    elif args.download:
        link = make_download_link(args.download)
        if not link.found:
            Sorta.print_log(f"[yellow]Warning: no object found for {args.download}; "
                            f"the link may not work[/yellow]")
        Sorta.print_log(f"s3://{link.bucket}/{link.key}")
        Sorta.print_log(link.download_url)
    elif args.presign:
        ticket = presign_upload(Sorta.open_store(), owner, args.presign, args.content_type)
        print(json.dumps(asdict(ticket), indent=2))
    elif args.upload:
        upload_local_file(Sorta.open_store(), Sorta.open_pipeline(), owner, args.upload,
                          dest_path=args.path, description=args.description or "")
    elif args.mkdir:
        run_id = Sorta.open_pipeline().create_folder(owner, args.mkdir)
        Sorta.print_log(f"Folder creation started [{run_id}]")
    elif args.delete:
        run_id = Sorta.open_pipeline().delete_path(owner, args.delete)
        Sorta.print_log(f"Delete started [{run_id}]")
    elif args.move:
        run_id = Sorta.open_pipeline().move_path(owner, *args.move)
        Sorta.print_log(f"Move started [{run_id}]")
    elif args.copy:
        run_id = Sorta.open_pipeline().copy_path(owner, *args.copy)
        Sorta.print_log(f"Copy started [{run_id}]")
    elif args.init:
        init_user_storage(Sorta.open_pipeline(), owner)
    return 0


def main_tui(direct: bool) -> int:
    """Browse the user's storage in the Textual UI."""
    from textui import SortaApp

    if not require_user():
        return 1

    store = Sorta.open_store()

    def link_for(node: TreeNode) -> str:
        backing = node.backing_id or ""
        reference = backing if "://" in backing else node.logical_path
        return make_download_link(reference).download_url

    app = SortaApp(
        owner=Sorta.user_id,
        storage=store.display_name,
        load_tree=lambda: load_tree(direct),
        link_for=link_for,
    )
    app.run()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sorta file manager")
    parser.add_argument("--version", action="version", version=f"sorta {__version__}")
    parser.add_argument("--user", type=str,
                        help="Owner id (defaults to SORTA_USER_ID)")
    parser.add_argument("--structure", action="store_true",
                        help="Print the storage tree")
    parser.add_argument("--direct", action="store_true",
                        help="Build the tree from a storage listing instead of the pipeline")
    parser.add_argument("--json", action="store_true",
                        help="Print the tree as JSON (with --structure)")
    parser.add_argument("--download", type=str, metavar="REF",
                        help="Presigned download URL for an s3:// URI, URL, or /path")
    parser.add_argument("--presign", type=str, metavar="FILE_NAME",
                        help="Presigned upload URLs for a new file")
    parser.add_argument("--content-type", type=str,
                        help="Content type for --presign")
    parser.add_argument("--upload", type=str, metavar="FILE",
                        help="Upload a local file (AI sorting unless --path is given)")
    parser.add_argument("--path", type=str,
                        help="Destination folder for --upload, e.g. /Documents")
    parser.add_argument("--description", type=str,
                        help="Hint for AI sorting (with --upload)")
    parser.add_argument("--mkdir", type=str, metavar="PATH",
                        help="Create a folder")
    parser.add_argument("--delete", type=str, metavar="PATH",
                        help="Delete a file or folder")
    parser.add_argument("--move", nargs=2, metavar=("PATH", "DEST"),
                        help="Move a file to a folder")
    parser.add_argument("--copy", nargs=2, metavar=("PATH", "DEST"),
                        help="Copy a file to a folder")
    parser.add_argument("--init", action="store_true",
                        help="Initialize storage for a new user")
    parser.add_argument("--run", type=str, metavar="RUN_ID",
                        help="Show the state of a pipeline run")
    parser.add_argument("--poll", type=str, metavar="RUN_ID",
                        help="Wait for a pipeline run to finish")
    parser.add_argument("--kill", type=str, metavar="RUN_ID",
                        help="Cancel a pipeline run")
    parser.add_argument("--list", type=str, metavar="PREFIX",
                        help="List raw storage objects under a prefix")
    parser.add_argument("--match", type=str,
                        help="Only list keys containing this text (with --list)")
    parser.add_argument("--set-cors", type=str, metavar="ORIGIN",
                        help="Allow a browser origin to use presigned URLs")
    parser.add_argument("--cli", action="store_true",
                        help="Use CLI output instead of TextUI (default is TextUI)")
    parser.add_argument("--verbose", action="store_true",
                        help="Show debug output")
    return parser


COMMANDS = ("structure", "download", "presign", "upload", "mkdir", "delete", "move",
            "copy", "init", "run", "poll", "kill", "list", "set_cors")


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    Sorta.configure(args)

    interactive = not any(getattr(args, name) not in (None, False) for name in COMMANDS)
    if interactive and args.cli:
        args.structure = True
        interactive = False

    try:
        if interactive:
            return main_tui(args.direct)
        return run_command(args)
    except (StorageError, PipelineError, InvalidReferenceError, ValueError) as e:
        print(f"Error: {e}")
        return 1
    finally:
        Sorta.close()


if __name__ == "__main__":
    sys.exit(main())

"""Sorta - Application state and configuration."""

import os
import re
from typing import Optional, Any, TYPE_CHECKING

if TYPE_CHECKING:
    import argparse
    from storage import ObjectStore
    from workflows.pipeline import GumloopClient

__version__ = "0.1.0"


def _strip_rich_markup(text: str) -> str:
    """Remove Rich markup tags like [red], [/red], [bold], etc."""
    return re.sub(r'\[/?[a-zA-Z_]+\]', '', text)


class Sorta:
    """Central configuration and state for Sorta."""

    # CLI config options
    verbose: bool = False
    user_id: Optional[str] = None

    # Storage configuration
    storage_uri: Optional[str] = None
    region: Optional[str] = None
    secondary_bucket: Optional[str] = None

    # Global resources
    store: Optional["ObjectStore"] = None
    pipeline: Optional["GumloopClient"] = None

    # UI app reference (None = CLI mode)
    _app: Optional[Any] = None

    @classmethod
    def configure(cls, args: "argparse.Namespace") -> None:
        """Initialize configuration from parsed CLI args and the environment."""
        cls.verbose = getattr(args, 'verbose', False)
        cls.user_id = getattr(args, 'user', None) or os.environ.get('SORTA_USER_ID')
        cls.region = os.environ.get('AWS_REGION')
        cls.secondary_bucket = os.environ.get('SECONDARY_S3_BUCKET') or None

        cls.storage_uri = os.environ.get('STORAGE')
        if not cls.storage_uri and os.environ.get('S3_BUCKET'):
            cls.storage_uri = f"s3:{os.environ['S3_BUCKET']}"

    @classmethod
    def open_store(cls) -> "ObjectStore":
        """Create the object store driver for the configured storage URI."""
        from storage import create_storage
        if not cls.storage_uri:
            raise ValueError(
                "No storage configured. Set STORAGE (e.g. s3:my-bucket or "
                "local:/path/to/root) or S3_BUCKET."
            )
        cls.store = create_storage(cls.storage_uri, region=cls.region)
        return cls.store

    @classmethod
    def open_pipeline(cls) -> "GumloopClient":
        """Create the automation platform client."""
        from workflows.pipeline import GumloopClient
        cls.pipeline = GumloopClient()
        return cls.pipeline

    @classmethod
    def close(cls) -> None:
        """Cleanup resources."""
        if cls.pipeline:
            cls.pipeline.close()
            cls.pipeline = None
        cls.store = None

    @classmethod
    def set_app(cls, app: Any) -> None:
        """Set the Textual app reference for UI updates."""
        cls._app = app

    @classmethod
    def print_log(cls, message: str) -> None:
        """Add line to the activity log (log panel in TUI, stdout in CLI)."""
        if cls._app is not None:
            cls._app.call_from_thread(cls._app.add_log, message)
        else:
            # Strip Rich markup for CLI output
            print(_strip_rich_markup(message))

    @classmethod
    def print_debug(cls, message: str) -> None:
        """Add a debug line to the activity log, only in verbose mode."""
        if cls.verbose:
            cls.print_log(f"[dim]{message}[/dim]")

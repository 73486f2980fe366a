"""
Remote clip sources: metadata resolution and asset download.

Both operations are best-effort per clip. A failure returns None/False and
the pipeline skips the clip; nothing here raises to the caller.
"""

from .resolver import ClipResolver, derive_asset_url
from .downloader import Downloader

__all__ = ["ClipResolver", "derive_asset_url", "Downloader"]

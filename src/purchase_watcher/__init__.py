"""Purchase register watcher.

Exposes the high-level ``watch`` API and the extraction/diff helpers for
programmatic use.
"""

from .compare import compare_snapshots  # Snapshot differ
from .config import WatcherConfig, config_from_env  # Configuration value and loader
from .excel_reader import extract_active_records  # Record extractor
from .runner import SnapshotWatcher, watch  # Public API for monitoring

__all__ = [
    "SnapshotWatcher",
    "WatcherConfig",
    "compare_snapshots",
    "config_from_env",
    "extract_active_records",
    "watch",
]  # Re-exported symbols

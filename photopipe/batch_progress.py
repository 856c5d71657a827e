"""
BatchProgress - Tracks and displays batch upload progress.
"""

import logging
from typing import Optional

from .batch_stats import BatchStats

STATUS_LABELS = {
    'pending': 'WAIT',
    'uploading': 'UPLOAD',
    'optimizing': 'OPTIMIZE',
    'completed': 'OK',
    'error': 'ERROR',
}


class BatchProgress:
    """
    Reports per-item status changes and periodic batch summaries.
    """

    def __init__(
        self,
        show_files: bool = False,
        log_interval: int = 10,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize progress tracker.

        Args:
            show_files: If True, print every status change of every item
            log_interval: Log a summary every N finished items (when not show_files)
            logger: Optional logger instance
        """
        self.show_files = show_files
        self.log_interval = log_interval
        self.logger = logger or logging.getLogger(__name__)
        self.last_logged = 0

    def on_status_change(self, item) -> None:
        """
        Called whenever an item moves to a new status.

        Args:
            item: The UploadItem that changed
        """
        status = getattr(item.status, 'value', item.status)
        if self.show_files:
            label = STATUS_LABELS.get(status, status.upper())
            if status == 'error':
                print(f"  [{label}] {item.filename} -> {item.error or 'failed'}")
            elif status == 'completed' and item.result is not None:
                sizes = f"{self._format_bytes(item.result.thumbnail_size)} / {self._format_bytes(item.result.gallery_size)}"
                print(f"  [{label}] {item.filename} -> {item.full_key} ({sizes})")
            else:
                print(f"  [{label}] {item.filename}")
        elif status == 'error':
            self.logger.warning(f"{item.filename} failed: {item.error}")

    def on_progress_update(self, stats: BatchStats) -> None:
        """
        Called after every finished item to report overall progress.

        Args:
            stats: Current batch statistics
        """
        done = stats.finished_count
        if not self.show_files and done - self.last_logged >= self.log_interval:
            self.last_logged = done
            self.logger.info(
                f"Progress: {stats.completed} completed, {stats.errors} errors, "
                f"{stats.remaining_count} left "
                f"(~{stats.estimated_remaining_seconds / 60:.0f}m remaining)"
            )

    @staticmethod
    def _format_bytes(bytes_val: Optional[int]) -> str:
        """Format bytes as human-readable string."""
        if bytes_val is None:
            return "unknown"
        for unit in ['B', 'KB', 'MB', 'GB']:
            if bytes_val < 1024:
                return f"{bytes_val:.1f} {unit}"
            bytes_val /= 1024
        return f"{bytes_val:.1f} TB"

    def __call__(self, stats: BatchStats) -> None:
        """Allow use as callback for stats updates."""
        self.on_progress_update(stats)

"""
BatchStats - Statistics for a batch upload run.
"""

import time
from dataclasses import dataclass, field
from typing import List


@dataclass
class BatchStats:
    """
    Statistics for a batch upload run.

    Attributes:
        total: Items queued for this run
        completed: Uploaded and optimized
        errors: Failed at any step
        skipped: Already completed in an earlier run
        bytes_uploaded: Raw bytes transferred
        bytes_generated: Rendition bytes produced
        in_flight: Items currently being processed
        peak_in_flight: Highest in_flight seen
        start_time: Start timestamp
        error_details: List of error messages
    """
    total: int = 0
    completed: int = 0
    errors: int = 0
    skipped: int = 0
    bytes_uploaded: int = 0
    bytes_generated: int = 0
    in_flight: int = 0
    peak_in_flight: int = 0
    start_time: float = field(default_factory=time.time)
    error_details: List[str] = field(default_factory=list)

    @property
    def elapsed_seconds(self) -> float:
        """Elapsed time in seconds."""
        return time.time() - self.start_time

    @property
    def rate_per_minute(self) -> float:
        """Completed items per minute."""
        if self.elapsed_seconds > 0:
            return self.completed / self.elapsed_seconds * 60
        return 0.0

    @property
    def finished_count(self) -> int:
        """Items in a terminal state (completed or error)."""
        return self.completed + self.errors

    @property
    def remaining_count(self) -> int:
        return self.total - self.finished_count

    @property
    def estimated_remaining_seconds(self) -> float:
        """Estimated time remaining in seconds."""
        if self.finished_count and self.elapsed_seconds > 0:
            per_item = self.elapsed_seconds / self.finished_count
            return per_item * self.remaining_count
        return 0.0

    def enter(self) -> None:
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)

    def leave(self) -> None:
        self.in_flight -= 1
